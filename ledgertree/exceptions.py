"""Exception hierarchy for ledgertree.

All errors raised by the library inherit from MerkleError.

Copyright: (c) 2018 by Vasyl Paliy.
License: MIT, see LICENSE for more details.
"""


class MerkleError(Exception):
  """Base exception for all ledgertree errors."""
  pass


class InvalidProof(MerkleError):
  """Raised when a proof is malformed, tampered or does not match a root."""
  pass


class IndexOutOfRange(MerkleError, IndexError):
  """Raised for a leaf index or a size pair outside the tree."""
  pass


class HashAlgorithmMismatch(MerkleError):
  """Raised when the configured digest fails its known-answer self-check."""
  pass


class CorruptedTreeState(MerkleError):
  """Raised when a tree's frontier no longer matches its size.

  The tree instance is unusable afterwards and must be rebuilt
  from the leaf archive or a trusted checkpoint.
  """
  pass
