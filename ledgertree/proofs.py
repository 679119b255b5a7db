# -*- coding: utf-8 -*-

"""Audit (inclusion) and consistency proofs.

Proofs are generated from the full leaf-hash history of a ledger and
verified against a trusted root without access to that history. Both
sides walk the same recursive split of the tree: a range of n > 1 leaves
is divided at k, the largest power of two smaller than n.

Sample code snippet:

>>> from ledgertree import ProofGenerator, verify_audit
>>> generator = ProofGenerator(archive)
>>> proof = generator.generate_audit_proof(1, 3)
>>> verify_audit(leaf_hash, 1, 3, proof, checkpoint.root_hash)
True

Copyright: (c) 2018 by Vasyl Paliy.
License: MIT, see LICENSE for more details.
"""

import collections.abc
import hmac

from ledgertree import utils
from ledgertree.exceptions import IndexOutOfRange, InvalidProof, MerkleError
from ledgertree.logging_config import get_logger
from ledgertree.merkle import MAX_TREE_SIZE, _subtree_hash, to_hasher


logger = get_logger(__name__)


def _to_digest(value):
  if not isinstance(value, (str, bytes, bytearray)):
    raise InvalidProof(f'Expected a hash, got {type(value)}')
  try:
    digest = utils.from_hex(value)
  except ValueError as error:
    raise InvalidProof(f'Malformed hash: {value!r}') from error
  return digest


def _check_digest_sizes(hasher, digests):
  size = hasher.digest_size
  # hash functions with an empty H('') have no fixed digest size
  if not size:
    return
  for digest in digests:
    if len(digest) != size:
      raise InvalidProof(
        f'Expected a hash of {size} bytes, got {len(digest)} bytes'
      )


def _check_int(name, value, error=InvalidProof):
  if not isinstance(value, int) or isinstance(value, bool):
    raise error(f'{name} must be an integer, got {type(value)}')


def _check_tree_size(name, value):
  # the value is untrusted and may be too large to format
  if abs(value) >= MAX_TREE_SIZE:
    raise IndexOutOfRange(f'{name} is beyond the largest supported tree')


class _BaseProof(object):
  """Data structure that contains attributes common to all proofs.

  Attributes:
    hashes: tuple of hash values, in the order the verifier consumes them.
  """

  __slots__ = ('hashes',)

  # names of the two integers that qualify the hashes
  _fields = ()

  def __init__(self, hashes):
    self.hashes = tuple(_to_digest(h) for h in hashes)

  @property
  def header(self):
    return tuple(getattr(self, name) for name in self._fields)

  @property
  def hex_nodes(self):
    return [utils.to_hex(h) for h in self.hashes]

  def to_dict(self):
    data = dict(zip(self._fields, self.header))
    data['hashes'] = self.hex_nodes
    return data

  @classmethod
  def from_dict(cls, data):
    try:
      args = [data[name] for name in cls._fields]
      hashes = data['hashes']
    except (KeyError, TypeError) as error:
      raise InvalidProof(f'Malformed {cls.__name__}: {error}') from error
    if isinstance(hashes, (str, bytes)):
      raise InvalidProof('Proof hashes must be a list')
    return cls(*args, hashes=hashes)

  def __len__(self):
    return len(self.hashes)

  def __iter__(self):
    return iter(self.hashes)

  def __eq__(self, other):
    return all([
      type(other) is type(self),
      self.header == getattr(other, 'header', None),
      self.hashes == getattr(other, 'hashes', None)
    ])

  def __ne__(self, other):
    return not self == other

  def __hash__(self):
    return hash((type(self), self.header, self.hashes))

  def __repr__(self):
    name = type(self).__name__
    header = ', '.join(f'{n}={v}' for n, v in zip(self._fields, self.header))
    items = ', '.join(self.hex_nodes)
    return f'<{name} {header} {{{items}}}>'

  def __str__(self):
    return repr(self)


class AuditProof(_BaseProof):
  """Proves that the leaf at leaf_index is part of a tree of tree_size leaves.

  The hashes are ordered from the leaf up to the root.
  """

  __slots__ = ('leaf_index', 'tree_size')
  _fields = ('leaf_index', 'tree_size')

  def __init__(self, leaf_index, tree_size, hashes=()):
    _check_int('leaf_index', leaf_index)
    _check_int('tree_size', tree_size)
    self.leaf_index = leaf_index
    self.tree_size = tree_size
    super(AuditProof, self).__init__(hashes)


class ConsistencyProof(_BaseProof):
  """Proves that the tree of old_size leaves is a prefix of the one of new_size."""

  __slots__ = ('old_size', 'new_size')
  _fields = ('old_size', 'new_size')

  def __init__(self, old_size, new_size, hashes=()):
    _check_int('old_size', old_size)
    _check_int('new_size', new_size)
    self.old_size = old_size
    self.new_size = new_size
    super(ConsistencyProof, self).__init__(hashes)


class ProofGenerator(object):
  """Builds proofs from the leaf-hash history of a ledger.

  The generator never stores leaves itself, it reads them from an archive
  which is any object that supports len() and slicing, e.g. a list of
  leaf hashes or a LeafArchive.
  """

  def __init__(self, leaf_hashes, hashobj=None):
    self._leaves = leaf_hashes
    self._hasher = to_hasher(hashobj)

  @property
  def hasher(self):
    return self._hasher

  @property
  def archive(self):
    return self._leaves

  def _snapshot(self, tree_size):
    _check_int('tree_size', tree_size, TypeError)
    available = len(self._leaves)
    if tree_size < 0 or tree_size > available:
      raise IndexOutOfRange(
        f'Tree size {tree_size} is outside of the archive (0..{available})'
      )
    return [utils.from_hex(h) for h in self._leaves[:tree_size]]

  def _mth(self, leaves, start, end):
    return _subtree_hash(self._hasher, leaves, start, end)

  def root(self, tree_size):
    """Returns the Merkle hash root of the first tree_size leaves."""
    leaves = self._snapshot(tree_size)
    if tree_size == 0:
      return self._hasher.hash_empty()
    return self._mth(leaves, 0, tree_size)

  def _path(self, leaves, index, start, end):
    if end - start == 1:
      return []
    k = utils.largest_power_of_two_below(end - start)
    if index < k:
      path = self._path(leaves, index, start, start + k)
      path.append(self._mth(leaves, start + k, end))
    else:
      path = self._path(leaves, index - k, start + k, end)
      path.append(self._mth(leaves, start, start + k))
    return path

  def generate_audit_proof(self, leaf_index, tree_size):
    """Provides an audit proof for a leaf.

    :param leaf_index: zero-based index of the leaf.
    :param tree_size: size of the tree the proof is anchored to.
    :return: AuditProof whose hashes, folded with the leaf hash,
      produce the Merkle hash root of the tree.
    :raises IndexOutOfRange: if leaf_index is not below tree_size
      or the archive holds fewer than tree_size leaves.
    """
    _check_int('leaf_index', leaf_index, TypeError)
    leaves = self._snapshot(tree_size)
    if not 0 <= leaf_index < tree_size:
      raise IndexOutOfRange(
        f'Leaf index {leaf_index} is outside of a tree of {tree_size} leaves'
      )
    path = self._path(leaves, leaf_index, 0, tree_size)
    logger.debug(
      'audit_proof_generated',
      leaf_index=leaf_index, tree_size=tree_size, length=len(path)
    )
    return AuditProof(leaf_index, tree_size, path)

  def _subproof(self, leaves, m, start, end, complete):
    n = end - start
    if m == n:
      # the verifier already holds the root of a complete old tree
      return [] if complete else [self._mth(leaves, start, end)]
    k = utils.largest_power_of_two_below(n)
    if m <= k:
      proof = self._subproof(leaves, m, start, start + k, complete)
      proof.append(self._mth(leaves, start + k, end))
    else:
      proof = self._subproof(leaves, m - k, start + k, end, False)
      proof.append(self._mth(leaves, start, start + k))
    return proof

  def generate_consistency_proof(self, old_size, new_size):
    """Provides a proof that the tree of old_size leaves is a prefix
     of the tree of new_size leaves.

    :raises IndexOutOfRange: if old_size > new_size, a size is negative
      or the archive holds fewer than new_size leaves.
    """
    _check_int('old_size', old_size, TypeError)
    leaves = self._snapshot(new_size)
    if not 0 <= old_size <= new_size:
      raise IndexOutOfRange(
        f'Cannot prove consistency from {old_size} to {new_size} leaves'
      )
    proof = []
    if 0 < old_size < new_size:
      proof = self._subproof(leaves, old_size, 0, new_size, True)
    logger.debug(
      'consistency_proof_generated',
      old_size=old_size, new_size=new_size, length=len(proof)
    )
    return ConsistencyProof(old_size, new_size, proof)


def _proof_hashes(proof, proof_type, header):
  if isinstance(proof, _BaseProof):
    if not isinstance(proof, proof_type):
      raise InvalidProof(
        f'Expected {proof_type.__name__}, got {type(proof).__name__}'
      )
    if proof.header != header:
      raise InvalidProof(
        f'Proof was issued for {proof.header}, not for {header}'
      )
    return list(proof.hashes)
  if isinstance(proof, (str, bytes, bytearray)) or \
      not isinstance(proof, collections.abc.Iterable):
    raise InvalidProof(f'Expected a sequence of hashes, got {type(proof)}')
  return [_to_digest(h) for h in proof]


def _audit_root(hasher, leaf_hash, index, size, path):
  # mirrors PATH: walk the splits from the top, then fold from the leaf up
  # with the path, whose last hash belongs to the top split
  sides = []
  while size > 1:
    k = utils.largest_power_of_two_below(size)
    if index < k:
      sides.append(True)
      size = k
    else:
      sides.append(False)
      index, size = index - k, size - k
  if len(path) < len(sides):
    raise InvalidProof('Audit proof is too short')
  if len(path) > len(sides):
    raise InvalidProof('Audit proof is too long')

  node = leaf_hash
  for is_left, sibling in zip(reversed(sides), path):
    if is_left:
      node = hasher.hash_children(node, sibling)
    else:
      node = hasher.hash_children(sibling, node)
  return node


def check_audit(leaf_hash, leaf_index, tree_size, proof, expected_root,
                hashobj=None):
  """Verifies an audit proof and raises if it does not hold.

  :param leaf_hash: hash of the leaf, i.e. Hasher.hash_leaf(payload).
  :param leaf_index: index the leaf is claimed to have.
  :param tree_size: size of the tree the root belongs to.
  :param proof: AuditProof or a sequence of hashes ordered leaf to root.
  :param expected_root: trusted Merkle hash root of the tree.
  :raises IndexOutOfRange: if leaf_index is not below tree_size
    or tree_size is not below MAX_TREE_SIZE.
  :raises InvalidProof: if the proof is malformed or does not produce the root.
  """
  hasher = to_hasher(hashobj)
  _check_int('leaf_index', leaf_index)
  _check_int('tree_size', tree_size)
  _check_tree_size('leaf_index', leaf_index)
  _check_tree_size('tree_size', tree_size)
  if not 0 <= leaf_index < tree_size:
    raise IndexOutOfRange(
      f'Leaf index {leaf_index} is outside of a tree of {tree_size} leaves'
    )
  hashes = _proof_hashes(proof, AuditProof, (leaf_index, tree_size))
  leaf_hash, expected_root = _to_digest(leaf_hash), _to_digest(expected_root)
  _check_digest_sizes(hasher, [leaf_hash, expected_root] + hashes)
  root = _audit_root(hasher, leaf_hash, leaf_index, tree_size, hashes)
  if not hmac.compare_digest(root, expected_root):
    raise InvalidProof('Audit proof does not match the root hash')


def verify_audit(leaf_hash, leaf_index, tree_size, proof, expected_root,
                 hashobj=None):
  """Verifies that a tree of tree_size leaves includes a leaf.

  :return: True if the proof recreates expected_root, False otherwise.
  """
  try:
    check_audit(
      leaf_hash, leaf_index, tree_size, proof, expected_root, hashobj
    )
  except MerkleError as error:
    logger.info(
      'audit_proof_rejected',
      leaf_index=leaf_index, tree_size=tree_size, reason=str(error)
    )
    return False
  return True


def _consistency_roots(hasher, old_root, m, n, path, complete):
  # mirrors SUBPROOF, consuming the proof from its end;
  # returns the recomputed (old root, new root) of the range
  steps = []
  while m != n:
    if not path:
      raise InvalidProof('Consistency proof is too short')
    k = utils.largest_power_of_two_below(n)
    sibling = path.pop()
    if m <= k:
      steps.append((True, sibling))
      n = k
    else:
      steps.append((False, sibling))
      m, n, complete = m - k, n - k, False

  if complete:
    old = new = old_root
  elif not path:
    raise InvalidProof('Consistency proof is too short')
  else:
    old = new = path.pop()

  for is_left, sibling in reversed(steps):
    if is_left:
      new = hasher.hash_children(new, sibling)
    else:
      old = hasher.hash_children(sibling, old)
      new = hasher.hash_children(sibling, new)
  return old, new


def check_consistency(old_root, old_size, new_root, new_size, proof,
                      hashobj=None):
  """Verifies a consistency proof and raises if it does not hold.

  :param old_root: trusted Merkle hash root of the old tree.
  :param old_size: number of leaves in the old tree.
  :param new_root: Merkle hash root of the new tree.
  :param new_size: number of leaves in the new tree.
  :param proof: ConsistencyProof or a sequence of hashes.
  :raises IndexOutOfRange: if old_size is negative or greater than new_size
    or new_size is not below MAX_TREE_SIZE.
  :raises InvalidProof: if the new tree is not an extension of the old one.
  """
  hasher = to_hasher(hashobj)
  _check_int('old_size', old_size)
  _check_int('new_size', new_size)
  _check_tree_size('old_size', old_size)
  _check_tree_size('new_size', new_size)
  if not 0 <= old_size <= new_size:
    raise IndexOutOfRange(
      f'Cannot prove consistency from {old_size} to {new_size} leaves'
    )
  hashes = _proof_hashes(proof, ConsistencyProof, (old_size, new_size))
  old_root, new_root = _to_digest(old_root), _to_digest(new_root)
  _check_digest_sizes(hasher, [old_root, new_root] + hashes)

  # an empty tree is a prefix of every tree
  if old_size == 0 or old_size == new_size:
    if hashes:
      raise InvalidProof('Consistency proof must be empty')
    if old_size == new_size and not hmac.compare_digest(old_root, new_root):
      raise InvalidProof('Trees of equal size have different roots')
    return

  path = list(hashes)
  old, new = _consistency_roots(hasher, old_root, old_size, new_size, path, True)
  if path:
    raise InvalidProof('Consistency proof is too long')
  if not hmac.compare_digest(old, old_root):
    raise InvalidProof('Consistency proof does not match the old root')
  if not hmac.compare_digest(new, new_root):
    raise InvalidProof('Consistency proof does not match the new root')


def verify_consistency(old_root, old_size, new_root, new_size, proof,
                       hashobj=None):
  """Verifies that the new tree contains the same leaves,
   in the same order, as the old one.

  :return: True if both trees are consistent, False otherwise.
  """
  try:
    check_consistency(old_root, old_size, new_root, new_size, proof, hashobj)
  except MerkleError as error:
    logger.info(
      'consistency_proof_rejected',
      old_size=old_size, new_size=new_size, reason=str(error)
    )
    return False
  return True
