# -*- coding: utf-8 -*-

"""Trusted checkpoints.

A ledger client starts from one checkpoint obtained out of band and only
ever moves forward to checkpoints that are proven to extend it.

Copyright: (c) 2018 by Vasyl Paliy.
License: MIT, see LICENSE for more details.
"""

import threading

from ledgertree.exceptions import IndexOutOfRange, MerkleError
from ledgertree.logging_config import get_logger
from ledgertree.merkle import Checkpoint, to_hasher
from ledgertree.proofs import check_consistency, verify_audit


logger = get_logger(__name__)


class TrustedLedger(object):
  """Holds the trusted checkpoint of a single ledger.

  Attributes:
    checkpoint: the latest accepted Checkpoint.
    history: every accepted checkpoint, oldest first.
  """

  def __init__(self, checkpoint, hashobj=None, algorithm='sha256'):
    """
    :param checkpoint: initial Checkpoint, trusted as is.
    :param hashobj: a hash function or Hasher.
    :param algorithm: digest the network uses. The hasher is self-checked
      against it; pass None to skip the check.
    """
    if not isinstance(checkpoint, Checkpoint):
      raise TypeError(f'Expected Checkpoint, got {type(checkpoint)}')
    self._hasher = to_hasher(hashobj)
    if algorithm is not None:
      self._hasher.check_algorithm(algorithm)
    digest_size = self._hasher.digest_size
    if digest_size and len(checkpoint.root_hash) != digest_size:
      raise ValueError(
        f'Expected a root hash of {digest_size} bytes, '
        f'got {len(checkpoint.root_hash)} bytes'
      )
    self._lock = threading.Lock()
    self._checkpoint = checkpoint
    self._history = [checkpoint]

  @classmethod
  def load(cls, filename, hashobj=None, algorithm='sha256'):
    return cls(Checkpoint.load(filename), hashobj, algorithm)

  def save(self, filename):
    self._checkpoint.save(filename)

  def advance(self, checkpoint, proof):
    """Replaces the trusted checkpoint with a later one.

    :param checkpoint: the Checkpoint reported by the ledger.
    :param proof: ConsistencyProof from the trusted size to checkpoint's size.
    :return: the accepted checkpoint.
    :raises IndexOutOfRange: if the new tree is smaller than the trusted one
      or larger than MAX_TREE_SIZE leaves.
    :raises InvalidProof: if the new tree does not extend the trusted one.
    """
    if not isinstance(checkpoint, Checkpoint):
      raise TypeError(f'Expected Checkpoint, got {type(checkpoint)}')
    with self._lock:
      current = self._checkpoint
      if checkpoint.tree_size < current.tree_size:
        logger.warning(
          'checkpoint_rejected', reason='shrinking tree',
          trusted_size=current.tree_size, tree_size=checkpoint.tree_size
        )
        raise IndexOutOfRange(
          f'Checkpoint of {checkpoint.tree_size} leaves is older '
          f'than the trusted one of {current.tree_size}'
        )
      try:
        check_consistency(
          current.root_hash, current.tree_size,
          checkpoint.root_hash, checkpoint.tree_size,
          proof, self._hasher
        )
      except MerkleError as error:
        logger.warning(
          'checkpoint_rejected', reason=str(error),
          trusted_size=current.tree_size, tree_size=checkpoint.tree_size
        )
        raise
      if checkpoint != current:
        self._checkpoint = checkpoint
        self._history.append(checkpoint)
        logger.info(
          'checkpoint_accepted',
          tree_size=checkpoint.tree_size, root_hash=checkpoint.root_hex
        )
    return checkpoint

  def verify_inclusion(self, leaf_hash, proof):
    """Checks an AuditProof against the trusted root."""
    checkpoint = self._checkpoint
    return verify_audit(
      leaf_hash,
      getattr(proof, 'leaf_index', None),
      checkpoint.tree_size,
      proof,
      checkpoint.root_hash,
      self._hasher
    )

  @property
  def checkpoint(self):
    return self._checkpoint

  @property
  def history(self):
    with self._lock:
      return tuple(self._history)

  @property
  def hasher(self):
    return self._hasher

  def __repr__(self):
    return f'<{self.__class__.__name__}[{self._checkpoint!r}]>'


class CheckpointRegistry(object):
  """Keyed collection of independent TrustedLedger instances."""

  def __init__(self, hashobj=None, algorithm='sha256'):
    self._hasher = to_hasher(hashobj)
    self._algorithm = algorithm
    self._lock = threading.Lock()
    self._ledgers = {}

  def register(self, ledger_id, checkpoint):
    """Starts trusting a ledger from its initial checkpoint."""
    with self._lock:
      if ledger_id in self._ledgers:
        raise KeyError(f'Ledger {ledger_id!r} is already registered')
      ledger = TrustedLedger(checkpoint, self._hasher, self._algorithm)
      self._ledgers[ledger_id] = ledger
    logger.info(
      'ledger_registered', ledger_id=str(ledger_id),
      tree_size=checkpoint.tree_size
    )
    return ledger

  def get(self, ledger_id):
    with self._lock:
      return self._ledgers[ledger_id]

  def advance(self, ledger_id, checkpoint, proof):
    return self.get(ledger_id).advance(checkpoint, proof)

  def checkpoint(self, ledger_id):
    return self.get(ledger_id).checkpoint

  @property
  def ledger_ids(self):
    with self._lock:
      return list(self._ledgers)

  def __contains__(self, ledger_id):
    return ledger_id in self._ledgers

  def __len__(self):
    return len(self._ledgers)

  def __iter__(self):
    return iter(self.ledger_ids)
