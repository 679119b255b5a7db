# -*- coding: utf-8 -*-

"""Leaf archive and the reference ledger-sync collaborator.

A CompactTree forgets leaves as soon as they are merged into its frontier,
so proof generation needs the full leaf-hash history from somewhere else.
LeafArchive keeps that history in memory; AuditLog feeds one archive and
one tree in lockstep.

Copyright: (c) 2018 by Vasyl Paliy.
License: MIT, see LICENSE for more details.
"""

import threading

from ledgertree import utils
from ledgertree.logging_config import get_logger
from ledgertree.merkle import CompactTree, to_hasher
from ledgertree.proofs import ProofGenerator


logger = get_logger(__name__)


class LeafArchive(object):
  """Thread-safe, append-only list of leaf hashes."""

  def __init__(self, leaf_hashes=()):
    self._lock = threading.Lock()
    self._hashes = [utils.from_hex(h) for h in leaf_hashes]

  def append(self, leaf_hash):
    """Stores a leaf hash and returns its index."""
    leaf_hash = utils.from_hex(leaf_hash)
    with self._lock:
      self._hashes.append(leaf_hash)
      return len(self._hashes) - 1

  def extend(self, leaf_hashes):
    for leaf_hash in leaf_hashes:
      self.append(leaf_hash)

  def leaf_hashes(self, start=0, end=None):
    with self._lock:
      return self._hashes[start:end]

  def __getitem__(self, key):
    with self._lock:
      return self._hashes[key]

  def __iter__(self):
    return iter(self.leaf_hashes())

  def __len__(self):
    return len(self._hashes)

  def __repr__(self):
    return f'<{self.__class__.__name__}[{len(self)}]>'


class AuditLog(object):
  """Accumulates the transactions of one ledger.

  Every payload is hashed once; its leaf hash goes to the archive first
  and to the tree second, so any checkpoint the tree reports can be
  proven from the archive.

  Usage::
    >>> log = AuditLog()
    >>> log.append(b'transaction')
    0
    >>> proof = log.audit_proof(0)
  """

  def __init__(self, hashobj=None, archive=None):
    """
    :param hashobj: a hash function or Hasher shared by the tree and proofs.
    :param archive: an existing LeafArchive to resume from.
    """
    self._hasher = to_hasher(hashobj)
    self._archive = archive if archive is not None else LeafArchive()
    self._lock = threading.Lock()
    self._generator = ProofGenerator(self._archive, self._hasher)
    self._tree = self._build_tree()

  def _build_tree(self):
    tree = CompactTree(self._hasher)
    for leaf_hash in self._archive.leaf_hashes():
      tree.append_hash(leaf_hash)
    return tree

  def rebuild(self):
    """Discards the tree and replays the archive into a fresh one."""
    with self._lock:
      self._tree = self._build_tree()
    logger.warning('tree_rebuilt', tree_size=len(self._tree))
    return self._tree

  def append(self, payload):
    """Appends a transaction and returns its leaf index."""
    leaf_hash = self._hasher.hash_leaf(payload)
    with self._lock:
      index = self._archive.append(leaf_hash)
      self._tree.append_hash(leaf_hash)
    return index

  def extend(self, payloads):
    for payload in payloads:
      self.append(payload)

  def checkpoint(self):
    return self._tree.checkpoint()

  def leaf_hash(self, index):
    return self._archive[index]

  def audit_proof(self, leaf_index, tree_size=None):
    """Proves leaf_index against the tree of tree_size leaves (current by default)."""
    if tree_size is None:
      tree_size = len(self._tree)
    return self._generator.generate_audit_proof(leaf_index, tree_size)

  def consistency_proof(self, old_size, new_size=None):
    if new_size is None:
      new_size = len(self._tree)
    return self._generator.generate_consistency_proof(old_size, new_size)

  @property
  def tree(self):
    return self._tree

  @property
  def archive(self):
    return self._archive

  @property
  def generator(self):
    return self._generator

  @property
  def hasher(self):
    return self._hasher

  def __len__(self):
    return len(self._tree)

  def __repr__(self):
    return f'<{self.__class__.__name__}[{len(self)}: {self._tree.merkle_root}]>'
