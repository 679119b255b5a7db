# -*- coding: utf-8 -*-

"""Append-only Merkle trees.

Leaves and nodes are hashed the way Certificate Transparency logs do it:

  leaf:  H(0x00 || payload)
  node:  H(0x01 || left || right)
  empty: H('')

The CompactTree keeps only the frontier of the tree (the roots of its
perfect subtrees), which is enough to append leaves and to compute the
Merkle hash root in O(log n).

>>> from ledgertree import CompactTree
>>> tree = CompactTree()
>>> tree.extend(['a', 'b', 'c'])
>>> tree.checkpoint()
Checkpoint(tree_size=3, root_hash=...)

Copyright: (c) 2018 by Vasyl Paliy.
License: MIT, see LICENSE for more details.
"""

import collections
import functools
import hashlib
import io
import json
import threading

from ledgertree import utils
from ledgertree.exceptions import CorruptedTreeState, HashAlgorithmMismatch
from ledgertree.logging_config import get_logger


logger = get_logger(__name__)


LEAF_PREFIX = b'\x00'
NODE_PREFIX = b'\x01'

# a frontier has one slot per bit of the tree size
MAX_TREE_SIZE = 2 ** 64


# known answers (H(''), H(0x00)) for digests used by ledger networks
KNOWN_VECTORS = {
  'sha256': (
    'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855',
    '6e340b9cffb37a989ca544e6bb780a2c78901d3fb33738768511a30617afa01d',
  ),
}


# hash function which is supplied when the user
# does not provide his/her hashing mechanism
def _default_hash(value):
  return hashlib.sha256(utils.to_string(value)).digest()


def _hash_from_hex(func):
  """A decorator that converts hashes from hexadecimal strings to bytes.

  :param func: a hash function that returns either bytes or a hexadecimal string.
  :return _wrapper: a function that always returns bytes.
  """
  # keep it dry
  if hasattr(func, '_hex_decorator'):
    return func._hex_decorator
  @functools.wraps(func)
  def _wrapper(*args, **kwargs):
    hash_value = func(*args, **kwargs)
    if not isinstance(hash_value, (str, bytes, bytearray)):
      raise TypeError(
        f'Hash function must return bytes or str, got {type(hash_value)}'
      )
    return utils.from_hex(hash_value)
  try:
    func._hex_decorator = _wrapper
  except AttributeError:
    # builtins and bound methods reject new attributes
    pass
  _wrapper.__wrapped__ = func
  return _wrapper


class Hasher(object):
  """Merkle hasher that prepends a domain separation byte before hashing.

  Leaves get 0x00 and internal nodes get 0x01, so the hash of an internal
  node can never be replayed as the hash of a leaf.

  Attributes:
    hashfunc: a function that consumes bytes and returns their digest,
      either as bytes or as a hexadecimal string.
    algorithm: name of the digest, used by the known-answer self-check.
  """

  def __init__(self, hashfunc=_default_hash, algorithm=None):
    if not callable(hashfunc):
      raise TypeError(f'Expected callable, got {type(hashfunc)}')
    if algorithm is None and hashfunc is _default_hash:
      algorithm = 'sha256'
    self.hashfunc = hashfunc
    self.algorithm = algorithm

  @classmethod
  def from_algorithm(cls, name):
    """Builds a hasher from a hashlib algorithm name."""
    try:
      hashlib.new(name)
    except (ValueError, TypeError) as error:
      raise HashAlgorithmMismatch(f'Unknown hash algorithm: {name}') from error
    return cls(lambda data: hashlib.new(name, data).digest(), algorithm=name)

  def hash_leaf(self, data):
    return self._hashfunc(LEAF_PREFIX + utils.to_string(data))

  def hash_children(self, left, right):
    return self._hashfunc(NODE_PREFIX + left + right)

  def hash_empty(self):
    return self._hashfunc(b'')

  @property
  def digest_size(self):
    return len(self.hash_empty())

  def check_algorithm(self, expected=None):
    """Verifies the configured digest against known-good vectors.

    :param expected: name of the digest the network uses.
      Defaults to the algorithm the hasher was built with.
    :raises HashAlgorithmMismatch: if the digest produces different bytes.
    """
    name = expected or self.algorithm
    if name is None:
      raise HashAlgorithmMismatch('No hash algorithm to check against')
    name = name.lower()
    vectors = KNOWN_VECTORS.get(name)
    if vectors is None:
      try:
        vectors = tuple(
          hashlib.new(name, data).hexdigest() for data in (b'', LEAF_PREFIX)
        )
      except ValueError as error:
        raise HashAlgorithmMismatch(f'Unknown hash algorithm: {name}') from error
    empty, leaf = (utils.from_hex(v) for v in vectors)
    if self.hash_empty() != empty or self.hash_leaf(b'') != leaf:
      logger.error('hash_self_check_failed', algorithm=name)
      raise HashAlgorithmMismatch(
        f'Configured hash function does not produce {name} digests'
      )

  @property
  def hashfunc(self):
    return self._hashfunc

  @hashfunc.setter
  def hashfunc(self, hashfunc):
    self._hashfunc = _hash_from_hex(hashfunc)

  def __repr__(self):
    classname = self.__class__.__name__
    hashfunc = self._hashfunc.__wrapped__
    return f'{classname}({hashfunc})'

  def __str__(self):
    return repr(self)


def to_hasher(hashobj=None):
  """Converts a hash function (or None) into a Hasher."""
  if hashobj is None:
    return Hasher()
  if isinstance(hashobj, Hasher):
    return hashobj
  if callable(hashobj):
    return Hasher(hashfunc=hashobj)
  raise TypeError('hashobj must be a function or Hasher')


def _subtree_hash(hasher, leaves, start, end):
  # MTH(D[start:end]) for a non-empty range
  if end - start == 1:
    return utils.from_hex(leaves[start])
  k = utils.largest_power_of_two_below(end - start)
  return hasher.hash_children(
    _subtree_hash(hasher, leaves, start, start + k),
    _subtree_hash(hasher, leaves, start + k, end)
  )


def merkle_tree_hash(leaf_hashes, hashobj=None):
  """Computes the Merkle hash root straight from its recursive definition.

  :param leaf_hashes: ordered leaf hashes (bytes or hexadecimal strings).
  :param hashobj: a hash function or Hasher.
  :return: the root hash as bytes.
  """
  hasher = to_hasher(hashobj)
  leaves = list(leaf_hashes)
  if not leaves:
    return hasher.hash_empty()
  return _subtree_hash(hasher, leaves, 0, len(leaves))


class Checkpoint(collections.namedtuple('Checkpoint', 'tree_size root_hash')):
  """A trusted (tree_size, root_hash) pair of a ledger."""

  __slots__ = ()

  def __new__(cls, tree_size, root_hash):
    if not isinstance(tree_size, int) or isinstance(tree_size, bool):
      raise TypeError(f'Expected int, got {type(tree_size)}')
    if tree_size < 0:
      raise ValueError(f'Tree size cannot be negative: {tree_size}')
    root_hash = utils.from_hex(root_hash)
    if not root_hash:
      raise ValueError('Root hash cannot be empty')
    return super(Checkpoint, cls).__new__(cls, tree_size, root_hash)

  @property
  def root_hex(self):
    return utils.to_hex(self.root_hash)

  def to_dict(self):
    return {'tree_size': self.tree_size, 'root_hash': self.root_hex}

  @classmethod
  def from_dict(cls, data):
    try:
      return cls(data['tree_size'], data['root_hash'])
    except KeyError as error:
      raise ValueError(f'Missing checkpoint field: {error}') from error

  def to_json(self, **kwargs):
    return json.dumps(self.to_dict(), **kwargs)

  @classmethod
  def from_json(cls, text):
    return cls.from_dict(json.loads(text))

  def save(self, filename):
    with io.open(filename, mode='w', encoding='utf-8') as fp:
      fp.write(self.to_json(indent=2))

  @classmethod
  def load(cls, filename):
    with io.open(filename, mode='r', encoding='utf-8') as fp:
      return cls.from_json(fp.read())

  def __repr__(self):
    return f'Checkpoint(tree_size={self.tree_size}, root_hash={self.root_hex})'


class CompactTree(object):
  """Append-only Merkle tree that only remembers its frontier.

  The frontier holds one (level, hash) pair per set bit of the leaf count,
  highest level first; each hash is the root of a perfect subtree of
  2**level leaves. Appending a leaf merges equal levels the same way
  incrementing a binary counter carries.

  Appends are serialized by a lock. Readers never take it: the size and
  the frontier are published together as one immutable snapshot.

  Usage::
    >>> tree = CompactTree(hashfunc)
    >>> tree.append(transaction)
    0
    >>> tree.current_root()
  """

  def __init__(self, hashobj=None):
    """
    :param hashobj: a hashing mechanism to be used while building the tree.
        It is either a hash function or a Hasher instance.
    """
    self._hasher = to_hasher(hashobj)
    self._lock = threading.Lock()
    self._state = (0, ())
    self._corrupted = False

  @classmethod
  def from_frontier(cls, tree_size, hashes, hashobj=None):
    """Restores a tree from a persisted frontier.

    :param tree_size: number of leaves the frontier covers.
    :param hashes: subtree roots ordered from the highest level down.
    :raises CorruptedTreeState: if the hashes do not fit the size.
    """
    tree = cls(hashobj)
    hashes = [utils.from_hex(h) for h in hashes]
    levels = utils.bit_levels(tree_size)
    if len(hashes) != len(levels):
      raise CorruptedTreeState(
        f'Tree of {tree_size} leaves needs {len(levels)} '
        f'frontier hashes, got {len(hashes)}'
      )
    state = (tree_size, tuple(zip(levels, hashes)))
    tree._check_frontier(*state)
    tree._state = state
    return tree

  def _ensure_usable(self):
    if self._corrupted:
      raise CorruptedTreeState('Tree state is corrupted, rebuild it')

  def _check_frontier(self, size, frontier):
    levels = tuple(level for level, _ in frontier)
    valid = levels == utils.bit_levels(size) and all(
      isinstance(node, bytes) and len(node) > 0 for _, node in frontier
    )
    if not valid:
      self._corrupted = True
      logger.error('frontier_invariant_violated', tree_size=size, levels=levels)
      raise CorruptedTreeState(
        f'Frontier levels {levels} do not match tree size {size}'
      )

  def append(self, payload):
    """Appends a new leaf to the end of the tree.

    :param payload: raw transaction to be added to the tree.
    Note: this will hash the payload!
    :return: index of the new leaf.
    """
    return self.append_hash(self._hasher.hash_leaf(payload))

  def append_hash(self, leaf_hash):
    """Appends an already hashed leaf and returns its index."""
    leaf_hash = utils.from_hex(leaf_hash)
    hasher = self._hasher
    with self._lock:
      self._ensure_usable()
      size, frontier = self._state
      self._check_frontier(size, frontier)
      peaks = list(frontier)
      level, node = 0, leaf_hash
      # carry: merge with every peak that sits at the current level
      while peaks and peaks[-1][0] == level:
        _, left = peaks.pop()
        node = hasher.hash_children(left, node)
        level += 1
      peaks.append((level, node))
      state = (size + 1, tuple(peaks))
      self._check_frontier(*state)
      self._state = state
    logger.debug('leaf_appended', index=size, merged_levels=level)
    return size

  def extend(self, data):
    """Extends the tree by adding additional leaves.

    :param data: a collection of payloads to be appended to the tree.
    """
    for item in data:
      self.append(item)

  def _root_of(self, state):
    size, frontier = state
    hasher = self._hasher
    if size == 0:
      return hasher.hash_empty()
    # fold the peaks right to left, the smallest subtree is the deepest
    root = frontier[-1][1]
    for _, node in reversed(frontier[:-1]):
      root = hasher.hash_children(node, root)
    return root

  def current_root(self):
    """Returns the Merkle hash root of all appended leaves as bytes."""
    self._ensure_usable()
    state = self._state
    self._check_frontier(*state)
    return self._root_of(state)

  def checkpoint(self):
    """Returns the current (size, root) pair from one consistent snapshot."""
    self._ensure_usable()
    state = self._state
    self._check_frontier(*state)
    return Checkpoint(state[0], self._root_of(state))

  @property
  def total_size(self):
    return self._state[0]

  @property
  def frontier(self):
    return self._state[1]

  @property
  def merkle_root(self):
    return utils.to_hex(self.current_root())

  @property
  def hasher(self):
    return self._hasher

  def __len__(self):
    """Returns the number of leaves in the tree."""
    return self._state[0]

  def __repr__(self):
    size = self._state[0]
    if self._corrupted:
      return f'<{self.__class__.__name__}[{size}: corrupted]>'
    return f'<{self.__class__.__name__}[{size}: {self.merkle_root}]>'

  def __str__(self):
    return repr(self)
