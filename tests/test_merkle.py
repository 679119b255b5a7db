import unittest
import hashlib
import math
import os
import tempfile
import threading

from ledgertree import utils
from ledgertree.exceptions import CorruptedTreeState, HashAlgorithmMismatch
from ledgertree.merkle import (
    Hasher,
    CompactTree,
    Checkpoint,
    merkle_tree_hash,
    to_hasher
)


def hashfunc(x):
  return hashlib.sha256(x).digest()


# used for side effects
def mirror(x):
  return x


def _calculate_root(leaves):
  if not leaves:
    return hashfunc(b'')
  if len(leaves) == 1:
    return leaves[0]
  k = 1
  while k * 2 < len(leaves):
    k *= 2
  return hashfunc(
    b'\x01' + _calculate_root(leaves[:k]) + _calculate_root(leaves[k:])
  )


# commonly used objects across tests
hasher = Hasher(hashfunc)
leaf = b'765f15d171871b00034ee55e48f'
sizes = list(range(34)) + [63, 64, 65, 100, 128, 129]


class HasherTestCase(unittest.TestCase):
  def test_hasher(self):
    children = leaf * 2
    classname = hasher.__class__.__name__

    self.assertEqual(hasher.hash_leaf(leaf), hashfunc(b'\x00' + leaf))
    self.assertEqual(hasher.hash_children(leaf, leaf), hashfunc(b'\x01' + children))
    self.assertEqual(hasher.hash_empty(), hashfunc(b''))
    self.assertEqual(hasher.digest_size, 32)
    self.assertNotEqual(hasher.hashfunc, hashfunc)
    self.assertEqual(hasher.hashfunc.__wrapped__, hashfunc)
    self.assertEqual(str(hasher), f'{classname}({hashfunc})')
    self.assertEqual(repr(hasher), f'{classname}({hashfunc})')

  def test_hasher_accepts_hex_digests(self):
    hexhasher = Hasher(lambda x: hashlib.sha256(x).hexdigest())
    self.assertEqual(hexhasher.hash_leaf(leaf), hasher.hash_leaf(leaf))
    self.assertEqual(hexhasher.hash_leaf('abc'), hasher.hash_leaf(b'abc'))

  def test_hasher_rejects_bad_hash_functions(self):
    self.assertRaises(TypeError, Hasher, 'sha256')
    self.assertRaises(TypeError, Hasher(lambda x: 42).hash_leaf, leaf)
    self.assertRaises(TypeError, to_hasher, 42)
    self.assertIs(to_hasher(hasher), hasher)
    self.assertEqual(to_hasher(mirror).hashfunc.__wrapped__, mirror)

  def test_domain_separation(self):
    left, right = hasher.hash_leaf(b'a'), hasher.hash_leaf(b'b')
    node = hasher.hash_children(left, right)

    self.assertNotEqual(hasher.hash_leaf(left + right), node)
    self.assertNotEqual(hasher.hash_leaf(b''), hasher.hash_empty())

  def test_check_algorithm(self):
    Hasher().check_algorithm()
    Hasher().check_algorithm('SHA256')
    hasher.check_algorithm('sha256')
    Hasher.from_algorithm('sha512').check_algorithm()
    Hasher.from_algorithm('sha512').check_algorithm('sha512')

    md5 = lambda x: hashlib.md5(x).digest()
    self.assertRaises(HashAlgorithmMismatch, Hasher(md5).check_algorithm, 'sha256')
    self.assertRaises(HashAlgorithmMismatch, Hasher(mirror).check_algorithm, 'sha256')
    self.assertRaises(HashAlgorithmMismatch, hasher.check_algorithm, 'sha512')
    self.assertRaises(HashAlgorithmMismatch, hasher.check_algorithm)
    self.assertRaises(HashAlgorithmMismatch, hasher.check_algorithm, 'no-such-hash')
    self.assertRaises(HashAlgorithmMismatch, Hasher.from_algorithm, 'no-such-hash')


class CompactTreeTestCase(unittest.TestCase):
  def test_empty_tree(self):
    tree = CompactTree(hasher)

    self.assertEqual(len(tree), 0)
    self.assertEqual(tree.frontier, ())
    self.assertEqual(tree.current_root(), hashfunc(b''))
    self.assertEqual(tree.checkpoint(), Checkpoint(0, hashfunc(b'')))
    self.assertEqual(merkle_tree_hash([], hasher), hashfunc(b''))

  def test_default_hasher_is_sha256(self):
    tree = CompactTree()
    tree.append(leaf)

    self.assertEqual(tree.current_root(), hashfunc(b'\x00' + leaf))
    self.assertEqual(tree.merkle_root, hashfunc(b'\x00' + leaf).hex())

  def test_append_returns_index(self):
    tree = CompactTree(hasher)
    for index in range(10):
      self.assertEqual(tree.append(f'leaf-{index}'), index)
    self.assertEqual(len(tree), 10)
    self.assertEqual(tree.total_size, 10)

  def test_oracle_equivalence(self):
    leaves = [hasher.hash_leaf(f'transaction-{i}') for i in range(max(sizes))]
    tree = CompactTree(hasher)

    for size in range(max(sizes) + 1):
      if size in sizes:
        expected = _calculate_root(leaves[:size])
        self.assertEqual(tree.current_root(), expected)
        self.assertEqual(merkle_tree_hash(leaves[:size], hasher), expected)
      if size < len(leaves):
        tree.append_hash(leaves[size])

  def test_extend_matches_append(self):
    payloads = [f'transaction-{i}' for i in range(37)]
    a, b = CompactTree(hasher), CompactTree(hasher)
    a.extend(payloads)
    for payload in payloads:
      b.append(payload)

    self.assertEqual(a.checkpoint(), b.checkpoint())
    self.assertEqual(a.frontier, b.frontier)

  def test_frontier_invariant(self):
    tree = CompactTree(hasher)
    for size in range(1, 130):
      tree.append(size)
      levels = [level for level, _ in tree.frontier]
      expected = [i for i in range(size.bit_length()) if size >> i & 1][::-1]

      self.assertEqual(levels, expected)
      self.assertLessEqual(len(tree.frontier), math.ceil(math.log2(size + 1)))

  def test_frontier_peaks_are_subtree_roots(self):
    leaves = [hasher.hash_leaf(i) for i in range(13)]
    tree = CompactTree(hasher)
    for leaf_hash in leaves:
      tree.append_hash(leaf_hash)

    # 13 = 8 + 4 + 1
    (l8, h8), (l4, h4), (l1, h1) = tree.frontier
    self.assertEqual((l8, l4, l1), (3, 2, 0))
    self.assertEqual(h8, _calculate_root(leaves[:8]))
    self.assertEqual(h4, _calculate_root(leaves[8:12]))
    self.assertEqual(h1, leaves[12])

  def test_from_frontier(self):
    payloads = [f'transaction-{i}' for i in range(40)]
    full = CompactTree(hasher)
    full.extend(payloads[:21])

    hashes = [utils.to_hex(h) for _, h in full.frontier]
    restored = CompactTree.from_frontier(21, hashes, hasher)
    self.assertEqual(restored.checkpoint(), full.checkpoint())

    full.extend(payloads[21:])
    restored.extend(payloads[21:])
    self.assertEqual(restored.checkpoint(), full.checkpoint())

    self.assertRaises(CorruptedTreeState, CompactTree.from_frontier, 21, hashes[:2], hasher)
    self.assertRaises(CorruptedTreeState, CompactTree.from_frontier, 20, hashes, hasher)
    self.assertEqual(len(CompactTree.from_frontier(0, [], hasher)), 0)

  def test_corrupted_tree_is_fatal(self):
    tree = CompactTree(hasher)
    tree.extend('abc')
    # drop a peak behind the tree's back
    tree._state = (3, tree.frontier[:1])

    self.assertRaises(CorruptedTreeState, tree.append, 'd')
    self.assertRaises(CorruptedTreeState, tree.current_root)
    self.assertRaises(CorruptedTreeState, tree.checkpoint)
    self.assertIn('corrupted', repr(tree))

  def test_fixture_with_mirror_hash(self):
    tree = CompactTree(mirror)
    tree.extend(['a', 'b', 'c'])

    self.assertEqual(tree.current_root(), b'\x01\x01\x00a\x00b\x00c')

  def test_fixture_with_sha256(self):
    tree = CompactTree()
    tree.extend(['a', 'b', 'c'])

    self.assertEqual(
      [(level, h.hex()) for level, h in tree.frontier],
      [
        (1, 'b137985ff484fb600db93107c77b0365c80d78f5b429ded0fd97361d077999eb'),
        (0, '597fcb31282d34654c200d3418fca5705c648ebf326ec73d8ddef11841f876d8'),
      ]
    )
    self.assertEqual(
      tree.merkle_root,
      '36642e73c2540ab121e3a6bf9545b0a24982cd830eb13d3cd19de3ce6c021ec1'
    )

  def test_rfc6962_vectors(self):
    inputs = [
      '', '00', '10', '2021', '3031', '40414243',
      '5051525354555657', '606162636465666768696a6b6c6d6e6f',
    ]
    roots = [
      '6e340b9cffb37a989ca544e6bb780a2c78901d3fb33738768511a30617afa01d',
      'fac54203e7cc696cf0dfcb42c92a1d9dbaf70ad9e621f4bd8d98662f00e3c125',
      'aeb6bcfe274b70a14fb067a5e5578264db0fa9b51af5e0ba159158f329e06e77',
      'd37ee418976dd95753c1c73862b9398fa2a2cf9b4ff0fdfe8b30cd95209614b7',
      '4e3bbb1f7b478dcfe71fb631631519a3bca12c9aefca1612bfce4c13a86264d4',
      '76e67dadbcdf1e10e1b74ddc608abd2f98dfb16fbce75277b5232a127f2087ef',
      'ddb89be403809e325750d3d263cd78929c2942b7942a34b77e122c9594a74c8c',
      '5dc9da79a70659a9ad559cb701ded9a2ab9d823aad2f4960cfe370eff4604328',
    ]
    tree = CompactTree()
    for data, root in zip(inputs, roots):
      tree.append(bytes.fromhex(data))
      with self.subTest(size=len(tree)):
        self.assertEqual(tree.merkle_root, root)

  def test_concurrent_readers_see_whole_appends(self):
    payloads = [f'transaction-{i}' for i in range(300)]
    reference = CompactTree(hasher)
    roots = [reference.current_root()]
    for payload in payloads:
      reference.append(payload)
      roots.append(reference.current_root())

    tree = CompactTree(hasher)
    errors = []

    def _read():
      for _ in range(500):
        checkpoint = tree.checkpoint()
        if checkpoint.root_hash != roots[checkpoint.tree_size]:
          errors.append(checkpoint)

    readers = [threading.Thread(target=_read) for _ in range(4)]
    for reader in readers:
      reader.start()
    tree.extend(payloads)
    for reader in readers:
      reader.join()

    self.assertEqual(errors, [])
    self.assertEqual(tree.current_root(), roots[-1])


class CheckpointTestCase(unittest.TestCase):
  def test_checkpoint(self):
    root = hasher.hash_leaf(leaf)
    checkpoint = Checkpoint(1, root.hex())

    self.assertEqual(checkpoint.root_hash, root)
    self.assertEqual(checkpoint.root_hex, root.hex())
    self.assertEqual(checkpoint, (1, root))
    self.assertEqual(repr(checkpoint), f'Checkpoint(tree_size=1, root_hash={root.hex()})')

  def test_checkpoint_validation(self):
    self.assertRaises(ValueError, Checkpoint, -1, b'\x00')
    self.assertRaises(TypeError, Checkpoint, '1', b'\x00')
    self.assertRaises(TypeError, Checkpoint, True, b'\x00')
    self.assertRaises(ValueError, Checkpoint, 1, 'not hex')
    self.assertRaises(ValueError, Checkpoint, 1, b'')
    self.assertRaises(ValueError, Checkpoint, 0, '')
    self.assertRaises(ValueError, Checkpoint.from_dict, {'tree_size': 1})

  def test_checkpoint_serialization(self):
    tree = CompactTree(hasher)
    tree.extend(range(5))
    checkpoint = tree.checkpoint()

    self.assertEqual(
      checkpoint.to_dict(),
      {'tree_size': 5, 'root_hash': tree.merkle_root}
    )
    self.assertEqual(Checkpoint.from_json(checkpoint.to_json()), checkpoint)

    with tempfile.TemporaryDirectory() as directory:
      filename = os.path.join(directory, 'checkpoint.json')
      checkpoint.save(filename)
      self.assertEqual(Checkpoint.load(filename), checkpoint)
