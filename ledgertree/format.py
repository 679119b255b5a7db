import io

from anytree import AnyNode, RenderTree
from anytree.exporter import DotExporter, JsonExporter

from ledgertree import utils
from ledgertree.archive import AuditLog
from ledgertree.merkle import to_hasher
from ledgertree.proofs import ProofGenerator


__all__ = ['beautify', 'export', 'jsonify']


def _get_leaves(obj, hashobj):
  if isinstance(obj, AuditLog):
    return obj.archive.leaf_hashes(), obj.hasher
  if isinstance(obj, ProofGenerator):
    return list(obj.archive), obj.hasher
  if isinstance(obj, (str, bytes)) or not hasattr(obj, '__iter__'):
    raise TypeError(
      f'Expected AuditLog, ProofGenerator or leaf hashes, got {type(obj)}'
    )
  return list(obj), to_hasher(hashobj)


def _attach(hasher, leaves, start, end, parent):
  node = AnyNode(parent=parent)
  if end - start == 1:
    hashval = utils.from_hex(leaves[start])
  else:
    k = utils.largest_power_of_two_below(end - start)
    left = _attach(hasher, leaves, start, start + k, node)
    right = _attach(hasher, leaves, start + k, end, node)
    hashval = hasher.hash_children(left, right)
  node.name = utils.to_hex(hashval)
  return hashval


def _get_printable_tree(obj, hashobj=None):
  leaves, hasher = _get_leaves(obj, hashobj)
  if not leaves:
    return AnyNode(name=utils.to_hex(hasher.hash_empty()))
  holder = AnyNode()
  _attach(hasher, leaves, 0, len(leaves), holder)
  root = holder.children[0]
  root.parent = None
  return root


def export(obj, filename, ext='json', hashobj=None, **kwargs):
  parent = _get_printable_tree(obj, hashobj)
  if ext == 'json':
    with io.open(f'{filename}.json', mode='w+', encoding='utf-8') as fp:
      JsonExporter(**kwargs).write(parent, fp)
  else:
    DotExporter(parent, **kwargs).to_picture(f'{filename}.{ext}')


def jsonify(obj, hashobj=None, **kwargs):
  parent = _get_printable_tree(obj, hashobj)
  return JsonExporter(**kwargs).export(parent)


def beautify(obj, hashobj=None):
  parent = _get_printable_tree(obj, hashobj)
  for pre, fill, node in RenderTree(parent):
    print(f'{pre}{node.name}')
