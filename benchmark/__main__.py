# -*- coding: utf-8 -*-
import argparse
from datetime import datetime

from ledgertree import (
  AuditLog,
  TrustedLedger,
  beautify,
  verify_audit,
  verify_consistency
)
from ledgertree.logging_config import setup_logging


def _get_seconds(start):
  return (datetime.now() - start).total_seconds()


def _print_times(average, total, max_t, min_t):
  print(f' Average time: {average} seconds.')
  print(f' Total time: {total} seconds.')
  print(f' Longest time: {max_t} seconds.')
  print(f' Shortest time: {min_t} seconds.')


def _timed(name, count, check):
  total, start_t = 0.0, datetime.now()
  max_t = min_t = None
  for value in range(count):
    cycle_t = datetime.now()
    if not check(value):
      exit(f'Failed {name}: {value}')
    seconds = _get_seconds(cycle_t)
    if max_t is None:
      max_t = min_t = seconds
    else:
      max_t = max(max_t, seconds)
      min_t = min(min_t, seconds)
    total += seconds

  print(f'{name} times ({count} proofs):')
  _print_times(
    average=(total / float(count)),
    total=_get_seconds(start_t),
    max_t=max_t,
    min_t=min_t
  )


def main():
  parser = argparse.ArgumentParser()
  parser.add_argument(
    '-s', '--size',
    help='Initial number of leaves',
    dest='size',
    type=int,
    default=2 ** 8
  )

  parser.add_argument(
    '-a', '--additional',
    help='Number of leaves that we need to append',
    dest='additional',
    type=int,
    default=2 ** 1
  )

  parser.add_argument(
    '-p', '--print',
    help='''
     Beautify the whole tree.
     Recommended to use when the size of the tree is less than 10.
     ''',
    action='store_true',
    dest='printable'
  )

  args = parser.parse_args()
  setup_logging(level='WARNING', json_format=False)
  start, end = args.size, args.additional
  count = start + end

  start_t = datetime.now()
  log = AuditLog()
  log.extend(str(value) for value in range(start))
  trusted = TrustedLedger(log.checkpoint(), log.hasher)

  print(f'Building: {_get_seconds(start_t)} seconds.')
  start_t = datetime.now()

  for value in range(start, count):
    log.append(str(value))

  print(f'Appending: {_get_seconds(start_t)} seconds.')
  print(f'Number of leaves: {len(log)}')

  if args.printable:
    beautify(log)

  checkpoint = log.checkpoint()
  trusted.advance(checkpoint, log.consistency_proof(trusted.checkpoint.tree_size))

  _timed('Audit proof verification', count, lambda leaf: verify_audit(
    log.leaf_hash(leaf),
    leaf,
    count,
    log.audit_proof(leaf),
    checkpoint.root_hash,
    log.hasher
  ))

  roots = [log.generator.root(size) for size in range(count + 1)]
  _timed('Consistency proof verification', count, lambda size: verify_consistency(
    roots[size],
    size,
    checkpoint.root_hash,
    count,
    log.consistency_proof(size),
    log.hasher
  ))


if __name__ == '__main__':
  main()
