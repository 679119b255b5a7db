__version__ = '1.0'

__all__ = [
    "Hasher",
    "CompactTree",
    "Checkpoint",
    "merkle_tree_hash",
    "AuditProof",
    "ConsistencyProof",
    "ProofGenerator",
    "verify_audit",
    "verify_consistency",
    "check_audit",
    "check_consistency",
    "LeafArchive",
    "AuditLog",
    "TrustedLedger",
    "CheckpointRegistry",
    "MerkleError",
    "InvalidProof",
    "IndexOutOfRange",
    "HashAlgorithmMismatch",
    "CorruptedTreeState",
    "beautify",
    "jsonify",
    "export",
]

from ledgertree.exceptions import *
from ledgertree.merkle import Hasher, CompactTree, Checkpoint, merkle_tree_hash
from ledgertree.proofs import (
    AuditProof,
    ConsistencyProof,
    ProofGenerator,
    verify_audit,
    verify_consistency,
    check_audit,
    check_consistency
)
from ledgertree.archive import LeafArchive, AuditLog
from ledgertree.trust import TrustedLedger, CheckpointRegistry
from ledgertree.format import *
