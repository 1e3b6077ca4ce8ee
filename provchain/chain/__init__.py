"""Tamper-evident append-only chain and verification helpers."""

from .errors import CapacityError, ChainError, MalformedChainError
from .ledger import FORMAT_VERSION, Chain, VerificationIssue
from .ownership import generate_keypair, owner_bytes
from .record import ILL_TYPED_REASON, MAX_INDEX, Record, canonical_bytes
from .sync import SynchronizedChain

__all__ = [
    "CapacityError",
    "Chain",
    "ChainError",
    "FORMAT_VERSION",
    "ILL_TYPED_REASON",
    "MAX_INDEX",
    "MalformedChainError",
    "Record",
    "SynchronizedChain",
    "VerificationIssue",
    "canonical_bytes",
    "generate_keypair",
    "owner_bytes",
]
