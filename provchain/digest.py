"""Digest algorithms supported for chain records.

Every algorithm produces a 32 byte digest so the genesis sentinel and the
canonical encoding keep the same shape whichever one a chain is built with.
"""

from __future__ import annotations

import hashlib
from enum import Enum


class DigestAlgorithm(str, Enum):
    """Closed set of hash functions a chain may be built with."""

    SHA256 = "sha256"
    SHA3_256 = "sha3_256"
    BLAKE2B_256 = "blake2b_256"

    @property
    def digest_size(self) -> int:
        return 32

    @classmethod
    def parse(cls, value: "str | DigestAlgorithm") -> "DigestAlgorithm":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            supported = ", ".join(member.value for member in cls)
            raise ValueError(f"Unsupported digest algorithm: {value!r} (expected one of {supported})") from exc

    def digest(self, data: bytes) -> bytes:
        if self is DigestAlgorithm.SHA256:
            return hashlib.sha256(data).digest()
        if self is DigestAlgorithm.SHA3_256:
            return hashlib.sha3_256(data).digest()
        return hashlib.blake2b(data, digest_size=32).digest()


DEFAULT_ALGORITHM = DigestAlgorithm.SHA256


def genesis_digest(algorithm: DigestAlgorithm = DEFAULT_ALGORITHM) -> bytes:
    """Sentinel ``prev_digest`` of a genesis record: all zero bytes."""

    return bytes(algorithm.digest_size)


__all__ = [
    "DEFAULT_ALGORITHM",
    "DigestAlgorithm",
    "genesis_digest",
]
