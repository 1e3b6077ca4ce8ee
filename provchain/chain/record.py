"""Chain records and their canonical byte encoding."""

from __future__ import annotations

import base64
import binascii
import hmac
import struct
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser as date_parser
from nacl.signing import SigningKey

from ..digest import DEFAULT_ALGORITHM, DigestAlgorithm, genesis_digest
from .ownership import owner_bytes, sign_digest, verify_digest_signature

CANONICAL_MAGIC = b"PVC1"
MAX_INDEX = 2**64 - 1
MAX_DIGEST_LENGTH = 0xFFFF

ILL_TYPED_REASON = "record fields are not well-typed"

_HEADER = struct.Struct(">4sQq")
_PAYLOAD_LENGTH = struct.Struct(">Q")
_DIGEST_LENGTH = struct.Struct(">H")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_BYTES_LIKE = (bytes, bytearray, memoryview)


def ensure_utc(timestamp: datetime) -> datetime:
    """Return ``timestamp`` in UTC, treating naive values as UTC."""

    if not isinstance(timestamp, datetime):
        raise TypeError("Record timestamps must be datetime instances")
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def _as_bytes(value: Any, field: str) -> bytes:
    if not isinstance(value, _BYTES_LIKE):
        raise TypeError(f"Record {field} must be provided as bytes")
    return bytes(value)


def _as_digest(value: Any, field: str) -> bytes:
    digest = _as_bytes(value, field)
    if len(digest) > MAX_DIGEST_LENGTH:
        raise ValueError(f"Record {field} is longer than {MAX_DIGEST_LENGTH} bytes")
    return digest


def _as_optional_bytes(value: Any, field: str) -> bytes | None:
    return None if value is None else _as_bytes(value, field)


def _check_index(index: int) -> None:
    if isinstance(index, bool) or not isinstance(index, int):
        raise TypeError("Record index must be an integer")
    if not 0 <= index <= MAX_INDEX:
        raise ValueError(f"Record index {index} is outside [0, {MAX_INDEX}]")


def timestamp_micros(timestamp: datetime) -> int:
    """Whole microseconds between the Unix epoch and ``timestamp``."""

    delta = ensure_utc(timestamp) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def canonical_bytes(index: int, timestamp: datetime, payload: bytes, prev_digest: bytes) -> bytes:
    """Encode record fields into the byte string that gets hashed.

    Layout: ``PVC1`` magic, u64 index, i64 microseconds since the epoch,
    u64 payload length and payload, u16 digest length and digest. All integers
    are big-endian, so the encoding is identical on every platform.
    """

    return b"".join(
        (
            _HEADER.pack(CANONICAL_MAGIC, index, timestamp_micros(timestamp)),
            _PAYLOAD_LENGTH.pack(len(payload)),
            payload,
            _DIGEST_LENGTH.pack(len(prev_digest)),
            prev_digest,
        )
    )


@dataclass(frozen=True, slots=True)
class Record:
    """Immutable chain entry bound to its predecessor by digest.

    ``owner`` and ``signature`` are optional: an owned record carries its
    owner's Ed25519 verify key and a signature over ``self_digest``.
    """

    index: int
    timestamp: datetime
    payload: bytes
    prev_digest: bytes
    self_digest: bytes
    owner: bytes | None = None
    signature: bytes | None = None

    def __post_init__(self) -> None:
        _check_index(self.index)
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "payload", _as_bytes(self.payload, "payload"))
        object.__setattr__(self, "prev_digest", _as_digest(self.prev_digest, "prev_digest"))
        object.__setattr__(self, "self_digest", _as_digest(self.self_digest, "self_digest"))
        object.__setattr__(self, "owner", _as_optional_bytes(self.owner, "owner"))
        object.__setattr__(self, "signature", _as_optional_bytes(self.signature, "signature"))

    @classmethod
    def create(
        cls,
        index: int,
        payload: bytes,
        prev_digest: bytes,
        *,
        timestamp: datetime | None = None,
        algorithm: DigestAlgorithm = DEFAULT_ALGORITHM,
        signing_key: SigningKey | None = None,
    ) -> "Record":
        """Build a record, computing ``self_digest`` from the other fields.

        When ``signing_key`` is given the record is owned by its verify key
        and signed over the computed digest.
        """

        _check_index(index)
        created_at = ensure_utc(timestamp or datetime.now(timezone.utc))
        payload = _as_bytes(payload, "payload")
        prev_digest = _as_digest(prev_digest, "prev_digest")
        digest = algorithm.digest(canonical_bytes(index, created_at, payload, prev_digest))
        owner = signature = None
        if signing_key is not None:
            owner = owner_bytes(signing_key)
            signature = sign_digest(signing_key, digest)
        return cls(index, created_at, payload, prev_digest, digest, owner, signature)

    @classmethod
    def genesis(
        cls,
        *,
        timestamp: datetime | None = None,
        algorithm: DigestAlgorithm = DEFAULT_ALGORITHM,
    ) -> "Record":
        return cls.create(0, b"", genesis_digest(algorithm), timestamp=timestamp, algorithm=algorithm)

    @property
    def is_owned(self) -> bool:
        return self.owner is not None

    def is_well_typed(self) -> bool:
        """Whether every field still has the shape construction guarantees.

        Construction normalises the fields, but a record altered with
        ``object.__setattr__`` can hold anything.
        """

        index = self.index
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index <= MAX_INDEX:
            return False
        if not isinstance(self.timestamp, datetime) or self.timestamp.utcoffset() != timedelta(0):
            return False
        if not all(isinstance(value, bytes) for value in (self.payload, self.prev_digest, self.self_digest)):
            return False
        if len(self.prev_digest) > MAX_DIGEST_LENGTH:
            return False
        return all(value is None or isinstance(value, bytes) for value in (self.owner, self.signature))

    def canonical_bytes(self) -> bytes:
        return canonical_bytes(self.index, self.timestamp, self.payload, self.prev_digest)

    def compute_digest(self, algorithm: DigestAlgorithm = DEFAULT_ALGORITHM) -> bytes:
        """Re-derive the digest from the stored fields."""

        return algorithm.digest(self.canonical_bytes())

    def _content_problems(self, algorithm: DigestAlgorithm) -> list[str]:
        try:
            recomputed = self.compute_digest(algorithm)
        except (TypeError, ValueError, OverflowError, struct.error):
            return [ILL_TYPED_REASON]

        problems: list[str] = []
        if not hmac.compare_digest(self.self_digest, recomputed):
            problems.append("self_digest does not match record content")
        if (self.owner is None) != (self.signature is None):
            problems.append("owner and signature must be present together")
        elif self.owner is not None and not verify_digest_signature(
            self.owner, self.self_digest, self.signature
        ):
            problems.append("ownership signature does not match self_digest")
        return problems

    def check_genesis(self, algorithm: DigestAlgorithm = DEFAULT_ALGORITHM) -> list[str]:
        """Return the reasons this record is not a valid genesis record."""

        if not self.is_well_typed():
            return [ILL_TYPED_REASON]

        problems: list[str] = []
        if self.index != 0:
            problems.append(f"genesis index is {self.index}, expected 0")
        if not hmac.compare_digest(self.prev_digest, genesis_digest(algorithm)):
            problems.append("genesis prev_digest is not the sentinel digest")
        if self.owner is not None or self.signature is not None:
            problems.append("genesis record must not have an owner")
        problems.extend(self._content_problems(algorithm))
        return problems

    def check(self, previous: "Record", algorithm: DigestAlgorithm = DEFAULT_ALGORITHM) -> list[str]:
        """Return the reasons this record does not follow ``previous``."""

        if not self.is_well_typed():
            return [ILL_TYPED_REASON]

        problems: list[str] = []
        if isinstance(previous, Record) and previous.is_well_typed():
            if self.index != previous.index + 1:
                problems.append(f"index {self.index} does not follow {previous.index}")
            if not hmac.compare_digest(self.prev_digest, previous.self_digest):
                problems.append("prev_digest does not match the preceding self_digest")
            if self.timestamp < previous.timestamp:
                problems.append("timestamp is earlier than the preceding record")
        else:
            problems.append("preceding record is not well-typed")
        problems.extend(self._content_problems(algorithm))
        return problems

    def verify(self, previous: "Record", algorithm: DigestAlgorithm = DEFAULT_ALGORITHM) -> bool:
        return not self.check(previous, algorithm)

    def verify_genesis(self, algorithm: DigestAlgorithm = DEFAULT_ALGORITHM) -> bool:
        return not self.check_genesis(algorithm)

    def to_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "timestamp": self.timestamp.isoformat(),
            "payload_b64": base64.b64encode(self.payload).decode("ascii"),
            "prev_digest": self.prev_digest.hex(),
            "self_digest": self.self_digest.hex(),
            "owner": self.owner.hex() if self.owner is not None else None,
            "signature": self.signature.hex() if self.signature is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Record":
        payload_b64 = data.get("payload_b64")
        if not isinstance(payload_b64, str):
            raise ValueError("Invalid payload encoding")
        try:
            payload = base64.b64decode(payload_b64.encode("ascii"), validate=True)
        except (ValueError, binascii.Error) as exc:
            raise ValueError("Record payload is not valid Base64") from exc

        timestamp_raw = data.get("timestamp")
        if not isinstance(timestamp_raw, str):
            raise ValueError("Record missing timestamp")
        try:
            timestamp = date_parser.isoparse(timestamp_raw)
        except (ValueError, OverflowError) as exc:
            raise ValueError(f"Invalid record timestamp: {timestamp_raw}") from exc

        decoded: dict[str, bytes | None] = {}
        for field in ("prev_digest", "self_digest", "owner", "signature"):
            raw = data.get(field)
            if raw is None and field in ("owner", "signature"):
                decoded[field] = None
                continue
            if not isinstance(raw, str):
                raise ValueError(f"Record missing {field}")
            try:
                decoded[field] = bytes.fromhex(raw)
            except ValueError as exc:
                raise ValueError(f"Record {field} is not valid hex") from exc

        index = data.get("index")
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValueError("Record index must be an integer")

        try:
            return cls(index=index, timestamp=timestamp, payload=payload, **decoded)
        except OverflowError as exc:
            raise ValueError(f"Record timestamp is out of range in UTC: {timestamp_raw}") from exc


__all__ = [
    "CANONICAL_MAGIC",
    "ILL_TYPED_REASON",
    "MAX_INDEX",
    "Record",
    "canonical_bytes",
    "ensure_utc",
    "timestamp_micros",
]
