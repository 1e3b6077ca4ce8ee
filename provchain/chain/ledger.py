"""Append-only, digest-linked chain of records."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator

from nacl.signing import SigningKey, VerifyKey
from packaging.version import Version

from ..config import ChainConfig
from ..digest import DigestAlgorithm
from .errors import CapacityError, MalformedChainError
from .ownership import owner_bytes
from .record import MAX_INDEX, Record, ensure_utc
from .schema import validate_document

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class VerificationIssue:
    """A single failed check found while verifying a chain."""

    position: int
    index: int | None
    reason: str


class Chain:
    """Ordered collection of records where each one commits to its predecessor.

    A new chain holds only its genesis record. Records are added at the tail
    with :meth:`push` and are never modified or removed afterwards;
    :meth:`verify` re-derives every digest and linkage from the genesis record
    onwards.

    Pushing is not thread-safe. Wrap the chain in
    :class:`~provchain.chain.sync.SynchronizedChain` when several threads
    share it.
    """

    def __init__(self, config: ChainConfig | None = None, *, clock: Clock | None = None):
        self._configure(config, clock)
        self._records: list[Record] = [
            Record.genesis(timestamp=ensure_utc(self._clock()), algorithm=self._algorithm)
        ]

    def _configure(self, config: ChainConfig | None, clock: Clock | None) -> None:
        self.config = config or ChainConfig()
        self.config.validate()
        self._algorithm = self.config.digest_algorithm
        self._clock = clock or _utcnow
        index_limit = MAX_INDEX + 1
        self._length_limit = (
            index_limit if self.config.max_length is None else min(self.config.max_length, index_limit)
        )

    @classmethod
    def from_records(
        cls,
        records: Iterable[Record],
        *,
        config: ChainConfig | None = None,
        clock: Clock | None = None,
    ) -> "Chain":
        """Wrap records produced elsewhere without verifying them.

        Call :meth:`verify` before trusting the result. An empty ``records``
        yields a chain that :meth:`verify` reports as malformed.
        """

        materialised = list(records)
        for item in materialised:
            if not isinstance(item, Record):
                raise TypeError(f"Expected Record instances, got {type(item).__name__}")
        chain = cls.__new__(cls)
        chain._configure(config, clock)
        chain._records = materialised
        return chain

    @property
    def algorithm(self) -> DigestAlgorithm:
        return self._algorithm

    @property
    def records(self) -> tuple[Record, ...]:
        return tuple(self._records)

    @property
    def head(self) -> Record:
        if not self._records:
            raise MalformedChainError("Chain has no genesis record")
        return self._records[-1]

    @property
    def head_digest(self) -> bytes:
        return self.head.self_digest

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, position: int) -> Record:
        return self._records[position]

    def __iter__(self) -> Iterator[Record]:
        return iter(tuple(self._records))

    def __repr__(self) -> str:
        tail = self._records[-1] if self._records else None
        head = tail.self_digest.hex()[:16] if isinstance(tail, Record) else None
        return f"{type(self).__name__}(length={len(self._records)}, algorithm={self._algorithm.value!r}, head={head!r})"

    def find(self, digest: bytes) -> Record | None:
        """Return the record whose ``self_digest`` equals ``digest``."""

        for record in self._records:
            if isinstance(record, Record) and record.self_digest == digest:
                return record
        return None

    def find_by_owner(self, owner: bytes | VerifyKey | SigningKey) -> list[Record]:
        """Return the records owned by ``owner``, oldest first."""

        key = owner_bytes(owner)
        return [record for record in self._records if isinstance(record, Record) and record.owner == key]

    def push(self, payload: bytes, *, signing_key: SigningKey | None = None) -> Record:
        """Append one record carrying ``payload`` and return it.

        With ``signing_key`` the new record is owned by that key's verify key
        and carries a signature over its digest.

        Raises:
            CapacityError: If the configured length or the index counter is
                exhausted.
            MalformedChainError: If the chain has no genesis record to extend.
        """

        if not self._records:
            raise MalformedChainError("Cannot push onto a chain without a genesis record")

        previous = self._records[-1]
        if len(self._records) >= self._length_limit:
            raise CapacityError(
                f"Chain is at its maximum length of {self._length_limit} records",
                limit=self._length_limit,
            )
        if previous.index >= MAX_INDEX:
            raise CapacityError("Record index counter is exhausted", limit=MAX_INDEX)

        # Clocks can step backwards; timestamps along the chain must not.
        timestamp = max(ensure_utc(self._clock()), previous.timestamp)
        record = Record.create(
            previous.index + 1,
            payload,
            previous.self_digest,
            timestamp=timestamp,
            algorithm=self._algorithm,
            signing_key=signing_key,
        )
        self._records.append(record)
        logger.debug("Appended record %d (%d payload bytes)", record.index, len(record.payload))
        return record

    def extend(self, payloads: Iterable[bytes], *, signing_key: SigningKey | None = None) -> list[Record]:
        """Push each payload in order and return the new records."""

        return [self.push(payload, signing_key=signing_key) for payload in payloads]

    def audit(self) -> list[VerificationIssue]:
        """Check every record and report each failed check.

        The whole chain is walked even after a failure so the report is
        complete, and corrupted entries are reported rather than raised.
        Raises :class:`MalformedChainError` only when there is no genesis
        record to start from.
        """

        records = tuple(self._records)
        if not records:
            raise MalformedChainError("Chain has no genesis record to verify from")

        issues: list[VerificationIssue] = []
        for position, current in enumerate(records):
            if not isinstance(current, Record):
                issues.append(VerificationIssue(position, None, "element is not a Record"))
                continue
            if position == 0:
                reasons = current.check_genesis(self._algorithm)
            else:
                reasons = current.check(records[position - 1], self._algorithm)
            index = current.index if isinstance(current.index, int) else None
            issues.extend(VerificationIssue(position, index, reason) for reason in reasons)

        for issue in issues:
            logger.warning(
                "Chain verification failed at position %d (index %s): %s",
                issue.position,
                issue.index,
                issue.reason,
            )
        return issues

    def verify(self) -> bool:
        """Return ``True`` when every record is intact and correctly linked."""

        return not self.audit()

    def to_dict(self) -> dict[str, Any]:
        return {
            "format_version": FORMAT_VERSION,
            "algorithm": self._algorithm.value,
            "records": [record.to_dict() for record in self._records],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        config: ChainConfig | None = None,
        clock: Clock | None = None,
    ) -> "Chain":
        """Rebuild a chain from :meth:`to_dict` output without verifying it.

        Raises:
            ValueError: If the document does not match the chain schema or
                uses an unsupported format version.
        """

        schema_errors = validate_document(data)
        if schema_errors:
            raise ValueError("Invalid chain document: " + "; ".join(schema_errors))

        version = Version(data["format_version"])
        if version.major != Version(FORMAT_VERSION).major:
            raise ValueError(f"Unsupported chain format version {version} (expected {FORMAT_VERSION})")

        algorithm = DigestAlgorithm.parse(data["algorithm"])
        config = dataclasses.replace(config or ChainConfig(), algorithm=algorithm.value)
        records = [Record.from_dict(entry) for entry in data["records"]]
        return cls.from_records(records, config=config, clock=clock)


__all__ = [
    "Chain",
    "FORMAT_VERSION",
    "VerificationIssue",
]
