"""Lock-guarded access to a chain shared between threads."""

from __future__ import annotations

import threading
from typing import Any, Iterable

from nacl.signing import SigningKey, VerifyKey

from .ledger import Chain, VerificationIssue
from .record import Record


class SynchronizedChain:
    """Serialise every operation on a wrapped :class:`Chain`.

    Appends, reads and verifications share one lock, so no caller ever sees
    a tail that is still being written.
    """

    def __init__(self, chain: Chain | None = None):
        self._chain = chain if chain is not None else Chain()
        self._lock = threading.Lock()

    def push(self, payload: bytes, *, signing_key: SigningKey | None = None) -> Record:
        with self._lock:
            return self._chain.push(payload, signing_key=signing_key)

    def extend(self, payloads: Iterable[bytes], *, signing_key: SigningKey | None = None) -> list[Record]:
        items = list(payloads)
        with self._lock:
            return self._chain.extend(items, signing_key=signing_key)

    def verify(self) -> bool:
        with self._lock:
            return self._chain.verify()

    def audit(self) -> list[VerificationIssue]:
        with self._lock:
            return self._chain.audit()

    @property
    def records(self) -> tuple[Record, ...]:
        with self._lock:
            return self._chain.records

    @property
    def head(self) -> Record:
        with self._lock:
            return self._chain.head

    @property
    def head_digest(self) -> bytes:
        with self._lock:
            return self._chain.head_digest

    def find(self, digest: bytes) -> Record | None:
        with self._lock:
            return self._chain.find(digest)

    def find_by_owner(self, owner: bytes | VerifyKey | SigningKey) -> list[Record]:
        with self._lock:
            return self._chain.find_by_owner(owner)

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return self._chain.to_dict()

    def __getitem__(self, position: int) -> Record:
        with self._lock:
            return self._chain[position]

    def __len__(self) -> int:
        with self._lock:
            return len(self._chain)


__all__ = ["SynchronizedChain"]
