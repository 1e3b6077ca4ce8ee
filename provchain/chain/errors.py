"""Exceptions raised by chain operations.

A chain that fails verification is not an error: :meth:`Chain.verify` returns
``False`` for it. These exceptions cover the cases where an operation cannot be
carried out at all.
"""

from __future__ import annotations


class ChainError(ValueError):
    """Base class for chain failures."""


class CapacityError(ChainError):
    """Raised when a push would exceed the chain length or index limit."""

    def __init__(self, message: str, *, limit: int):
        super().__init__(message)
        self.limit = limit


class MalformedChainError(ChainError):
    """Raised when a chain has no genesis record to anchor an operation."""


__all__ = [
    "CapacityError",
    "ChainError",
    "MalformedChainError",
]
