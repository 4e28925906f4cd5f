"""
Locker-specific exception hierarchy.

Provides typed exceptions for lock, unlock and fee-claim operations so callers
can distinguish a full registry from an unexpired lock or a bad signature
without parsing messages.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class LockerError(Exception):
    """Base exception for all locker errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Validation Errors ====================


class ValidationError(LockerError):
    """Raised when an instruction fails argument validation."""
    pass


class InvalidIndexError(ValidationError):
    """Raised when a slot index falls outside ``[0, head)``."""

    def __init__(self, index: int, head: int, owner: str = "", **kwargs: Any) -> None:
        super().__init__(
            f"Invalid position index {index} (head={head})",
            details={"index": index, "head": head, "owner": owner},
            **kwargs,
        )
        self.index = index
        self.head = head


class InvalidLockDurationError(ValidationError):
    """Raised when a lock duration is negative or overflows the timestamp range."""
    pass


class UnauthorizedError(ValidationError):
    """Raised when signature verification fails or the signer is not the owner."""
    pass


# ==================== Lock State Errors ====================


class LockStateError(LockerError):
    """Raised when the lock registry rejects an operation."""
    pass


class ExceededLockLimitError(LockStateError):
    """Raised when the owner's registry already holds the maximum number of locks."""

    def __init__(self, owner: str, limit: int, **kwargs: Any) -> None:
        super().__init__(
            f"Too many locks for {owner} (limit {limit})",
            details={"owner": owner, "limit": limit},
            **kwargs,
        )
        self.limit = limit


class LockNotExpiredError(LockStateError):
    """Raised when an unlock is attempted before the lock's end timestamp."""

    def __init__(self, position_id: int, end_timestamp: int, now: int, **kwargs: Any) -> None:
        super().__init__(
            f"Lock not expired for position {position_id}",
            details={
                "position_id": position_id,
                "end_timestamp": end_timestamp,
                "now": now,
                "remaining_seconds": end_timestamp - now,
            },
            **kwargs,
        )
        self.position_id = position_id
        self.end_timestamp = end_timestamp


class LockDesyncError(LockStateError):
    """Raised when a locked position has no registry entry.

    The registry and the authority's position list are maintained together, so
    this always indicates an earlier bug and is never retried.
    """

    def __init__(
        self,
        owner: str,
        position_id: int,
        details: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
    ) -> None:
        super().__init__(
            message or f"Lock not found for position {position_id}",
            details={"owner": owner, "position_id": position_id, **(details or {})},
            recoverable=False,
        )
        self.position_id = position_id


# ==================== Account Store Errors ====================


class AccountError(LockerError):
    """Raised when an account store access fails."""
    pass


class AccountNotFoundError(AccountError):
    """Raised when a requested account does not exist."""

    def __init__(self, address: str, kind: str = "account", **kwargs: Any) -> None:
        super().__init__(
            f"{kind} {address} does not exist",
            details={"address": address, "kind": kind},
            **kwargs,
        )
        self.address = address


class AccountAlreadyExistsError(AccountError):
    """Raised when creating an account at an address that is already in use."""

    def __init__(self, address: str, kind: str = "account", **kwargs: Any) -> None:
        super().__init__(
            f"{kind} {address} already exists",
            details={"address": address, "kind": kind},
            **kwargs,
        )
        self.address = address


# ==================== Upstream Errors ====================


class UpstreamRejectedError(LockerError):
    """Raised when the AMM engine declines a delegated call (e.g. disabled pool)."""
    pass


__all__ = [
    "LockerError",
    "ValidationError",
    "InvalidIndexError",
    "InvalidLockDurationError",
    "UnauthorizedError",
    "LockStateError",
    "ExceededLockLimitError",
    "LockNotExpiredError",
    "LockDesyncError",
    "AccountError",
    "AccountNotFoundError",
    "AccountAlreadyExistsError",
    "UpstreamRejectedError",
]
