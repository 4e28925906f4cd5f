"""
Per-owner lock registry.

UserLocks lives at the owner's lock-authority address and records which
positions that authority holds on the owner's behalf and when each lock ends.
Its size always equals the authority's position-list head.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from locker.core import config
from locker.core.locker_exceptions import ExceededLockLimitError, LockDesyncError


@dataclass(frozen=True)
class LockedPosition:
    position_id: int
    end_timestamp: int

    def is_expired(self, now: int) -> bool:
        return self.end_timestamp <= now

    def to_dict(self) -> Dict[str, int]:
        return {"position_id": self.position_id, "end_timestamp": self.end_timestamp}


@dataclass
class UserLocks:
    """Bounded, dense array of locks owned by ``owner``."""

    owner: str
    authority: str
    positions: List[LockedPosition] = field(default_factory=list)
    max_locks: int = config.MAX_LOCKS

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def is_full(self) -> bool:
        return len(self.positions) >= self.max_locks

    def add_lock(self, position_id: int, end_timestamp: int) -> LockedPosition:
        """
        Append a lock.

        Raises:
            ExceededLockLimitError: If the registry already holds max_locks entries;
                nothing is appended in that case
        """
        if self.is_full:
            raise ExceededLockLimitError(self.owner, self.max_locks)
        lock = LockedPosition(position_id=position_id, end_timestamp=end_timestamp)
        self.positions.append(lock)
        return lock

    def get_index(self, position_id: int) -> int:
        for index, lock in enumerate(self.positions):
            if lock.position_id == position_id:
                return index
        raise LockDesyncError(self.owner, position_id)

    def get_lock(self, position_id: int) -> LockedPosition:
        return self.positions[self.get_index(position_id)]

    def remove_lock(self, position_id: int) -> LockedPosition:
        """Swap-remove the lock for ``position_id`` and return it."""
        index = self.get_index(position_id)
        removed = self.positions[index]
        last = len(self.positions) - 1
        if index != last:
            self.positions[index] = self.positions[last]
        self.positions.pop()
        return removed

    def snapshot(self) -> List[LockedPosition]:
        return list(self.positions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "authority": self.authority,
            "max_locks": self.max_locks,
            "positions": [lock.to_dict() for lock in self.positions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserLocks":
        return cls(
            owner=data["owner"],
            authority=data["authority"],
            positions=[
                LockedPosition(int(p["position_id"]), int(p["end_timestamp"]))
                for p in data.get("positions", [])
            ],
            max_locks=int(data.get("max_locks", config.MAX_LOCKS)),
        )
