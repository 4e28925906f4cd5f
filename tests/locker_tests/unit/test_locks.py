"""
Unit tests for the per-owner lock registry.
"""

import pytest

from locker.core.locker_exceptions import ExceededLockLimitError, LockDesyncError
from locker.core.locks import LockedPosition, UserLocks


def make_locks(count: int, max_locks: int = 10) -> UserLocks:
    locks = UserLocks(owner="owner", authority="authority", max_locks=max_locks)
    for i in range(count):
        locks.add_lock(i, 1000 + i)
    return locks


class TestLockedPosition:
    def test_expired_at_end_timestamp(self):
        lock = LockedPosition(position_id=1, end_timestamp=100)
        assert not lock.is_expired(99)
        assert lock.is_expired(100)
        assert lock.is_expired(101)

    def test_immutable(self):
        lock = LockedPosition(position_id=1, end_timestamp=100)
        with pytest.raises(AttributeError):
            lock.end_timestamp = 0


class TestAddLock:
    def test_appends_in_order(self):
        locks = make_locks(3)
        assert [lock.position_id for lock in locks.positions] == [0, 1, 2]
        assert len(locks) == 3

    def test_capacity_boundary(self):
        locks = make_locks(9)
        locks.add_lock(9, 5000)
        assert locks.is_full
        with pytest.raises(ExceededLockLimitError) as exc_info:
            locks.add_lock(10, 5000)
        assert exc_info.value.limit == 10
        assert len(locks) == 10

    def test_custom_capacity(self):
        locks = make_locks(1, max_locks=1)
        with pytest.raises(ExceededLockLimitError):
            locks.add_lock(1, 1)


class TestRemoveLock:
    def test_swap_remove(self):
        locks = make_locks(4)
        removed = locks.remove_lock(1)
        assert removed == LockedPosition(1, 1001)
        assert [lock.position_id for lock in locks.positions] == [0, 3, 2]

    def test_remove_last(self):
        locks = make_locks(2)
        locks.remove_lock(1)
        assert [lock.position_id for lock in locks.positions] == [0]

    def test_remove_only(self):
        locks = make_locks(1)
        locks.remove_lock(0)
        assert locks.positions == []
        assert not locks.is_full

    def test_unknown_position_is_desync(self):
        locks = make_locks(2)
        with pytest.raises(LockDesyncError) as exc_info:
            locks.remove_lock(99)
        assert exc_info.value.position_id == 99
        assert exc_info.value.recoverable is False
        assert len(locks) == 2


class TestSnapshot:
    def test_snapshot_is_detached(self):
        locks = make_locks(2)
        snapshot = locks.snapshot()
        locks.remove_lock(0)
        assert len(snapshot) == 2

    def test_round_trip(self):
        locks = make_locks(3, max_locks=5)
        restored = UserLocks.from_dict(locks.to_dict())
        assert restored == locks
