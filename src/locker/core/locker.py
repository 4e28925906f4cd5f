"""
Position Locker.

Moves liquidity positions between an owner's position list and the list of the
owner's lock authority, keeping the owner's lock registry in step:
- lock_position: owner list -> authority list, registry entry added
- unlock_position: authority list -> owner list once the lock has expired,
  registry entry removed
- claim_fee: pays the fees of a locked position to the owner without moving it

Each instruction runs in a single AccountStore transaction. A failure at any
step leaves both lists and the registry exactly as they were.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Tuple

from prometheus_client import CollectorRegistry

from locker.core import config
from locker.core.access_control import AccessControl, SignedRequest
from locker.core.account_store import AccountStore
from locker.core.addressing import derive_lock_authority
from locker.core.locker_exceptions import (
    AccountNotFoundError,
    ExceededLockLimitError,
    InvalidIndexError,
    InvalidLockDurationError,
    LockDesyncError,
    LockerError,
    LockNotExpiredError,
    UpstreamRejectedError,
)
from locker.core.locks import LockedPosition, UserLocks
from locker.core.market import Market
from locker.core.metrics import LockerMetrics
from locker.core.position import Position, PositionList

logger = logging.getLogger(__name__)

LOCK_POSITION = "lock_position"
UNLOCK_POSITION = "unlock_position"
CLAIM_FEE = "claim_fee"
INITIALIZE_USER_LOCKS = "initialize_user_locks"


class Locker:
    """Time-locks positions held in a Market."""

    def __init__(
        self,
        market: Market,
        access_control: Optional[AccessControl] = None,
        metrics: Optional[LockerMetrics] = None,
        max_locks: int = config.MAX_LOCKS,
    ) -> None:
        self.market = market
        self.store: AccountStore = market.store
        self.access_control = access_control or AccessControl()
        self.metrics = metrics or LockerMetrics(registry=CollectorRegistry())
        self.max_locks = max_locks

    # ==================== Addressing ====================

    @staticmethod
    def get_user_locks_address(owner: str) -> str:
        """Lock authority of ``owner``; also the address of its lock registry."""
        return derive_lock_authority(owner)

    # ==================== Registry ====================

    def initialize_user_locks(self, request: SignedRequest) -> UserLocks:
        """
        Create the signer's lock registry.

        Raises:
            AccountAlreadyExistsError: If the registry already exists
        """
        owner = self.access_control.require_authorized(request, INITIALIZE_USER_LOCKS, {})
        authority = derive_lock_authority(owner)
        locks = self.store.create(
            authority, UserLocks(owner=owner, authority=authority, max_locks=self.max_locks)
        )
        logger.info(
            "User locks initialized",
            extra={"event": "locker.locks_initialized", "owner": owner[:12]},
        )
        return locks

    def init_locks_if_needed(self, owner: str) -> bool:
        """Create ``owner``'s lock registry unless it exists. Returns True if created."""
        authority = derive_lock_authority(owner)
        _, created = self.store.create_if_absent(
            authority,
            lambda: UserLocks(owner=owner, authority=authority, max_locks=self.max_locks),
        )
        return created

    def _get_locks(self, owner: str) -> UserLocks:
        return self.store.get(derive_lock_authority(owner), UserLocks)

    def get_user_locks(self, owner: str) -> List[LockedPosition]:
        """
        Snapshot of ``owner``'s locks in registry order.

        Raises:
            AccountNotFoundError: If the owner has never locked a position
        """
        with self.store.read_lock():
            return self._get_locks(owner).snapshot()

    # ==================== Instructions ====================

    def lock_position(
        self,
        request: SignedRequest,
        index: int,
        lock_duration: int,
        payer: Optional[str] = None,
        now: Optional[int] = None,
        owner: Optional[str] = None,
    ) -> Position:
        """
        Lock the position at ``index`` of the signer's list for ``lock_duration`` seconds.

        ``payer`` funds lazily created accounts and defaults to the owner. It
        is not an authorization. When ``owner`` is given the request must be
        signed by that owner.

        Returns:
            The locked position, now owned by the lock authority

        Raises:
            UnauthorizedError: If the request is not a valid owner signature
            InvalidLockDurationError: If the duration is negative or overflows
            InvalidIndexError: If index is outside the owner's list
            ExceededLockLimitError: If the registry is full
        """
        params = {"index": index, "lock_duration": lock_duration}
        try:
            owner = self.access_control.require_authorized(request, LOCK_POSITION, params, owner)
            now = self._now(now)
            end_timestamp = self._end_timestamp(now, lock_duration)
            payer = payer or owner
            authority = derive_lock_authority(owner)

            with self.store.transaction():
                self.init_locks_if_needed(owner)
                locks = self._get_locks(owner)
                self.market.create_position_list_if_absent(authority, payer)

                owner_list = self._get_list_for_index(owner, index)
                authority_list = self.market.get_position_list(authority)
                if not 0 <= index < owner_list.head:
                    raise InvalidIndexError(index, owner_list.head, owner=owner)

                # Capacity is checked before either list is touched
                if locks.is_full:
                    raise ExceededLockLimitError(owner, locks.max_locks)

                position = self.market.transfer_position_ownership(owner, index, authority)
                locks.add_lock(position.id, end_timestamp)
                self._check_agreement(owner, locks, authority_list)
        except LockerError as e:
            self.metrics.record_lock(type(e).__name__)
            raise

        self.metrics.record_lock("success")
        logger.info(
            "Position locked",
            extra={
                "event": "locker.lock",
                "owner": owner[:12],
                "position_id": position.id,
                "index": index,
                "authority_index": authority_list.head - 1,
                "end_timestamp": end_timestamp,
            },
        )
        return position

    def unlock_position(
        self,
        request: SignedRequest,
        authority_list_index: int,
        now: Optional[int] = None,
        owner: Optional[str] = None,
    ) -> Position:
        """
        Return the position at ``authority_list_index`` of the signer's lock
        authority to the signer's list.

        Raises:
            UnauthorizedError: If the request is not a valid owner signature
            InvalidIndexError: If the index is outside the authority's list
            LockNotExpiredError: If the lock ends after ``now``
            LockDesyncError: If the position has no registry entry
        """
        params = {"authority_list_index": authority_list_index}
        try:
            owner = self.access_control.require_authorized(request, UNLOCK_POSITION, params, owner)
            now = self._now(now)
            authority = derive_lock_authority(owner)

            with self.store.transaction():
                authority_list = self._get_list_for_index(authority, authority_list_index)
                position = authority_list.get(authority_list_index)
                locks = self._get_locks_for_position(owner, position.id)
                lock = locks.get_lock(position.id)
                if not lock.is_expired(now):
                    raise LockNotExpiredError(position.id, lock.end_timestamp, now)

                self.market.create_position_list_if_absent(owner, owner)
                self.market.transfer_position_ownership(authority, authority_list_index, owner)
                locks.remove_lock(position.id)
                self._check_agreement(owner, locks, authority_list)
        except LockDesyncError as e:
            logger.critical(
                "Lock registry out of sync with authority list",
                extra={"event": "locker.desync", **e.details},
            )
            self.metrics.record_unlock(type(e).__name__)
            raise
        except LockerError as e:
            self.metrics.record_unlock(type(e).__name__)
            raise

        self.metrics.record_unlock("success")
        logger.info(
            "Position unlocked",
            extra={
                "event": "locker.unlock",
                "owner": owner[:12],
                "position_id": position.id,
                "authority_index": authority_list_index,
            },
        )
        return position

    def claim_fee(
        self,
        request: SignedRequest,
        authority_list_index: int,
        pool: str,
        account_x: str,
        account_y: str,
        owner: Optional[str] = None,
    ) -> Tuple[int, int]:
        """
        Claim the fees of a locked position into the signer's token accounts.

        Custody does not change: the position keeps its authority-list slot.

        Returns:
            (amount_x, amount_y) transferred

        Raises:
            UnauthorizedError: If the request is not a valid owner signature
            InvalidIndexError: If the index is outside the authority's list
            UpstreamRejectedError: If the market declines the claim
        """
        params = {
            "authority_list_index": authority_list_index,
            "pool": pool,
            "account_x": account_x,
            "account_y": account_y,
        }
        try:
            owner = self.access_control.require_authorized(request, CLAIM_FEE, params, owner)
            authority = derive_lock_authority(owner)

            with self.store.transaction():
                authority_list = self._get_list_for_index(authority, authority_list_index)
                position = authority_list.get(authority_list_index)
                try:
                    amount_x, amount_y = self.market.claim_fee(
                        owner,
                        authority,
                        authority_list_index,
                        pool,
                        position.lower_tick_index,
                        position.upper_tick_index,
                        account_x,
                        account_y,
                    )
                except AccountNotFoundError as e:
                    raise UpstreamRejectedError(e.message, details=e.details) from e
        except LockerError as e:
            self.metrics.record_fee_claim(type(e).__name__)
            raise

        self.metrics.record_fee_claim("success", amount_x, amount_y)
        logger.info(
            "Fee claimed for locked position",
            extra={
                "event": "locker.claim_fee",
                "owner": owner[:12],
                "position_id": position.id,
                "amount_x": amount_x,
                "amount_y": amount_y,
            },
        )
        return amount_x, amount_y

    # ==================== Queries ====================

    def get_user_locked_positions(self, owner: str) -> List[Position]:
        with self.store.read_lock():
            return self.market.get_all_user_positions(derive_lock_authority(owner))

    def get_all_locked_positions(self) -> List[Position]:
        """Every position held by any lock authority, grouped by registry address."""
        positions: List[Position] = []
        with self.store.read_lock():
            for _, locks in sorted(self.store.all(UserLocks).items()):
                positions.extend(self.market.get_all_user_positions(locks.authority))
        return positions

    def verify_owner_state(self, owner: str) -> None:
        """
        Check that ``owner``'s registry matches its authority's list.

        Raises:
            LockDesyncError: On the first position without a matching lock
        """
        with self.store.read_lock():
            held = [p.id for p in self.get_user_locked_positions(owner)]
            try:
                registered = [lock.position_id for lock in self._get_locks(owner).positions]
            except AccountNotFoundError:
                if held:
                    raise LockDesyncError(owner, held[0]) from None
                return
        mismatched = sorted(set(held) ^ set(registered))
        if mismatched or len(registered) != len(held):
            raise LockDesyncError(owner, mismatched[0] if mismatched else -1)

    # ==================== Helpers ====================

    @staticmethod
    def _now(now: Optional[int]) -> int:
        return int(time.time()) if now is None else int(now)

    @staticmethod
    def _end_timestamp(now: int, lock_duration: int) -> int:
        if isinstance(lock_duration, bool) or not isinstance(lock_duration, int):
            raise InvalidLockDurationError(f"Lock duration must be an integer, got {lock_duration!r}")
        if lock_duration < 0:
            raise InvalidLockDurationError("Lock duration must be non-negative")
        end_timestamp = now + lock_duration
        if end_timestamp >= config.MAX_U64:
            raise InvalidLockDurationError(
                "Lock end timestamp overflows",
                details={"now": now, "lock_duration": lock_duration},
            )
        return end_timestamp

    def _get_list_for_index(self, owner: str, index: int) -> PositionList:
        """A missing list makes every index invalid."""
        try:
            return self.market.get_position_list(owner)
        except AccountNotFoundError:
            raise InvalidIndexError(index, 0, owner=owner) from None

    def _get_locks_for_position(self, owner: str, position_id: int) -> UserLocks:
        try:
            return self._get_locks(owner)
        except AccountNotFoundError:
            raise LockDesyncError(owner, position_id) from None

    @staticmethod
    def _check_agreement(owner: str, locks: UserLocks, authority_list: PositionList) -> None:
        if len(locks) != authority_list.head:
            raise LockDesyncError(
                owner,
                -1,
                details={"locks": len(locks), "authority_head": authority_list.head},
                message="Lock registry size does not match authority list head",
            )


__all__ = [
    "Locker",
    "LOCK_POSITION",
    "UNLOCK_POSITION",
    "CLAIM_FEE",
    "INITIALIZE_USER_LOCKS",
]
