"""
In-memory reference of the concentrated-liquidity market.

The locker treats the market as an external engine. This module implements only
the surface the locker consumes, on top of an AccountStore:
- position lists and position records
- ownership transfer between lists
- fee claims

It also provides enough pool, tick and token-account bookkeeping to create
positions and accrue fees for them. Swap math and tick crossing are out of
scope: fees are credited directly with ``accrue_fees``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from locker.core.account_store import AccountStore, register_account_kind
from locker.core.addressing import (
    derive_lock_authority,
    derive_pool_address,
    derive_position_list_address,
    derive_state_address,
    derive_tick_address,
    derive_token_account_address,
)
from locker.core.locker_exceptions import (
    AccountNotFoundError,
    UpstreamRejectedError,
    ValidationError,
)
from locker.core.position import Position, PositionList

logger = logging.getLogger(__name__)

# Q128 fixed point for fee growth
Q128 = 2**128

MIN_TICK = -221_818
MAX_TICK = 221_818


def mul_div(a: int, b: int, denominator: int, round_up: bool = False) -> int:
    """
    Calculate (a * b) / denominator with controlled rounding.

    Raises:
        ValueError: If denominator is zero
    """
    if denominator == 0:
        raise ValueError("Division by zero")
    result = a * b
    if round_up:
        return (result + denominator - 1) // denominator
    return result // denominator


@register_account_kind("pool")
@dataclass
class Pool:
    address: str
    token_x: str
    token_y: str
    fee: int  # In basis points (10000 = 100%)
    tick_spacing: int
    current_tick_index: int = 0
    liquidity: int = 0

    fee_growth_global_x: int = 0  # Q128.128
    fee_growth_global_y: int = 0

    # Fees accrued and not yet claimed
    fee_reserve_x: int = 0
    fee_reserve_y: int = 0

    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pool":
        return cls(**data)


@register_account_kind("tick")
@dataclass
class Tick:
    pool: str
    index: int
    liquidity_gross: int = 0
    liquidity_change: int = 0
    fee_growth_outside_x: int = 0
    fee_growth_outside_y: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tick":
        return cls(**data)


@register_account_kind("token_account")
@dataclass
class TokenAccount:
    address: str
    owner: str
    mint: str
    amount: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenAccount":
        return cls(**data)


@register_account_kind("market_state")
@dataclass
class MarketState:
    admin: str = ""
    next_position_id: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketState":
        return cls(**data)


class Market:
    """Concentrated-liquidity engine backed by an AccountStore."""

    def __init__(self, store: AccountStore, admin: str = "") -> None:
        self.store = store
        store.create_if_absent(
            derive_state_address(), lambda: MarketState(admin=admin)
        )

    def _state(self) -> MarketState:
        # Re-read after rollbacks replace the account objects
        return self.store.get(derive_state_address(), MarketState)

    # ==================== Pools & Ticks ====================

    def create_pool(
        self,
        token_x: str,
        token_y: str,
        fee: int = 20,
        tick_spacing: int = 4,
        init_tick: int = 0,
    ) -> Pool:
        if token_x == token_y:
            raise ValidationError("Pool tokens must differ")
        if tick_spacing <= 0:
            raise ValidationError("Tick spacing must be positive")
        address = derive_pool_address(token_x, token_y, fee, tick_spacing)
        pool = Pool(
            address=address,
            token_x=token_x,
            token_y=token_y,
            fee=fee,
            tick_spacing=tick_spacing,
            current_tick_index=init_tick,
        )
        self.store.create(address, pool)
        logger.info(
            "Pool created",
            extra={"event": "market.pool_created", "pool": address, "fee": fee},
        )
        return pool

    def get_pool(self, pool: str) -> Pool:
        return self.store.get(pool, Pool)

    def disable_pool(self, pool: str) -> None:
        self.get_pool(pool).enabled = False

    def enable_pool(self, pool: str) -> None:
        self.get_pool(pool).enabled = True

    def create_tick(self, pool: str, index: int) -> Tick:
        pool_state = self.get_pool(pool)
        if index % pool_state.tick_spacing != 0:
            raise ValidationError(f"Tick {index} is not a multiple of spacing {pool_state.tick_spacing}")
        if not MIN_TICK <= index <= MAX_TICK:
            raise ValidationError(f"Tick {index} out of range")

        tick = Tick(pool=pool, index=index)
        # By convention all growth so far happened below an initialized tick
        if index <= pool_state.current_tick_index:
            tick.fee_growth_outside_x = pool_state.fee_growth_global_x
            tick.fee_growth_outside_y = pool_state.fee_growth_global_y
        return self.store.create(derive_tick_address(pool, index), tick)

    def get_tick(self, pool: str, index: int) -> Tick:
        return self.store.get(derive_tick_address(pool, index), Tick)

    def _get_or_create_tick(self, pool: str, index: int) -> Tick:
        address = derive_tick_address(pool, index)
        if self.store.exists(address):
            return self.store.get(address, Tick)
        return self.create_tick(pool, index)

    def _fee_growth_inside(self, pool: Pool, lower_index: int, upper_index: int) -> Tuple[int, int]:
        lower = self.get_tick(pool.address, lower_index)
        upper = self.get_tick(pool.address, upper_index)
        current = pool.current_tick_index

        result = []
        for global_growth, lower_outside, upper_outside in (
            (pool.fee_growth_global_x, lower.fee_growth_outside_x, upper.fee_growth_outside_x),
            (pool.fee_growth_global_y, lower.fee_growth_outside_y, upper.fee_growth_outside_y),
        ):
            below = lower_outside if current >= lower_index else global_growth - lower_outside
            above = upper_outside if current < upper_index else global_growth - upper_outside
            result.append(global_growth - below - above)
        return result[0], result[1]

    def accrue_fees(self, pool: str, amount_x: int, amount_y: int) -> None:
        """Credit swap fees to the pool's in-range liquidity."""
        pool_state = self.get_pool(pool)
        if pool_state.liquidity == 0:
            raise ValidationError("No in-range liquidity to accrue fees to")
        pool_state.fee_growth_global_x += mul_div(amount_x, Q128, pool_state.liquidity)
        pool_state.fee_growth_global_y += mul_div(amount_y, Q128, pool_state.liquidity)
        pool_state.fee_reserve_x += amount_x
        pool_state.fee_reserve_y += amount_y

    # ==================== Position Lists ====================

    def get_position_list(self, owner: str) -> PositionList:
        """
        Raises:
            AccountNotFoundError: If ``owner`` has no list yet (distinct from an empty list)
        """
        return self.store.get(derive_position_list_address(owner), PositionList)

    def create_position_list(self, owner: str, payer: Optional[str] = None) -> PositionList:
        return self.store.create(
            derive_position_list_address(owner), PositionList(owner=owner, payer=payer or owner)
        )

    def create_position_list_if_absent(self, owner: str, payer: Optional[str] = None) -> bool:
        """Create ``owner``'s list unless it exists. Returns True if it was created."""
        _, created = self.store.create_if_absent(
            derive_position_list_address(owner),
            lambda: PositionList(owner=owner, payer=payer or owner),
        )
        if created:
            logger.debug(
                "Position list created",
                extra={"event": "market.position_list_created", "owner": owner[:12]},
            )
        return created

    def get_position(self, owner: str, index: int) -> Position:
        return self.get_position_list(owner).get(index)

    def get_all_user_positions(self, owner: str) -> List[Position]:
        try:
            return self.get_position_list(owner).positions()
        except AccountNotFoundError:
            return []

    # ==================== Positions ====================

    def create_position(
        self,
        owner: str,
        pool: str,
        lower_tick_index: int,
        upper_tick_index: int,
        liquidity: int,
        payer: Optional[str] = None,
    ) -> Position:
        if lower_tick_index >= upper_tick_index:
            raise ValidationError("Lower tick must be below upper tick")
        if liquidity <= 0:
            raise ValidationError("Liquidity must be positive")

        with self.store.transaction():
            pool_state = self.get_pool(pool)
            if not pool_state.enabled:
                raise UpstreamRejectedError("Pool is disabled", details={"pool": pool})

            self.create_position_list_if_absent(owner, payer)
            position_list = self.get_position_list(owner)

            lower = self._get_or_create_tick(pool, lower_tick_index)
            upper = self._get_or_create_tick(pool, upper_tick_index)
            lower.liquidity_gross += liquidity
            lower.liquidity_change += liquidity
            upper.liquidity_gross += liquidity
            upper.liquidity_change -= liquidity
            if lower_tick_index <= pool_state.current_tick_index < upper_tick_index:
                pool_state.liquidity += liquidity

            growth_x, growth_y = self._fee_growth_inside(pool_state, lower_tick_index, upper_tick_index)
            state = self._state()
            position = Position(
                id=state.next_position_id,
                owner=owner,
                pool=pool,
                lower_tick_index=lower_tick_index,
                upper_tick_index=upper_tick_index,
                liquidity=liquidity,
                fee_growth_inside_x=growth_x,
                fee_growth_inside_y=growth_y,
            )
            state.next_position_id += 1
            index = position_list.append(position)

        logger.info(
            "Position created",
            extra={
                "event": "market.position_created",
                "owner": owner[:12],
                "position_id": position.id,
                "index": index,
                "range": f"[{lower_tick_index}, {upper_tick_index}]",
            },
        )
        return position

    def remove_position(self, owner: str, index: int) -> Position:
        """Burn the position at ``index`` of ``owner``'s list."""
        with self.store.transaction():
            position_list = self.get_position_list(owner)
            position = position_list.get(index)
            pool_state = self.get_pool(position.pool)
            lower = self.get_tick(position.pool, position.lower_tick_index)
            upper = self.get_tick(position.pool, position.upper_tick_index)
            lower.liquidity_gross -= position.liquidity
            lower.liquidity_change -= position.liquidity
            upper.liquidity_gross -= position.liquidity
            upper.liquidity_change += position.liquidity
            if position.lower_tick_index <= pool_state.current_tick_index < position.upper_tick_index:
                pool_state.liquidity -= position.liquidity
            removed = position_list.remove_at(index)
        logger.info(
            "Position removed",
            extra={"event": "market.position_removed", "owner": owner[:12], "position_id": removed.id},
        )
        return removed

    def transfer_position_ownership(self, owner: str, index: int, recipient: str) -> Position:
        """
        Move the position at ``index`` of ``owner``'s list to the end of
        ``recipient``'s list and rewrite its owner.

        Raises:
            AccountNotFoundError: If either list does not exist
            InvalidIndexError: If index is outside the owner's list
        """
        with self.store.transaction():
            owner_list = self.get_position_list(owner)
            recipient_list = self.get_position_list(recipient)
            position = owner_list.remove_at(index)
            position.owner = recipient
            recipient_list.append(position)
        return position

    # ==================== Token Accounts ====================

    def create_token_account(self, owner: str, mint: str) -> TokenAccount:
        address = derive_token_account_address(owner, mint)
        account, _ = self.store.create_if_absent(
            address, lambda: TokenAccount(address=address, owner=owner, mint=mint)
        )
        return account

    def get_token_account(self, address: str) -> TokenAccount:
        return self.store.get(address, TokenAccount)

    # ==================== Fees ====================

    def claim_fee(
        self,
        authorized_by: str,
        custodian: str,
        index: int,
        pool: str,
        lower_tick_index: int,
        upper_tick_index: int,
        account_x: str,
        account_y: str,
    ) -> Tuple[int, int]:
        """
        Pay out the fees owed to the position at ``index`` of ``custodian``'s list.

        ``authorized_by`` must be the custodian itself or the owner whose lock
        authority is the custodian. Token accounts must belong to
        ``authorized_by``.

        Returns:
            (amount_x, amount_y) transferred
        """
        if custodian not in (authorized_by, derive_lock_authority(authorized_by)):
            raise UpstreamRejectedError(
                "Signer does not control the position custodian",
                details={"custodian": custodian, "signer": authorized_by},
            )

        with self.store.transaction():
            pool_state = self.get_pool(pool)
            if not pool_state.enabled:
                raise UpstreamRejectedError("Pool is disabled", details={"pool": pool})

            position = self.get_position(custodian, index)
            if position.pool != pool:
                raise UpstreamRejectedError("Position does not belong to pool")
            if (position.lower_tick_index, position.upper_tick_index) != (lower_tick_index, upper_tick_index):
                raise UpstreamRejectedError("Tick range does not match position")

            destination_x = self._claim_destination(account_x, authorized_by, pool_state.token_x)
            destination_y = self._claim_destination(account_y, authorized_by, pool_state.token_y)

            growth_x, growth_y = self._fee_growth_inside(pool_state, lower_tick_index, upper_tick_index)

            # Round DOWN when paying users
            amount_x = position.tokens_owed_x + mul_div(
                growth_x - position.fee_growth_inside_x, position.liquidity, Q128
            )
            amount_y = position.tokens_owed_y + mul_div(
                growth_y - position.fee_growth_inside_y, position.liquidity, Q128
            )

            position.fee_growth_inside_x = growth_x
            position.fee_growth_inside_y = growth_y
            position.tokens_owed_x = 0
            position.tokens_owed_y = 0

            pool_state.fee_reserve_x -= amount_x
            pool_state.fee_reserve_y -= amount_y
            destination_x.amount += amount_x
            destination_y.amount += amount_y

        logger.info(
            "Fees claimed",
            extra={
                "event": "market.fee_claimed",
                "pool": pool[:12],
                "position_id": position.id,
                "amount_x": amount_x,
                "amount_y": amount_y,
            },
        )
        return amount_x, amount_y

    def _claim_destination(self, address: str, owner: str, mint: str) -> TokenAccount:
        try:
            account = self.get_token_account(address)
        except AccountNotFoundError:
            raise UpstreamRejectedError(f"Token account {address} does not exist") from None
        if account.mint != mint:
            raise UpstreamRejectedError("Token account mint does not match pool token")
        if account.owner != owner:
            raise UpstreamRejectedError("Token account is not owned by the signer")
        return account
