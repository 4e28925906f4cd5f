"""
Unit tests for the in-memory concentrated-liquidity market.

Tests cover:
- Position creation and list bookkeeping
- Ownership transfer between lists
- Fee accrual and claim math
- Claim rejections (disabled pool, foreign accounts, custodian check)
"""

import pytest

from locker.core.account_store import AccountStore
from locker.core.addressing import derive_lock_authority
from locker.core.locker_exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    InvalidIndexError,
    UpstreamRejectedError,
    ValidationError,
)
from locker.core.market import Market, mul_div


OWNER = "LCK" + "1" * 40
RECIPIENT = "LCK" + "2" * 40


@pytest.fixture
def market():
    return Market(AccountStore(), admin="admin")


@pytest.fixture
def pool(market):
    return market.create_pool("TOKX", "TOKY", fee=20, tick_spacing=4, init_tick=0)


def open_position(market, pool, owner=OWNER, liquidity=1000, lower=-40, upper=40):
    return market.create_position(owner, pool.address, lower, upper, liquidity)


def claim(market, pool, owner=OWNER, custodian=None, index=0, lower=-40, upper=40):
    account_x = market.create_token_account(owner, "TOKX").address
    account_y = market.create_token_account(owner, "TOKY").address
    return market.claim_fee(owner, custodian or owner, index, pool.address, lower, upper, account_x, account_y)


class TestMulDiv:
    def test_rounds_down(self):
        assert mul_div(7, 3, 2) == 10

    def test_rounds_up(self):
        assert mul_div(7, 3, 2, round_up=True) == 11

    def test_zero_denominator(self):
        with pytest.raises(ValueError):
            mul_div(1, 1, 0)


class TestPools:
    def test_duplicate_pool_rejected(self, market, pool):
        with pytest.raises(AccountAlreadyExistsError):
            market.create_pool("TOKX", "TOKY", fee=20, tick_spacing=4)

    def test_same_tokens_rejected(self, market):
        with pytest.raises(ValidationError):
            market.create_pool("TOKX", "TOKX")

    def test_tick_must_match_spacing(self, market, pool):
        with pytest.raises(ValidationError):
            market.create_tick(pool.address, 3)


class TestPositions:
    def test_create_assigns_sequential_ids(self, market, pool):
        first = open_position(market, pool)
        second = open_position(market, pool)
        assert (first.id, second.id) == (0, 1)
        assert [p.id for p in market.get_all_user_positions(OWNER)] == [0, 1]

    def test_in_range_position_adds_pool_liquidity(self, market, pool):
        open_position(market, pool, liquidity=700)
        assert market.get_pool(pool.address).liquidity == 700

    def test_out_of_range_position_leaves_pool_liquidity(self, market, pool):
        open_position(market, pool, lower=40, upper=80)
        assert market.get_pool(pool.address).liquidity == 0

    def test_invalid_range(self, market, pool):
        with pytest.raises(ValidationError):
            open_position(market, pool, lower=40, upper=40)

    def test_disabled_pool_rejects_new_positions(self, market, pool):
        market.disable_pool(pool.address)
        with pytest.raises(UpstreamRejectedError):
            open_position(market, pool)
        assert market.get_all_user_positions(OWNER) == []

    def test_missing_list_reads_as_empty(self, market):
        assert market.get_all_user_positions(OWNER) == []
        with pytest.raises(AccountNotFoundError):
            market.get_position_list(OWNER)

    def test_remove_position(self, market, pool):
        open_position(market, pool)
        removed = market.remove_position(OWNER, 0)
        assert removed.id == 0
        assert market.get_all_user_positions(OWNER) == []
        assert market.get_pool(pool.address).liquidity == 0


class TestTransfer:
    def test_moves_to_end_of_recipient_list(self, market, pool):
        for _ in range(3):
            open_position(market, pool)
        open_position(market, pool, owner=RECIPIENT)

        moved = market.transfer_position_ownership(OWNER, 0, RECIPIENT)

        assert moved.id == 0
        assert moved.owner == RECIPIENT
        assert [p.id for p in market.get_all_user_positions(OWNER)] == [2, 1]
        assert [p.id for p in market.get_all_user_positions(RECIPIENT)] == [3, 0]

    def test_missing_recipient_list(self, market, pool):
        open_position(market, pool)
        before = market.store.to_dict()
        with pytest.raises(AccountNotFoundError):
            market.transfer_position_ownership(OWNER, 0, RECIPIENT)
        assert market.store.to_dict() == before

    def test_invalid_index_leaves_lists(self, market, pool):
        open_position(market, pool)
        market.create_position_list(RECIPIENT)
        before = market.store.to_dict()
        with pytest.raises(InvalidIndexError):
            market.transfer_position_ownership(OWNER, 1, RECIPIENT)
        assert market.store.to_dict() == before


class TestFees:
    def test_single_position_receives_all_fees(self, market, pool):
        open_position(market, pool)
        market.accrue_fees(pool.address, 1000, 500)
        assert claim(market, pool) == (1000, 500)

    def test_fees_split_by_liquidity(self, market, pool):
        open_position(market, pool)
        open_position(market, pool)
        market.accrue_fees(pool.address, 1000, 500)
        assert claim(market, pool, index=0) == (500, 250)
        assert claim(market, pool, index=1) == (500, 250)

    def test_second_claim_pays_nothing(self, market, pool):
        open_position(market, pool)
        market.accrue_fees(pool.address, 1000, 500)
        claim(market, pool)
        assert claim(market, pool) == (0, 0)

    def test_late_position_only_earns_later_fees(self, market, pool):
        open_position(market, pool)
        market.accrue_fees(pool.address, 1000, 0)
        open_position(market, pool)
        market.accrue_fees(pool.address, 1000, 0)
        assert claim(market, pool, index=1) == (500, 0)
        assert claim(market, pool, index=0) == (1500, 0)

    def test_claim_credits_token_accounts(self, market, pool):
        open_position(market, pool)
        market.accrue_fees(pool.address, 250, 125)
        claim(market, pool)
        account_x = market.create_token_account(OWNER, "TOKX")
        account_y = market.create_token_account(OWNER, "TOKY")
        assert (account_x.amount, account_y.amount) == (250, 125)
        assert market.get_pool(pool.address).fee_reserve_x == 0

    def test_accrue_without_liquidity(self, market, pool):
        with pytest.raises(ValidationError):
            market.accrue_fees(pool.address, 1, 1)

    def test_lock_authority_may_custody(self, market, pool):
        authority = derive_lock_authority(OWNER)
        open_position(market, pool, owner=authority)
        market.accrue_fees(pool.address, 250, 125)
        assert claim(market, pool, owner=OWNER, custodian=authority) == (250, 125)


class TestClaimRejections:
    def test_foreign_custodian(self, market, pool):
        open_position(market, pool, owner=RECIPIENT)
        with pytest.raises(UpstreamRejectedError):
            claim(market, pool, owner=OWNER, custodian=RECIPIENT)

    def test_disabled_pool(self, market, pool):
        open_position(market, pool)
        market.accrue_fees(pool.address, 250, 125)
        market.disable_pool(pool.address)
        with pytest.raises(UpstreamRejectedError):
            claim(market, pool)
        market.enable_pool(pool.address)
        assert claim(market, pool) == (250, 125)

    def test_tick_range_mismatch(self, market, pool):
        open_position(market, pool)
        with pytest.raises(UpstreamRejectedError):
            claim(market, pool, lower=-80, upper=40)

    def test_token_account_of_other_owner(self, market, pool):
        open_position(market, pool)
        foreign = market.create_token_account(RECIPIENT, "TOKX").address
        own_y = market.create_token_account(OWNER, "TOKY").address
        with pytest.raises(UpstreamRejectedError):
            market.claim_fee(OWNER, OWNER, 0, pool.address, -40, 40, foreign, own_y)

    def test_token_account_wrong_mint(self, market, pool):
        open_position(market, pool)
        own_y = market.create_token_account(OWNER, "TOKY").address
        with pytest.raises(UpstreamRejectedError):
            market.claim_fee(OWNER, OWNER, 0, pool.address, -40, 40, own_y, own_y)

    def test_missing_token_account(self, market, pool):
        open_position(market, pool)
        with pytest.raises(UpstreamRejectedError):
            market.claim_fee(OWNER, OWNER, 0, pool.address, -40, 40, "TKAmissing", "TKAmissing")
