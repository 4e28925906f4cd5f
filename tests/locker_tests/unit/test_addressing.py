"""
Unit tests for deterministic account addressing.
"""

import pytest

from locker.core.addressing import (
    LOCKS_SEED,
    derive_address,
    derive_lock_authority,
    derive_pool_address,
    derive_position_address,
    derive_position_list_address,
    derive_state_address,
    derive_tick_address,
    derive_token_account_address,
)
from locker.core.crypto_utils import ADDRESS_PREFIX


OWNER = "LCK" + "a" * 40
OTHER = "LCK" + "b" * 40


class TestDeriveAddress:
    def test_same_inputs_same_address(self):
        assert derive_address(b"tag", "x", 1) == derive_address(b"tag", "x", 1)

    def test_tag_separates_domains(self):
        assert derive_address(b"one", "x") != derive_address(b"two", "x")

    def test_length_prefix_prevents_concatenation_collisions(self):
        assert derive_address(b"tag", "ab", "c") != derive_address(b"tag", "a", "bc")

    def test_int_and_str_seeds_differ(self):
        assert derive_address(b"tag", 1) != derive_address(b"tag", "1")

    def test_prefix_and_digest_length(self):
        address = derive_address(b"tag", "x", prefix="PFX")
        assert address.startswith("PFX")
        assert len(address) == len("PFX") + 40

    def test_bool_seed_rejected(self):
        with pytest.raises(TypeError):
            derive_address(b"tag", True)

    def test_bytes_seed_matches_utf8_str(self):
        assert derive_address(b"tag", b"owner") == derive_address(b"tag", "owner")


class TestLockAuthority:
    def test_deterministic(self):
        assert derive_lock_authority(OWNER) == derive_lock_authority(OWNER)

    def test_distinct_per_owner(self):
        assert derive_lock_authority(OWNER) != derive_lock_authority(OTHER)

    def test_authority_is_not_the_owner(self):
        assert derive_lock_authority(OWNER) != OWNER

    def test_uses_owner_prefix(self):
        assert derive_lock_authority(OWNER).startswith(ADDRESS_PREFIX)

    def test_matches_locks_tag(self):
        assert derive_lock_authority(OWNER) == derive_address(LOCKS_SEED, OWNER, prefix=ADDRESS_PREFIX)

    def test_empty_owner_rejected(self):
        with pytest.raises(ValueError):
            derive_lock_authority("")


class TestMarketAddresses:
    def test_position_list_distinct_from_authority(self):
        assert derive_position_list_address(OWNER) != derive_lock_authority(OWNER)

    def test_authority_list_distinct_from_owner_list(self):
        authority = derive_lock_authority(OWNER)
        assert derive_position_list_address(authority) != derive_position_list_address(OWNER)

    def test_position_slots_distinct(self):
        assert derive_position_address(OWNER, 0) != derive_position_address(OWNER, 1)
        assert derive_position_address(OWNER, 0) != derive_position_address(OTHER, 0)

    def test_negative_slot_rejected(self):
        with pytest.raises(ValueError):
            derive_position_address(OWNER, -1)

    def test_pool_depends_on_fee_tier(self):
        assert derive_pool_address("X", "Y", 20, 4) != derive_pool_address("X", "Y", 30, 4)

    def test_tick_addresses_distinct(self):
        pool = derive_pool_address("X", "Y", 20, 4)
        assert derive_tick_address(pool, -4) != derive_tick_address(pool, 4)

    def test_token_account_per_mint(self):
        assert derive_token_account_address(OWNER, "X") != derive_token_account_address(OWNER, "Y")

    def test_state_address_is_singleton(self):
        assert derive_state_address() == derive_state_address()
        assert derive_state_address().startswith("STATE")
