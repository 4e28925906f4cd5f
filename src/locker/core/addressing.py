"""
Deterministic account addressing.

Every account the locker touches lives at an address derived from a domain tag
and a tuple of seeds. The preimage is the tag followed by each seed, and every
element is prefixed with its 4-byte length. Two distinct (tag, seeds) tuples
therefore never share a preimage. Addresses are SHA-256 digests of that preimage,
so they are stable across processes and require no state.
"""

from __future__ import annotations

import hashlib
from typing import Union

from locker.core.crypto_utils import ADDRESS_PREFIX

LOCKS_SEED = b"Locks"
POSITION_LIST_SEED = b"positionlistv1"
POSITION_SEED = b"positionv1"
POOL_SEED = b"poolv1"
TICK_SEED = b"tickv1"
STATE_SEED = b"statev1"
TOKEN_ACCOUNT_SEED = b"tokenv1"

Seed = Union[str, bytes, int]


def _encode_seed(seed: Seed) -> bytes:
    if isinstance(seed, bool):
        raise TypeError("Boolean seeds are ambiguous")
    if isinstance(seed, int):
        return seed.to_bytes(8, "little", signed=True)
    if isinstance(seed, str):
        return seed.encode("utf-8")
    return bytes(seed)


def derive_address(tag: bytes, *seeds: Seed, prefix: str = "") -> str:
    """Hash ``tag`` and ``seeds`` into an address string."""
    hasher = hashlib.sha256()
    for part in (tag, *(_encode_seed(s) for s in seeds)):
        hasher.update(len(part).to_bytes(4, "big"))
        hasher.update(part)
    return f"{prefix}{hasher.hexdigest()[:40]}"


def _require_owner(owner: str) -> None:
    if not owner:
        raise ValueError("Owner address is required")


def _require_index(index: int) -> None:
    if index < 0:
        raise ValueError(f"Index must be non-negative, got {index}")


def derive_lock_authority(owner: str) -> str:
    """
    Lock authority for ``owner``.

    The authority also addresses the owner's lock registry, and it is a valid
    position-list owner, so it uses the same prefix as real owners.
    """
    _require_owner(owner)
    return derive_address(LOCKS_SEED, owner, prefix=ADDRESS_PREFIX)


def derive_position_list_address(owner: str) -> str:
    _require_owner(owner)
    return derive_address(POSITION_LIST_SEED, owner, prefix="PLS")


def derive_position_address(list_owner: str, index: int) -> str:
    """Address of slot ``index`` in ``list_owner``'s position list."""
    _require_owner(list_owner)
    _require_index(index)
    return derive_address(POSITION_SEED, list_owner, index, prefix="POS")


def derive_pool_address(token_x: str, token_y: str, fee: int, tick_spacing: int) -> str:
    return derive_address(POOL_SEED, token_x, token_y, fee, tick_spacing, prefix="POOL")


def derive_tick_address(pool: str, index: int) -> str:
    return derive_address(TICK_SEED, pool, index, prefix="TICK")


def derive_token_account_address(owner: str, mint: str) -> str:
    _require_owner(owner)
    return derive_address(TOKEN_ACCOUNT_SEED, owner, mint, prefix="TKA")


def derive_state_address() -> str:
    return derive_address(STATE_SEED, prefix="STATE")
