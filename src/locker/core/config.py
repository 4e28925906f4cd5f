"""
Locker Configuration

Values are read from environment variables at import time. Every setting has a
safe default so the locker runs locally without any environment.
"""

from __future__ import annotations

import logging
import os
import time
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class Network(Enum):
    LOCAL = "local"
    DEV = "dev"
    TEST = "test"
    MAIN = "main"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_int(env_var: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{env_var} must be >= {minimum}, got {value}")
    return value


def _get_network(env_var: str) -> Network:
    raw = os.getenv(env_var, Network.LOCAL.value).strip().lower()
    try:
        return Network(raw)
    except ValueError:
        raise ConfigurationError(
            f"{env_var} must be one of {[n.value for n in Network]}, got {raw!r}"
        )


NETWORK = _get_network("LOCKER_NETWORK")

# Registry capacity; one entry per position held by the owner's lock authority
MAX_LOCKS = _get_int("LOCKER_MAX_LOCKS", 10, minimum=1)

# Lock end timestamps are stored as u64
MAX_U64 = 1 << 64
MAX_CONFIRMATION_TIMEOUT = _get_int("LOCKER_MAX_CONFIRMATION_TIMEOUT", 300)

REQUEST_MAX_AGE_SECONDS = _get_int("LOCKER_REQUEST_MAX_AGE", 300, minimum=1)

LOG_LEVEL = os.getenv("LOCKER_LOG_LEVEL", "INFO").strip().upper()
LOG_FILE = os.getenv("LOCKER_LOG_FILE", "").strip() or None
STATE_FILE = os.getenv("LOCKER_STATE_FILE", "").strip() or None

_LOCKER_ADDRESSES = {
    Network.LOCAL: "34CS5UnQfoNmJ2MUgBc2VuM3BYFv7oYJTbEsbKrp3Zia",
    Network.DEV: "34CS5UnQfoNmJ2MUgBc2VuM3BYFv7oYJTbEsbKrp3Zia",
    Network.TEST: "34CS5UnQfoNmJ2MUgBc2VuM3BYFv7oYJTbEsbKrp3Zia",
    Network.MAIN: "34CS5UnQfoNmJ2MUgBc2VuM3BYFv7oYJTbEsbKrp3Zia",
}


def get_locker_address(network: Network) -> str:
    """Program address the locker is deployed at on ``network``."""
    try:
        return _LOCKER_ADDRESSES[network]
    except KeyError:
        raise ConfigurationError(f"Unknown network: {network!r}")


def get_max_lock_duration(now: Optional[int] = None) -> int:
    """
    Longest lock duration that cannot overflow the end timestamp.

    Leaves MAX_CONFIRMATION_TIMEOUT seconds of headroom for the instruction to
    land after ``now``.
    """
    if now is None:
        now = int(time.time())
    return MAX_U64 - now - MAX_CONFIRMATION_TIMEOUT


class Config:
    """Snapshot of the locker configuration for the active network."""

    NETWORK = NETWORK
    LOCKER_ADDRESS = get_locker_address(NETWORK)
    MAX_LOCKS = MAX_LOCKS
    MAX_U64 = MAX_U64
    MAX_CONFIRMATION_TIMEOUT = MAX_CONFIRMATION_TIMEOUT
    REQUEST_MAX_AGE_SECONDS = REQUEST_MAX_AGE_SECONDS
    LOG_LEVEL = LOG_LEVEL
    LOG_FILE = LOG_FILE
    STATE_FILE = STATE_FILE


if NETWORK == Network.MAIN and MAX_LOCKS != 10:
    logger.warning(
        "Non-default lock capacity configured for mainnet",
        extra={"event": "config.max_locks_override", "max_locks": MAX_LOCKS},
    )
