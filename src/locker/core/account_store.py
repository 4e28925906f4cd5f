"""
Address-keyed account store.

Holds every account the market and the locker operate on (position lists,
lock registries, pools, token accounts) under its derived address. There is no
module-level store; callers construct one and pass it to each component.

Mutations happen inside ``transaction()``: the first (outermost) entry takes a
deep snapshot of all accounts, and an exception anywhere inside restores it, so
an instruction either commits every write or none.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Type, TypeVar

from locker.core import config
from locker.core.locker_exceptions import AccountAlreadyExistsError, AccountNotFoundError
from locker.core.locks import UserLocks
from locker.core.position import PositionList

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ACCOUNT_KINDS: Dict[str, Type[Any]] = {
    "position_list": PositionList,
    "user_locks": UserLocks,
}


def register_account_kind(kind: str) -> Callable[[Type[T]], Type[T]]:
    """Class decorator making an account type persistable under ``kind``."""

    def decorator(cls: Type[T]) -> Type[T]:
        _ACCOUNT_KINDS[kind] = cls
        return cls

    return decorator


def _kind_of(account: Any) -> str:
    for kind, cls in _ACCOUNT_KINDS.items():
        if type(account) is cls:
            return kind
    raise TypeError(f"Unregistered account type: {type(account).__name__}")


class AccountStore:
    """In-memory ledger of accounts keyed by address."""

    def __init__(self) -> None:
        self._accounts: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._depth = 0

    # ==================== Transactions ====================

    @contextmanager
    def transaction(self) -> Iterator["AccountStore"]:
        with self._lock:
            outermost = self._depth == 0
            snapshot = copy.deepcopy(self._accounts) if outermost else None
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._accounts = snapshot
                    logger.debug(
                        "Transaction rolled back",
                        extra={"event": "store.rollback", "accounts": len(snapshot)},
                    )
                raise
            finally:
                self._depth -= 1

    @contextmanager
    def read_lock(self) -> Iterator["AccountStore"]:
        """
        Hold the store lock across several reads.

        Reads made inside never observe a transaction half-applied.
        """
        with self._lock:
            yield self

    # ==================== Accounts ====================

    def exists(self, address: str) -> bool:
        with self._lock:
            return address in self._accounts

    def get(self, address: str, expected: Optional[Type[T]] = None) -> T:
        try:
            with self._lock:
                account = self._accounts[address]
        except KeyError:
            kind = expected.__name__ if expected else "account"
            raise AccountNotFoundError(address, kind=kind) from None
        if expected is not None and not isinstance(account, expected):
            raise AccountNotFoundError(address, kind=expected.__name__)
        return account

    def create(self, address: str, account: Any) -> Any:
        with self._lock:
            if address in self._accounts:
                raise AccountAlreadyExistsError(address, kind=type(account).__name__)
            self._accounts[address] = account
            return account

    def create_if_absent(self, address: str, factory: Callable[[], T]) -> tuple[T, bool]:
        """
        Return the account at ``address``, creating it with ``factory`` if missing.

        Returns:
            (account, created) - created is False when the account already existed
        """
        with self._lock:
            existing = self._accounts.get(address)
            if existing is not None:
                return existing, False
            account = factory()
            self._accounts[address] = account
            return account, True

    def delete(self, address: str) -> Any:
        with self._lock:
            try:
                return self._accounts.pop(address)
            except KeyError:
                raise AccountNotFoundError(address) from None

    def all(self, kind: Type[T]) -> Dict[str, T]:
        """All accounts of type ``kind``, keyed by address."""
        with self._lock:
            return {
                address: account
                for address, account in self._accounts.items()
                if isinstance(account, kind)
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    # ==================== Persistence ====================

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                address: {"kind": _kind_of(account), "data": account.to_dict()}
                for address, account in sorted(self._accounts.items())
            }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AccountStore":
        # Market account types register themselves on import
        import locker.core.market  # noqa: F401

        store = cls()
        for address, entry in payload.items():
            kind = entry["kind"]
            try:
                account_cls = _ACCOUNT_KINDS[kind]
            except KeyError:
                raise ValueError(f"Unknown account kind {kind!r} at {address}") from None
            store._accounts[address] = account_cls.from_dict(entry["data"])
        return store

    def save(self, path: str | os.PathLike) -> None:
        """Write all accounts to ``path`` as JSON, replacing it atomically."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict()
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.info(
            "Account store saved",
            extra={"event": "store.saved", "path": str(target), "accounts": len(data)},
        )

    @classmethod
    def open(cls, path: Optional[str | os.PathLike] = None) -> "AccountStore":
        """Load from ``path`` (default LOCKER_STATE_FILE) if it exists, else start empty."""
        path = path or config.STATE_FILE
        if path and Path(path).exists():
            return cls.load(path)
        return cls()

    @classmethod
    def load(cls, path: str | os.PathLike) -> "AccountStore":
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        store = cls.from_dict(payload)
        logger.info(
            "Account store loaded",
            extra={"event": "store.loaded", "path": str(path), "accounts": len(store)},
        )
        return store
