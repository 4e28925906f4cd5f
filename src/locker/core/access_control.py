"""
Signature-based authorization for locker instructions.

Every lock, unlock and fee claim must carry a SignedRequest from the position
owner. The request signs a canonical message naming the instruction and its
parameters, so a signature for one instruction cannot be replayed as another.
A fee payer may differ from the owner but never authorizes anything.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from locker.core import config
from locker.core.locker_exceptions import UnauthorizedError
from locker.core.crypto_utils import (
    address_from_public_key,
    derive_public_key_hex,
    sign_message_hex,
    verify_signature_hex,
)

logger = logging.getLogger(__name__)

# Allowed clock skew for requests stamped slightly in the future
MAX_FUTURE_SKEW_SECONDS = 30


def build_instruction_message(
    instruction: str,
    owner: str,
    params: Dict[str, Any],
    nonce: int,
    timestamp: int,
) -> str:
    """Canonical JSON payload signed for an instruction."""
    return json.dumps(
        {
            "instruction": instruction,
            "owner": owner,
            "params": params,
            "nonce": nonce,
            "timestamp": timestamp,
        },
        sort_keys=True,
        separators=(",", ":"),
    )


@dataclass
class SignedRequest:
    """
    Owner-signed authorization for a single instruction.

    ``address`` is the claimed owner and must be the address of ``public_key``.
    """

    address: str
    public_key: str
    message: str
    signature: str
    timestamp: int
    nonce: int

    def __post_init__(self) -> None:
        if not self.signature:
            raise UnauthorizedError("Signature is required")
        if not self.address:
            raise UnauthorizedError("Signer address is required")

    def get_message_hash(self) -> bytes:
        return hashlib.sha256(self.message.encode()).digest()


def sign_instruction(
    private_hex: str,
    instruction: str,
    params: Dict[str, Any],
    nonce: Optional[int] = None,
    timestamp: Optional[int] = None,
) -> SignedRequest:
    """Client-side helper: sign ``instruction`` with ``params`` as the key's owner."""
    public_hex = derive_public_key_hex(private_hex)
    address = address_from_public_key(public_hex)
    if nonce is None:
        nonce = time.time_ns()
    if timestamp is None:
        timestamp = int(time.time())
    message = build_instruction_message(instruction, address, params, nonce, timestamp)
    return SignedRequest(
        address=address,
        public_key=public_hex,
        message=message,
        signature=sign_message_hex(private_hex, hashlib.sha256(message.encode()).digest()),
        timestamp=timestamp,
        nonce=nonce,
    )


@dataclass
class AccessControl:
    """
    Verifies SignedRequests with replay protection.

    Usage:
        ac = AccessControl()
        ac.require_authorized(request, "lock_position", {"index": 0, ...}, owner)
    """

    # address -> {nonce: request timestamp}
    used_nonces: Dict[str, Dict[int, int]] = field(default_factory=dict)
    max_age_seconds: int = config.REQUEST_MAX_AGE_SECONDS

    # Prune expired nonces once this many are tracked
    cleanup_threshold: int = 10_000

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def verify_caller(
        self,
        request: SignedRequest,
        instruction: str,
        params: Dict[str, Any],
        expected_address: Optional[str] = None,
    ) -> bool:
        """
        Check that ``request`` authorizes ``instruction`` with ``params``.

        The checks are, in order:
        1. the claimed address matches ``expected_address`` (when given)
        2. the public key hashes to the claimed address
        3. the request is fresh
        4. the signed message is exactly this instruction
        5. the signature is valid
        6. the nonce is unused

        The last check and the recording of the nonce happen under one lock,
        so concurrent submissions of the same request authorize at most once.
        The nonce is consumed only when every check passes.
        """
        address = request.address

        if expected_address is not None and address != expected_address:
            logger.warning(
                "Access denied: address mismatch",
                extra={
                    "event": "access_control.address_mismatch",
                    "expected": expected_address[:12],
                    "actual": address[:12],
                },
            )
            return False

        try:
            key_address = address_from_public_key(request.public_key)
        except ValueError:
            key_address = None
        if key_address != address:
            logger.warning(
                "Access denied: public key does not match address",
                extra={"event": "access_control.key_mismatch", "address": address[:12]},
            )
            return False

        now = int(time.time())
        if request.timestamp < now - self.max_age_seconds or request.timestamp > now + MAX_FUTURE_SKEW_SECONDS:
            logger.warning(
                "Access denied: request expired",
                extra={
                    "event": "access_control.stale_request",
                    "address": address[:12],
                    "age_seconds": now - request.timestamp,
                    "max_age": self.max_age_seconds,
                },
            )
            return False

        expected_message = build_instruction_message(
            instruction, address, params, request.nonce, request.timestamp
        )
        if request.message != expected_message:
            logger.warning(
                "Access denied: signed message does not match instruction",
                extra={"event": "access_control.message_mismatch", "address": address[:12], "instruction": instruction},
            )
            return False

        if not verify_signature_hex(request.public_key, request.get_message_hash(), request.signature):
            logger.error(
                "Access denied: invalid signature",
                extra={"event": "access_control.invalid_signature", "address": address[:12]},
            )
            return False

        with self._lock:
            seen = self.used_nonces.setdefault(address, {})
            if request.nonce in seen:
                logger.error(
                    "Access denied: replayed nonce",
                    extra={"event": "access_control.replay", "address": address[:12], "nonce": request.nonce},
                )
                return False
            seen[request.nonce] = request.timestamp
            self._cleanup_old_nonces(now)
        return True

    def _cleanup_old_nonces(self, now: int) -> None:
        """
        Drop nonces whose requests are past max_age_seconds.

        Such requests already fail the freshness check, so forgetting their
        nonces cannot re-enable a replay. Caller holds ``_lock``.
        """
        total = sum(len(nonces) for nonces in self.used_nonces.values())
        if total < self.cleanup_threshold:
            return

        cutoff = now - self.max_age_seconds
        cleared = 0
        for address in list(self.used_nonces):
            nonces = self.used_nonces[address]
            for nonce in [n for n, ts in nonces.items() if ts < cutoff]:
                del nonces[nonce]
                cleared += 1
            if not nonces:
                del self.used_nonces[address]

        if cleared:
            logger.info(
                "Expired nonces cleared",
                extra={"event": "access_control.nonce_cleanup", "cleared": cleared, "remaining": total - cleared},
            )

    def require_authorized(
        self,
        request: SignedRequest,
        instruction: str,
        params: Dict[str, Any],
        expected_address: Optional[str] = None,
    ) -> str:
        """
        Verify ``request`` and return the authorized owner address.

        Raises:
            UnauthorizedError: If verification fails
        """
        if not self.verify_caller(request, instruction, params, expected_address):
            raise UnauthorizedError(
                f"Unauthorized: {request.address[:12]} did not sign {instruction}",
                details={"address": request.address, "instruction": instruction},
            )
        return request.address
