"""secp256k1 keys, owner identities and instruction signatures."""

from __future__ import annotations

import hashlib

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

ADDRESS_PREFIX = "LCK"

_CURVE = ec.SECP256K1()
_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)


def _private_key_to_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_numbers().private_value.to_bytes(32, "big").hex()


def _public_key_to_hex(public_key: ec.EllipticCurvePublicKey) -> str:
    numbers = public_key.public_numbers()
    return (numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")).hex()


def load_private_key_from_hex(private_hex: str) -> ec.EllipticCurvePrivateKey:
    value = int(private_hex, 16) % _CURVE_ORDER
    return ec.derive_private_key(value or 1, _CURVE)


def load_public_key_from_hex(public_hex: str) -> ec.EllipticCurvePublicKey:
    raw = bytes.fromhex(public_hex)
    if len(raw) != 64:
        raise ValueError("Public key hex must be 64 bytes (uncompressed without prefix).")
    return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, b"\x04" + raw)


def generate_secp256k1_keypair_hex() -> tuple[str, str]:
    private_key = ec.generate_private_key(_CURVE)
    return _private_key_to_hex(private_key), _public_key_to_hex(private_key.public_key())


def derive_public_key_hex(private_hex: str) -> str:
    return _public_key_to_hex(load_private_key_from_hex(private_hex).public_key())


def address_from_public_key(public_hex: str) -> str:
    """
    Owner identity for a public key.

    'LCK' followed by the first 40 hex characters of SHA-256 over the raw
    64-byte public key.
    """
    digest = hashlib.sha256(bytes.fromhex(public_hex)).hexdigest()
    return f"{ADDRESS_PREFIX}{digest[:40]}"


def generate_identity() -> tuple[str, str, str]:
    """Fresh keypair plus its address: (private_hex, public_hex, address)."""
    private_hex, public_hex = generate_secp256k1_keypair_hex()
    return private_hex, public_hex, address_from_public_key(public_hex)


def is_canonical_signature(r: int, s: int) -> bool:
    """Both components in range and s in the low half of the curve order."""
    if not (1 <= r < _CURVE_ORDER and 1 <= s < _CURVE_ORDER):
        return False
    return s <= _CURVE_ORDER // 2


def sign_message_hex(private_hex: str, message: bytes) -> str:
    private_key = load_private_key_from_hex(private_hex)
    der_signature = private_key.sign(message, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der_signature)
    if s > _CURVE_ORDER // 2:
        s = _CURVE_ORDER - s
    return (r.to_bytes(32, "big") + s.to_bytes(32, "big")).hex()


def verify_signature_hex(public_hex: str, message: bytes, signature_hex: str) -> bool:
    try:
        public_key = load_public_key_from_hex(public_hex)
        raw_signature = bytes.fromhex(signature_hex)
    except ValueError:
        return False
    if len(raw_signature) != 64:
        return False
    r = int.from_bytes(raw_signature[:32], "big")
    s = int.from_bytes(raw_signature[32:], "big")
    if not is_canonical_signature(r, s):
        return False
    try:
        public_key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True
