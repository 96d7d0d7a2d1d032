"""
Account and multisig address encoding.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
from collections.abc import Sequence

from kmdclient.constants import (
    ADDRESS_CHECKSUM_LENGTH,
    MULTISIG_ADDRESS_PREFIX,
    PUBLIC_KEY_LENGTH,
)

ADDRESS_LENGTH = 58


def sha512_256(data: bytes) -> bytes:
    """SHA-512/256 digest"""
    h = hashlib.new("sha512_256")
    h.update(data)
    return h.digest()


def encode_address(public_key: bytes) -> str:
    """
    Encode a 32-byte public key as an account address.

    The address is the unpadded base32 encoding of the key followed by the
    last 4 bytes of its SHA-512/256 digest.
    """
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise ValueError(f"Invalid public key length: {len(public_key)}")

    checksum = sha512_256(public_key)[-ADDRESS_CHECKSUM_LENGTH:]
    return base64.b32encode(public_key + checksum).decode("ascii").rstrip("=")


def decode_address(address: str) -> bytes:
    """
    Decode an account address back to its 32-byte public key.

    Raises:
        ValueError: If the address is malformed or its checksum does not match
    """
    if len(address) != ADDRESS_LENGTH:
        raise ValueError(f"Invalid address length: {len(address)}")

    padding = "=" * (-len(address) % 8)
    try:
        raw = base64.b32decode(address + padding)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid address encoding: {e}") from e

    public_key = raw[:PUBLIC_KEY_LENGTH]
    checksum = raw[PUBLIC_KEY_LENGTH:]
    if sha512_256(public_key)[-ADDRESS_CHECKSUM_LENGTH:] != checksum:
        raise ValueError("Address checksum mismatch")

    return public_key


def is_valid_address(address: str) -> bool:
    try:
        decode_address(address)
    except ValueError:
        return False
    return True


def multisig_address(version: int, threshold: int, public_keys: Sequence[bytes]) -> str:
    """
    Derive the address of a multisig preimage.

    Args:
        version: Multisig version
        threshold: Number of signatures required
        public_keys: Ordered 32-byte public keys

    Returns:
        Address of SHA-512/256("MultisigAddr" || version || threshold || keys)
    """
    if not 0 <= version <= 255 or not 0 <= threshold <= 255:
        raise ValueError("Multisig version and threshold must fit in one byte")
    for key in public_keys:
        if len(key) != PUBLIC_KEY_LENGTH:
            raise ValueError(f"Invalid public key length: {len(key)}")

    data = MULTISIG_ADDRESS_PREFIX + bytes([version, threshold]) + b"".join(public_keys)
    return encode_address(sha512_256(data))
