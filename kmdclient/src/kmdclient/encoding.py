"""
Serialization adapter between raw bytes and the daemon's wire format.

Binary fields (keys, signatures, transactions, derivation keys) travel
base64 encoded in JSON bodies. The signed multisig returned by the daemon is
base64 encoded msgpack. Everything outside this module works on raw bytes.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

import msgpack
from pydantic import ValidationError

from kmdclient.constants import SENSITIVE_FIELDS
from kmdclient.errors import KMDAPIError
from kmdclient.models import (
    MultisigPreimage,
    MultisigSubsig,
    PartialMultisigSignature,
    WalletInfo,
)


@runtime_checkable
class TransactionEncoder(Protocol):
    """Anything that can produce its canonical binary encoding."""

    def to_bytes(self) -> bytes: ...


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(value: Any, field: str) -> bytes:
    """
    Decode a base64 field from a daemon response.

    Raises:
        KMDAPIError: If the field is missing or not valid base64
    """
    if not isinstance(value, str):
        raise KMDAPIError(f"Malformed response: field '{field}' is missing or not a string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KMDAPIError(f"Malformed response: field '{field}' is not base64: {e}") from e


def transaction_bytes(transaction: TransactionEncoder | bytes | bytearray | memoryview) -> bytes:
    """Canonical encoding of a transaction, accepting pre-encoded bytes."""
    if isinstance(transaction, bytes | bytearray | memoryview):
        return bytes(transaction)
    if isinstance(transaction, TransactionEncoder):
        return bytes(transaction.to_bytes())
    raise TypeError(f"Cannot encode transaction of type {type(transaction).__name__}")


def encode_public_keys(public_keys: Sequence[bytes]) -> list[str]:
    return [b64encode(pk) for pk in public_keys]


def encode_partial(partial: PartialMultisigSignature) -> dict[str, Any]:
    """Wire form: {"v": version, "thr": threshold, "subsig": [{"pk": .., "s": ..}]}"""
    subsigs: list[dict[str, str]] = []
    for subsig in partial.subsigs:
        entry = {"pk": b64encode(subsig.public_key)}
        if subsig.signature is not None:
            entry["s"] = b64encode(subsig.signature)
        subsigs.append(entry)
    return {"v": partial.version, "thr": partial.threshold, "subsig": subsigs}


def _unpack_multisig(data: str) -> Any:
    """Unpack the base64 msgpack blob the daemon returns for a multisig signature."""
    raw = b64decode(data, "multisig")
    try:
        return msgpack.unpackb(raw, raw=False)
    except (ValueError, msgpack.exceptions.UnpackException) as e:
        raise KMDAPIError(f"Malformed multisig signature: {e}") from e


def _subsig_bytes(value: Any, field: str) -> bytes:
    # msgpack carries raw bytes, the JSON form carries base64 strings
    if isinstance(value, bytes):
        return value
    return b64decode(value, field)


def decode_partial(data: Any, payload: bytes | None = None) -> PartialMultisigSignature:
    """
    Parse a partial multisig signature.

    The sign endpoint returns it as base64 encoded msgpack; the JSON object
    form sent in requests is accepted as well.

    Args:
        data: Wire value as returned by the daemon
        payload: Encoded transaction the signature was produced against
    """
    if isinstance(data, str):
        data = _unpack_multisig(data)
    if not isinstance(data, dict):
        raise KMDAPIError("Malformed response: multisig signature is not an object")

    subsigs: list[MultisigSubsig] = []
    try:
        for entry in data.get("subsig") or []:
            signature = entry.get("s")
            subsigs.append(
                MultisigSubsig(
                    public_key=_subsig_bytes(entry.get("pk"), "subsig.pk"),
                    signature=_subsig_bytes(signature, "subsig.s") if signature else None,
                )
            )
        return PartialMultisigSignature(
            version=data.get("v", 0),
            threshold=data.get("thr", 0),
            subsigs=tuple(subsigs),
            payload=payload,
        )
    except (ValidationError, AttributeError) as e:
        raise KMDAPIError(f"Malformed multisig signature: {e}") from e


def decode_preimage(data: dict[str, Any]) -> MultisigPreimage:
    try:
        return MultisigPreimage(
            version=data.get("multisig_version", 0),
            threshold=data.get("threshold", 0),
            public_keys=tuple(b64decode(pk, "pks") for pk in data.get("pks") or []),
        )
    except ValidationError as e:
        raise KMDAPIError(f"Malformed multisig preimage: {e}") from e


def decode_wallet(data: Any) -> WalletInfo:
    if not isinstance(data, dict):
        raise KMDAPIError("Malformed response: wallet is not an object")
    try:
        return WalletInfo.model_validate(data)
    except ValidationError as e:
        raise KMDAPIError(f"Malformed wallet record: {e}") from e


def redact(body: dict[str, Any] | None) -> dict[str, Any] | None:
    """Copy of a request body safe for logging."""
    if body is None:
        return None
    return {k: ("<redacted>" if k in SENSITIVE_FIELDS else v) for k, v in body.items()}
