"""
Typed failures raised by the kmd client.

The daemon reports a failure as a non-2xx status and/or a JSON body of the
form ``{"error": true, "message": "..."}``. ``error_from_response`` turns such
a response into one of the exceptions below; nothing is retried locally.
"""

from __future__ import annotations

import re
from typing import Any


class KMDError(Exception):
    """Base class for every kmd client failure."""


class TransportError(KMDError):
    """Network or transport-layer failure. The original error is chained."""


class KMDAPIError(KMDError):
    """Failure reported by the daemon."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message if status is None else f"kmd error {status}: {message}")
        self.status = status
        self.message = message


class AuthenticationError(KMDAPIError):
    """Wrong wallet password or rejected API token."""


class NotFoundError(KMDAPIError):
    """Unknown wallet, key, address or multisig preimage."""


class KeyNotFoundError(NotFoundError):
    """The unlocked wallet does not hold the requested secret key."""


class InvalidHandleError(KMDAPIError):
    """Wallet handle token is unknown to the daemon (released or never issued)."""


class HandleExpiredError(InvalidHandleError):
    """Wallet handle token has expired. Callers must unlock again."""


class MultisigError(KMDAPIError):
    """Multisig co-signing protocol violation."""


class TransactionMismatchError(MultisigError):
    """Partial signature was produced against a different transaction payload."""


class DuplicateSignatureError(MultisigError):
    """The signing key already has a signature in the partial signature."""


class UnknownSignerError(MultisigError):
    """The signing key is not part of the multisig preimage."""


# Ordered: the first matching pattern wins
_MESSAGE_PATTERNS: list[tuple[re.Pattern[str], type[KMDAPIError]]] = [
    (
        re.compile(r"(wrong|invalid|incorrect) password|could not decrypt", re.I),
        AuthenticationError,
    ),
    (re.compile(r"handle.*expired|expired.*handle", re.I), HandleExpiredError),
    (
        re.compile(r"handle.*(invalid|does not exist|not found|unknown)|invalid.*handle", re.I),
        InvalidHandleError,
    ),
    (
        re.compile(r"(different|mismatch|do not match|does not match).*(transaction|payload)", re.I),
        TransactionMismatchError,
    ),
    (re.compile(r"already (signed|has a signature)", re.I), DuplicateSignatureError),
    (re.compile(r"not a (possible )?signer", re.I), UnknownSignerError),
    (re.compile(r"key (does not exist|not found)", re.I), KeyNotFoundError),
    (re.compile(r"not found|does not exist", re.I), NotFoundError),
]

_STATUS_FALLBACK: dict[int, type[KMDAPIError]] = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
}


def is_error_response(status: int, body: Any) -> bool:
    """Check whether a daemon response signals a failure."""
    if status < 200 or status >= 300:
        return True
    return isinstance(body, dict) and bool(body.get("error"))


def error_from_response(status: int, body: Any) -> KMDAPIError:
    """
    Map a daemon error response to a typed exception.

    Args:
        status: HTTP status code
        body: Decoded response body

    Returns:
        The exception instance (not raised)
    """
    if isinstance(body, dict):
        message = str(body.get("message") or "")
    else:
        message = str(body or "")
    if not message:
        message = f"request failed with status {status}"

    for pattern, error_cls in _MESSAGE_PATTERNS:
        if pattern.search(message):
            return error_cls(message, status)

    return _STATUS_FALLBACK.get(status, KMDAPIError)(message, status)
