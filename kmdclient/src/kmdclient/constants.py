"""
kmd daemon API constants.
"""

from __future__ import annotations

# Default daemon location
DEFAULT_KMD_HOST = "http://127.0.0.1"
DEFAULT_KMD_PORT = 7833

# Header carrying the daemon API token on every request
API_TOKEN_HEADER = "X-KMD-API-Token"

DEFAULT_WALLET_DRIVER = "sqlite"
DEFAULT_MULTISIG_VERSION = 1

# Timeout for a single request (seconds), enforced by the transport
DEFAULT_REQUEST_TIMEOUT = 30.0

# Renew a handle this many seconds before its estimated expiry
DEFAULT_RENEW_MARGIN = 10.0

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64
ADDRESS_CHECKSUM_LENGTH = 4
MULTISIG_ADDRESS_PREFIX = b"MultisigAddr"

# Request fields that must never reach the logs
SENSITIVE_FIELDS = frozenset(
    {
        "wallet_password",
        "private_key",
        "master_derivation_key",
        "wallet_handle_token",
    }
)
