"""
kmdclient - async client for the kmd key-management daemon

Provides wallet handle sessions, the multisig co-signing protocol and the
full kmd v1 API surface.
"""

__version__ = "0.1.0"

from kmdclient.address import decode_address, encode_address, multisig_address
from kmdclient.client import KMDClient
from kmdclient.config import Settings, get_settings
from kmdclient.encoding import TransactionEncoder
from kmdclient.errors import (
    AuthenticationError,
    DuplicateSignatureError,
    HandleExpiredError,
    InvalidHandleError,
    KeyNotFoundError,
    KMDAPIError,
    KMDError,
    MultisigError,
    NotFoundError,
    TransactionMismatchError,
    TransportError,
    UnknownSignerError,
)
from kmdclient.models import (
    MultisigPreimage,
    MultisigSubsig,
    PartialMultisigSignature,
    SigningState,
    WalletHandle,
    WalletInfo,
)
from kmdclient.multisig import MultisigSigner, is_complete, signing_state
from kmdclient.session import WalletSessionManager
from kmdclient.transport import HTTPXTransport, KMDTransport, TransportResponse

__all__ = [
    "AuthenticationError",
    "DuplicateSignatureError",
    "HTTPXTransport",
    "HandleExpiredError",
    "InvalidHandleError",
    "KMDAPIError",
    "KMDClient",
    "KMDError",
    "KMDTransport",
    "KeyNotFoundError",
    "MultisigError",
    "MultisigPreimage",
    "MultisigSigner",
    "MultisigSubsig",
    "NotFoundError",
    "PartialMultisigSignature",
    "Settings",
    "SigningState",
    "TransactionEncoder",
    "TransactionMismatchError",
    "TransportError",
    "TransportResponse",
    "UnknownSignerError",
    "WalletHandle",
    "WalletInfo",
    "WalletSessionManager",
    "decode_address",
    "encode_address",
    "get_settings",
    "is_complete",
    "multisig_address",
    "signing_state",
]
