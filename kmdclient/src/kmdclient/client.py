"""
Client for the kmd key-management daemon API (v1).

Every method is a single request/response round trip. Daemon errors are
raised as the typed exceptions in kmdclient.errors; nothing is retried.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from loguru import logger

from kmdclient.constants import DEFAULT_KMD_HOST, DEFAULT_KMD_PORT, DEFAULT_WALLET_DRIVER
from kmdclient.encoding import (
    TransactionEncoder,
    b64decode,
    b64encode,
    decode_partial,
    decode_preimage,
    decode_wallet,
    encode_partial,
    encode_public_keys,
    transaction_bytes,
)
from kmdclient.errors import error_from_response, is_error_response
from kmdclient.models import MultisigPreimage, PartialMultisigSignature, WalletInfo
from kmdclient.transport import HTTPXTransport, KMDTransport

if TYPE_CHECKING:
    from kmdclient.config import Settings


class KMDClient:
    """
    kmd API client.

    Holds the transport and its configuration explicitly; there is no
    module-level state, so any number of clients can talk to different
    daemons side by side.
    """

    def __init__(
        self,
        api_token: str = "",
        host: str = DEFAULT_KMD_HOST,
        port: int = DEFAULT_KMD_PORT,
        transport: KMDTransport | None = None,
    ):
        self.host = host
        self.port = port
        self.transport = transport or HTTPXTransport(api_token=api_token, host=host, port=port)

    @classmethod
    def from_settings(cls, settings: Settings) -> KMDClient:
        transport = HTTPXTransport(
            api_token=settings.api_token,
            host=settings.host,
            port=settings.port,
            timeout=settings.timeout,
        )
        return cls(host=settings.host, port=settings.port, transport=transport)

    async def __aenter__(self) -> KMDClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    async def _get(self, path: str) -> dict[str, Any]:
        response = await self.transport.get(path)
        return self._check(path, response.status, response.body)

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        response = await self.transport.post(path, body)
        return self._check(path, response.status, response.body)

    async def _delete(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        response = await self.transport.delete(path, body)
        return self._check(path, response.status, response.body)

    @staticmethod
    def _check(path: str, status: int, body: Any) -> dict[str, Any]:
        if is_error_response(status, body):
            error = error_from_response(status, body)
            logger.debug(f"kmd {path} failed: {type(error).__name__}: {error.message}")
            raise error
        return body if isinstance(body, dict) else {}

    # Daemon and wallets

    async def versions(self) -> list[str]:
        """API versions supported by the running daemon."""
        body = await self._get("/versions")
        return list(body.get("versions") or [])

    async def list_wallets(self) -> list[WalletInfo]:
        """Wallets known to the daemon."""
        body = await self._get("/v1/wallets")
        return [decode_wallet(w) for w in body.get("wallets") or []]

    async def create_wallet(
        self,
        name: str,
        password: str,
        master_derivation_key: bytes = b"",
        driver_name: str = DEFAULT_WALLET_DRIVER,
    ) -> WalletInfo:
        """
        Create a wallet.

        If master_derivation_key is empty the daemon generates one.
        """
        body = await self._post(
            "/v1/wallet",
            {
                "wallet_name": name,
                "wallet_driver_name": driver_name,
                "wallet_password": password,
                "master_derivation_key": b64encode(master_derivation_key),
            },
        )
        wallet = decode_wallet(body.get("wallet"))
        logger.info(f"Created wallet '{wallet.name}' ({wallet.id}) with driver {driver_name}")
        return wallet

    async def rename_wallet(self, wallet_id: str, password: str, new_name: str) -> WalletInfo:
        body = await self._post(
            "/v1/wallet/rename",
            {"wallet_id": wallet_id, "wallet_password": password, "wallet_name": new_name},
        )
        return decode_wallet(body.get("wallet"))

    # Wallet handles

    async def init_wallet_handle(self, wallet_id: str, password: str) -> dict[str, Any]:
        """
        Unlock a wallet. Returns the raw response containing wallet_handle_token.

        Use WalletSessionManager.unlock for a WalletHandle with its TTL.
        """
        return await self._post(
            "/v1/wallet/init", {"wallet_id": wallet_id, "wallet_password": password}
        )

    async def release_wallet_handle(self, token: str) -> None:
        """Invalidate a wallet handle token."""
        await self._post("/v1/wallet/release", {"wallet_handle_token": token})

    async def renew_wallet_handle(self, token: str) -> dict[str, Any]:
        """Extend a wallet handle's expiry. Returns the raw wallet_handle response."""
        return await self._post("/v1/wallet/renew", {"wallet_handle_token": token})

    async def get_wallet(self, token: str) -> dict[str, Any]:
        """Wallet information and handle expiry for an unlocked wallet."""
        return await self._post("/v1/wallet/info", {"wallet_handle_token": token})

    # Keys

    async def export_master_derivation_key(self, token: str, password: str) -> bytes:
        body = await self._post(
            "/v1/master-key/export",
            {"wallet_handle_token": token, "wallet_password": password},
        )
        return b64decode(body.get("master_derivation_key"), "master_derivation_key")

    async def import_key(self, token: str, private_key: bytes) -> str:
        """Import an ed25519 private key. Returns the address of the key."""
        body = await self._post(
            "/v1/key/import",
            {"wallet_handle_token": token, "private_key": b64encode(private_key)},
        )
        return str(body.get("address", ""))

    async def export_key(self, token: str, password: str, address: str) -> bytes:
        body = await self._post(
            "/v1/key/export",
            {"wallet_handle_token": token, "address": address, "wallet_password": password},
        )
        return b64decode(body.get("private_key"), "private_key")

    async def generate_key(self, token: str, display_mnemonic: bool = False) -> str:
        """Derive the wallet's next key from its master derivation key. Returns its address."""
        body = await self._post(
            "/v1/key",
            {"wallet_handle_token": token, "display_mnemonic": display_mnemonic},
        )
        return str(body.get("address", ""))

    async def delete_key(self, token: str, password: str, address: str) -> None:
        await self._delete(
            "/v1/key",
            {"wallet_handle_token": token, "address": address, "wallet_password": password},
        )

    async def list_keys(self, token: str) -> list[str]:
        """Addresses for which the wallet holds secret keys."""
        body = await self._post("/v1/key/list", {"wallet_handle_token": token})
        return list(body.get("addresses") or [])

    # Signing

    async def sign_transaction(
        self,
        token: str,
        password: str,
        transaction: TransactionEncoder | bytes,
    ) -> bytes:
        """Sign with the key of the transaction's sender. Returns the signed transaction."""
        body = await self._post(
            "/v1/transaction/sign",
            {
                "wallet_handle_token": token,
                "wallet_password": password,
                "transaction": b64encode(transaction_bytes(transaction)),
            },
        )
        return b64decode(body.get("signed_transaction"), "signed_transaction")

    # Multisig

    async def list_multisig(self, token: str) -> list[str]:
        """Multisig addresses whose preimages are stored in the wallet."""
        body = await self._post("/v1/multisig/list", {"wallet_handle_token": token})
        return list(body.get("addresses") or [])

    async def import_multisig(
        self, token: str, version: int, threshold: int, public_keys: Sequence[bytes]
    ) -> str:
        """Store a multisig preimage in the wallet. Returns the derived address."""
        body = await self._post(
            "/v1/multisig/import",
            {
                "wallet_handle_token": token,
                "multisig_version": version,
                "threshold": threshold,
                "pks": encode_public_keys(public_keys),
            },
        )
        return str(body.get("address", ""))

    async def export_multisig(self, token: str, address: str) -> MultisigPreimage:
        body = await self._post(
            "/v1/multisig/export", {"wallet_handle_token": token, "address": address}
        )
        return decode_preimage(body)

    async def sign_multisig_transaction(
        self,
        token: str,
        transaction: TransactionEncoder | bytes,
        public_key: bytes,
        partial: PartialMultisigSignature | None = None,
        password: str | None = None,
    ) -> PartialMultisigSignature:
        """
        Add the signature of ``public_key`` to a multisig signature.

        The daemon looks up the secret for public_key in the unlocked wallet
        and fills its slot, starting from ``partial`` when given.
        """
        payload = transaction_bytes(transaction)
        request: dict[str, Any] = {
            "wallet_handle_token": token,
            "transaction": b64encode(payload),
            "public_key": b64encode(public_key),
            "partial_multisig": encode_partial(partial) if partial is not None else None,
        }
        if password is not None:
            request["wallet_password"] = password
        body = await self._post("/v1/multisig/sign", request)
        return decode_partial(body.get("multisig"), payload=payload)

    async def delete_multisig(self, token: str, password: str, address: str) -> None:
        await self._delete(
            "/v1/multisig",
            {"wallet_handle_token": token, "address": address, "wallet_password": password},
        )
