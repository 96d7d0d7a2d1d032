"""
Wallet handle session lifecycle: unlock, renew, release.

Handles are short-lived capability tokens. The manager never caches
passwords and never renews or re-unlocks on its own; scheduling renewal
before expiry is the caller's job (see WalletHandle.needs_renewal).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from kmdclient.client import KMDClient
from kmdclient.constants import DEFAULT_RENEW_MARGIN
from kmdclient.encoding import decode_wallet
from kmdclient.errors import InvalidHandleError, KMDAPIError, KMDError
from kmdclient.models import WalletHandle, WalletInfo


class WalletSessionManager:
    def __init__(self, client: KMDClient, renew_margin: float = DEFAULT_RENEW_MARGIN):
        self.client = client
        self.renew_margin = renew_margin

    def needs_renewal(self, handle: WalletHandle, now: datetime | None = None) -> bool:
        """Check if the caller should renew the handle now."""
        return handle.needs_renewal(self.renew_margin, now)

    async def unlock(self, wallet_id: str, password: str) -> WalletHandle:
        """
        Unlock a wallet and return a handle with its daemon-declared TTL.

        The init endpoint only returns the token, so the TTL is read with a
        follow-up wallet info call when the init response lacks one. If that
        fails the token is released before the error propagates.

        Raises:
            AuthenticationError: Wrong wallet password
            NotFoundError: Unknown wallet ID
        """
        obtained_at = datetime.now(UTC)
        body = await self.client.init_wallet_handle(wallet_id, password)
        token = body.get("wallet_handle_token")
        if not token:
            raise KMDAPIError("Malformed response: wallet_handle_token missing")

        try:
            if "expires_seconds" in body:
                ttl, wallet = _parse_ttl(body["expires_seconds"]), None
            else:
                ttl, wallet = self._parse_handle_info(await self.client.get_wallet(token))
        except KMDError:
            await self._discard_token(token)
            raise

        logger.info(f"Unlocked wallet {wallet_id}, handle valid for {ttl}s")
        return WalletHandle(token=token, ttl_seconds=ttl, obtained_at=obtained_at, wallet=wallet)

    async def renew(self, handle: WalletHandle) -> WalletHandle:
        """
        Extend a handle's expiry without the password.

        Raises:
            InvalidHandleError: Token unknown, released or already expired.
                Not retried; the caller must unlock again.
        """
        obtained_at = datetime.now(UTC)
        body = await self.client.renew_wallet_handle(handle.token)
        ttl, wallet = self._parse_handle_info(body)
        token = body.get("wallet_handle_token") or handle.token

        logger.info(f"Renewed wallet handle, valid for {ttl}s")
        return WalletHandle(
            token=token,
            ttl_seconds=ttl,
            obtained_at=obtained_at,
            wallet=wallet or handle.wallet,
        )

    async def release(self, handle: WalletHandle) -> bool:
        """
        Release a handle.

        Returns:
            True if the daemon released it, False if it was already released
            or expired. Either way no usable handle remains.
        """
        try:
            await self.client.release_wallet_handle(handle.token)
        except InvalidHandleError as e:
            logger.warning(f"Wallet handle already invalid on release: {e.message}")
            return False

        logger.info("Released wallet handle")
        return True

    @asynccontextmanager
    async def session(self, wallet_id: str, password: str) -> AsyncIterator[WalletHandle]:
        """
        Unlock for the duration of a block and release afterwards.

        A failed release after the block raised is only logged, so the
        block's own exception is the one that propagates.
        """
        handle = await self.unlock(wallet_id, password)
        try:
            yield handle
        except BaseException:
            try:
                await self.release(handle)
            except KMDError as e:
                logger.warning(f"Failed to release wallet handle: {e}")
            raise
        await self.release(handle)

    async def _discard_token(self, token: str) -> None:
        try:
            await self.client.release_wallet_handle(token)
        except KMDError as e:
            logger.warning(f"Failed to release wallet handle after unlock error: {e}")

    @staticmethod
    def _parse_handle_info(body: dict[str, Any]) -> tuple[int, WalletInfo | None]:
        info = body.get("wallet_handle")
        if not isinstance(info, dict) or "expires_seconds" not in info:
            raise KMDAPIError("Malformed response: wallet_handle.expires_seconds missing")
        wallet = decode_wallet(info["wallet"]) if info.get("wallet") else None
        return _parse_ttl(info["expires_seconds"]), wallet


def _parse_ttl(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise KMDAPIError(f"Malformed response: expires_seconds is {value!r}")
    return int(value)
