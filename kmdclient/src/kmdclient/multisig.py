"""
Multisig co-signing coordinator.

A multisig signing round is an incremental fold over keys performed by the
daemon:

    UNSIGNED -> PARTIAL(1/t) -> PARTIAL(2/t) -> ... -> PARTIAL(t/t) = COMPLETE

Each signing call takes the partial signature returned by the previous call.
Partials are never merged client-side, so two independently produced partials
cannot be combined; contributions to one partial must be serialized by the
caller. Abandoning a round before the threshold is not an error, the partial
can be kept and continued later.

Signing a key whose slot is already filled raises DuplicateSignatureError.
Extra distinct signers after the threshold is met are accepted.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from kmdclient.client import KMDClient
from kmdclient.encoding import TransactionEncoder, transaction_bytes
from kmdclient.errors import (
    DuplicateSignatureError,
    MultisigError,
    TransactionMismatchError,
    UnknownSignerError,
)
from kmdclient.models import (
    MultisigPreimage,
    PartialMultisigSignature,
    SigningState,
    WalletHandle,
)


def count_aligned_signatures(
    partial: PartialMultisigSignature, preimage: MultisigPreimage
) -> int:
    """Filled slots whose key sits at the same position in the preimage."""
    keys = preimage.public_keys
    return sum(
        1
        for i, subsig in enumerate(partial.subsigs)
        if subsig.is_signed and i < len(keys) and keys[i] == subsig.public_key
    )


def is_complete(partial: PartialMultisigSignature, preimage: MultisigPreimage) -> bool:
    """Check whether a partial signature meets the preimage threshold. Local only."""
    return count_aligned_signatures(partial, preimage) >= preimage.threshold


def signing_state(
    partial: PartialMultisigSignature | None, preimage: MultisigPreimage
) -> SigningState:
    count = 0 if partial is None else count_aligned_signatures(partial, preimage)
    if count == 0:
        return SigningState.UNSIGNED
    if count < preimage.threshold:
        return SigningState.PARTIAL
    return SigningState.COMPLETE


class MultisigSigner:
    """Requests partial signatures from the daemon and threads them between calls."""

    def __init__(self, client: KMDClient):
        self.client = client

    is_complete = staticmethod(is_complete)
    signing_state = staticmethod(signing_state)

    async def request_partial_signature(
        self,
        handle: WalletHandle,
        transaction: TransactionEncoder | bytes,
        public_key: bytes,
        existing_partial: PartialMultisigSignature | None = None,
        password: str | None = None,
        preimage: MultisigPreimage | None = None,
    ) -> PartialMultisigSignature:
        """
        Ask the daemon to sign ``transaction`` with the secret of ``public_key``.

        Args:
            handle: Live wallet handle
            transaction: Unsigned transaction (encoder or encoded bytes)
            public_key: Key whose slot should be filled
            existing_partial: Partial returned by the previous call, if any
            password: Wallet password, if the daemon requires it
            preimage: Used to start a round when there is no existing partial

        Returns:
            New partial signature including the signature of public_key

        Raises:
            KeyNotFoundError: The wallet does not hold the key's secret
            InvalidHandleError: The handle is stale (HandleExpiredError if expired)
            TransactionMismatchError: existing_partial was built for another payload
            UnknownSignerError: public_key is not part of the preimage
            DuplicateSignatureError: public_key already signed this partial
        """
        payload = transaction_bytes(transaction)

        if existing_partial is None and preimage is not None:
            existing_partial = PartialMultisigSignature.empty(preimage, payload)

        if existing_partial is not None:
            self._check_can_sign(existing_partial, payload, public_key)

        result = await self.client.sign_multisig_transaction(
            handle.token, payload, public_key, partial=existing_partial, password=password
        )

        if not result.has_signature(public_key):
            raise MultisigError("Daemon returned a multisig signature without the requested key")

        logger.debug(
            f"Multisig signature {result.signature_count}/{result.threshold} "
            f"after signing with key {public_key.hex()[:16]}..."
        )
        return result

    async def add_signature(
        self,
        partial: PartialMultisigSignature,
        handle: WalletHandle,
        transaction: TransactionEncoder | bytes,
        public_key: bytes,
        password: str | None = None,
    ) -> PartialMultisigSignature:
        """Builder form: ``partial = await signer.add_signature(partial, ...)``."""
        return await self.request_partial_signature(
            handle, transaction, public_key, existing_partial=partial, password=password
        )

    async def collect_signatures(
        self,
        handle: WalletHandle,
        transaction: TransactionEncoder | bytes,
        preimage: MultisigPreimage,
        public_keys: Sequence[bytes],
        password: str | None = None,
        partial: PartialMultisigSignature | None = None,
    ) -> PartialMultisigSignature:
        """
        Sign with several keys in order, threading each result into the next call.

        Starts from ``partial`` when continuing an earlier round, otherwise from
        an unsigned partial for ``preimage``. Failures propagate immediately;
        the signatures gathered so far are lost with the exception.
        """
        payload = transaction_bytes(transaction)
        current = partial or PartialMultisigSignature.empty(preimage, payload)
        if not current.matches_preimage(preimage):
            raise UnknownSignerError("Partial signature does not belong to this preimage")

        for public_key in public_keys:
            current = await self.add_signature(current, handle, payload, public_key, password)

        state = signing_state(current, preimage)
        logger.info(
            f"Collected {current.signature_count}/{preimage.threshold} signatures "
            f"({state.value})"
        )
        return current

    async def import_preimage(
        self,
        handle: WalletHandle,
        version: int,
        threshold: int,
        public_keys: Sequence[bytes],
    ) -> str:
        """
        Store a multisig preimage in the wallet and return its address.

        Idempotent: importing the same preimage again yields the same address.
        """
        # Validates threshold bounds and key lengths before any round trip
        preimage = MultisigPreimage(
            version=version, threshold=threshold, public_keys=tuple(public_keys)
        )
        address = await self.client.import_multisig(
            handle.token, preimage.version, preimage.threshold, preimage.public_keys
        )
        if address != preimage.address():
            logger.warning(
                f"Daemon multisig address {address} differs from locally derived "
                f"{preimage.address()}"
            )
        return address

    async def export_preimage(self, handle: WalletHandle, address: str) -> MultisigPreimage:
        return await self.client.export_multisig(handle.token, address)

    @staticmethod
    def _check_can_sign(
        partial: PartialMultisigSignature, payload: bytes, public_key: bytes
    ) -> None:
        if partial.payload is not None and partial.payload != payload:
            raise TransactionMismatchError(
                "Partial signature was produced for a different transaction"
            )
        if public_key not in partial.public_keys:
            raise UnknownSignerError("Key is not a signer of this multisig preimage")
        if partial.has_signature(public_key):
            raise DuplicateSignatureError("Key has already signed this partial signature")
