"""
Data models for wallet handles, wallets and multisig signatures.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from kmdclient.address import multisig_address
from kmdclient.constants import PUBLIC_KEY_LENGTH, SIGNATURE_LENGTH


class WalletInfo(BaseModel):
    id: str
    name: str
    driver_name: str = ""
    driver_version: int = 0
    mnemonic_ux: bool = False
    supported_txs: list[str] = Field(default_factory=list)


class WalletHandle(BaseModel):
    """
    Short-lived wallet handle token issued by unlocking a wallet.

    The expiry is a client-side estimate from the TTL the daemon declared
    when the token was issued or last renewed. The daemon is authoritative:
    a handle that looks alive here may still be rejected.
    """

    token: str = Field(..., min_length=1)
    ttl_seconds: int = Field(default=0, ge=0)
    obtained_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    wallet: WalletInfo | None = None

    model_config = {"frozen": True}

    @property
    def expires_at(self) -> datetime:
        return self.obtained_at + timedelta(seconds=self.ttl_seconds)

    def seconds_remaining(self, now: datetime | None = None) -> float:
        now = now or datetime.now(UTC)
        return max(0.0, (self.expires_at - now).total_seconds())

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.seconds_remaining(now) <= 0

    def needs_renewal(self, margin: float, now: datetime | None = None) -> bool:
        """Check if the handle is within ``margin`` seconds of its estimated expiry."""
        return self.seconds_remaining(now) <= margin

    def __repr__(self) -> str:
        # Never expose the token itself
        return f"WalletHandle(ttl_seconds={self.ttl_seconds}, expires_at={self.expires_at})"

    __str__ = __repr__


class MultisigPreimage(BaseModel):
    """(version, threshold, ordered public keys) from which a multisig address derives."""

    version: int = Field(..., ge=0, le=255)
    threshold: int = Field(..., ge=1, le=255)
    public_keys: tuple[bytes, ...]

    model_config = {"frozen": True}

    @field_validator("public_keys")
    @classmethod
    def validate_keys(cls, v: tuple[bytes, ...]) -> tuple[bytes, ...]:
        for key in v:
            if len(key) != PUBLIC_KEY_LENGTH:
                raise ValueError(f"Invalid public key length: {len(key)}")
        return v

    @model_validator(mode="after")
    def validate_threshold(self) -> MultisigPreimage:
        if self.threshold > len(self.public_keys):
            raise ValueError(
                f"Threshold {self.threshold} exceeds number of keys {len(self.public_keys)}"
            )
        return self

    def address(self) -> str:
        return multisig_address(self.version, self.threshold, self.public_keys)


class MultisigSubsig(BaseModel):
    public_key: bytes
    signature: bytes | None = None

    model_config = {"frozen": True}

    @field_validator("public_key")
    @classmethod
    def validate_public_key(cls, v: bytes) -> bytes:
        if len(v) != PUBLIC_KEY_LENGTH:
            raise ValueError(f"Invalid public key length: {len(v)}")
        return v

    @field_validator("signature")
    @classmethod
    def validate_signature(cls, v: bytes | None) -> bytes | None:
        if v is not None and len(v) != SIGNATURE_LENGTH:
            raise ValueError(f"Invalid signature length: {len(v)}")
        return v

    @property
    def is_signed(self) -> bool:
        return self.signature is not None


class PartialMultisigSignature(BaseModel):
    """
    In-progress multisig signature.

    One subsig slot per preimage key, in preimage order. Instances are
    immutable: each signing call returns a new partial which must be passed
    to the next call. ``payload`` records the encoded transaction the
    signatures were produced against, when known.
    """

    version: int = Field(..., ge=0, le=255)
    threshold: int = Field(..., ge=1, le=255)
    subsigs: tuple[MultisigSubsig, ...]
    payload: bytes | None = None

    model_config = {"frozen": True}

    @classmethod
    def empty(
        cls, preimage: MultisigPreimage, payload: bytes | None = None
    ) -> PartialMultisigSignature:
        """Unsigned partial with an empty slot for every preimage key."""
        return cls(
            version=preimage.version,
            threshold=preimage.threshold,
            subsigs=tuple(MultisigSubsig(public_key=pk) for pk in preimage.public_keys),
            payload=payload,
        )

    @property
    def public_keys(self) -> tuple[bytes, ...]:
        return tuple(s.public_key for s in self.subsigs)

    @property
    def signed_keys(self) -> tuple[bytes, ...]:
        return tuple(s.public_key for s in self.subsigs if s.is_signed)

    @property
    def signature_count(self) -> int:
        return sum(1 for s in self.subsigs if s.is_signed)

    def has_signature(self, public_key: bytes) -> bool:
        return any(s.public_key == public_key and s.is_signed for s in self.subsigs)

    def matches_preimage(self, preimage: MultisigPreimage) -> bool:
        """Check that the slots are positionally aligned with the preimage."""
        return (
            self.version == preimage.version
            and self.threshold == preimage.threshold
            and self.public_keys == preimage.public_keys
        )

    def preimage(self) -> MultisigPreimage:
        return MultisigPreimage(
            version=self.version, threshold=self.threshold, public_keys=self.public_keys
        )


class SigningState(str, Enum):
    UNSIGNED = "unsigned"
    PARTIAL = "partial"
    COMPLETE = "complete"
