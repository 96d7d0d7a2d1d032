"""
Pytest configuration and fixtures for kmdclient tests.

FakeKMDDaemon is an in-memory transport that behaves like the kmd v1 API
closely enough to exercise sessions and multisig signing end to end.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from typing import Any

import msgpack
import pytest

from kmdclient.address import encode_address, multisig_address
from kmdclient.client import KMDClient
from kmdclient.multisig import MultisigSigner
from kmdclient.session import WalletSessionManager
from kmdclient.transport import KMDTransport, TransportResponse

DEFAULT_TTL = 60


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(value: str) -> bytes:
    return base64.b64decode(value)


def fake_signature(secret: bytes, payload: bytes) -> bytes:
    """Deterministic 64-byte stand-in for an ed25519 signature."""
    return hashlib.sha512(secret + payload).digest()


class DaemonError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass
class FakeWallet:
    id: str
    name: str
    password: str
    driver: str
    mdk: bytes
    keys: dict[str, tuple[bytes, bytes]] = field(default_factory=dict)
    multisig: dict[str, tuple[int, int, list[bytes]]] = field(default_factory=dict)
    next_index: int = 0

    def record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "driver_name": self.driver,
            "driver_version": 1,
            "mnemonic_ux": False,
            "supported_txs": ["pay", "keyreg"],
        }


@dataclass
class FakeTransaction:
    """Minimal transaction encoder."""

    sender: str
    amount: int
    note: bytes = b""

    def to_bytes(self) -> bytes:
        sender = self.sender.encode()
        return b"TX" + bytes([len(sender)]) + sender + self.amount.to_bytes(8, "big") + self.note


def transaction_sender(payload: bytes) -> str:
    return payload[3 : 3 + payload[2]].decode()


class FakeKMDDaemon(KMDTransport):
    def __init__(self, ttl: int = DEFAULT_TTL):
        self.ttl = ttl
        self.now = 1_700_000_000.0
        self.wallets: dict[str, FakeWallet] = {}
        self.handles: dict[str, tuple[str, float]] = {}
        self.secrets: dict[bytes, bytes] = {}
        self.requests: list[tuple[str, str, dict[str, Any] | None]] = []
        self.closed = False
        self._counter = 0

    # Test helpers

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def add_wallet(self, name: str = "W", password: str = "pw", driver: str = "sqlite") -> str:
        self._counter += 1
        wallet_id = hashlib.sha256(f"wallet-{self._counter}".encode()).hexdigest()[:32]
        mdk = hashlib.sha256(wallet_id.encode()).digest()
        self.wallets[wallet_id] = FakeWallet(wallet_id, name, password, driver, mdk)
        return wallet_id

    def add_keys(self, wallet_id: str, count: int) -> list[bytes]:
        return [self._generate(self.wallets[wallet_id])[0] for _ in range(count)]

    def add_multisig(self, wallet_id: str, version: int, threshold: int, pks: list[bytes]) -> str:
        address = multisig_address(version, threshold, pks)
        self.wallets[wallet_id].multisig[address] = (version, threshold, list(pks))
        return address

    def paths(self) -> list[str]:
        return [path for _, path, _ in self.requests]

    # Transport interface

    async def get(self, path: str) -> TransportResponse:
        return self._dispatch("GET", path, None)

    async def post(self, path: str, body: dict[str, Any]) -> TransportResponse:
        return self._dispatch("POST", path, body)

    async def delete(self, path: str, body: dict[str, Any]) -> TransportResponse:
        return self._dispatch("DELETE", path, body)

    async def close(self) -> None:
        self.closed = True

    # Daemon behaviour

    def _dispatch(self, method: str, path: str, body: dict[str, Any] | None) -> TransportResponse:
        self.requests.append((method, path, body))
        route = path.replace("/", "_").replace("-", "_")
        handler = getattr(self, f"_{method.lower()}{route}", None)
        if handler is None:
            return TransportResponse(404, {"error": True, "message": f"no route {path}"})
        try:
            return TransportResponse(200, handler(body or {}))
        except DaemonError as e:
            return TransportResponse(e.status, {"error": True, "message": e.message})

    def _generate(self, wallet: FakeWallet) -> tuple[bytes, str]:
        seed = wallet.mdk + wallet.next_index.to_bytes(8, "big")
        wallet.next_index += 1
        secret = hashlib.sha256(b"sk" + seed).digest()
        pk = hashlib.sha256(b"pk" + secret).digest()
        address = encode_address(pk)
        wallet.keys[address] = (pk, secret)
        self.secrets[pk] = secret
        return pk, address

    def _wallet_by_id(self, wallet_id: str) -> FakeWallet:
        wallet = self.wallets.get(wallet_id)
        if wallet is None:
            raise DaemonError(404, "wallet not found")
        return wallet

    def _check_password(self, wallet: FakeWallet, password: str | None) -> None:
        if password != wallet.password:
            raise DaemonError(401, "wrong password")

    def _wallet_by_handle(self, body: dict[str, Any]) -> FakeWallet:
        token = body.get("wallet_handle_token", "")
        entry = self.handles.get(token)
        if entry is None:
            raise DaemonError(400, "wallet handle does not exist")
        wallet_id, expires = entry
        if self.now >= expires:
            del self.handles[token]
            raise DaemonError(400, "wallet handle expired")
        return self.wallets[wallet_id]

    def _handle_info(self, token: str) -> dict[str, Any]:
        wallet_id, expires = self.handles[token]
        return {
            "wallet_handle": {
                "wallet": self.wallets[wallet_id].record(),
                "expires_seconds": int(expires - self.now),
            }
        }

    def _get_versions(self, body: dict[str, Any]) -> dict[str, Any]:
        return {"versions": ["v1"]}

    def _get_v1_wallets(self, body: dict[str, Any]) -> dict[str, Any]:
        return {"wallets": [w.record() for w in self.wallets.values()]}

    def _post_v1_wallet(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet_id = self.add_wallet(
            body["wallet_name"], body["wallet_password"], body["wallet_driver_name"]
        )
        mdk = _unb64(body.get("master_derivation_key", ""))
        if mdk:
            self.wallets[wallet_id].mdk = mdk
        return {"wallet": self.wallets[wallet_id].record()}

    def _post_v1_wallet_init(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_id(body.get("wallet_id", ""))
        self._check_password(wallet, body.get("wallet_password"))
        self._counter += 1
        token = hashlib.sha256(f"handle-{self._counter}".encode()).hexdigest()
        self.handles[token] = (wallet.id, self.now + self.ttl)
        return {"wallet_handle_token": token}

    def _post_v1_wallet_info(self, body: dict[str, Any]) -> dict[str, Any]:
        self._wallet_by_handle(body)
        return self._handle_info(body["wallet_handle_token"])

    def _post_v1_wallet_renew(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        token = body["wallet_handle_token"]
        self.handles[token] = (wallet.id, self.now + self.ttl)
        return self._handle_info(token)

    def _post_v1_wallet_release(self, body: dict[str, Any]) -> dict[str, Any]:
        self._wallet_by_handle(body)
        del self.handles[body["wallet_handle_token"]]
        return {}

    def _post_v1_wallet_rename(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_id(body.get("wallet_id", ""))
        self._check_password(wallet, body.get("wallet_password"))
        wallet.name = body["wallet_name"]
        return {"wallet": wallet.record()}

    def _post_v1_master_key_export(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        self._check_password(wallet, body.get("wallet_password"))
        return {"master_derivation_key": _b64(wallet.mdk)}

    def _post_v1_key(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        _, address = self._generate(wallet)
        return {"address": address}

    def _post_v1_key_import(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        secret = _unb64(body["private_key"])
        pk = hashlib.sha256(b"pk" + secret).digest()
        address = encode_address(pk)
        wallet.keys[address] = (pk, secret)
        self.secrets[pk] = secret
        return {"address": address}

    def _post_v1_key_export(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        self._check_password(wallet, body.get("wallet_password"))
        if body["address"] not in wallet.keys:
            raise DaemonError(404, "key does not exist in this wallet")
        return {"private_key": _b64(wallet.keys[body["address"]][1])}

    def _delete_v1_key(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        self._check_password(wallet, body.get("wallet_password"))
        if wallet.keys.pop(body["address"], None) is None:
            raise DaemonError(404, "key does not exist in this wallet")
        return {}

    def _post_v1_key_list(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        return {"addresses": list(wallet.keys)}

    def _post_v1_transaction_sign(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        self._check_password(wallet, body.get("wallet_password"))
        payload = _unb64(body["transaction"])
        if not wallet.keys:
            raise DaemonError(400, "key does not exist in this wallet")
        _, secret = next(iter(wallet.keys.values()))
        return {"signed_transaction": _b64(fake_signature(secret, payload) + payload)}

    def _post_v1_multisig_list(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        return {"addresses": list(wallet.multisig)}

    def _post_v1_multisig_import(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        pks = [_unb64(pk) for pk in body["pks"]]
        address = multisig_address(body["multisig_version"], body["threshold"], pks)
        wallet.multisig[address] = (body["multisig_version"], body["threshold"], pks)
        return {"address": address}

    def _post_v1_multisig_export(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        if body["address"] not in wallet.multisig:
            raise DaemonError(404, "multisig preimage not found")
        version, threshold, pks = wallet.multisig[body["address"]]
        return {
            "multisig_version": version,
            "threshold": threshold,
            "pks": [_b64(pk) for pk in pks],
        }

    def _delete_v1_multisig(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        self._check_password(wallet, body.get("wallet_password"))
        if wallet.multisig.pop(body["address"], None) is None:
            raise DaemonError(404, "multisig preimage not found")
        return {}

    def _post_v1_multisig_sign(self, body: dict[str, Any]) -> dict[str, Any]:
        wallet = self._wallet_by_handle(body)
        if "wallet_password" in body:
            self._check_password(wallet, body["wallet_password"])

        payload = _unb64(body["transaction"])
        pk = _unb64(body["public_key"])
        partial = body.get("partial_multisig")
        if not partial:
            # Blank partial: the preimage is the one behind the transaction sender
            sender = transaction_sender(payload)
            if sender not in wallet.multisig:
                raise DaemonError(404, "multisig preimage not found")
            version, threshold, sender_pks = wallet.multisig[sender]
            partial = {
                "v": version,
                "thr": threshold,
                "subsig": [{"pk": _b64(k)} for k in sender_pks],
            }

        subsigs = [dict(s) for s in partial["subsig"]]
        pks = [_unb64(s["pk"]) for s in subsigs]

        address = multisig_address(partial["v"], partial["thr"], pks)
        if address not in wallet.multisig:
            raise DaemonError(404, "multisig preimage not found")
        if pk not in pks:
            raise DaemonError(400, "public key is not a possible signer for this multisig")
        if encode_address(pk) not in wallet.keys:
            raise DaemonError(400, "key does not exist in this wallet")

        for subsig in subsigs:
            if "s" in subsig:
                expected = fake_signature(self.secrets[_unb64(subsig["pk"])], payload)
                if _unb64(subsig["s"]) != expected:
                    raise DaemonError(
                        400, "partial multisig signature was produced for a different transaction"
                    )

        for subsig in subsigs:
            if _unb64(subsig["pk"]) == pk:
                subsig["s"] = _b64(fake_signature(wallet.keys[encode_address(pk)][1], payload))

        # kmd answers with the signature as base64 msgpack, binary fields as raw bytes
        signed = {
            "v": partial["v"],
            "thr": partial["thr"],
            "subsig": [{k: _unb64(v) for k, v in subsig.items()} for subsig in subsigs],
        }
        return {"multisig": _b64(msgpack.packb(signed, use_bin_type=True))}


@pytest.fixture
def daemon() -> FakeKMDDaemon:
    return FakeKMDDaemon()


@pytest.fixture
def client(daemon: FakeKMDDaemon) -> KMDClient:
    return KMDClient(transport=daemon)


@pytest.fixture
def sessions(client: KMDClient) -> WalletSessionManager:
    return WalletSessionManager(client)


@pytest.fixture
def signer(client: KMDClient) -> MultisigSigner:
    return MultisigSigner(client)


@pytest.fixture
def wallet_id(daemon: FakeKMDDaemon) -> str:
    return daemon.add_wallet(name="W", password="correct horse")


@pytest.fixture
def transaction() -> FakeTransaction:
    return FakeTransaction(sender="SENDER", amount=1_000_000)


@pytest.fixture
def other_transaction() -> FakeTransaction:
    return FakeTransaction(sender="SENDER", amount=2_000_000)


@pytest.fixture
def make_transaction() -> type[FakeTransaction]:
    return FakeTransaction
