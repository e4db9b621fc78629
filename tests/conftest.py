from __future__ import annotations

import time
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from maelstrom.contracts import DEFAULT_ID_GATEWAY, DEFAULT_KEY_GATEWAY, KEY_STATE_ADDED
from maelstrom.crypto.keys import generate_custody_recovery_pair
from maelstrom.errors import TransactionRevertedError
from maelstrom.gateway import NetworkInfo, TransactionHandle, TransactionReceipt
from maelstrom.records.schemas import IdentitySecrets
from maelstrom.requests import decode_signed_key_request_metadata, verify_signed_key_request
from maelstrom.store import SecretStore

ID_REGISTRY = "0x00000000fc6c5f01fc30151999387bb99a9f489b"
KEY_REGISTRY = "0x00000000fc1237824fb747abde0ff18990e59b7e"
VALIDATOR = "0x00000000fc700472606ed4fa22623acf62c60553"
ZERO = "0x0000000000000000000000000000000000000000"
PRICE_WEI = 10**15


@dataclass
class _Pending:
    handle: TransactionHandle
    effect: Callable[[], None]
    revert_reason: str | None = None


class FakeChainGateway:
    """In-memory stand-in for the Farcaster gateways/registries on OP Mainnet."""

    def __init__(
        self,
        *,
        chain_id: int = 10,
        balance: int = 0,
        price: int = PRICE_WEI,
        validator: str = VALIDATOR,
        chain_time: Callable[[], float] = time.time,
    ) -> None:
        self.chain_id = chain_id
        self.balance = balance
        self.price = price
        self.validator = validator
        self.chain_time = chain_time
        self.fids: dict[str, int] = {}
        self.keys: dict[tuple[int, bytes], int] = {}
        self.next_fid = 4242
        self.drop_registration = False
        self.submitted: list[SimpleNamespace] = []
        self.confirmations: list[int] = []
        self.endpoints: list[str] = []
        self._pending: dict[str, _Pending] = {}

    # ChainGateway -----------------------------------------------------------

    def connect(self, endpoint: str) -> NetworkInfo:
        self.endpoints.append(endpoint)
        return NetworkInfo(chain_id=self.chain_id, endpoint=endpoint)

    def get_balance(self, address: str) -> int:
        return self.balance

    def read_only_call(self, contract_address: str, abi, method: str, args=()) -> Any:
        target = contract_address.lower()
        if target == DEFAULT_ID_GATEWAY:
            if method == "idRegistry":
                return ID_REGISTRY
            if method == "price":
                return self.price * (1 + int(args[0]))
        if target == ID_REGISTRY and method == "idOf":
            return self.fids.get(args[0].lower(), 0)
        if target == DEFAULT_KEY_GATEWAY and method == "keyRegistry":
            return KEY_REGISTRY
        if target == KEY_REGISTRY:
            if method == "validators":
                return self.validator
            if method == "keyDataOf":
                fid, key = args
                return (self.keys.get((int(fid), bytes(key)), 0), 1)
        raise AssertionError(f"unexpected call {method} on {contract_address}")

    def submit_transaction(self, sender, contract_address: str, abi, method: str, args=(), *, value: int = 0):
        self.submitted.append(
            SimpleNamespace(
                sender=sender.address,
                contract=contract_address.lower(),
                method=method,
                args=list(args),
                value=value,
            )
        )
        handle = TransactionHandle(tx_hash="0x" + f"{len(self.submitted):064x}", method=method)
        owner = sender.address.lower()

        if method.startswith("register"):
            assert value >= self.price

            def effect() -> None:
                if not self.drop_registration:
                    self.fids[owner] = self.next_fid

            self._pending[handle.tx_hash] = _Pending(handle, effect)
        elif method == "add":
            key_type, key, metadata_type, metadata = args
            request = decode_signed_key_request_metadata(metadata)
            reason = None
            if request.request_fid != self.fids.get(owner):
                reason = "request fid does not match sender"
            elif not verify_signed_key_request(
                request,
                key=bytes(key),
                chain_id=self.chain_id,
                validator_address=self.validator,
                now=self.chain_time(),
            ):
                reason = "InvalidMetadata"

            def effect() -> None:
                self.keys[(request.request_fid, bytes(key))] = KEY_STATE_ADDED

            self._pending[handle.tx_hash] = _Pending(handle, effect, reason)
        else:
            raise AssertionError(f"unexpected transaction {method}")
        return handle

    def await_confirmations(self, handle: TransactionHandle, confirmations: int) -> TransactionReceipt:
        self.confirmations.append(confirmations)
        pending = self._pending.pop(handle.tx_hash)
        if pending.revert_reason is not None:
            raise TransactionRevertedError(
                f"transaction {handle.tx_hash} reverted: {pending.revert_reason}",
                tx_hash=handle.tx_hash,
            )
        pending.effect()
        return TransactionReceipt(tx_hash=handle.tx_hash, block_number=1, status=1)

    # helpers ----------------------------------------------------------------

    def methods(self) -> list[str]:
        return [tx.method for tx in self.submitted]


class StepClock:
    """Returns the given timestamps in order, then repeats the last one."""

    def __init__(self, *values: float) -> None:
        self._values = list(values)

    def __call__(self) -> float:
        if len(self._values) > 1:
            return self._values.pop(0)
        return self._values[0]


@pytest.fixture
def fake_chain() -> FakeChainGateway:
    return FakeChainGateway()


@pytest.fixture
def store(tmp_path) -> SecretStore:
    return SecretStore(root=tmp_path / "secrets")


def make_secrets(name: str = "alice") -> IdentitySecrets:
    custody, recovery = generate_custody_recovery_pair()
    return IdentitySecrets(
        name=name,
        created_at="2026-01-01T00:00:00Z",
        custody=custody,
        recovery=recovery,
    )


@pytest.fixture
def alice_path(store):
    path = store.path_for("alice")
    store.create(path, make_secrets("alice"))
    return path
