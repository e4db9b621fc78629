from __future__ import annotations

import types

import pytest
import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from maelstrom.errors import ChainUnavailableError, TransactionRevertedError
from maelstrom.gateway import TransactionHandle, Web3ChainGateway

TX_HASH = "0x" + "ab" * 32
TARGET = "0x00000000fc25870c6ed6b6c7e41fb078b7656f69"


class _FakeEth:
    def __init__(self, *, receipts=(), heads=(0,)) -> None:
        self._receipts = list(receipts)
        self._heads = list(heads)
        self.receipt_calls = 0
        self.nonce_calls: list[tuple[str, str]] = []
        self.sent: list[bytes] = []

    @property
    def block_number(self) -> int:
        if len(self._heads) > 1:
            return self._heads.pop(0)
        return self._heads[0]

    def get_transaction_receipt(self, tx_hash):
        self.receipt_calls += 1
        receipt = self._receipts.pop(0) if len(self._receipts) > 1 else self._receipts[0]
        if isinstance(receipt, Exception):
            raise receipt
        return receipt

    def get_transaction_count(self, address, block_identifier):
        self.nonce_calls.append((address, block_identifier))
        return 7

    def send_raw_transaction(self, raw):
        self.sent.append(bytes(raw))
        return bytes.fromhex(TX_HASH[2:])

    def get_balance(self, address):
        raise requests.ConnectionError("connection refused")


def _gateway(eth: _FakeEth, **kwargs) -> Web3ChainGateway:
    gateway = Web3ChainGateway(poll_interval=0.01, **kwargs)
    gateway._w3 = types.SimpleNamespace(eth=eth)
    gateway._chain_id = 10
    return gateway


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr("maelstrom.gateway.time.sleep", recorded.append)
    return recorded


def test_await_confirmations_waits_for_second_block(sleeps) -> None:
    eth = _FakeEth(receipts=[{"status": 1, "blockNumber": 100}], heads=[100, 101])
    gateway = _gateway(eth)

    receipt = gateway.await_confirmations(TransactionHandle(TX_HASH, "register(address)"), 2)

    assert receipt.block_number == 100
    assert receipt.status == 1
    assert eth.receipt_calls == 2
    assert len(sleeps) == 1


def test_await_confirmations_polls_until_receipt_exists(sleeps) -> None:
    eth = _FakeEth(
        receipts=[TransactionNotFound("pending"), {"status": 1, "blockNumber": 5}],
        heads=[6],
    )
    gateway = _gateway(eth)

    receipt = gateway.await_confirmations(TransactionHandle(TX_HASH, "add"), 2)

    assert receipt.block_number == 5
    assert len(sleeps) == 1


def test_await_confirmations_failed_status_is_revert(sleeps) -> None:
    eth = _FakeEth(receipts=[{"status": 0, "blockNumber": 5}], heads=[9])
    gateway = _gateway(eth)

    with pytest.raises(TransactionRevertedError) as excinfo:
        gateway.await_confirmations(TransactionHandle(TX_HASH, "add"), 2)

    assert excinfo.value.tx_hash == TX_HASH
    assert sleeps == []


def test_await_confirmations_times_out(sleeps) -> None:
    eth = _FakeEth(receipts=[TransactionNotFound("pending")])
    gateway = _gateway(eth, confirmation_timeout=0)

    with pytest.raises(ChainUnavailableError, match="timed out"):
        gateway.await_confirmations(TransactionHandle(TX_HASH, "add"), 2)


def test_await_confirmations_transport_error(sleeps) -> None:
    eth = _FakeEth(receipts=[requests.ConnectionError("connection reset")])
    gateway = _gateway(eth)

    with pytest.raises(ChainUnavailableError) as excinfo:
        gateway.await_confirmations(TransactionHandle(TX_HASH, "add"), 2)

    assert not isinstance(excinfo.value, TransactionRevertedError)


def _stub_function(monkeypatch, gateway: Web3ChainGateway, *, call=None, build=None) -> None:
    fn = types.SimpleNamespace(call=call, build_transaction=build)
    monkeypatch.setattr(gateway, "_function", lambda address, abi, method, args: fn)


def test_read_only_call_contract_logic_error_is_revert(monkeypatch) -> None:
    gateway = _gateway(_FakeEth())

    def call():
        raise ContractLogicError("execution reverted")

    _stub_function(monkeypatch, gateway, call=call)

    with pytest.raises(TransactionRevertedError, match="price"):
        gateway.read_only_call(TARGET, [], "price", [0])


def test_read_only_call_transport_error_is_unavailable(monkeypatch) -> None:
    gateway = _gateway(_FakeEth())

    def call():
        raise requests.Timeout("read timed out")

    _stub_function(monkeypatch, gateway, call=call)

    with pytest.raises(ChainUnavailableError) as excinfo:
        gateway.read_only_call(TARGET, [], "idOf", ["0x" + "11" * 20])

    assert not isinstance(excinfo.value, TransactionRevertedError)


def test_get_balance_transport_error_is_unavailable() -> None:
    gateway = _gateway(_FakeEth())

    with pytest.raises(ChainUnavailableError, match="balance"):
        gateway.get_balance("0x" + "11" * 20)


def test_submit_transaction_signs_with_pending_nonce(monkeypatch) -> None:
    eth = _FakeEth()
    gateway = _gateway(eth)
    sender = Account.create()
    captured: dict[str, object] = {}

    def build(params):
        captured.update(params)
        return {
            **params,
            "to": Web3.to_checksum_address(TARGET),
            "gas": 200_000,
            "gasPrice": 1_000_000,
            "data": "0x",
        }

    _stub_function(monkeypatch, gateway, build=build)

    handle = gateway.submit_transaction(sender, TARGET, [], "register(address)", ["0x" + "22" * 20], value=5)

    assert handle.tx_hash == TX_HASH
    assert handle.method == "register(address)"
    assert eth.nonce_calls == [(sender.address, "pending")]
    assert captured["value"] == 5
    assert captured["nonce"] == 7
    assert captured["chainId"] == 10
    assert len(eth.sent) == 1


def test_submit_transaction_revert_on_estimate(monkeypatch) -> None:
    eth = _FakeEth()
    gateway = _gateway(eth)

    def build(params):
        raise ContractLogicError("execution reverted: InvalidMetadata")

    _stub_function(monkeypatch, gateway, build=build)

    with pytest.raises(TransactionRevertedError):
        gateway.submit_transaction(Account.create(), TARGET, [], "add", [])

    assert eth.sent == []


def test_connect_makes_a_single_attempt(monkeypatch) -> None:
    posts: list[str] = []

    class _RefusingSession(requests.Session):
        def post(self, url, *args, **kwargs):
            posts.append(url)
            raise requests.ConnectionError("connection refused")

    monkeypatch.setattr("maelstrom.gateway.requests.Session", _RefusingSession)
    gateway = Web3ChainGateway(request_timeout=1)

    with pytest.raises(ChainUnavailableError, match="failed to reach RPC endpoint"):
        gateway.connect("http://127.0.0.1:9/")

    assert posts == ["http://127.0.0.1:9/"]


def test_requires_connect_first() -> None:
    with pytest.raises(ChainUnavailableError, match="not connected"):
        Web3ChainGateway().get_balance("0x" + "11" * 20)
