"""Chain gateway: the narrow read/write surface the orchestrator needs.

``ChainGateway`` is the contract consumed by the orchestrator;
``Web3ChainGateway`` implements it with web3.py over JSON-RPC. Tests supply
their own in-memory implementation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import requests
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from maelstrom.errors import ChainUnavailableError, TransactionRevertedError

logger = logging.getLogger("maelstrom.gateway")

_TRANSPORT_ERRORS = (requests.RequestException, Web3Exception, ValueError)


@dataclass(frozen=True)
class NetworkInfo:
    chain_id: int
    endpoint: str


@dataclass(frozen=True)
class TransactionHandle:
    tx_hash: str
    method: str


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int
    status: int


class ChainGateway(Protocol):
    def connect(self, endpoint: str) -> NetworkInfo: ...

    def get_balance(self, address: str) -> int: ...

    def read_only_call(
        self,
        contract_address: str,
        abi: Sequence[dict],
        method: str,
        args: Sequence[Any] = (),
    ) -> Any: ...

    def submit_transaction(
        self,
        sender: LocalAccount,
        contract_address: str,
        abi: Sequence[dict],
        method: str,
        args: Sequence[Any] = (),
        *,
        value: int = 0,
    ) -> TransactionHandle: ...

    def await_confirmations(
        self, handle: TransactionHandle, confirmations: int
    ) -> TransactionReceipt: ...


@dataclass
class Web3ChainGateway:
    """JSON-RPC gateway. ``confirmation_timeout=None`` waits indefinitely."""

    request_timeout: float = 30.0
    poll_interval: float = 2.0
    confirmation_timeout: float | None = None
    _w3: Web3 | None = field(default=None, init=False, repr=False)
    _chain_id: int | None = field(default=None, init=False, repr=False)

    def connect(self, endpoint: str) -> NetworkInfo:
        # One attempt per RPC; failures surface to the caller.
        self._w3 = Web3(
            Web3.HTTPProvider(
                endpoint,
                request_kwargs={"timeout": self.request_timeout},
                session=requests.Session(),
                exception_retry_configuration=None,
            )
        )
        try:
            self._chain_id = int(self._w3.eth.chain_id)
        except _TRANSPORT_ERRORS as exc:
            raise ChainUnavailableError(f"failed to reach RPC endpoint {endpoint}: {exc}") from exc
        logger.debug("connected to %s (chain id %s)", endpoint, self._chain_id)
        return NetworkInfo(chain_id=self._chain_id, endpoint=endpoint)

    def _require_w3(self) -> Web3:
        if self._w3 is None:
            raise ChainUnavailableError("gateway is not connected")
        return self._w3

    def _function(self, contract_address: str, abi: Sequence[dict], method: str, args: Sequence[Any]):
        w3 = self._require_w3()
        contract = w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=list(abi))
        if "(" in method:
            fn = contract.get_function_by_signature(method)
        else:
            fn = contract.get_function_by_name(method)
        return fn(*args)

    def get_balance(self, address: str) -> int:
        w3 = self._require_w3()
        try:
            return int(w3.eth.get_balance(Web3.to_checksum_address(address)))
        except _TRANSPORT_ERRORS as exc:
            raise ChainUnavailableError(f"failed to read balance of {address}: {exc}") from exc

    def read_only_call(
        self,
        contract_address: str,
        abi: Sequence[dict],
        method: str,
        args: Sequence[Any] = (),
    ) -> Any:
        try:
            return self._function(contract_address, abi, method, args).call()
        except ContractLogicError as exc:
            raise TransactionRevertedError(
                f"call {method} on {contract_address} reverted: {exc}"
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise ChainUnavailableError(
                f"call {method} on {contract_address} failed: {exc}"
            ) from exc

    def submit_transaction(
        self,
        sender: LocalAccount,
        contract_address: str,
        abi: Sequence[dict],
        method: str,
        args: Sequence[Any] = (),
        *,
        value: int = 0,
    ) -> TransactionHandle:
        w3 = self._require_w3()
        try:
            tx = self._function(contract_address, abi, method, args).build_transaction(
                {
                    "from": sender.address,
                    "value": value,
                    "nonce": w3.eth.get_transaction_count(sender.address, "pending"),
                    "chainId": self._chain_id,
                }
            )
            signed = sender.sign_transaction(tx)
            tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
        except ContractLogicError as exc:
            raise TransactionRevertedError(
                f"transaction {method} on {contract_address} would revert: {exc}"
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise ChainUnavailableError(
                f"failed to submit {method} to {contract_address}: {exc}"
            ) from exc
        logger.info("submitted %s to %s: %s", method, contract_address, tx_hash)
        return TransactionHandle(tx_hash=tx_hash, method=method)

    def await_confirmations(self, handle: TransactionHandle, confirmations: int) -> TransactionReceipt:
        w3 = self._require_w3()
        deadline = (
            time.monotonic() + self.confirmation_timeout
            if self.confirmation_timeout is not None
            else None
        )
        while True:
            try:
                receipt = w3.eth.get_transaction_receipt(handle.tx_hash)
            except TransactionNotFound:
                receipt = None
            except _TRANSPORT_ERRORS as exc:
                raise ChainUnavailableError(
                    f"failed to fetch receipt for {handle.tx_hash}: {exc}"
                ) from exc

            if receipt is not None:
                if receipt["status"] != 1:
                    raise TransactionRevertedError(
                        f"transaction {handle.tx_hash} ({handle.method}) reverted",
                        tx_hash=handle.tx_hash,
                    )
                try:
                    depth = int(w3.eth.block_number) - int(receipt["blockNumber"]) + 1
                except _TRANSPORT_ERRORS as exc:
                    raise ChainUnavailableError(f"failed to read block number: {exc}") from exc
                if depth >= confirmations:
                    return TransactionReceipt(
                        tx_hash=handle.tx_hash,
                        block_number=int(receipt["blockNumber"]),
                        status=int(receipt["status"]),
                    )

            if deadline is not None and time.monotonic() >= deadline:
                raise ChainUnavailableError(
                    f"timed out waiting for {confirmations} confirmations of {handle.tx_hash}"
                )
            time.sleep(max(0.1, self.poll_interval))
