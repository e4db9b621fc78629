"""Resumable FID registration and signer authorization.

The orchestrator walks a fixed sequence of steps::

    START -> CHECK_IDENTIFIER -> [REGISTER_IDENTIFIER] -> IDENTIFIER_READY
          -> CHECK_SIGNER -> [ADD_SIGNER] -> DONE

Each side-effecting step is preceded by a chain read and skipped when its
effect already holds, so an interrupted run can simply be invoked again.
Every confirmed effect is written back through the secret store before the
step is reported.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from eth_account import Account
from web3 import Web3

from maelstrom.contracts import (
    DEFAULT_ID_GATEWAY,
    DEFAULT_KEY_GATEWAY,
    ID_GATEWAY_ABI,
    ID_REGISTRY_ABI,
    KEY_GATEWAY_ABI,
    KEY_REGISTRY_ABI,
    KEY_STATE_ADDED,
    KEY_TYPE_ED25519,
    METADATA_TYPE_SIGNED_KEY_REQUEST,
    OP_MAINNET_CHAIN_ID,
    REQUIRED_CONFIRMATIONS,
    ZERO_ADDRESS,
)
from maelstrom.crypto.keys import generate_signer_keypair, signer_public_key_bytes
from maelstrom.errors import (
    ExpiredRequestError,
    InsufficientFundsError,
    RegistrationInconsistencyError,
    TransactionRevertedError,
    ValidatorNotFoundError,
    WrongChainError,
)
from maelstrom.gateway import ChainGateway, NetworkInfo, TransactionHandle
from maelstrom.records.schemas import IdentitySecrets, SignerRecord
from maelstrom.requests import (
    encode_signed_key_request_metadata,
    ensure_not_expired,
    sign_key_request,
    signed_key_request_deadline,
)
from maelstrom.store import SecretStore

logger = logging.getLogger("maelstrom.orchestrator")


class Step(str, Enum):
    START = "start"
    CHECK_IDENTIFIER = "check_identifier"
    REGISTER_IDENTIFIER = "register_identifier"
    IDENTIFIER_READY = "identifier_ready"
    CHECK_SIGNER = "check_signer"
    ADD_SIGNER = "add_signer"
    DONE = "done"


class RegistrationState(str, Enum):
    IDENTIFIER_UNSET = "identifier_unset"
    SIGNER_PENDING = "signer_pending"
    SIGNER_SET = "signer_set"


class StepStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    SUBMITTED = "submitted"


@dataclass(frozen=True)
class StepOutcome:
    step: Step
    status: StepStatus
    detail: str
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class ContractAddresses:
    id_gateway: str = DEFAULT_ID_GATEWAY
    key_gateway: str = DEFAULT_KEY_GATEWAY


@dataclass
class RegistrationReport:
    secrets_path: Path
    network: NetworkInfo
    state: RegistrationState
    fid: Optional[int]
    custody_address: str
    recovery_address: str
    outcomes: list[StepOutcome] = field(default_factory=list)
    transactions: list[str] = field(default_factory=list)


def derive_registration_state(fid: int, signer_added: bool) -> RegistrationState:
    if not fid:
        return RegistrationState.IDENTIFIER_UNSET
    if not signer_added:
        return RegistrationState.SIGNER_PENDING
    return RegistrationState.SIGNER_SET


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class RegistrationOrchestrator:
    """Drives one identity through registration; one run per process."""

    def __init__(
        self,
        *,
        gateway: ChainGateway,
        store: SecretStore,
        secrets_path: str | Path,
        endpoint: str,
        contracts: ContractAddresses | None = None,
        skip_signer: bool = False,
        regenerate_signer: bool = False,
        extra_storage: int = 0,
        expected_chain_id: int = OP_MAINNET_CHAIN_ID,
        confirmations: int = REQUIRED_CONFIRMATIONS,
        clock: Callable[[], float] = time.time,
        on_outcome: Callable[[StepOutcome], None] | None = None,
    ) -> None:
        if extra_storage < 0:
            raise ValueError("extra_storage must be >= 0")
        self._gateway = gateway
        self._store = store
        self._secrets_path = Path(secrets_path)
        self._endpoint = endpoint
        self._contracts = contracts or ContractAddresses()
        self._skip_signer = skip_signer
        self._regenerate_signer = regenerate_signer
        self._extra_storage = extra_storage
        self._expected_chain_id = expected_chain_id
        self._confirmations = confirmations
        self._clock = clock
        self._on_outcome = on_outcome

        self._secrets: IdentitySecrets | None = None
        self._network: NetworkInfo | None = None
        self._fid = 0
        self._signer_added = False
        self._report: RegistrationReport | None = None

    # -- plumbing -----------------------------------------------------------

    @property
    def secrets(self) -> IdentitySecrets:
        if self._secrets is None:
            raise RuntimeError("secrets not loaded")
        return self._secrets

    @property
    def network(self) -> NetworkInfo:
        if self._network is None:
            raise RuntimeError("not connected")
        return self._network

    def _emit(self, outcome: StepOutcome) -> None:
        if self._report is not None:
            self._report.outcomes.append(outcome)
            if outcome.tx_hash and outcome.status == StepStatus.SUBMITTED:
                self._report.transactions.append(outcome.tx_hash)
        logger.info("%s: %s %s", outcome.step.value, outcome.status.value, outcome.detail)
        if self._on_outcome is not None:
            self._on_outcome(outcome)

    def _persist(self, **changes) -> None:
        self._secrets = self._store.update(
            self._secrets_path, lambda current: current.model_copy(update=changes)
        )

    def _stored_signer(self) -> SignerRecord:
        if self.secrets.signer is None:
            raise RuntimeError("signer not generated")
        return self.secrets.signer

    def _custody_account(self):
        return Account.from_key(self.secrets.custody.private_key.get_secret_value())

    def _read(self, address: str, abi, method: str, *args):
        return self._gateway.read_only_call(address, abi, method, list(args))

    def _id_registry_address(self) -> str:
        return self._read(self._contracts.id_gateway, ID_GATEWAY_ABI, "idRegistry")

    def _key_registry_address(self) -> str:
        return self._read(self._contracts.key_gateway, KEY_GATEWAY_ABI, "keyRegistry")

    def _read_fid(self) -> int:
        registry = self._id_registry_address()
        return int(self._read(registry, ID_REGISTRY_ABI, "idOf", self.secrets.custody.address))

    def _read_key_state(self, fid: int, key: bytes) -> int:
        registry = self._key_registry_address()
        state, _key_type = self._read(registry, KEY_REGISTRY_ABI, "keyDataOf", fid, key)
        return int(state)

    def _submit(self, step: Step, address: str, abi, method: str, args, *, value: int = 0) -> str:
        handle: TransactionHandle = self._gateway.submit_transaction(
            self._custody_account(), address, abi, method, list(args), value=value
        )
        self._emit(StepOutcome(step, StepStatus.SUBMITTED, f"{method} sent", handle.tx_hash))
        self._gateway.await_confirmations(handle, self._confirmations)
        return handle.tx_hash

    def _connect(self) -> None:
        self._secrets = self._store.load(self._secrets_path)
        network = self._gateway.connect(self._endpoint)
        if network.chain_id != self._expected_chain_id:
            raise WrongChainError(
                f"connected to wrong chain (expected chain id {self._expected_chain_id}, "
                f"got {network.chain_id}); point OP_RPC_URL or --rpc at an OP Mainnet RPC",
                expected=self._expected_chain_id,
                actual=network.chain_id,
            )
        self._network = network

    # -- public API -----------------------------------------------------------

    def inspect(self) -> RegistrationReport:
        """Read-only view of the current registration state."""
        self._connect()
        fid = self._read_fid()
        signer_added = False
        signer = self.secrets.signer
        if fid and signer is not None:
            signer_added = (
                self._read_key_state(fid, signer_public_key_bytes(signer)) == KEY_STATE_ADDED
            )
        return RegistrationReport(
            secrets_path=self._secrets_path,
            network=self.network,
            state=derive_registration_state(fid, signer_added),
            fid=fid or None,
            custody_address=self.secrets.custody.address,
            recovery_address=self.secrets.recovery.address,
        )

    def run(self) -> RegistrationReport:
        handlers: dict[Step, Callable[[], Step]] = {
            Step.START: self._start,
            Step.CHECK_IDENTIFIER: self._check_identifier,
            Step.REGISTER_IDENTIFIER: self._register_identifier,
            Step.IDENTIFIER_READY: self._identifier_ready,
            Step.CHECK_SIGNER: self._check_signer,
            Step.ADD_SIGNER: self._add_signer,
        }
        step = Step.START
        while step != Step.DONE:
            logger.debug("entering %s", step.value)
            step = handlers[step]()

        report = self._report
        if report is None:
            raise RuntimeError("registration did not start")
        report.state = derive_registration_state(self._fid, self._signer_added)
        report.fid = self._fid or None
        return report

    # -- steps ----------------------------------------------------------------

    def _start(self) -> Step:
        self._connect()
        self._report = RegistrationReport(
            secrets_path=self._secrets_path,
            network=self.network,
            state=RegistrationState.IDENTIFIER_UNSET,
            fid=self.secrets.fid,
            custody_address=self.secrets.custody.address,
            recovery_address=self.secrets.recovery.address,
        )
        custody = self.secrets.custody.address
        balance = int(self._gateway.get_balance(custody))
        self._emit(
            StepOutcome(
                Step.START,
                StepStatus.COMPLETED,
                f"connected to {self.network.endpoint} (chain id {self.network.chain_id}); "
                f"custody {custody} balance {Web3.from_wei(balance, 'ether')} ETH",
            )
        )
        return Step.CHECK_IDENTIFIER

    def _check_identifier(self) -> Step:
        fid = self._read_fid()
        stored = self.secrets.fid
        if fid == 0:
            if stored is not None:
                raise RegistrationInconsistencyError(
                    f"secrets file records fid {stored} but idOf({self.secrets.custody.address}) "
                    "is 0; inspect the custody address on chain"
                )
            return Step.REGISTER_IDENTIFIER

        if stored is not None and stored != fid:
            raise RegistrationInconsistencyError(
                f"secrets file records fid {stored} but chain reports fid {fid} for "
                f"{self.secrets.custody.address}"
            )
        if stored is None:
            self._persist(fid=fid, fid_registered_at=_utc_now_iso())
        self._fid = fid
        self._emit(
            StepOutcome(
                Step.REGISTER_IDENTIFIER,
                StepStatus.SKIPPED,
                f"fid {fid} already registered to custody address",
            )
        )
        return Step.IDENTIFIER_READY

    def _register_identifier(self) -> Step:
        custody = self.secrets.custody.address
        price = int(
            self._read(self._contracts.id_gateway, ID_GATEWAY_ABI, "price", self._extra_storage)
        )
        balance = int(self._gateway.get_balance(custody))
        if balance < price:
            raise InsufficientFundsError(
                f"insufficient ETH for registration: need at least {Web3.from_wei(price, 'ether')} "
                f"ETH on OP Mainnet at {custody} (balance {Web3.from_wei(balance, 'ether')} ETH)",
                required=price,
                balance=balance,
            )

        recovery = self.secrets.recovery.address
        if self._extra_storage:
            method = "register(address,uint256)"
            args = [recovery, self._extra_storage]
        else:
            method = "register(address)"
            args = [recovery]
        tx_hash = self._submit(
            Step.REGISTER_IDENTIFIER,
            self._contracts.id_gateway,
            ID_GATEWAY_ABI,
            method,
            args,
            value=price,
        )

        fid = self._read_fid()
        if fid == 0:
            raise RegistrationInconsistencyError(
                f"registration tx {tx_hash} confirmed but idOf({custody}) is still 0"
            )
        self._persist(fid=fid, fid_registered_at=_utc_now_iso())
        self._fid = fid
        self._emit(
            StepOutcome(Step.REGISTER_IDENTIFIER, StepStatus.COMPLETED, f"fid {fid}", tx_hash)
        )
        return Step.IDENTIFIER_READY

    def _identifier_ready(self) -> Step:
        if self._skip_signer:
            self._emit(
                StepOutcome(Step.CHECK_SIGNER, StepStatus.SKIPPED, "signer registration skipped")
            )
            return Step.DONE
        return Step.CHECK_SIGNER

    def _check_signer(self) -> Step:
        if self.secrets.signer is None or self._regenerate_signer:
            self._persist(signer=generate_signer_keypair())
            self._regenerate_signer = False
            logger.info("generated new ed25519 signer for %s", self._secrets_path)

        signer = self._stored_signer()
        key = signer_public_key_bytes(signer)
        if self._read_key_state(self._fid, key) == KEY_STATE_ADDED:
            if signer.added_at is None:
                self._persist(signer=signer.model_copy(update={"added_at": _utc_now_iso()}))
            self._signer_added = True
            self._emit(
                StepOutcome(
                    Step.ADD_SIGNER,
                    StepStatus.SKIPPED,
                    f"signer already added for fid {self._fid}",
                )
            )
            return Step.DONE
        return Step.ADD_SIGNER

    def _add_signer(self) -> Step:
        key_registry = self._key_registry_address()
        validator = self._read(
            key_registry,
            KEY_REGISTRY_ABI,
            "validators",
            KEY_TYPE_ED25519,
            METADATA_TYPE_SIGNED_KEY_REQUEST,
        )
        if not validator or int(validator, 16) == int(ZERO_ADDRESS, 16):
            raise ValidatorNotFoundError(
                "could not resolve SignedKeyRequestValidator from "
                f"KeyRegistry.validators({KEY_TYPE_ED25519},{METADATA_TYPE_SIGNED_KEY_REQUEST})"
            )

        signer = self._stored_signer()
        key = signer_public_key_bytes(signer)
        request = sign_key_request(
            request_fid=self._fid,
            key=key,
            deadline=signed_key_request_deadline(self._clock()),
            chain_id=self.network.chain_id,
            validator_address=validator,
            private_key=self.secrets.custody.private_key.get_secret_value(),
        )
        metadata = encode_signed_key_request_metadata(request)

        ensure_not_expired(request, self._clock())
        try:
            tx_hash = self._submit(
                Step.ADD_SIGNER,
                self._contracts.key_gateway,
                KEY_GATEWAY_ABI,
                "add",
                [KEY_TYPE_ED25519, key, METADATA_TYPE_SIGNED_KEY_REQUEST, metadata],
            )
        except TransactionRevertedError as exc:
            if self._clock() > request.deadline:
                raise ExpiredRequestError(
                    f"add-key rejected after signed request deadline {request.deadline}; "
                    "re-run to sign a fresh request"
                ) from exc
            raise

        if self._read_key_state(self._fid, key) != KEY_STATE_ADDED:
            raise RegistrationInconsistencyError(
                f"add-key tx {tx_hash} confirmed but signer is not ADDED for fid {self._fid}"
            )
        self._persist(signer=signer.model_copy(update={"added_at": _utc_now_iso()}))
        self._signer_added = True
        self._emit(
            StepOutcome(Step.ADD_SIGNER, StepStatus.COMPLETED, f"signer added for fid {self._fid}", tx_hash)
        )
        return Step.DONE
