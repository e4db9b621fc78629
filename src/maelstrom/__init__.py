"""maelstrom public surface."""

from maelstrom.crypto.keys import generate_custody_recovery_pair, generate_signer_keypair
from maelstrom.errors import (
    AlreadyExistsError,
    ChainUnavailableError,
    ConfigError,
    ExpiredRequestError,
    InsufficientFundsError,
    MaelstromError,
    RegistrationInconsistencyError,
    SecretsAccessError,
    SecretsNotFoundError,
    SecretsParseError,
    SecretsValidationError,
    TransactionRevertedError,
    UsageError,
    ValidatorNotFoundError,
    WrongChainError,
)
from maelstrom.gateway import (
    ChainGateway,
    NetworkInfo,
    TransactionHandle,
    TransactionReceipt,
    Web3ChainGateway,
)
from maelstrom.orchestrator import (
    ContractAddresses,
    RegistrationOrchestrator,
    RegistrationReport,
    RegistrationState,
    Step,
    StepOutcome,
    StepStatus,
    derive_registration_state,
)
from maelstrom.records import EvmKeypair, IdentitySecrets, SignerRecord
from maelstrom.requests import (
    SignedKeyRequest,
    decode_signed_key_request_metadata,
    encode_signed_key_request_metadata,
    sign_key_request,
    verify_signed_key_request,
)
from maelstrom.store import SecretStore

__all__ = [
    "MaelstromError",
    "UsageError",
    "ConfigError",
    "AlreadyExistsError",
    "SecretsNotFoundError",
    "SecretsParseError",
    "SecretsValidationError",
    "SecretsAccessError",
    "WrongChainError",
    "InsufficientFundsError",
    "ValidatorNotFoundError",
    "ExpiredRequestError",
    "RegistrationInconsistencyError",
    "ChainUnavailableError",
    "TransactionRevertedError",
    "EvmKeypair",
    "SignerRecord",
    "IdentitySecrets",
    "SecretStore",
    "generate_custody_recovery_pair",
    "generate_signer_keypair",
    "ChainGateway",
    "Web3ChainGateway",
    "NetworkInfo",
    "TransactionHandle",
    "TransactionReceipt",
    "SignedKeyRequest",
    "sign_key_request",
    "encode_signed_key_request_metadata",
    "decode_signed_key_request_metadata",
    "verify_signed_key_request",
    "ContractAddresses",
    "RegistrationOrchestrator",
    "RegistrationReport",
    "RegistrationState",
    "Step",
    "StepOutcome",
    "StepStatus",
    "derive_registration_state",
]
