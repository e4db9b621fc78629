"""Error types raised while provisioning and registering an identity."""

from __future__ import annotations


class MaelstromError(RuntimeError):
    """Base error."""


class UsageError(MaelstromError):
    """Command was invoked with invalid arguments."""


class ConfigError(UsageError):
    """Configuration file or override is invalid."""


class AlreadyExistsError(MaelstromError):
    """Refusing to overwrite an existing secrets file."""


class SecretsNotFoundError(MaelstromError):
    """Secrets file does not exist."""


class SecretsParseError(MaelstromError):
    """Secrets file is not well-formed JSON."""


class SecretsValidationError(MaelstromError):
    """Secrets file content does not match the expected record."""


class SecretsAccessError(MaelstromError):
    """Secrets file or directory could not be read or written."""


class WrongChainError(MaelstromError):
    """Connected RPC endpoint reports an unexpected chain id."""

    def __init__(self, message: str, *, expected: int, actual: int) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class InsufficientFundsError(MaelstromError):
    """Custody balance is lower than the registration price."""

    def __init__(self, message: str, *, required: int, balance: int) -> None:
        super().__init__(message)
        self.required = required
        self.balance = balance


class ValidatorNotFoundError(MaelstromError):
    """Key registry has no validator for the signer key/metadata type."""


class ExpiredRequestError(MaelstromError):
    """Signed key request deadline passed before it was accepted on chain."""


class RegistrationInconsistencyError(MaelstromError):
    """Chain state contradicts a confirmed transaction or stored record."""


class ChainUnavailableError(MaelstromError):
    """RPC endpoint could not be reached or returned an error."""


class TransactionRevertedError(ChainUnavailableError):
    """Transaction or call was rejected by contract logic."""

    def __init__(self, message: str, *, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
