"""Identity secrets record (one JSON file per named identity)."""

from __future__ import annotations

from typing import Literal, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from eth_account import Account
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_serializer, model_validator

from maelstrom.crypto.encoding import b64url_decode

SECRETS_KIND = "farcaster-keys"
SIGNER_KEY_TYPE = "ed25519"

_ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
_PRIVATE_KEY_PATTERN = r"^0x[0-9a-fA-F]{64}$"


class EvmKeypair(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    address: str = Field(..., pattern=_ADDRESS_PATTERN)
    private_key: SecretStr

    @model_validator(mode="after")
    def _check_key_matches_address(self) -> "EvmKeypair":
        raw = self.private_key.get_secret_value()
        if len(raw) != 66 or not raw.startswith("0x"):
            raise ValueError("private_key must be 0x-prefixed 32-byte hex")
        try:
            derived = Account.from_key(raw).address
        except Exception as exc:
            raise ValueError("private_key is not a valid secp256k1 key") from exc
        if derived.lower() != self.address.lower():
            raise ValueError("address does not match private_key")
        return self

    @field_serializer("private_key", when_used="json")
    def _reveal_private_key(self, value: SecretStr) -> str:
        return value.get_secret_value()


class SignerRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    key_type: Literal["ed25519"] = SIGNER_KEY_TYPE
    public_key_b64url: str
    private_key_b64url: SecretStr
    created_at: str
    added_at: Optional[str] = None

    @model_validator(mode="after")
    def _check_keypair(self) -> "SignerRecord":
        try:
            public_key = b64url_decode(self.public_key_b64url)
            private_key = b64url_decode(self.private_key_b64url.get_secret_value())
        except ValueError as exc:
            raise ValueError("signer keys must be base64url") from exc
        if len(public_key) != 32 or len(private_key) != 32:
            raise ValueError("signer keys must decode to 32 bytes")
        expected = (
            Ed25519PrivateKey.from_private_bytes(private_key)
            .public_key()
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
        )
        if expected != public_key:
            raise ValueError("signer private/public keys do not match")
        return self

    @field_serializer("private_key_b64url", when_used="json")
    def _reveal_private_key(self, value: SecretStr) -> str:
        return value.get_secret_value()


class IdentitySecrets(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["farcaster-keys"] = SECRETS_KIND
    name: str = Field(..., min_length=1)
    created_at: str
    custody: EvmKeypair
    recovery: EvmKeypair
    fid: Optional[int] = Field(default=None, ge=1)
    fid_registered_at: Optional[str] = None
    signer: Optional[SignerRecord] = None

    @model_validator(mode="after")
    def _check_distinct_keys(self) -> "IdentitySecrets":
        if self.custody.address.lower() == self.recovery.address.lower():
            raise ValueError("custody and recovery addresses must differ")
        return self
