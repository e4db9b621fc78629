"""Key generation for custody, recovery and app-signer keys."""

from __future__ import annotations

from datetime import datetime, timezone

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from eth_account import Account

from maelstrom.crypto.encoding import b64url_decode, b64url_encode
from maelstrom.records.schemas import SIGNER_KEY_TYPE, EvmKeypair, SignerRecord

SIGNER_PUBLIC_KEY_LEN = 32


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _new_evm_keypair() -> EvmKeypair:
    account = Account.create()
    return EvmKeypair(address=account.address, private_key="0x" + bytes(account.key).hex())


def generate_custody_recovery_pair() -> tuple[EvmKeypair, EvmKeypair]:
    """Return (custody, recovery), each drawn from its own OS randomness."""
    custody = _new_evm_keypair()
    recovery = _new_evm_keypair()
    return custody, recovery


def generate_signer_keypair() -> SignerRecord:
    private = Ed25519PrivateKey.generate()
    private_key_bytes = private.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
    public_key_bytes = private.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return SignerRecord(
        key_type=SIGNER_KEY_TYPE,
        public_key_b64url=b64url_encode(public_key_bytes),
        private_key_b64url=b64url_encode(private_key_bytes),
        created_at=_utc_now_iso(),
    )


def signer_public_key_bytes(record: SignerRecord) -> bytes:
    public_key = b64url_decode(record.public_key_b64url)
    if len(public_key) != SIGNER_PUBLIC_KEY_LEN:
        raise ValueError(
            f"signer public key must be {SIGNER_PUBLIC_KEY_LEN} bytes (got {len(public_key)})"
        )
    return public_key

