"""EIP-712 typed-data builders for SignedKeyRequest authorizations."""

from __future__ import annotations

from web3 import Web3

SIGNED_KEY_REQUEST_DOMAIN_NAME = "Farcaster SignedKeyRequestValidator"
SIGNED_KEY_REQUEST_DOMAIN_VERSION = "1"
SIGNED_KEY_REQUEST_PRIMARY_TYPE = "SignedKeyRequest"

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

SIGNED_KEY_REQUEST_FIELDS = [
    {"name": "requestFid", "type": "uint256"},
    {"name": "key", "type": "bytes"},
    {"name": "deadline", "type": "uint256"},
]


def build_signed_key_request_domain(*, chain_id: int, validator_address: str) -> dict:
    return {
        "name": SIGNED_KEY_REQUEST_DOMAIN_NAME,
        "version": SIGNED_KEY_REQUEST_DOMAIN_VERSION,
        "chainId": int(chain_id),
        "verifyingContract": Web3.to_checksum_address(validator_address),
    }


def build_signed_key_request_to_sign(
    *,
    request_fid: int,
    key: bytes,
    deadline: int,
    chain_id: int,
    validator_address: str,
) -> dict:
    """Full typed-data document binding (fid, signer key, deadline) to the validator."""
    if request_fid < 1:
        raise ValueError("request_fid must be >= 1")
    if not isinstance(key, (bytes, bytearray)) or not key:
        raise ValueError("key must be non-empty bytes")
    if deadline < 0:
        raise ValueError("deadline must be >= 0")
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_FIELDS,
            SIGNED_KEY_REQUEST_PRIMARY_TYPE: SIGNED_KEY_REQUEST_FIELDS,
        },
        "primaryType": SIGNED_KEY_REQUEST_PRIMARY_TYPE,
        "domain": build_signed_key_request_domain(
            chain_id=chain_id, validator_address=validator_address
        ),
        "message": {
            "requestFid": int(request_fid),
            "key": bytes(key),
            "deadline": int(deadline),
        },
    }
