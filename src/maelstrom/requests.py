"""Signed key request construction, encoding and verification."""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from maelstrom.errors import ExpiredRequestError
from maelstrom.signing import build_signed_key_request_to_sign

SIGNED_KEY_REQUEST_TTL_SECONDS = 60 * 60

# Must match SignedKeyRequestValidator.encodeMetadata: a single tuple.
SIGNED_KEY_REQUEST_METADATA_TYPE = "(uint256,address,bytes,uint256)"


@dataclass(frozen=True)
class SignedKeyRequest:
    request_fid: int
    request_signer: str
    signature: bytes
    deadline: int


def signed_key_request_deadline(now: float, ttl_seconds: int = SIGNED_KEY_REQUEST_TTL_SECONDS) -> int:
    return int(now) + ttl_seconds


def sign_key_request(
    *,
    request_fid: int,
    key: bytes,
    deadline: int,
    chain_id: int,
    validator_address: str,
    private_key: str,
) -> SignedKeyRequest:
    account = Account.from_key(private_key)
    typed_data = build_signed_key_request_to_sign(
        request_fid=request_fid,
        key=key,
        deadline=deadline,
        chain_id=chain_id,
        validator_address=validator_address,
    )
    signed = account.sign_message(encode_typed_data(full_message=typed_data))
    return SignedKeyRequest(
        request_fid=int(request_fid),
        request_signer=account.address,
        signature=bytes(signed.signature),
        deadline=int(deadline),
    )


def encode_signed_key_request_metadata(request: SignedKeyRequest) -> bytes:
    return encode(
        [SIGNED_KEY_REQUEST_METADATA_TYPE],
        [
            (
                request.request_fid,
                Web3.to_checksum_address(request.request_signer),
                request.signature,
                request.deadline,
            )
        ],
    )


def decode_signed_key_request_metadata(metadata: bytes) -> SignedKeyRequest:
    (decoded,) = decode([SIGNED_KEY_REQUEST_METADATA_TYPE], bytes(metadata))
    request_fid, request_signer, signature, deadline = decoded
    return SignedKeyRequest(
        request_fid=int(request_fid),
        request_signer=Web3.to_checksum_address(request_signer),
        signature=bytes(signature),
        deadline=int(deadline),
    )


def recover_key_request_signer(
    request: SignedKeyRequest,
    *,
    key: bytes,
    chain_id: int,
    validator_address: str,
) -> str:
    typed_data = build_signed_key_request_to_sign(
        request_fid=request.request_fid,
        key=key,
        deadline=request.deadline,
        chain_id=chain_id,
        validator_address=validator_address,
    )
    return Account.recover_message(encode_typed_data(full_message=typed_data), signature=request.signature)


def is_expired(request: SignedKeyRequest, now: float) -> bool:
    return int(now) > request.deadline


def ensure_not_expired(request: SignedKeyRequest, now: float) -> None:
    if is_expired(request, now):
        raise ExpiredRequestError(
            f"signed key request for fid {request.request_fid} expired at {request.deadline}; "
            "re-run to sign a fresh request"
        )


def verify_signed_key_request(
    request: SignedKeyRequest,
    *,
    key: bytes,
    chain_id: int,
    validator_address: str,
    now: float,
) -> bool:
    """Mirror of the validator check: signer recovers to request_signer and deadline not passed."""
    if is_expired(request, now):
        return False
    try:
        recovered = recover_key_request_signer(
            request, key=key, chain_id=chain_id, validator_address=validator_address
        )
    except Exception:
        return False
    return recovered.lower() == request.request_signer.lower()
