from __future__ import annotations

import pytest
from eth_abi import encode

from maelstrom.crypto.keys import generate_custody_recovery_pair, generate_signer_keypair, signer_public_key_bytes
from maelstrom.errors import ExpiredRequestError
from maelstrom.requests import (
    SIGNED_KEY_REQUEST_TTL_SECONDS,
    decode_signed_key_request_metadata,
    encode_signed_key_request_metadata,
    ensure_not_expired,
    recover_key_request_signer,
    sign_key_request,
    signed_key_request_deadline,
    verify_signed_key_request,
)
from maelstrom.signing import build_signed_key_request_to_sign

VALIDATOR = "0x00000000fc700472606ed4fa22623acf62c60553"
NOW = 1_760_000_000


@pytest.fixture
def custody():
    keypair, _ = generate_custody_recovery_pair()
    return keypair


@pytest.fixture
def signer_key() -> bytes:
    return signer_public_key_bytes(generate_signer_keypair())


def _sign(custody, key, *, deadline=NOW + 3600, fid=99):
    return sign_key_request(
        request_fid=fid,
        key=key,
        deadline=deadline,
        chain_id=10,
        validator_address=VALIDATOR,
        private_key=custody.private_key.get_secret_value(),
    )


def test_typed_data_domain_and_message() -> None:
    typed = build_signed_key_request_to_sign(
        request_fid=1, key=b"\x01" * 32, deadline=5, chain_id=10, validator_address=VALIDATOR
    )
    assert typed["primaryType"] == "SignedKeyRequest"
    assert typed["domain"] == {
        "name": "Farcaster SignedKeyRequestValidator",
        "version": "1",
        "chainId": 10,
        "verifyingContract": "0x00000000FC700472606ED4fA22623Acf62c60553",
    }
    assert [f["name"] for f in typed["types"]["SignedKeyRequest"]] == ["requestFid", "key", "deadline"]
    assert typed["message"] == {"requestFid": 1, "key": b"\x01" * 32, "deadline": 5}


def test_deadline_is_one_hour_after_signing_time() -> None:
    assert SIGNED_KEY_REQUEST_TTL_SECONDS == 3600
    assert signed_key_request_deadline(NOW + 0.7) == NOW + 3600


def test_two_signatures_over_same_inputs_both_verify(custody, signer_key) -> None:
    first = _sign(custody, signer_key)
    second = _sign(custody, signer_key)

    for request in (first, second):
        assert request.request_signer == custody.address
        assert recover_key_request_signer(
            request, key=signer_key, chain_id=10, validator_address=VALIDATOR
        ) == custody.address
        assert verify_signed_key_request(
            request, key=signer_key, chain_id=10, validator_address=VALIDATOR, now=NOW
        )


def test_verification_after_deadline_is_rejected(custody, signer_key) -> None:
    request = _sign(custody, signer_key, deadline=NOW + 10)

    assert verify_signed_key_request(
        request, key=signer_key, chain_id=10, validator_address=VALIDATOR, now=NOW + 10
    )
    assert not verify_signed_key_request(
        request, key=signer_key, chain_id=10, validator_address=VALIDATOR, now=NOW + 11
    )
    with pytest.raises(ExpiredRequestError):
        ensure_not_expired(request, NOW + 11)


def test_verification_is_bound_to_domain_and_key(custody, signer_key) -> None:
    request = _sign(custody, signer_key)
    other_key = signer_public_key_bytes(generate_signer_keypair())

    assert not verify_signed_key_request(
        request, key=other_key, chain_id=10, validator_address=VALIDATOR, now=NOW
    )
    assert not verify_signed_key_request(
        request, key=signer_key, chain_id=8453, validator_address=VALIDATOR, now=NOW
    )
    assert not verify_signed_key_request(
        request,
        key=signer_key,
        chain_id=10,
        validator_address="0x00000000fc56947c7e7183f8ca4b62398caadf0b",
        now=NOW,
    )


def test_metadata_is_single_nested_tuple(custody, signer_key) -> None:
    request = _sign(custody, signer_key)
    metadata = encode_signed_key_request_metadata(request)

    expected = encode(
        ["(uint256,address,bytes,uint256)"],
        [(request.request_fid, request.request_signer, request.signature, request.deadline)],
    )
    loose = encode(
        ["uint256", "address", "bytes", "uint256"],
        [request.request_fid, request.request_signer, request.signature, request.deadline],
    )
    assert metadata == expected
    assert metadata != loose
    # dynamic tuple: head is a single offset word pointing at the tuple body
    assert int.from_bytes(metadata[:32], "big") == 32

    decoded = decode_signed_key_request_metadata(metadata)
    assert decoded == request
    assert len(decoded.signature) == 65

