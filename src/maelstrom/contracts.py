"""Farcaster OP Mainnet contract constants and minimal ABIs."""

from __future__ import annotations

OP_MAINNET_CHAIN_ID = 10
DEFAULT_RPC_URL = "https://mainnet.optimism.io"

# farcasterxyz/contracts v3.1 OP Mainnet deployments
DEFAULT_ID_GATEWAY = "0x00000000fc25870c6ed6b6c7e41fb078b7656f69"
DEFAULT_KEY_GATEWAY = "0x00000000fc56947c7e7183f8ca4b62398caadf0b"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

REQUIRED_CONFIRMATIONS = 2

KEY_TYPE_ED25519 = 1
METADATA_TYPE_SIGNED_KEY_REQUEST = 1

# KeyRegistry.KeyState
KEY_STATE_NULL = 0
KEY_STATE_ADDED = 1
KEY_STATE_REMOVED = 2


def _fn(name, inputs, outputs, mutability="view"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


ID_GATEWAY_ABI = [
    _fn("idRegistry", [], [("", "address")]),
    _fn("price", [("extraStorage", "uint256")], [("", "uint256")]),
    _fn(
        "register",
        [("recovery", "address")],
        [("fid", "uint256"), ("overpayment", "uint256")],
        "payable",
    ),
    _fn(
        "register",
        [("recovery", "address"), ("extraStorage", "uint256")],
        [("fid", "uint256"), ("overpayment", "uint256")],
        "payable",
    ),
]

ID_REGISTRY_ABI = [
    _fn("idOf", [("owner", "address")], [("", "uint256")]),
]

KEY_GATEWAY_ABI = [
    _fn("keyRegistry", [], [("", "address")]),
    _fn(
        "add",
        [
            ("keyType", "uint32"),
            ("key", "bytes"),
            ("metadataType", "uint8"),
            ("metadata", "bytes"),
        ],
        [],
        "nonpayable",
    ),
]

KEY_REGISTRY_ABI = [
    _fn(
        "validators",
        [("keyType", "uint32"), ("metadataType", "uint8")],
        [("", "address")],
    ),
    {
        "type": "function",
        "name": "keyDataOf",
        "stateMutability": "view",
        "inputs": [{"name": "fid", "type": "uint256"}, {"name": "key", "type": "bytes"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "state", "type": "uint8"},
                    {"name": "keyType", "type": "uint32"},
                ],
            }
        ],
    },
]
