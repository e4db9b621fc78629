from maelstrom.records.schemas import (
    SECRETS_KIND,
    SIGNER_KEY_TYPE,
    EvmKeypair,
    IdentitySecrets,
    SignerRecord,
)

__all__ = [
    "SECRETS_KIND",
    "SIGNER_KEY_TYPE",
    "EvmKeypair",
    "IdentitySecrets",
    "SignerRecord",
]
