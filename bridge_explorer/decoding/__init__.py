"""Chain-specific decoders of bridge messages plus the shared message hash."""

from bridge_explorer.decoding.evm import EvmIdentification, EvmMessageDecoder
from bridge_explorer.decoding.hashing import (
    CanonicalFields,
    canonical_fields,
    decode_canonical,
    derive_message_hash,
    encode_canonical,
    message_hash_of,
)
from bridge_explorer.decoding.solana import (
    SolanaIdentification,
    SolanaMessageDecoder,
    derive_incoming_message_address,
)


__all__ = [
    "EvmIdentification",
    "EvmMessageDecoder",
    "SolanaIdentification",
    "SolanaMessageDecoder",
    "derive_incoming_message_address",
    "CanonicalFields",
    "canonical_fields",
    "decode_canonical",
    "derive_message_hash",
    "encode_canonical",
    "message_hash_of",
]
