"""
Canonical message hashing.

Both chains identify a message by keccak256 over the ABI encoding of

    (uint64 nonce, bytes32 sender, bytes32 receiver,
     bytes32 local_token, bytes32 remote_token, uint256 amount)

where EVM addresses are left-padded to 32 bytes and Solana public keys are
used as-is. local_token is the asset on the source chain, remote_token its
counterpart on the destination chain. The native asset of each chain has a
fixed placeholder address.
"""

from dataclasses import dataclass

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from solders.pubkey import Pubkey
from web3 import Web3

from chain_adapters.models import Chain
from chain_adapters.providers.evm import ZERO_ADDRESS

from bridge_explorer.exceptions import DecodeError
from bridge_explorer.models import BridgeMessage


SOL_NATIVE_ADDRESS = "SoL1111111111111111111111111111111111111111"
NATIVE_ASSET = "native"

CANONICAL_TYPES = ["uint64", "bytes32", "bytes32", "bytes32", "bytes32", "uint256"]


@dataclass(frozen=True)
class CanonicalFields:
    nonce: int
    sender: bytes
    receiver: bytes
    local_token: bytes
    remote_token: bytes
    amount: int


def address_to_bytes32(chain: Chain, address: str) -> bytes:
    """Encode a chain address (or "native") as 32 bytes."""
    try:
        if chain == Chain.EVM:
            if address == NATIVE_ASSET:
                address = ZERO_ADDRESS
            raw = bytes.fromhex(address[2:] if address.lower().startswith("0x") else address)
            if len(raw) not in (20, 32):
                raise ValueError(f"expected 20 or 32 bytes, got {len(raw)}")
            return raw.rjust(32, b"\x00")

        if address == NATIVE_ASSET:
            address = SOL_NATIVE_ADDRESS
        return bytes(Pubkey.from_string(address))
    except ValueError as e:
        raise DecodeError(
            f"Invalid {chain.value} address {address!r}",
            field_name="address",
            chain=chain.value,
            original_error=e,
        )


def bytes32_to_address(chain: Chain, value: bytes) -> str:
    """Inverse of address_to_bytes32; native placeholders come back as "native"."""
    if len(value) != 32:
        raise DecodeError(f"expected 32 bytes, got {len(value)}", field_name="address", chain=chain.value)

    if chain == Chain.EVM:
        if int.from_bytes(value, "big") == 0:
            return NATIVE_ASSET
        return Web3.to_checksum_address("0x" + value[12:].hex())

    address = str(Pubkey.from_bytes(value))
    return NATIVE_ASSET if address == SOL_NATIVE_ADDRESS else address


def canonical_fields(message: BridgeMessage) -> CanonicalFields:
    """
    Extract the hashed fields of a source-side message.

    Raises:
        DecodeError: If the message lacks a nonce, a sender, or the
            source-chain view of its asset.
    """
    if message.nonce is None or message.sender is None:
        raise DecodeError("nonce and sender are needed to derive a message hash", field_name="nonce")
    if message.asset_chain != message.source_chain or message.remote_asset is None:
        raise DecodeError("source and remote assets are needed to derive a message hash", field_name="remote_asset")

    return CanonicalFields(
        nonce=message.nonce,
        sender=address_to_bytes32(message.source_chain, message.sender),
        receiver=address_to_bytes32(message.dest_chain, message.receiver),
        local_token=address_to_bytes32(message.source_chain, message.asset_identifier),
        remote_token=address_to_bytes32(message.dest_chain, message.remote_asset),
        amount=int(message.raw_amount),
    )


def encode_canonical(fields: CanonicalFields) -> bytes:
    return abi_encode(CANONICAL_TYPES, [
        fields.nonce,
        fields.sender,
        fields.receiver,
        fields.local_token,
        fields.remote_token,
        fields.amount,
    ])


def decode_canonical(data: bytes) -> CanonicalFields:
    try:
        nonce, sender, receiver, local_token, remote_token, amount = abi_decode(CANONICAL_TYPES, data)
    except Exception as e:
        raise DecodeError("Malformed canonical message encoding", original_error=e)
    return CanonicalFields(
        nonce=nonce,
        sender=bytes(sender),
        receiver=bytes(receiver),
        local_token=bytes(local_token),
        remote_token=bytes(remote_token),
        amount=amount,
    )


def derive_message_hash(fields: CanonicalFields) -> str:
    """keccak256 of the canonical encoding, as lowercase 0x hex."""
    return Web3.to_hex(Web3.keccak(encode_canonical(fields))).lower()


def message_hash_of(message: BridgeMessage) -> str:
    return derive_message_hash(canonical_fields(message))
