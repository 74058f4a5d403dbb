"""
Entity Classifier - Map raw protocol bytes to their bridge role.

Solana accounts and instructions are recognised by their Anchor 8-byte
discriminators; EVM logs by topic0. Data shorter than a discriminator, or
matching nothing, is UNRELATED. Nothing here touches the network.
"""

import hashlib
from enum import Enum
from typing import Iterable, Optional

from web3 import Web3

from chain_adapters.models import LogEntry

from bridge_explorer.models import EntityKind


DISCRIMINATOR_SIZE = 8


def anchor_account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


def anchor_instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


def event_topic(signature: str) -> str:
    """keccak256 of an event signature as lowercase 0x hex."""
    return Web3.to_hex(Web3.keccak(text=signature)).lower()


# ─────────────────────────────────────────────────────────────
# Solana
# ─────────────────────────────────────────────────────────────

OUTGOING_MESSAGE_DISCRIMINATOR = anchor_account_discriminator("OutgoingMessage")
INCOMING_MESSAGE_DISCRIMINATOR = anchor_account_discriminator("IncomingMessage")
OUTPUT_ROOT_DISCRIMINATOR = anchor_account_discriminator("OutputRoot")

RELAY_MESSAGE_DISCRIMINATOR = anchor_instruction_discriminator("relay_message")


class SolanaAccountType(Enum):
    OUTGOING_MESSAGE = "outgoing_message"
    INCOMING_MESSAGE = "incoming_message"
    OUTPUT_ROOT = "output_root"


SOLANA_ACCOUNT_DISCRIMINATORS: dict[bytes, SolanaAccountType] = {
    OUTGOING_MESSAGE_DISCRIMINATOR: SolanaAccountType.OUTGOING_MESSAGE,
    INCOMING_MESSAGE_DISCRIMINATOR: SolanaAccountType.INCOMING_MESSAGE,
    OUTPUT_ROOT_DISCRIMINATOR: SolanaAccountType.OUTPUT_ROOT,
}

SOLANA_ACCOUNT_KINDS: dict[SolanaAccountType, EntityKind] = {
    SolanaAccountType.OUTGOING_MESSAGE: EntityKind.INITIATION,
    SolanaAccountType.INCOMING_MESSAGE: EntityKind.VALIDATION,
    SolanaAccountType.OUTPUT_ROOT: EntityKind.UNRELATED,
}


def identify_solana_account(data: bytes) -> Optional[SolanaAccountType]:
    """Account type from its discriminator, or None for anything else."""
    if data is None or len(data) < DISCRIMINATOR_SIZE:
        return None
    return SOLANA_ACCOUNT_DISCRIMINATORS.get(bytes(data[:DISCRIMINATOR_SIZE]))


def classify_solana_account(data: bytes) -> EntityKind:
    account_type = identify_solana_account(data)
    if account_type is None:
        return EntityKind.UNRELATED
    return SOLANA_ACCOUNT_KINDS[account_type]


def is_relay_instruction(data: bytes) -> bool:
    return (
        data is not None
        and len(data) >= DISCRIMINATOR_SIZE
        and bytes(data[:DISCRIMINATOR_SIZE]) == RELAY_MESSAGE_DISCRIMINATOR
    )


# ─────────────────────────────────────────────────────────────
# EVM
# ─────────────────────────────────────────────────────────────

MESSAGE_INITIATED_TOPIC = event_topic(
    "MessageInitiated(bytes32,uint64,address,bytes32,address,bytes32,uint256)"
)
MESSAGE_REGISTERED_TOPIC = "0x5e55930eb861ee57d9b7fa9e506b7f413cb1599c9886e57f1c8091f5fee5fc33"
MESSAGE_SUCCESSFULLY_RELAYED_TOPIC = "0x68bfb2e57fcbb47277da442d81d3e40ff118cbbcaf345b07997b35f592359e49"
FAILED_TO_RELAY_MESSAGE_TOPIC = "0x1dc47a66003d9a2334f04c3d23d98f174d7e65e9a4a72fa13277a15120c1559e"
TRANSFER_FINALIZED_TOPIC = "0x6899b9db6ebabd932aa1fc835134c9b9ca2168d78a4cbee8854b1c00c8647609"

EVM_EVENT_KINDS: dict[str, EntityKind] = {
    MESSAGE_INITIATED_TOPIC: EntityKind.INITIATION,
    MESSAGE_REGISTERED_TOPIC: EntityKind.VALIDATION,
    MESSAGE_SUCCESSFULLY_RELAYED_TOPIC: EntityKind.EXECUTION,
    TRANSFER_FINALIZED_TOPIC: EntityKind.EXECUTION,
    FAILED_TO_RELAY_MESSAGE_TOPIC: EntityKind.FAILED_EXECUTION,
}

# Position of the indexed message hash within each event's topics
MESSAGE_HASH_TOPIC_INDEX: dict[str, int] = {
    MESSAGE_INITIATED_TOPIC: 1,
    MESSAGE_REGISTERED_TOPIC: 1,
    MESSAGE_SUCCESSFULLY_RELAYED_TOPIC: 2,
    FAILED_TO_RELAY_MESSAGE_TOPIC: 2,
}

# When one receipt carries several bridge events, the earliest stage wins
_KIND_PRIORITY = [
    EntityKind.INITIATION,
    EntityKind.EXECUTION,
    EntityKind.FAILED_EXECUTION,
    EntityKind.VALIDATION,
]


def classify_log(log: LogEntry, bridge_addresses: Optional[Iterable[str]] = None) -> EntityKind:
    """
    Classify one EVM log by topic0.

    When bridge_addresses is given, logs emitted by any other contract are
    UNRELATED even if their topic matches.
    """
    if bridge_addresses is not None:
        allowed = {a.lower() for a in bridge_addresses if a}
        if (log.address or "").lower() not in allowed:
            return EntityKind.UNRELATED
    topic0 = log.topic0
    if topic0 is None:
        return EntityKind.UNRELATED
    return EVM_EVENT_KINDS.get(topic0, EntityKind.UNRELATED)


def primary_kind(kinds: Iterable[EntityKind]) -> EntityKind:
    """Pick the role of a transaction from the roles of its logs."""
    seen = set(kinds)
    for kind in _KIND_PRIORITY:
        if kind in seen:
            return kind
    return EntityKind.UNRELATED


def message_hash_from_log(log: LogEntry) -> Optional[str]:
    """The indexed message hash of a bridge event, if the event carries one."""
    index = MESSAGE_HASH_TOPIC_INDEX.get(log.topic0 or "")
    if index is None or len(log.topics) <= index:
        return None
    return log.topics[index].lower()
