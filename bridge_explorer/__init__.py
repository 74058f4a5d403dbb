"""
Bridge Explorer Package - Lifecycle of Base <-> Solana bridge transfers.

Given any transaction of a bridge message (initiation, validation,
execution, or a failed execution attempt) on either chain, reconstructs
the message and every stage observed so far.

Features:
- Syntactic reference classification (EVM hash vs Solana signature)
- Protocol-aware identification of bridge transactions on both chains
- Decoding of transfers into one BridgeMessage shape with display amounts
- Forward and reverse correlation producing identical lifecycles
- Explicit network selection and per-query deadline

Quick Start:
    from bridge_explorer import BridgeExplorer, ExplorerConfig

    async def show(reference: str) -> None:
        explorer = BridgeExplorer(ExplorerConfig.from_env(network="testnet"))
        result = await explorer.explore(reference)
        print(result.entity_kind.value)
        if result.lifecycle:
            print(result.lifecycle.status.value)
"""

from chain_adapters.exceptions import ConfigurationError, UpstreamUnavailableError

from bridge_explorer.amounts import format_units
from bridge_explorer.config import ExplorerConfig, parse_network
from bridge_explorer.correlator import Correlator
from bridge_explorer.engine import BridgeExplorer
from bridge_explorer.exceptions import (
    BridgeExplorerError,
    DecodeError,
    ExploreTimeoutError,
    InvalidReferenceError,
    TransactionNotFoundError,
    UnrecognizedTransactionError,
    UnsupportedMessageKindError,
)
from bridge_explorer.models import (
    BridgeMessage,
    BridgeStatus,
    ChainSnapshot,
    EntityKind,
    ExploreResult,
    Lifecycle,
    LifecycleEvent,
    MessageKind,
    Stage,
    TransferVariant,
)
from bridge_explorer.reference import ChainHint, Reference, classify_reference


__version__ = "1.0.0"

__all__ = [
    # Engine
    "BridgeExplorer",
    "Correlator",

    # Config
    "ExplorerConfig",
    "parse_network",

    # Reference
    "ChainHint",
    "Reference",
    "classify_reference",

    # Models
    "BridgeMessage",
    "BridgeStatus",
    "ChainSnapshot",
    "EntityKind",
    "ExploreResult",
    "Lifecycle",
    "LifecycleEvent",
    "MessageKind",
    "Stage",
    "TransferVariant",

    # Amounts
    "format_units",

    # Exceptions
    "BridgeExplorerError",
    "InvalidReferenceError",
    "TransactionNotFoundError",
    "UnrecognizedTransactionError",
    "UnsupportedMessageKindError",
    "DecodeError",
    "ExploreTimeoutError",
    "ConfigurationError",
    "UpstreamUnavailableError",
]
