"""
Chain Adapters Package - Uniform read access to EVM and Solana chains.

Features:
- One interface, six read operations, on every chain
- Lookup results distinguish NOT_FOUND from "could not check"
- Bounded retry with exponential backoff on transport failures
- Explicit network selection (mainnet / testnet), never inferred
- Capability flags instead of per-chain special cases

Quick Start:
    from chain_adapters import (
        Chain,
        Network,
        create_default_registry,
        load_chain_configs,
    )

    async def latest_signature(address: str):
        configs = load_chain_configs()
        registry = create_default_registry()

        async with registry.create(configs[(Chain.SOLANA, Network.TESTNET)]) as solana:
            history = await solana.get_address_history(address)
            return history[-1].tx_ref if history else None

Adding New Adapters:
    class NewAdapter(BaseChainAdapter):
        chain = Chain.NEW
        capabilities = frozenset({AdapterCapability.ACCOUNT_HISTORY})

        @property
        def name(self) -> str:
            return "new_chain"

        async def get_transaction(self, tx_ref): ...
        async def get_logs(self, log_filter): ...
        async def get_account_raw(self, address): ...
        async def get_address_history(self, address): ...
        async def get_block_timestamp(self, block_ref): ...
        async def get_token_info(self, asset): ...

    registry.register(NewAdapter)
"""

from chain_adapters.base import BaseChainAdapter
from chain_adapters.config import (
    DEFAULT_CHAIN_CONFIGS,
    ChainConfig,
    load_chain_configs,
)
from chain_adapters.exceptions import (
    CapabilityNotSupportedError,
    ChainAdapterError,
    ConfigurationError,
    FetchError,
    RateLimitError,
    RpcError,
    UpstreamUnavailableError,
)
from chain_adapters.models import (
    AccountRecord,
    AdapterCapability,
    Chain,
    HistoryEntry,
    LogEntry,
    LogFilter,
    Lookup,
    LookupStatus,
    Network,
    TokenInfo,
    TxRecord,
)
from chain_adapters.providers import EvmAdapter, SolanaAdapter
from chain_adapters.registry import (
    AdapterRegistry,
    AdapterSet,
    create_default_registry,
)


__version__ = "1.0.0"

__all__ = [
    # Base
    "BaseChainAdapter",

    # Config
    "ChainConfig",
    "DEFAULT_CHAIN_CONFIGS",
    "load_chain_configs",

    # Models
    "AccountRecord",
    "AdapterCapability",
    "Chain",
    "HistoryEntry",
    "LogEntry",
    "LogFilter",
    "Lookup",
    "LookupStatus",
    "Network",
    "TokenInfo",
    "TxRecord",

    # Exceptions
    "ChainAdapterError",
    "FetchError",
    "RateLimitError",
    "RpcError",
    "UpstreamUnavailableError",
    "CapabilityNotSupportedError",
    "ConfigurationError",

    # Providers
    "EvmAdapter",
    "SolanaAdapter",

    # Registry
    "AdapterRegistry",
    "AdapterSet",
    "create_default_registry",
]
