"""
Chain Adapter Registry - Maps chains to adapter classes.

Features:
- Adapter class registration per chain
- Fresh adapter instances per query (nothing shared between queries)
- AdapterSet: the adapters of one query, closed together

Adding a chain means registering one more BaseChainAdapter subclass.
"""

import logging
from typing import Iterator, Optional

import aiohttp

from chain_adapters.base import BaseChainAdapter
from chain_adapters.config import ChainConfig
from chain_adapters.exceptions import ConfigurationError
from chain_adapters.models import Chain, Network


logger = logging.getLogger(__name__)


class AdapterSet:
    """
    The adapters owned by one query.

    Usage:
        async with registry.create_set(configs, Network.TESTNET) as adapters:
            evm = adapters[Chain.EVM]
    """

    def __init__(self, adapters: dict[Chain, BaseChainAdapter]) -> None:
        self._adapters = dict(adapters)

    def __getitem__(self, chain: Chain) -> BaseChainAdapter:
        try:
            return self._adapters[chain]
        except KeyError:
            raise ConfigurationError(
                message=f"No adapter for chain {chain.value}",
                chain=chain.value,
            )

    def __contains__(self, chain: Chain) -> bool:
        return chain in self._adapters

    def __iter__(self) -> Iterator[BaseChainAdapter]:
        return iter(self._adapters.values())

    async def close(self) -> None:
        """Close all adapters."""
        for adapter in self._adapters.values():
            try:
                await adapter.close()
            except Exception as e:
                logger.error(f"Error closing adapter {adapter.name}: {e}")

    async def __aenter__(self) -> "AdapterSet":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


class AdapterRegistry:
    """
    Registry of adapter classes, one per chain.

    Usage:
        registry = create_default_registry()
        adapter = registry.create(configs[(Chain.SOLANA, Network.TESTNET)])
    """

    def __init__(self) -> None:
        self._adapter_classes: dict[Chain, type[BaseChainAdapter]] = {}

    def register(
        self,
        adapter_class: type[BaseChainAdapter],
        replace: bool = False,
    ) -> None:
        """
        Register an adapter class for its chain.

        Args:
            adapter_class: BaseChainAdapter subclass with a `chain` attribute
            replace: Allow replacing an existing registration
        """
        chain = adapter_class.chain
        if chain in self._adapter_classes and not replace:
            raise ValueError(f"Adapter for chain '{chain.value}' already registered")

        self._adapter_classes[chain] = adapter_class
        logger.debug(
            f"Registered {adapter_class.__name__} for {chain.value} "
            f"(interface v{adapter_class.interface_version})"
        )

    def unregister(self, chain: Chain) -> Optional[type[BaseChainAdapter]]:
        """Unregister an adapter class."""
        return self._adapter_classes.pop(chain, None)

    def supported_chains(self) -> list[Chain]:
        return list(self._adapter_classes.keys())

    def create(
        self,
        config: ChainConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> BaseChainAdapter:
        """Create a fresh adapter for a chain config."""
        adapter_class = self._adapter_classes.get(config.chain)
        if adapter_class is None:
            raise ConfigurationError(
                message=f"Chain {config.chain.value} not supported",
                chain=config.chain.value,
                context={"supported_chains": [c.value for c in self.supported_chains()]},
            )
        return adapter_class(config, session=session)

    def create_set(
        self,
        configs: dict[tuple[Chain, Network], ChainConfig],
        network: Network,
    ) -> AdapterSet:
        """Create one adapter per registered chain for the given network."""
        adapters: dict[Chain, BaseChainAdapter] = {}
        for chain in self._adapter_classes:
            config = configs.get((chain, network))
            if config is None:
                raise ConfigurationError(
                    message=f"No {network.value} configuration for {chain.value}",
                    chain=chain.value,
                )
            adapters[chain] = self.create(config)
        return AdapterSet(adapters)


def create_default_registry() -> AdapterRegistry:
    """
    Create a registry with the standard adapters.

    Returns a registry with the EVM and Solana adapters.
    """
    from chain_adapters.providers.evm import EvmAdapter
    from chain_adapters.providers.solana import SolanaAdapter

    registry = AdapterRegistry()
    registry.register(EvmAdapter)
    registry.register(SolanaAdapter)
    return registry
