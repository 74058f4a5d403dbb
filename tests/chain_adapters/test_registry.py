"""
Adapter Registry Tests.

============================================================
PURPOSE
============================================================
Adapter class registration and per-query adapter sets.

TEST CATEGORIES:
- Registration
- Creation
- Adapter sets
============================================================
"""

from unittest.mock import AsyncMock

import pytest

from chain_adapters.config import DEFAULT_CHAIN_CONFIGS
from chain_adapters.exceptions import ConfigurationError
from chain_adapters.models import Chain, Network
from chain_adapters.providers.evm import EvmAdapter
from chain_adapters.providers.solana import SolanaAdapter
from chain_adapters.registry import AdapterRegistry, AdapterSet, create_default_registry


# ============================================================
# REGISTRATION
# ============================================================

class TestRegistration:
    """One adapter class per chain."""

    def test_default_registry(self):
        registry = create_default_registry()
        assert set(registry.supported_chains()) == {Chain.EVM, Chain.SOLANA}

    def test_duplicate_rejected(self):
        registry = AdapterRegistry()
        registry.register(EvmAdapter)

        with pytest.raises(ValueError):
            registry.register(EvmAdapter)

        registry.register(EvmAdapter, replace=True)

    def test_unregister(self):
        registry = create_default_registry()
        assert registry.unregister(Chain.SOLANA) is SolanaAdapter
        assert registry.unregister(Chain.SOLANA) is None


# ============================================================
# CREATION
# ============================================================

class TestCreation:
    """Fresh adapters per call."""

    def test_fresh_instances(self):
        registry = create_default_registry()
        config = DEFAULT_CHAIN_CONFIGS[(Chain.EVM, Network.TESTNET)]

        first = registry.create(config)
        second = registry.create(config)

        assert isinstance(first, EvmAdapter)
        assert first is not second
        assert first.config is config

    def test_unsupported_chain(self):
        registry = AdapterRegistry()

        with pytest.raises(ConfigurationError) as exc_info:
            registry.create(DEFAULT_CHAIN_CONFIGS[(Chain.SOLANA, Network.TESTNET)])

        assert exc_info.value.context["supported_chains"] == []

    def test_set_for_network(self):
        adapters = create_default_registry().create_set(DEFAULT_CHAIN_CONFIGS, Network.MAINNET)

        assert adapters[Chain.EVM].config.network == Network.MAINNET
        assert adapters[Chain.SOLANA].config.network == Network.MAINNET
        assert Chain.EVM in adapters

    def test_set_missing_config(self):
        configs = {k: v for k, v in DEFAULT_CHAIN_CONFIGS.items() if k != (Chain.SOLANA, Network.TESTNET)}

        with pytest.raises(ConfigurationError):
            create_default_registry().create_set(configs, Network.TESTNET)


# ============================================================
# ADAPTER SETS
# ============================================================

class TestAdapterSet:
    """Adapters of one query, closed together."""

    @pytest.mark.asyncio
    async def test_closes_all(self):
        first, second = AsyncMock(), AsyncMock()

        async with AdapterSet({Chain.EVM: first, Chain.SOLANA: second}):
            pass

        first.close.assert_awaited_once()
        second.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_continues_after_failure(self):
        broken, healthy = AsyncMock(), AsyncMock()
        broken.close.side_effect = RuntimeError("boom")

        await AdapterSet({Chain.EVM: broken, Chain.SOLANA: healthy}).close()

        healthy.close.assert_awaited_once()

    def test_missing_chain(self):
        with pytest.raises(ConfigurationError):
            AdapterSet({})[Chain.EVM]
