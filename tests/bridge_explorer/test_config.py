"""
Explorer Configuration Tests.

============================================================
PURPOSE
============================================================
Network selection and query limits.

TEST CATEGORIES:
- Network parsing
- Environment loading
============================================================
"""

import pytest

from chain_adapters.exceptions import ConfigurationError
from chain_adapters.models import Chain, Network
from bridge_explorer.config import ExplorerConfig, parse_network


# ============================================================
# NETWORK
# ============================================================

class TestNetwork:
    """The network is always explicit."""

    def test_parse(self):
        assert parse_network(" Mainnet ") == Network.MAINNET
        assert parse_network(Network.TESTNET) == Network.TESTNET

    def test_unknown(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_network("devnet")
        assert exc_info.value.config_key == "BRIDGE_NETWORK"

    def test_string_network_accepted(self):
        assert ExplorerConfig(network="testnet").network == Network.TESTNET

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigurationError):
            ExplorerConfig(network=Network.TESTNET, query_timeout=0)

    def test_chain_config_follows_network(self):
        config = ExplorerConfig(network=Network.MAINNET)
        assert config.chain_config(Chain.EVM).chain_id == 8453


# ============================================================
# ENVIRONMENT
# ============================================================

class TestFromEnv:
    """ExplorerConfig.from_env with explicit mappings."""

    def test_network_required(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ExplorerConfig.from_env(env={})
        assert exc_info.value.config_key == "BRIDGE_NETWORK"

    def test_network_from_env(self):
        config = ExplorerConfig.from_env(env={"BRIDGE_NETWORK": "testnet", "BRIDGE_QUERY_TIMEOUT": "15"})

        assert config.network == Network.TESTNET
        assert config.query_timeout == 15.0

    def test_argument_wins_over_env(self):
        config = ExplorerConfig.from_env(network="mainnet", env={"BRIDGE_NETWORK": "testnet"})
        assert config.network == Network.MAINNET

    def test_bad_timeout(self):
        with pytest.raises(ConfigurationError):
            ExplorerConfig.from_env(env={"BRIDGE_NETWORK": "testnet", "BRIDGE_QUERY_TIMEOUT": "soon"})

    def test_chain_overrides_applied(self):
        config = ExplorerConfig.from_env(env={
            "BRIDGE_NETWORK": "testnet",
            "SOLANA_DEVNET_RPC_URL": "https://devnet.example.org",
        })
        assert config.chain_config(Chain.SOLANA).rpc_url == "https://devnet.example.org"

    def test_to_dict(self):
        data = ExplorerConfig(network=Network.TESTNET).to_dict()

        assert data["network"] == "testnet"
        assert set(data["chains"]) == {"evm", "solana"}
