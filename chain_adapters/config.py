"""
Chain Configuration - Endpoints and bridge deployments per chain and network.

Every (chain, network) pair has exactly one ChainConfig. Adapters receive
their config at construction and never read module globals or the
environment themselves. Deployments that are not live yet are None and
surface as ConfigurationError when used.
"""

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from chain_adapters.exceptions import ConfigurationError
from chain_adapters.models import Chain, Network


MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"
ETHERSCAN_V2_API_URL = "https://api.etherscan.io/v2/api"

# Values shipped in sample env files that mean "not configured"
_PLACEHOLDER_VALUES = {"", "your_etherscan_api_key_here"}


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for one chain on one network."""
    chain: Chain
    network: Network
    display_name: str
    rpc_url: str

    # Bridge deployment (EVM bridge contract or Solana bridge program)
    bridge_address: Optional[str] = None
    validator_address: Optional[str] = None  # EVM only

    # EVM extras
    chain_id: Optional[int] = None
    explorer_api_url: Optional[str] = None
    explorer_api_key: Optional[str] = None
    explorer_requires_api_key: bool = False
    multicall_address: Optional[str] = None

    native_symbol: str = ""
    native_decimals: int = 18
    tx_url_template: str = ""

    # Requests
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_initial_delay: float = 0.5
    retry_backoff_base: float = 2.0

    @property
    def env_prefix(self) -> str:
        return ENV_PREFIXES[(self.chain, self.network)]

    def require(self, field_name: str) -> Any:
        """
        Return a configured value or fail loudly.

        Raises:
            ConfigurationError: If the value is unset.
        """
        value = getattr(self, field_name)
        if value is None or value == "":
            raise ConfigurationError(
                message=f"{field_name} is not configured for {self.display_name}",
                config_key=f"{self.env_prefix}_{field_name.upper()}",
                chain=self.chain.value,
            )
        return value

    def tx_url(self, tx_ref: str) -> Optional[str]:
        """Block explorer link for a transaction."""
        if not self.tx_url_template or not tx_ref:
            return None
        return self.tx_url_template.format(tx=tx_ref)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain": self.chain.value,
            "network": self.network.value,
            "display_name": self.display_name,
            "rpc_url": self.rpc_url,
            "bridge_address": self.bridge_address,
            "validator_address": self.validator_address,
            "chain_id": self.chain_id,
            "explorer_api_url": self.explorer_api_url,
            "explorer_api_key_set": bool(self.explorer_api_key),
            "multicall_address": self.multicall_address,
        }


ENV_PREFIXES: dict[tuple[Chain, Network], str] = {
    (Chain.EVM, Network.MAINNET): "BASE",
    (Chain.EVM, Network.TESTNET): "BASE_SEPOLIA",
    (Chain.SOLANA, Network.MAINNET): "SOLANA",
    (Chain.SOLANA, Network.TESTNET): "SOLANA_DEVNET",
}


DEFAULT_CHAIN_CONFIGS: dict[tuple[Chain, Network], ChainConfig] = {
    (Chain.EVM, Network.MAINNET): ChainConfig(
        chain=Chain.EVM,
        network=Network.MAINNET,
        display_name="Base",
        rpc_url="https://mainnet.base.org",
        chain_id=8453,
        explorer_api_url=ETHERSCAN_V2_API_URL,
        explorer_requires_api_key=True,
        multicall_address=MULTICALL3_ADDRESS,
        native_symbol="ETH",
        native_decimals=18,
        tx_url_template="https://basescan.org/tx/{tx}",
    ),
    (Chain.EVM, Network.TESTNET): ChainConfig(
        chain=Chain.EVM,
        network=Network.TESTNET,
        display_name="Base Sepolia",
        rpc_url="https://sepolia.base.org",
        bridge_address="0xB2068ECCDb908902C76E3f965c1712a9cF64171E",
        validator_address="0x8D2cD165360ACF5f0145661a8FB0Ff5D3729Ef9A",
        chain_id=84532,
        explorer_api_url=ETHERSCAN_V2_API_URL,
        explorer_requires_api_key=True,
        multicall_address=MULTICALL3_ADDRESS,
        native_symbol="ETH",
        native_decimals=18,
        tx_url_template="https://sepolia.basescan.org/tx/{tx}",
    ),
    (Chain.SOLANA, Network.MAINNET): ChainConfig(
        chain=Chain.SOLANA,
        network=Network.MAINNET,
        display_name="Solana",
        rpc_url="https://api.mainnet-beta.solana.com",
        native_symbol="SOL",
        native_decimals=9,
        tx_url_template="https://explorer.solana.com/tx/{tx}",
    ),
    (Chain.SOLANA, Network.TESTNET): ChainConfig(
        chain=Chain.SOLANA,
        network=Network.TESTNET,
        display_name="Solana Devnet",
        rpc_url="https://api.devnet.solana.com",
        bridge_address="HSvNvzehozUpYhRBuCKq3Fq8udpRocTmGMUYXmCSiCCc",
        native_symbol="SOL",
        native_decimals=9,
        tx_url_template="https://explorer.solana.com/tx/{tx}?cluster=devnet",
    ),
}


def _env_value(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key)
    if value is None or value.strip() in _PLACEHOLDER_VALUES:
        return None
    return value.strip()


def load_chain_configs(
    env: Optional[Mapping[str, str]] = None,
) -> dict[tuple[Chain, Network], ChainConfig]:
    """
    Build the chain config table, applying environment overrides.

    Recognised variables per prefix (BASE, BASE_SEPOLIA, SOLANA,
    SOLANA_DEVNET): <PREFIX>_RPC_URL, <PREFIX>_BRIDGE_ADDRESS,
    <PREFIX>_VALIDATOR_ADDRESS, <PREFIX>_EXPLORER_API_URL. The explorer API
    key is shared: ETHERSCAN_API_KEY.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    api_key = _env_value(env, "ETHERSCAN_API_KEY")
    configs: dict[tuple[Chain, Network], ChainConfig] = {}

    for key, default in DEFAULT_CHAIN_CONFIGS.items():
        prefix = ENV_PREFIXES[key]
        overrides: dict[str, Any] = {}

        for field_name in ("rpc_url", "bridge_address", "validator_address", "explorer_api_url"):
            value = _env_value(env, f"{prefix}_{field_name.upper()}")
            if value is not None:
                overrides[field_name] = value

        if default.chain == Chain.EVM and api_key:
            overrides["explorer_api_key"] = api_key

        # A self-hosted log proxy injects the key itself
        if "explorer_api_url" in overrides and overrides["explorer_api_url"] != ETHERSCAN_V2_API_URL:
            overrides["explorer_requires_api_key"] = False

        configs[key] = replace(default, **overrides) if overrides else default

    return configs
