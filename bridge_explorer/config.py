"""
Explorer Configuration - Network selection, chain table and query limits.

The network is never inferred: callers pass it, or BRIDGE_NETWORK must be
set. Chain endpoints come from chain_adapters.load_chain_configs() and
can be overridden through the environment (see that function).
"""

import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from dotenv import load_dotenv

from chain_adapters.config import DEFAULT_CHAIN_CONFIGS, ChainConfig, load_chain_configs
from chain_adapters.exceptions import ConfigurationError
from chain_adapters.models import Chain, Network


DEFAULT_QUERY_TIMEOUT_SECONDS = 60.0


def parse_network(value: Union[Network, str]) -> Network:
    """Parse "mainnet" / "testnet" (case-insensitive)."""
    if isinstance(value, Network):
        return value
    try:
        return Network(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(
            message=f"Unknown network {value!r}, expected one of {[n.value for n in Network]}",
            config_key="BRIDGE_NETWORK",
        )


@dataclass(frozen=True)
class ExplorerConfig:
    """Main configuration for lifecycle queries."""
    network: Network
    chains: dict[tuple[Chain, Network], ChainConfig] = field(
        default_factory=lambda: dict(DEFAULT_CHAIN_CONFIGS)
    )

    # Whole-query deadline; None disables it
    query_timeout: Optional[float] = DEFAULT_QUERY_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if not isinstance(self.network, Network):
            object.__setattr__(self, "network", parse_network(self.network))
        if self.query_timeout is not None and self.query_timeout <= 0:
            raise ConfigurationError(
                message="query_timeout must be positive",
                config_key="BRIDGE_QUERY_TIMEOUT",
            )

    def chain_config(self, chain: Chain) -> ChainConfig:
        """Config of a chain on the selected network."""
        config = self.chains.get((chain, self.network))
        if config is None:
            raise ConfigurationError(
                message=f"No {self.network.value} configuration for {chain.value}",
                chain=chain.value,
            )
        return config

    @classmethod
    def from_env(
        cls,
        network: Optional[Union[Network, str]] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "ExplorerConfig":
        """
        Build config from the environment (.env is loaded when env is None).

        Variables:
            BRIDGE_NETWORK: mainnet | testnet (required unless network is passed)
            BRIDGE_QUERY_TIMEOUT: seconds, optional

        Raises:
            ConfigurationError: If no network is given or a value is invalid.
        """
        if env is None:
            load_dotenv()
            env = os.environ

        selected = network or env.get("BRIDGE_NETWORK")
        if not selected:
            raise ConfigurationError(
                message="Network must be chosen explicitly (mainnet or testnet)",
                config_key="BRIDGE_NETWORK",
            )

        timeout: Optional[float] = DEFAULT_QUERY_TIMEOUT_SECONDS
        raw_timeout = env.get("BRIDGE_QUERY_TIMEOUT")
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise ConfigurationError(
                    message=f"BRIDGE_QUERY_TIMEOUT must be a number, got {raw_timeout!r}",
                    config_key="BRIDGE_QUERY_TIMEOUT",
                )

        return cls(
            network=parse_network(selected),
            chains=load_chain_configs(env),
            query_timeout=timeout,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "network": self.network.value,
            "query_timeout": self.query_timeout,
            "chains": {
                chain.value: self.chain_config(chain).to_dict()
                for chain in Chain
                if (chain, self.network) in self.chains
            },
        }
