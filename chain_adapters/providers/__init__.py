"""
Providers package - Chain adapter implementations.
"""

from chain_adapters.providers.evm import EvmAdapter
from chain_adapters.providers.solana import SolanaAdapter


__all__ = [
    "EvmAdapter",
    "SolanaAdapter",
]
