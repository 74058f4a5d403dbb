"""
Bridge Explorer Engine - One query from raw reference to ExploreResult.

Flow:
    classify reference -> identify on its chain -> correlate across chains

Each query gets fresh adapters (closed when it ends) and runs under a
single deadline; when the deadline passes, the query is cancelled and no
partial lifecycle is returned.
"""

import asyncio
import logging
from typing import Optional

from chain_adapters.models import Chain
from chain_adapters.registry import AdapterRegistry, create_default_registry

from bridge_explorer.config import ExplorerConfig
from bridge_explorer.correlator import Correlator, Identification
from bridge_explorer.decoding.evm import EvmMessageDecoder
from bridge_explorer.decoding.solana import SolanaMessageDecoder
from bridge_explorer.exceptions import ExploreTimeoutError, InvalidReferenceError
from bridge_explorer.models import ExploreResult
from bridge_explorer.reference import ChainHint, Reference, classify_reference


logger = logging.getLogger(__name__)


class BridgeExplorer:
    """
    Lifecycle lookups for bridge transfers between Base and Solana.

    Usage:
        explorer = BridgeExplorer(ExplorerConfig(network=Network.TESTNET))
        result = await explorer.explore("0x5f0c...")
        print(result.lifecycle.status)
    """

    def __init__(
        self,
        config: ExplorerConfig,
        registry: Optional[AdapterRegistry] = None,
    ) -> None:
        self._config = config
        self._registry = registry or create_default_registry()

    @property
    def config(self) -> ExplorerConfig:
        return self._config

    async def explore(self, raw_reference: str, timeout: Optional[float] = None) -> ExploreResult:
        """
        Explain what a transaction is to the bridge and, if it belongs to a
        message, the message's full lifecycle.

        Args:
            raw_reference: EVM transaction hash or Solana signature
            timeout: Seconds for the whole query; defaults to config.query_timeout

        Raises:
            InvalidReferenceError: The reference fits neither chain
            TransactionNotFoundError / UnrecognizedTransactionError
            UnsupportedMessageKindError / DecodeError
            UpstreamUnavailableError: A chain stayed unreachable after retries
            ConfigurationError: Missing credentials or deployment addresses
            ExploreTimeoutError: The deadline passed
        """
        reference = classify_reference(raw_reference)
        if not reference.is_known:
            raise InvalidReferenceError(
                "Reference is neither an EVM transaction hash nor a Solana signature",
                reference=raw_reference,
            )

        deadline = timeout if timeout is not None else self._config.query_timeout
        logger.info(f"Exploring {reference.chain_hint.value} reference {raw_reference} on {self._config.network.value}")

        try:
            return await asyncio.wait_for(self._explore(reference), deadline)
        except asyncio.TimeoutError as e:
            raise ExploreTimeoutError(
                f"Query did not finish within {deadline}s",
                timeout_seconds=deadline,
                reference=raw_reference,
                original_error=e,
            )

    async def _explore(self, reference: Reference) -> ExploreResult:
        async with self._registry.create_set(self._config.chains, self._config.network) as adapters:
            evm = EvmMessageDecoder(adapters[Chain.EVM])
            solana = SolanaMessageDecoder(adapters[Chain.SOLANA])

            identification = await self._identify(reference, evm, solana)
            lifecycle = await Correlator(evm, solana).correlate(identification)

            return ExploreResult(
                reference=reference,
                entity_kind=identification.kind,
                lifecycle=lifecycle,
            )

    async def _identify(
        self,
        reference: Reference,
        evm: EvmMessageDecoder,
        solana: SolanaMessageDecoder,
    ) -> Identification:
        if reference.chain_hint == ChainHint.EVM:
            return await evm.identify(reference.raw_value.strip())
        return await solana.identify(reference.raw_value.strip())
