"""
Base Chain Adapter - Abstract read interface over one chain's RPC surface.

All adapters MUST:
- Expose the same six read operations
- Return point lookups as Lookup (FOUND / NOT_FOUND / ERROR)
- Return address history oldest first
- Retry transport failures only, with bounded exponential backoff
- Hold no state shared between queries
"""

import asyncio
import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from chain_adapters.config import ChainConfig
from chain_adapters.exceptions import (
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
    TokenInfo,
    TxRecord,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

# JSON-RPC error codes nodes use for throttling
RATE_LIMIT_RPC_CODES = {-32005, -32429, 429}


class BaseChainAdapter(ABC):
    """
    Abstract base class for chain adapters.

    Each adapter must implement the six read operations. Optional features
    are advertised through `capabilities` so callers can pick a strategy
    without isinstance checks.

    Features:
    - JSON-RPC transport with typed errors
    - Bounded retry with exponential backoff
    - Owned aiohttp session closed by the async context manager
    """

    interface_version = 1
    chain: Chain
    capabilities: frozenset = frozenset()

    def __init__(
        self,
        config: ChainConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if config.chain != self.chain:
            raise ConfigurationError(
                message=f"{self.__class__.__name__} cannot use a {config.chain.value} config",
                adapter_name=self.__class__.__name__,
                chain=config.chain.value,
            )
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._request_ids = itertools.count(1)

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this adapter."""
        pass

    @property
    def config(self) -> ChainConfig:
        return self._config

    def supports(self, capability: AdapterCapability) -> bool:
        return capability in self.capabilities

    # ─────────────────────────────────────────────────────────────
    # Read interface
    # ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_transaction(self, tx_ref: str) -> Lookup[TxRecord]:
        """Fetch a transaction (with its logs where the chain has them)."""
        pass

    @abstractmethod
    async def get_logs(self, log_filter: LogFilter) -> list[LogEntry]:
        """Fetch log entries matching a topic filter."""
        pass

    @abstractmethod
    async def get_account_raw(self, address: str) -> Lookup[AccountRecord]:
        """Fetch the raw bytes stored at an address."""
        pass

    @abstractmethod
    async def get_address_history(self, address: str) -> list[HistoryEntry]:
        """Fetch transactions touching an address, oldest first."""
        pass

    @abstractmethod
    async def get_block_timestamp(self, block_ref: Any) -> int:
        """Fetch a block's unix timestamp."""
        pass

    @abstractmethod
    async def get_token_info(self, asset: str) -> TokenInfo:
        """Fetch decimals and display symbol for a chain-native asset."""
        pass

    # ─────────────────────────────────────────────────────────────
    # Retry
    # ─────────────────────────────────────────────────────────────

    async def _call_with_retry(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """Run func once, then retry retryable transport failures up to max_retries times."""
        max_retries = max(0, self._config.max_retries)
        attempts = max_retries + 1
        last_error: Optional[FetchError] = None

        for attempt in range(attempts):
            try:
                return await func()

            except FetchError as e:
                if not e.is_retryable:
                    raise
                last_error = e
                if attempt >= max_retries:
                    break

                wait_time = self._config.retry_initial_delay * (
                    self._config.retry_backoff_base ** attempt
                )
                logger.warning(
                    f"[{self.name}] Retry {attempt + 1}/{max_retries} for {operation} "
                    f"in {wait_time:.1f}s: {e}"
                )
                await asyncio.sleep(wait_time)

        raise UpstreamUnavailableError(
            message=f"{operation} failed after {attempts} attempts",
            adapter_name=self.name,
            chain=self.chain.value,
            attempts=attempts,
            original_error=last_error,
        )

    async def _lookup(
        self,
        operation: str,
        func: Callable[[], Awaitable[Optional[T]]],
    ) -> Lookup[T]:
        """Wrap a point lookup; None from func means NOT_FOUND."""
        try:
            value = await func()
        except ConfigurationError:
            raise
        except ChainAdapterError as e:
            logger.warning(f"[{self.name}] {operation} could not be checked: {e}")
            return Lookup.failed(e)

        if value is None:
            logger.debug(f"[{self.name}] {operation}: not found")
            return Lookup.not_found()
        return Lookup.found(value)

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": "BridgeExplorer/1.0",
        }

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make one HTTP request and decode its JSON body."""
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
            ) as response:
                latency_ms = (time.time() - start_time) * 1000
                logger.debug(f"[{self.name}] {method} {url} -> {response.status} ({latency_ms:.0f}ms)")

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        adapter_name=self.name,
                        chain=self.chain.value,
                        retry_after_seconds=float(retry_after) if retry_after else None,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        adapter_name=self.name,
                        chain=self.chain.value,
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=url,
                    )

                return await response.json(content_type=None)

        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                adapter_name=self.name,
                chain=self.chain.value,
                request_url=url,
                original_error=e,
            )
        except asyncio.TimeoutError as e:
            raise FetchError(
                message="Request timed out",
                adapter_name=self.name,
                chain=self.chain.value,
                request_url=url,
                original_error=e,
            )

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """Call a JSON-RPC method on the configured node, with retry."""
        return await self._call_with_retry(
            method,
            lambda: self._rpc_once(method, params),
        )

    async def _rpc_once(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        response = await self._make_request("POST", self._config.rpc_url, json_body=payload)

        if not isinstance(response, dict):
            raise FetchError(
                message=f"Malformed JSON-RPC response for {method}",
                adapter_name=self.name,
                chain=self.chain.value,
                response_body=str(response)[:500],
                request_url=self._config.rpc_url,
            )

        error = response.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if code in RATE_LIMIT_RPC_CODES:
                raise RateLimitError(
                    message=f"{method} rate limited: {message}",
                    adapter_name=self.name,
                    chain=self.chain.value,
                )
            raise RpcError(
                message=f"{method} failed: {message}",
                adapter_name=self.name,
                chain=self.chain.value,
                code=code,
                method=method,
            )

        return response.get("result")

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseChainAdapter":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__}(name={self.name}, "
            f"network={self._config.network.value})>"
        )
