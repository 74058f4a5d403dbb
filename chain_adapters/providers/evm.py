"""
EVM Chain Adapter - JSON-RPC node plus explorer log API.

Reads from:
- A JSON-RPC node (receipts, blocks, code, eth_call)
- An Etherscan V2 compatible explorer (or a proxy exposing the same
  query interface) for topic-filtered logs and address history

Token decimals and symbol are read in one Multicall3 `aggregate3` call
when a multicall address is configured, otherwise with two concurrent
`eth_call`s.
"""

import asyncio
import logging
from typing import Any, Optional

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from web3 import Web3

from chain_adapters.base import BaseChainAdapter
from chain_adapters.exceptions import (
    ConfigurationError,
    FetchError,
    RateLimitError,
    RpcError,
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


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


SYMBOL_SELECTOR = _selector("symbol()")
DECIMALS_SELECTOR = _selector("decimals()")
AGGREGATE3_SELECTOR = _selector("aggregate3((address,bool,bytes)[])")

# JSON-RPC error code geth and its forks use for a reverted eth_call
EXECUTION_REVERTED_CODE = 3


def is_execution_revert(error: RpcError) -> bool:
    """True when the node answered that the call itself reverted."""
    return error.code == EXECUTION_REVERTED_CODE or "execution reverted" in error.message.lower()


def hex_to_int(value: Any) -> Optional[int]:
    """Parse a quantity that may be 0x-hex, decimal text, an int or empty."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text in ("", "0x"):
        return 0 if text == "0x" else None
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def hex_to_bytes(value: Optional[str]) -> bytes:
    if not value:
        return b""
    text = value[2:] if value.lower().startswith("0x") else value
    return bytes.fromhex(text)


def decode_symbol(data: bytes) -> Optional[str]:
    """Decode an ERC-20 symbol() return value (string or legacy bytes32)."""
    if not data:
        return None
    try:
        (symbol,) = abi_decode(["string"], data)
        return symbol or None
    except Exception:
        pass
    if len(data) == 32:
        text = data.rstrip(b"\x00").decode("utf-8", errors="ignore")
        return text or None
    return None


def decode_decimals(data: bytes) -> Optional[int]:
    if not data:
        return None
    try:
        (decimals,) = abi_decode(["uint8"], data)
        return int(decimals)
    except Exception:
        return None


class EvmAdapter(BaseChainAdapter):
    """
    EVM adapter (Base / Base Sepolia).

    Address history comes from the explorer `account/txlist` action sorted
    ascending, so it is oldest first like every other adapter.
    """

    chain = Chain.EVM
    capabilities = frozenset({
        AdapterCapability.INDEXED_EVENT_LOGS,
        AdapterCapability.BATCHED_CALLS,
        AdapterCapability.ACCOUNT_HISTORY,
    })

    HISTORY_PAGE_SIZE = 1000

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "evm"

    # ─────────────────────────────────────────────────────────────
    # Transactions & blocks
    # ─────────────────────────────────────────────────────────────

    async def get_transaction(self, tx_ref: str) -> Lookup[TxRecord]:
        """Fetch a transaction receipt and its logs."""
        return await self._lookup(
            f"eth_getTransactionReceipt({tx_ref})",
            lambda: self._fetch_receipt(tx_ref),
        )

    async def _fetch_receipt(self, tx_hash: str) -> Optional[TxRecord]:
        receipt = await self._rpc("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            return None

        logs = tuple(self._parse_log(raw) for raw in receipt.get("logs") or [])
        return TxRecord(
            chain=self.chain,
            tx_ref=receipt.get("transactionHash", tx_hash),
            block_ref=receipt.get("blockHash"),
            block_time=None,
            succeeded=hex_to_int(receipt.get("status")) == 1,
            logs=logs,
            raw=receipt,
        )

    async def get_block_timestamp(self, block_ref: Any) -> int:
        """Fetch a block by hash (0x + 64 hex) or by number."""
        if isinstance(block_ref, str) and len(block_ref) == 66:
            block = await self._rpc("eth_getBlockByHash", [block_ref, False])
        else:
            block = await self._rpc("eth_getBlockByNumber", [hex(hex_to_int(block_ref)), False])

        if not block:
            raise RpcError(
                message=f"Block {block_ref} not found",
                adapter_name=self.name,
                chain=self.chain.value,
                method="getBlock",
            )
        return hex_to_int(block["timestamp"])

    async def get_account_raw(self, address: str) -> Lookup[AccountRecord]:
        """Fetch contract code; externally owned accounts are NOT_FOUND."""
        return await self._lookup(
            f"eth_getCode({address})",
            lambda: self._fetch_code(address),
        )

    async def _fetch_code(self, address: str) -> Optional[AccountRecord]:
        code = hex_to_bytes(await self._rpc("eth_getCode", [address, "latest"]))
        if not code:
            return None
        return AccountRecord(address=address, data=code)

    # ─────────────────────────────────────────────────────────────
    # Explorer
    # ─────────────────────────────────────────────────────────────

    async def get_logs(self, log_filter: LogFilter) -> list[LogEntry]:
        """Fetch logs matching a topic filter from the explorer."""
        params = log_filter.to_explorer_params()
        result = await self._call_with_retry(
            "getLogs",
            lambda: self._explorer_request(params),
        )
        entries = [self._parse_log(raw) for raw in result]
        if log_filter.limit:
            entries = entries[:log_filter.limit]
        logger.debug(f"[{self.name}] getLogs {params.get('topic0')} -> {len(entries)} entries")
        return entries

    async def get_address_history(self, address: str) -> list[HistoryEntry]:
        """Fetch normal transactions of an address, oldest first."""
        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": "0",
            "endblock": "latest",
            "page": "1",
            "offset": str(self.HISTORY_PAGE_SIZE),
            "sort": "asc",
        }
        result = await self._call_with_retry(
            "txlist",
            lambda: self._explorer_request(params),
        )
        return [
            HistoryEntry(
                tx_ref=item["hash"],
                block_time=hex_to_int(item.get("timeStamp")),
                succeeded=str(item.get("isError", "0")) == "0",
                slot=hex_to_int(item.get("blockNumber")),
            )
            for item in result
        ]

    async def _explorer_request(self, params: dict[str, str]) -> list[dict[str, Any]]:
        """Make an explorer request with result unwrapping."""
        url = self._config.require("explorer_api_url")
        query = {"chainid": str(self._config.require("chain_id")), **params}

        if self._config.explorer_api_key:
            query["apikey"] = self._config.explorer_api_key
        elif self._config.explorer_requires_api_key:
            raise ConfigurationError(
                message="Explorer API key not configured",
                adapter_name=self.name,
                config_key="ETHERSCAN_API_KEY",
                chain=self.chain.value,
            )

        try:
            response = await self._make_request("GET", url, params=query)
        except FetchError as e:
            # The log proxy answers 500 when its own key is unset
            if e.status_code == 500 and "not configured" in (e.response_body or "").lower():
                raise ConfigurationError(
                    message="Explorer proxy API key not configured",
                    adapter_name=self.name,
                    config_key="ETHERSCAN_API_KEY",
                    chain=self.chain.value,
                    original_error=e,
                )
            raise

        if not isinstance(response, dict):
            raise FetchError(
                message="Malformed explorer response",
                adapter_name=self.name,
                chain=self.chain.value,
                response_body=str(response)[:500],
                request_url=url,
            )

        # Etherscan wraps responses in {"status": "1", "message": "OK", "result": [...]}
        status = str(response.get("status", "0"))
        message = str(response.get("message", ""))
        result = response.get("result")

        if status == "1" and isinstance(result, list):
            return result

        detail = result if isinstance(result, str) else message
        lowered = f"{message} {detail}".lower()

        if "no records found" in lowered or "no transactions found" in lowered or result == []:
            return []

        if "rate limit" in lowered:
            raise RateLimitError(
                message=f"Explorer rate limit exceeded: {detail}",
                adapter_name=self.name,
                chain=self.chain.value,
            )

        if "api key" in lowered:
            raise ConfigurationError(
                message=f"Explorer rejected API key: {detail}",
                adapter_name=self.name,
                config_key="ETHERSCAN_API_KEY",
                chain=self.chain.value,
            )

        raise FetchError(
            message=f"Explorer API error: {detail}",
            adapter_name=self.name,
            chain=self.chain.value,
            response_body=str(response)[:500],
            request_url=url,
            retryable=False,
        )

    def _parse_log(self, raw: dict[str, Any]) -> LogEntry:
        return LogEntry(
            address=raw.get("address", ""),
            topics=tuple(str(t).lower() for t in raw.get("topics") or []),
            data=hex_to_bytes(raw.get("data")),
            transaction_hash=raw.get("transactionHash", ""),
            block_ref=raw.get("blockHash"),
            block_number=hex_to_int(raw.get("blockNumber")),
            log_index=hex_to_int(raw.get("logIndex")),
            block_time=hex_to_int(raw.get("timeStamp")),
        )

    # ─────────────────────────────────────────────────────────────
    # Tokens
    # ─────────────────────────────────────────────────────────────

    async def get_token_info(self, asset: str) -> TokenInfo:
        """Read ERC-20 decimals and symbol; the zero address is the native asset."""
        if asset in ("native", ZERO_ADDRESS) or int(asset, 16) == 0:
            return TokenInfo(
                decimals=self._config.native_decimals,
                symbol=self._config.native_symbol or None,
            )

        token = Web3.to_checksum_address(asset)
        if self._config.multicall_address:
            symbol_data, decimals_data = await self._multicall_token_fields(token)
        else:
            symbol_data, decimals_data = await asyncio.gather(
                self._eth_call(token, SYMBOL_SELECTOR),
                self._eth_call(token, DECIMALS_SELECTOR),
            )

        decimals = decode_decimals(decimals_data)
        if decimals is None:
            raise RpcError(
                message=f"decimals() returned no value for {token}",
                adapter_name=self.name,
                chain=self.chain.value,
                method="eth_call",
            )

        return TokenInfo(decimals=decimals, symbol=decode_symbol(symbol_data))

    async def _eth_call(self, to: str, data: bytes) -> bytes:
        try:
            result = await self._rpc("eth_call", [{"to": to, "data": "0x" + data.hex()}, "latest"])
        except RpcError as e:
            if not is_execution_revert(e):
                raise
            logger.debug(f"[{self.name}] eth_call to {to} reverted: {e}")
            return b""
        return hex_to_bytes(result)

    async def _multicall_token_fields(self, token: str) -> tuple[bytes, bytes]:
        calls = [
            (token, True, SYMBOL_SELECTOR),
            (token, True, DECIMALS_SELECTOR),
        ]
        calldata = AGGREGATE3_SELECTOR + abi_encode(["(address,bool,bytes)[]"], [calls])
        raw = await self._eth_call(Web3.to_checksum_address(self._config.multicall_address), calldata)
        if not raw:
            return b"", b""

        (results,) = abi_decode(["(bool,bytes)[]"], raw)
        fields = [bytes(data) if success else b"" for success, data in results]
        while len(fields) < 2:
            fields.append(b"")
        return fields[0], fields[1]
