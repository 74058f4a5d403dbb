"""
Solana Chain Adapter - JSON-RPC reads against a Solana cluster.

Notes:
- getSignaturesForAddress answers newest first; this adapter reverses it
  so address history is oldest first, like every other adapter
- "Logs" are Anchor `Program data:` records; topic0 is the 8-byte event
  discriminator as 0x hex and the address is the emitting program
- Token metadata comes from the mint account itself (decimals) and its
  Token-2022 metadata extension (symbol)
"""

import asyncio
import base64
import logging
import struct
from typing import Any, Optional

from chain_adapters.base import BaseChainAdapter
from chain_adapters.exceptions import RpcError
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


TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

# spl-token mint layout
MINT_SIZE = 82
MINT_DECIMALS_OFFSET = 44
# Token-2022 pads base accounts to 165 bytes, then an account type byte
EXTENSIONS_OFFSET = 166
ACCOUNT_TYPE_MINT = 1
EXTENSION_TOKEN_METADATA = 19

PROGRAM_DATA_PREFIX = "Program data: "


def _read_borsh_string(data: bytes, offset: int) -> tuple[str, int]:
    (length,) = struct.unpack_from("<I", data, offset)
    start = offset + 4
    raw = data[start:start + length]
    if len(raw) != length:
        raise ValueError("truncated string")
    return raw.decode("utf-8"), start + length


def parse_mint(data: bytes) -> tuple[int, Optional[str]]:
    """
    Parse decimals and (Token-2022) metadata symbol from mint account data.

    Raises:
        ValueError: If the data is too short to be a mint.
    """
    if len(data) < MINT_SIZE:
        raise ValueError(f"mint data too short ({len(data)} bytes)")

    decimals = data[MINT_DECIMALS_OFFSET]
    symbol: Optional[str] = None

    if len(data) > EXTENSIONS_OFFSET and data[EXTENSIONS_OFFSET - 1] == ACCOUNT_TYPE_MINT:
        offset = EXTENSIONS_OFFSET
        while offset + 4 <= len(data):
            ext_type, length = struct.unpack_from("<HH", data, offset)
            if ext_type == 0:
                break
            value = data[offset + 4:offset + 4 + length]
            if ext_type == EXTENSION_TOKEN_METADATA:
                try:
                    # update_authority(32) | mint(32) | name | symbol | uri | ...
                    _, cursor = _read_borsh_string(value, 64)
                    symbol, _ = _read_borsh_string(value, cursor)
                except (struct.error, ValueError, UnicodeDecodeError) as e:
                    logger.debug(f"Unreadable token metadata extension: {e}")
                break
            offset += 4 + length

    return decimals, symbol or None


def parse_program_data_logs(
    log_messages: list[str],
    tx_ref: str,
    slot: Optional[int] = None,
    block_time: Optional[int] = None,
) -> list[LogEntry]:
    """Extract `Program data:` records, attributing each to the invoking program."""
    stack: list[str] = []
    entries: list[LogEntry] = []

    for line in log_messages or []:
        if line.startswith(PROGRAM_DATA_PREFIX):
            try:
                payload = base64.b64decode(line[len(PROGRAM_DATA_PREFIX):].strip())
            except ValueError:
                continue
            topics = ("0x" + payload[:8].hex(),) if len(payload) >= 8 else ()
            entries.append(LogEntry(
                address=stack[-1] if stack else "",
                topics=topics,
                data=payload,
                transaction_hash=tx_ref,
                block_ref=str(slot) if slot is not None else None,
                block_number=slot,
                log_index=len(entries),
                block_time=block_time,
            ))
            continue

        parts = line.split()
        if len(parts) >= 3 and parts[0] == "Program":
            if parts[2] == "invoke":
                stack.append(parts[1])
            elif parts[2] in ("success", "failed:") and stack:
                stack.pop()

    return entries


class SolanaAdapter(BaseChainAdapter):
    """
    Solana adapter (mainnet-beta / devnet).

    Account history is bounded by HISTORY_LIMIT signatures; bridge message
    accounts only ever see a handful of transactions.
    """

    chain = Chain.SOLANA
    capabilities = frozenset({
        AdapterCapability.PROGRAM_DERIVED_ADDRESSES,
        AdapterCapability.BATCHED_CALLS,
        AdapterCapability.ACCOUNT_HISTORY,
    })

    HISTORY_LIMIT = 1000
    LOG_SCAN_LIMIT = 25
    COMMITMENT = "confirmed"

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "solana"

    # ─────────────────────────────────────────────────────────────
    # Transactions & blocks
    # ─────────────────────────────────────────────────────────────

    async def get_transaction(self, tx_ref: str) -> Lookup[TxRecord]:
        """Fetch a transaction in jsonParsed encoding."""
        return await self._lookup(
            f"getTransaction({tx_ref})",
            lambda: self._fetch_transaction(tx_ref),
        )

    async def _fetch_transaction(self, signature: str) -> Optional[TxRecord]:
        result = await self._rpc("getTransaction", [
            signature,
            {
                "encoding": "jsonParsed",
                "maxSupportedTransactionVersion": 0,
                "commitment": self.COMMITMENT,
            },
        ])
        if not result:
            return None

        meta = result.get("meta") or {}
        slot = result.get("slot")
        block_time = result.get("blockTime")
        return TxRecord(
            chain=self.chain,
            tx_ref=signature,
            block_ref=str(slot) if slot is not None else None,
            block_time=block_time,
            succeeded=meta.get("err") is None,
            logs=tuple(parse_program_data_logs(
                meta.get("logMessages") or [], signature, slot, block_time,
            )),
            raw=result,
        )

    async def get_block_timestamp(self, block_ref: Any) -> int:
        """Fetch the estimated production time of a slot."""
        slot = int(block_ref)
        block_time = await self._rpc("getBlockTime", [slot])
        if block_time is None:
            raise RpcError(
                message=f"No block time for slot {slot}",
                adapter_name=self.name,
                chain=self.chain.value,
                method="getBlockTime",
            )
        return int(block_time)

    # ─────────────────────────────────────────────────────────────
    # Accounts
    # ─────────────────────────────────────────────────────────────

    async def get_account_raw(self, address: str) -> Lookup[AccountRecord]:
        """Fetch an account's raw data."""
        return await self._lookup(
            f"getAccountInfo({address})",
            lambda: self._fetch_account(address),
        )

    async def _fetch_account(self, address: str) -> Optional[AccountRecord]:
        result = await self._rpc("getAccountInfo", [
            address,
            {"encoding": "base64", "commitment": self.COMMITMENT},
        ])
        value = (result or {}).get("value")
        return self._parse_account(address, value)

    async def get_accounts_raw(self, addresses: list[str]) -> list[Optional[AccountRecord]]:
        """Fetch several accounts in one call; missing accounts are None."""
        if not addresses:
            return []
        result = await self._rpc("getMultipleAccounts", [
            addresses,
            {"encoding": "base64", "commitment": self.COMMITMENT},
        ])
        values = (result or {}).get("value") or []
        return [
            self._parse_account(address, value)
            for address, value in zip(addresses, values)
        ]

    def _parse_account(self, address: str, value: Optional[dict[str, Any]]) -> Optional[AccountRecord]:
        if not value:
            return None
        data_field = value.get("data") or ["", "base64"]
        encoded = data_field[0] if isinstance(data_field, list) else data_field
        return AccountRecord(
            address=address,
            data=base64.b64decode(encoded) if encoded else b"",
            owner=value.get("owner"),
            lamports=value.get("lamports"),
        )

    async def get_address_history(self, address: str) -> list[HistoryEntry]:
        """Fetch signatures for an address, oldest first."""
        result = await self._rpc("getSignaturesForAddress", [
            address,
            {"limit": self.HISTORY_LIMIT, "commitment": self.COMMITMENT},
        ])
        entries = [
            HistoryEntry(
                tx_ref=item["signature"],
                block_time=item.get("blockTime"),
                succeeded=item.get("err") is None,
                slot=item.get("slot"),
            )
            for item in result or []
        ]
        entries.reverse()
        return entries

    # ─────────────────────────────────────────────────────────────
    # Logs
    # ─────────────────────────────────────────────────────────────

    async def get_logs(self, log_filter: LogFilter) -> list[LogEntry]:
        """Scan recent transactions of filter.address for program data records."""
        if not log_filter.address:
            raise ValueError("Solana log scans need an address")

        history = await self.get_address_history(log_filter.address)
        recent = history[-(log_filter.limit or self.LOG_SCAN_LIMIT):]

        lookups = await asyncio.gather(*(self.get_transaction(h.tx_ref) for h in recent))
        entries: list[LogEntry] = []
        for lookup in lookups:
            tx = lookup.value_or_none()
            if tx is None:
                continue
            entries.extend(log for log in tx.logs if log_filter.matches(log))
        return entries

    # ─────────────────────────────────────────────────────────────
    # Tokens
    # ─────────────────────────────────────────────────────────────

    async def get_token_info(self, asset: str) -> TokenInfo:
        """Read decimals and symbol from a mint account."""
        if asset == "native":
            return TokenInfo(
                decimals=self._config.native_decimals,
                symbol=self._config.native_symbol or None,
            )

        account = (await self.get_account_raw(asset)).value_or_none()
        if account is None:
            raise RpcError(
                message=f"Mint {asset} not found",
                adapter_name=self.name,
                chain=self.chain.value,
                method="getAccountInfo",
            )

        try:
            decimals, symbol = parse_mint(account.data)
        except ValueError as e:
            raise RpcError(
                message=f"Account {asset} is not a mint: {e}",
                adapter_name=self.name,
                chain=self.chain.value,
                method="getAccountInfo",
                original_error=e,
            )
        return TokenInfo(decimals=decimals, symbol=symbol, program=account.owner)
