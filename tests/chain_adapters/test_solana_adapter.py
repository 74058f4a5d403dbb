"""
Solana Adapter Tests.

============================================================
PURPOSE
============================================================
SolanaAdapter against canned JSON-RPC responses.

TEST CATEGORIES:
- Mint parsing (spl-token and Token-2022 metadata)
- Program data records
- Transactions, accounts and history
============================================================
"""

import base64
import struct
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest

from chain_adapters.config import DEFAULT_CHAIN_CONFIGS
from chain_adapters.exceptions import RpcError
from chain_adapters.models import Chain, LogFilter, LookupStatus, Network
from chain_adapters.providers.solana import (
    TOKEN_2022_PROGRAM_ID,
    SolanaAdapter,
    parse_mint,
    parse_program_data_logs,
)


PROGRAM = "HSvNvzehozUpYhRBuCKq3Fq8udpRocTmGMUYXmCSiCCc"
MINT = "So11111111111111111111111111111111111111112"


def make_adapter() -> SolanaAdapter:
    return SolanaAdapter(replace(DEFAULT_CHAIN_CONFIGS[(Chain.SOLANA, Network.TESTNET)], max_retries=1))


def rpc_result(result):
    return {"jsonrpc": "2.0", "id": 1, "result": result}


def borsh_string(text: str) -> bytes:
    raw = text.encode()
    return struct.pack("<I", len(raw)) + raw


def mint_bytes(decimals: int) -> bytearray:
    data = bytearray(82)
    data[44] = decimals
    data[45] = 1
    return data


def token_2022_mint(decimals: int, symbol: str) -> bytes:
    data = mint_bytes(decimals)
    data.extend(b"\x00" * (165 - len(data)))
    data.append(1)  # account type: mint
    # an unrelated extension first (mint close authority)
    data.extend(struct.pack("<HH", 3, 32) + b"\x01" * 32)
    metadata = b"\x02" * 32 + b"\x03" * 32 + borsh_string("Wrapped Ether") + borsh_string(symbol) + borsh_string("https://x")
    data.extend(struct.pack("<HH", 19, len(metadata)) + metadata)
    return bytes(data)


def encoded_account(data: bytes, owner: str = PROGRAM) -> dict:
    return {"data": [base64.b64encode(data).decode(), "base64"], "owner": owner, "lamports": 5, "executable": False}


# ============================================================
# MINTS
# ============================================================

class TestParseMint:
    """Decimals and symbol from mint account bytes."""

    def test_plain_mint(self):
        assert parse_mint(bytes(mint_bytes(6))) == (6, None)

    def test_token_2022_symbol(self):
        assert parse_mint(token_2022_mint(9, "wETH")) == (9, "wETH")

    def test_too_short(self):
        with pytest.raises(ValueError):
            parse_mint(b"\x00" * 40)

    def test_broken_metadata_ignored(self):
        data = bytearray(token_2022_mint(9, "wETH"))
        del data[-20:]
        assert parse_mint(bytes(data)) == (9, None)


# ============================================================
# PROGRAM DATA
# ============================================================

class TestProgramData:
    """`Program data:` log records."""

    def test_attributed_to_invoking_program(self):
        payload = b"\xaa" * 8 + b"body"
        logs = [
            f"Program {PROGRAM} invoke [1]",
            "Program 11111111111111111111111111111111 invoke [2]",
            "Program 11111111111111111111111111111111 success",
            "Program data: " + base64.b64encode(payload).decode(),
            f"Program {PROGRAM} success",
        ]

        entries = parse_program_data_logs(logs, "sig", slot=9, block_time=100)

        assert len(entries) == 1
        assert entries[0].address == PROGRAM
        assert entries[0].topic0 == "0x" + "aa" * 8
        assert entries[0].data == payload
        assert entries[0].block_ref == "9"

    def test_short_payload_has_no_topic(self):
        entries = parse_program_data_logs(["Program data: " + base64.b64encode(b"\x01").decode()], "sig")
        assert entries[0].topics == ()

    def test_no_logs(self):
        assert parse_program_data_logs([], "sig") == []


# ============================================================
# RPC
# ============================================================

class TestSolanaRpc:
    """Reads through JSON-RPC."""

    @pytest.mark.asyncio
    async def test_transaction(self):
        adapter = make_adapter()
        payload = base64.b64encode(b"\xbb" * 8).decode()
        result = {
            "slot": 42,
            "blockTime": 1_700_000_000,
            "meta": {"err": None, "logMessages": [f"Program {PROGRAM} invoke [1]", f"Program data: {payload}"]},
            "transaction": {"message": {"instructions": []}},
        }
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result(result))) as request:
            tx = (await adapter.get_transaction("sig")).value_or_none()

        assert tx.succeeded
        assert tx.block_ref == "42"
        assert tx.block_time == 1_700_000_000
        assert tx.logs[0].address == PROGRAM
        assert tx.raw is result
        options = request.await_args.kwargs["json_body"]["params"][1]
        assert options["encoding"] == "jsonParsed"
        assert options["maxSupportedTransactionVersion"] == 0

    @pytest.mark.asyncio
    async def test_failed_transaction(self):
        adapter = make_adapter()
        result = {"slot": 1, "blockTime": None, "meta": {"err": {"InstructionError": [0, "Custom"]}}}
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result(result))):
            tx = (await adapter.get_transaction("sig")).value_or_none()

        assert not tx.succeeded

    @pytest.mark.asyncio
    async def test_missing_transaction(self):
        adapter = make_adapter()
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result(None))):
            lookup = await adapter.get_transaction("sig")

        assert lookup.status == LookupStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_history_oldest_first(self):
        adapter = make_adapter()
        newest_first = [
            {"signature": "c", "slot": 3, "blockTime": 30, "err": None},
            {"signature": "b", "slot": 2, "blockTime": 20, "err": {"InstructionError": [0, "Custom"]}},
            {"signature": "a", "slot": 1, "blockTime": 10, "err": None},
        ]
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result(newest_first))):
            history = await adapter.get_address_history(PROGRAM)

        assert [h.tx_ref for h in history] == ["a", "b", "c"]
        assert [h.succeeded for h in history] == [True, False, True]
        assert history[0].slot == 1

    @pytest.mark.asyncio
    async def test_multiple_accounts(self):
        adapter = make_adapter()
        result = {"context": {"slot": 1}, "value": [encoded_account(b"\x01\x02"), None]}
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result(result))):
            accounts = await adapter.get_accounts_raw(["A", "B"])

        assert accounts[0].data == b"\x01\x02"
        assert accounts[0].owner == PROGRAM
        assert accounts[1] is None

    @pytest.mark.asyncio
    async def test_no_accounts_requested(self):
        adapter = make_adapter()
        with patch.object(adapter, "_make_request", new=AsyncMock()) as request:
            assert await adapter.get_accounts_raw([]) == []
        request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_block_time_missing(self):
        adapter = make_adapter()
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result(None))):
            with pytest.raises(RpcError):
                await adapter.get_block_timestamp(5)

    @pytest.mark.asyncio
    async def test_get_logs_needs_address(self):
        with pytest.raises(ValueError):
            await make_adapter().get_logs(LogFilter(topics=("0x00",)))


# ============================================================
# TOKENS
# ============================================================

class TestSolanaTokenInfo:
    """Mint metadata lookups."""

    @pytest.mark.asyncio
    async def test_native(self):
        info = await make_adapter().get_token_info("native")
        assert (info.decimals, info.symbol) == (9, "SOL")

    @pytest.mark.asyncio
    async def test_token_2022_mint(self):
        adapter = make_adapter()
        result = {"context": {"slot": 1}, "value": encoded_account(token_2022_mint(9, "wETH"), TOKEN_2022_PROGRAM_ID)}
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result(result))):
            info = await adapter.get_token_info(MINT)

        assert info.decimals == 9
        assert info.symbol == "wETH"
        assert info.program == TOKEN_2022_PROGRAM_ID

    @pytest.mark.asyncio
    async def test_missing_mint(self):
        adapter = make_adapter()
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result({"value": None}))):
            with pytest.raises(RpcError):
                await adapter.get_token_info(MINT)

    @pytest.mark.asyncio
    async def test_not_a_mint(self):
        adapter = make_adapter()
        result = {"value": encoded_account(b"\x00" * 10)}
        with patch.object(adapter, "_make_request", new=AsyncMock(return_value=rpc_result(result))):
            with pytest.raises(RpcError):
                await adapter.get_token_info(MINT)


# ============================================================
# LOG SCANS
# ============================================================

class TestSolanaLogs:
    """Program data records of an address's recent transactions."""

    @pytest.mark.asyncio
    async def test_matching_records(self):
        adapter = make_adapter()
        wanted = b"\xaa" * 8 + b"x"
        other = b"\xbb" * 8 + b"y"
        transactions = {
            "a": {"slot": 1, "blockTime": 10, "meta": {"err": None, "logMessages": [
                f"Program {PROGRAM} invoke [1]",
                "Program data: " + base64.b64encode(wanted).decode(),
            ]}},
            "b": {"slot": 2, "blockTime": 20, "meta": {"err": None, "logMessages": [
                f"Program {PROGRAM} invoke [1]",
                "Program data: " + base64.b64encode(other).decode(),
            ]}},
        }

        async def answer(method, url, params=None, json_body=None):
            if json_body["method"] == "getSignaturesForAddress":
                return rpc_result([{"signature": "b", "err": None}, {"signature": "a", "err": None}])
            return rpc_result(transactions[json_body["params"][0]])

        with patch.object(adapter, "_make_request", new=AsyncMock(side_effect=answer)):
            logs = await adapter.get_logs(LogFilter(topics=("0x" + "aa" * 8,), address=PROGRAM))

        assert [log.transaction_hash for log in logs] == ["a"]
        assert logs[0].data == wanted
