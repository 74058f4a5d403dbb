"""
Bridge Explorer Engine Tests.

============================================================
PURPOSE
============================================================
End-to-end queries against in-memory chains: identification,
forward and reverse correlation, degradation and deadlines.

TEST CATEGORIES:
- Solana -> Base lifecycles
- Base -> Solana lifecycles
- Entry point consistency
- Errors and partial failures
============================================================
"""

import logging

import pytest

from chain_adapters.exceptions import ConfigurationError, UpstreamUnavailableError
from chain_adapters.models import Chain, Network
from bridge_explorer.engine import BridgeExplorer
from bridge_explorer.config import ExplorerConfig
from bridge_explorer.exceptions import (
    ExploreTimeoutError,
    InvalidReferenceError,
    TransactionNotFoundError,
    UnrecognizedTransactionError,
    UnsupportedMessageKindError,
)
from bridge_explorer.models import BridgeStatus, EntityKind, Stage, TransferVariant, to_utc

from tests.bridge_explorer.fakes import (
    T0,
    BridgeWorld,
    evm_address,
    evm_hash,
    evm_log,
    signature,
)


@pytest.fixture
def world():
    return BridgeWorld()


# ============================================================
# SOLANA -> BASE
# ============================================================

class TestSolanaToBase:
    """Messages initiated on Solana."""

    @pytest.mark.asyncio
    async def test_full_lifecycle_from_initiation(self, world):
        transfer = world.solana_to_base()

        result = await world.explorer().explore(transfer.init_sig)

        assert result.entity_kind == EntityKind.INITIATION
        lifecycle = result.lifecycle
        assert lifecycle.message_hash == transfer.message_hash
        assert lifecycle.status == BridgeStatus.EXECUTED
        assert [e.stage for e in lifecycle.events] == [Stage.INIT, Stage.VALIDATE, Stage.EXECUTE]
        assert [e.transaction_hash for e in lifecycle.events] == [
            transfer.init_sig, transfer.validate_tx, transfer.execute_tx,
        ]
        assert lifecycle.events[0].block_timestamp == to_utc(T0)
        assert lifecycle.events[2].block_timestamp == to_utc(T0 + 120)

    @pytest.mark.asyncio
    async def test_message_fields(self, world):
        transfer = world.solana_to_base()

        message = (await world.explorer().explore(transfer.init_sig)).lifecycle.message

        assert message.source_chain == Chain.SOLANA
        assert message.dest_chain == Chain.EVM
        assert message.variant == TransferVariant.NATIVE
        assert message.sender == transfer.sender
        assert message.receiver == transfer.receiver
        assert message.raw_amount == str(transfer.amount)
        assert message.display_amount == "1.5"
        assert message.symbol == "SOL"
        assert message.nonce == 7

    @pytest.mark.asyncio
    async def test_initiation_only_is_pending(self, world):
        transfer = world.solana_to_base(validated=False, executed=False)

        lifecycle = (await world.explorer().explore(transfer.init_sig)).lifecycle

        assert [e.stage for e in lifecycle.events] == [Stage.INIT]
        assert lifecycle.status == BridgeStatus.PENDING
        assert lifecycle.failed_attempts == ()

    @pytest.mark.asyncio
    async def test_validated_only(self, world):
        transfer = world.solana_to_base(executed=False)

        lifecycle = (await world.explorer().explore(transfer.init_sig)).lifecycle

        assert lifecycle.status == BridgeStatus.VALIDATED
        assert lifecycle.event(Stage.EXECUTE) is None

    @pytest.mark.asyncio
    async def test_failed_relays_listed_separately(self, world):
        transfer = world.solana_to_base(failed_attempts=2)

        lifecycle = (await world.explorer().explore(transfer.init_sig)).lifecycle

        assert lifecycle.status == BridgeStatus.EXECUTED
        assert [e.transaction_hash for e in lifecycle.failed_attempts] == transfer.failed_txs
        assert all(e.stage == Stage.EXECUTE for e in lifecycle.failed_attempts)

    @pytest.mark.asyncio
    async def test_destination_queries_are_by_hash(self, world):
        transfer = world.solana_to_base()

        await world.explorer().explore(transfer.init_sig)

        topics = [(c.get("topic0"), c.get("topic1"), c.get("topic2")) for c in world.evm.explorer_calls]
        assert all(transfer.message_hash in t for t in topics)
        assert len(world.evm.explorer_calls) == 3

    @pytest.mark.asyncio
    async def test_unsupported_message(self, world):
        transfer = world.solana_to_base(validated=False, executed=False, message_tag=0)

        with pytest.raises(UnsupportedMessageKindError):
            await world.explorer().explore(transfer.init_sig)


# ============================================================
# BASE -> SOLANA
# ============================================================

class TestBaseToSolana:
    """Messages initiated on Base."""

    @pytest.mark.asyncio
    async def test_full_lifecycle_from_initiation(self, world):
        transfer = world.base_to_solana()

        result = await world.explorer().explore(transfer.init_tx)

        assert result.entity_kind == EntityKind.INITIATION
        lifecycle = result.lifecycle
        assert lifecycle.status == BridgeStatus.EXECUTED
        assert [e.transaction_hash for e in lifecycle.events] == [
            transfer.init_tx, transfer.validate_sig, transfer.execute_sig,
        ]
        assert lifecycle.message.display_amount == "0.1"
        assert lifecycle.message.symbol == "ETH"

    @pytest.mark.asyncio
    async def test_single_signature_means_validated(self, world):
        transfer = world.base_to_solana(executed=False)

        lifecycle = (await world.explorer().explore(transfer.init_tx)).lifecycle

        assert lifecycle.status == BridgeStatus.VALIDATED
        assert lifecycle.event(Stage.VALIDATE).transaction_hash == transfer.validate_sig

    @pytest.mark.asyncio
    async def test_no_signatures_means_pending(self, world):
        transfer = world.base_to_solana(validated=False, executed=False)

        lifecycle = (await world.explorer().explore(transfer.init_tx)).lifecycle

        assert lifecycle.status == BridgeStatus.PENDING
        assert len(lifecycle.events) == 1

    @pytest.mark.asyncio
    async def test_failed_relay_on_solana(self, world):
        transfer = world.base_to_solana(failed_attempts=1)

        lifecycle = (await world.explorer().explore(transfer.init_tx)).lifecycle

        assert lifecycle.status == BridgeStatus.EXECUTED
        assert lifecycle.event(Stage.EXECUTE).transaction_hash == transfer.execute_sig
        assert [e.transaction_hash for e in lifecycle.failed_attempts] == transfer.failed_sigs

    @pytest.mark.asyncio
    async def test_failed_relay_reference(self, world):
        transfer = world.base_to_solana(failed_attempts=1, executed=False)

        result = await world.explorer().explore(transfer.failed_sigs[0])

        assert result.entity_kind == EntityKind.FAILED_EXECUTION
        assert result.lifecycle.status == BridgeStatus.VALIDATED
        assert len(result.lifecycle.failed_attempts) == 1

    @pytest.mark.asyncio
    async def test_explorer_urls(self, world):
        transfer = world.base_to_solana()

        lifecycle = (await world.explorer().explore(transfer.init_tx)).lifecycle

        assert lifecycle.events[0].explorer_url == f"https://sepolia.basescan.org/tx/{transfer.init_tx}"
        assert lifecycle.events[1].explorer_url.endswith("?cluster=devnet")
        assert lifecycle.events[1].chain_name == "Solana Devnet"


# ============================================================
# ENTRY POINT CONSISTENCY
# ============================================================

class TestEntryPointConsistency:
    """The same message looks the same from every transaction."""

    @pytest.mark.asyncio
    async def test_solana_to_base(self, world):
        transfer = world.solana_to_base(failed_attempts=1)
        explorer = world.explorer()

        from_init = await explorer.explore(transfer.init_sig)
        from_validation = await explorer.explore(transfer.validate_tx)
        from_execution = await explorer.explore(transfer.execute_tx)

        assert from_validation.entity_kind == EntityKind.VALIDATION
        assert from_execution.entity_kind == EntityKind.EXECUTION
        assert from_init.lifecycle == from_validation.lifecycle == from_execution.lifecycle

    @pytest.mark.asyncio
    async def test_base_to_solana(self, world):
        transfer = world.base_to_solana()
        explorer = world.explorer()

        from_init = await explorer.explore(transfer.init_tx)
        from_validation = await explorer.explore(transfer.validate_sig)
        from_execution = await explorer.explore(transfer.execute_sig)

        assert from_validation.entity_kind == EntityKind.VALIDATION
        assert from_execution.entity_kind == EntityKind.EXECUTION
        assert from_init.lifecycle == from_validation.lifecycle == from_execution.lifecycle

    @pytest.mark.asyncio
    async def test_result_serializes(self, world):
        transfer = world.base_to_solana()

        data = (await world.explorer().explore(transfer.execute_sig)).to_dict()

        assert data["chain"] == "solana"
        assert data["entity_kind"] == "execution"
        assert data["lifecycle"]["status"] == "executed"
        assert [e["stage"] for e in data["lifecycle"]["events"]] == ["init", "validate", "execute"]


# ============================================================
# DEGRADATION
# ============================================================

class TestCounterpartFailures:
    """A broken counterpart leaves its side absent instead of failing the query."""

    @pytest.mark.asyncio
    async def test_undecodable_origin_on_base(self, world, caplog):
        transfer = world.base_to_solana()
        for log in world.evm.explorer_logs:
            if log["topics"][1:2] == [transfer.message_hash]:
                log["data"] = "0x1234"

        with caplog.at_level(logging.WARNING):
            result = await world.explorer().explore(transfer.execute_sig)

        lifecycle = result.lifecycle
        assert lifecycle.event(Stage.INIT) is None
        assert lifecycle.status == BridgeStatus.EXECUTED
        assert lifecycle.message.source_chain == Chain.EVM
        assert lifecycle.message.display_amount == "0.1"
        assert lifecycle.message.variant == TransferVariant.WRAPPED_TOKEN
        assert "could not be decoded" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_origin_on_solana(self, world):
        transfer = world.solana_to_base()
        del world.solana.transactions[transfer.init_sig]

        result = await world.explorer().explore(transfer.execute_tx)

        lifecycle = result.lifecycle
        assert lifecycle.event(Stage.INIT) is None
        assert lifecycle.status == BridgeStatus.EXECUTED
        assert lifecycle.message.sender is None
        assert lifecycle.message.raw_amount == str(transfer.amount)


# ============================================================
# ERRORS
# ============================================================

class TestErrors:
    """Typed failures."""

    @pytest.mark.asyncio
    async def test_invalid_reference(self, world):
        with pytest.raises(InvalidReferenceError):
            await world.explorer().explore("not a transaction")
        assert world.registry.created == 0

    @pytest.mark.asyncio
    async def test_evm_not_found(self, world):
        with pytest.raises(TransactionNotFoundError):
            await world.explorer().explore(evm_hash(0x55))

    @pytest.mark.asyncio
    async def test_solana_not_found(self, world):
        with pytest.raises(TransactionNotFoundError):
            await world.explorer().explore(signature(0x55))

    @pytest.mark.asyncio
    async def test_non_bridge_evm_transaction(self, world):
        transfer_topic = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
        tx = evm_hash(0x66)
        world.evm.add_transaction(tx, [evm_log(evm_address(0x99), [transfer_topic], b"")], evm_hash(0x67), T0)

        with pytest.raises(UnrecognizedTransactionError):
            await world.explorer().explore(tx)

    @pytest.mark.asyncio
    async def test_non_bridge_solana_transaction(self, world):
        sig = signature(0x66)
        world.solana.add_transaction(sig, slot=1, block_time=T0, instructions=[{
            "programId": "11111111111111111111111111111111",
            "parsed": {"type": "transfer", "info": {}},
        }])

        with pytest.raises(UnrecognizedTransactionError):
            await world.explorer().explore(sig)

    @pytest.mark.asyncio
    async def test_output_root_is_unrelated(self, world):
        sig = world.output_root()

        result = await world.explorer().explore(sig)

        assert result.entity_kind == EntityKind.UNRELATED
        assert result.lifecycle is None

    @pytest.mark.asyncio
    async def test_timeout(self, world):
        transfer = world.base_to_solana()
        world.solana.delay = 0.5

        with pytest.raises(ExploreTimeoutError) as exc_info:
            await world.explorer().explore(transfer.init_tx, timeout=0.05)
        assert exc_info.value.timeout_seconds == 0.05

    @pytest.mark.asyncio
    async def test_config_timeout_applies(self, world):
        transfer = world.base_to_solana()
        world.evm.delay = 0.5

        with pytest.raises(ExploreTimeoutError):
            await world.explorer(query_timeout=0.05).explore(transfer.init_tx)

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(self, world):
        transfer = world.base_to_solana()

        async def unavailable(method, params):
            raise UpstreamUnavailableError("node down", attempts=3)

        world.solana._rpc = unavailable

        with pytest.raises(UpstreamUnavailableError):
            await world.explorer().explore(transfer.init_tx)

    @pytest.mark.asyncio
    async def test_mainnet_without_deployment(self, world):
        transfer = world.base_to_solana()
        explorer = BridgeExplorer(ExplorerConfig(network=Network.MAINNET))

        with pytest.raises(ConfigurationError) as exc_info:
            await explorer.explore(transfer.init_tx)
        assert exc_info.value.config_key == "BASE_BRIDGE_ADDRESS"
