"""
Correlator - Join the records of one message across both chains.

A query may start from any stage on either chain:

    start = initiation   -> decode origin, then search the destination
    start = later stage  -> take the hash from the record, recover the
                            origin and search the destination (concurrently
                            where neither depends on the other)

Both directions end in the same assembly step, so a message yields the
same Lifecycle whichever of its transactions the query started from.

Destination search strategy follows the destination adapter's capability:
- INDEXED_EVENT_LOGS: query registered / relayed / failed events by hash
- PROGRAM_DERIVED_ADDRESSES: derive the IncomingMessage account and read
  its history; first success = validation, second = execution
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, Union

from chain_adapters.base import BaseChainAdapter
from chain_adapters.exceptions import CapabilityNotSupportedError
from chain_adapters.models import AdapterCapability, Chain, HistoryEntry, LogEntry, LogFilter

from bridge_explorer.decoding.evm import (
    EvmIdentification,
    EvmMessageDecoder,
    decode_outgoing_message_address,
    log_snapshot,
)
from bridge_explorer.decoding.solana import (
    SolanaIdentification,
    SolanaMessageDecoder,
    derive_incoming_message_address,
)
from bridge_explorer.entities import (
    FAILED_TO_RELAY_MESSAGE_TOPIC,
    MESSAGE_INITIATED_TOPIC,
    MESSAGE_REGISTERED_TOPIC,
    MESSAGE_SUCCESSFULLY_RELAYED_TOPIC,
    TRANSFER_FINALIZED_TOPIC,
)
from bridge_explorer.exceptions import BridgeExplorerError, DecodeError
from bridge_explorer.models import (
    BridgeMessage,
    ChainSnapshot,
    EntityKind,
    Lifecycle,
    LifecycleEvent,
    Stage,
    to_utc,
)


logger = logging.getLogger(__name__)


Identification = Union[EvmIdentification, SolanaIdentification]


async def gather_strict(*aws: Awaitable[Any]) -> list[Any]:
    """
    Run awaitables concurrently; the first failure cancels the rest.

    Siblings are awaited after cancellation so no task outlives the call.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


@dataclass(frozen=True)
class InitiationRecord:
    """Origin side of a message."""
    message: BridgeMessage
    event: LifecycleEvent


@dataclass(frozen=True)
class DestinationRecords:
    """Destination side of a message; every field may be absent."""
    validate: Optional[LifecycleEvent] = None
    execute: Optional[LifecycleEvent] = None
    failed: tuple[LifecycleEvent, ...] = ()
    registration: Optional[ChainSnapshot] = None


class Correlator:
    """
    Builds a Lifecycle from an identified transaction.

    Usage:
        correlator = Correlator(evm_decoder, solana_decoder)
        lifecycle = await correlator.correlate(identification)
    """

    def __init__(self, evm: EvmMessageDecoder, solana: SolanaMessageDecoder) -> None:
        self._evm = evm
        self._solana = solana

    async def correlate(self, identification: Identification) -> Optional[Lifecycle]:
        """Lifecycle of the message behind an identification; None for UNRELATED."""
        kind = identification.kind
        if kind == EntityKind.UNRELATED:
            return None

        if identification.chain == Chain.EVM:
            if kind == EntityKind.INITIATION:
                return await self._from_evm_initiation(identification)
            return await self._from_evm_destination(identification)

        if kind == EntityKind.INITIATION:
            return await self._from_solana_initiation(identification)
        return await self._from_solana_destination(identification)

    # ─────────────────────────────────────────────────────────────
    # Forward: start from the origin
    # ─────────────────────────────────────────────────────────────

    async def _from_evm_initiation(self, identification: EvmIdentification) -> Lifecycle:
        snapshot = identification.snapshot(MESSAGE_INITIATED_TOPIC)
        if snapshot is None:
            raise DecodeError(
                "Initiation transaction has no MessageInitiated event",
                reference=identification.transaction.tx_ref,
                chain=Chain.EVM.value,
            )
        init = await self._evm_initiation(snapshot)
        destination = await self.search_destination(init.message.dest_chain, init.message.message_hash)
        return self._assemble(init.message.message_hash, init.message, init, destination)

    async def _from_solana_initiation(self, identification: SolanaIdentification) -> Lifecycle:
        init = await self._solana_initiation(identification)
        destination = await self.search_destination(init.message.dest_chain, init.message.message_hash)
        return self._assemble(init.message.message_hash, init.message, init, destination)

    async def _evm_initiation(self, snapshot: ChainSnapshot) -> InitiationRecord:
        message, event = await gather_strict(
            self._evm.decode_initiation(snapshot),
            self._event(Stage.INIT, Chain.EVM, snapshot.transaction_hash, snapshot.block_time, snapshot.block_ref),
        )
        return InitiationRecord(message=message, event=event)

    async def _solana_initiation(self, identification: SolanaIdentification) -> InitiationRecord:
        tx = identification.transaction
        message, event = await gather_strict(
            self._solana.decode_outgoing(identification.snapshot),
            self._event(Stage.INIT, Chain.SOLANA, tx.tx_ref, tx.block_time, tx.block_ref),
        )
        return InitiationRecord(message=message, event=event)

    # ─────────────────────────────────────────────────────────────
    # Reverse: start from the destination
    # ─────────────────────────────────────────────────────────────

    async def _from_evm_destination(self, identification: EvmIdentification) -> Lifecycle:
        message_hash = self._require_hash(identification)
        registration = identification.snapshot(MESSAGE_REGISTERED_TOPIC)

        if registration is not None:
            init, destination = await gather_strict(
                self._recover_solana_initiation(message_hash, registration),
                self.search_destination(Chain.EVM, message_hash),
            )
        else:
            destination = await self.search_destination(Chain.EVM, message_hash)
            init = await self._recover_solana_initiation(message_hash, destination.registration)

        if init is not None:
            message = init.message
        else:
            message = await self._evm_destination_message(identification, message_hash, destination)
        return self._assemble(message_hash, message, init, destination)

    async def _from_solana_destination(self, identification: SolanaIdentification) -> Lifecycle:
        message_hash = self._require_hash(identification)
        init, destination = await gather_strict(
            self._recover_evm_initiation(message_hash),
            self.search_destination(Chain.SOLANA, message_hash),
        )

        if init is not None:
            message = init.message
        else:
            message = await self._solana.decode_incoming(identification.snapshot.data, message_hash)
        return self._assemble(message_hash, message, init, destination)

    async def _recover_solana_initiation(
        self,
        message_hash: str,
        registration: Optional[ChainSnapshot],
    ) -> Optional[InitiationRecord]:
        """Follow MessageRegistered to the OutgoingMessage account and its creating tx."""
        if registration is None:
            logger.info(f"No registration for {message_hash}, origin unknown")
            return None

        try:
            outgoing = decode_outgoing_message_address(registration)
            entry = await self._solana.find_initiation(outgoing)
            if entry is None:
                logger.info(f"OutgoingMessage {outgoing} has no history")
                return None

            identification = await self._solana.identify(entry.tx_ref)
            if identification.kind != EntityKind.INITIATION:
                logger.warning(f"{entry.tx_ref} is {identification.kind.value}, not an initiation")
                return None
            init = await self._solana_initiation(identification)
        except BridgeExplorerError as e:
            logger.warning(f"Origin of {message_hash} could not be decoded: {e}")
            return None

        return self._matching(message_hash, init)

    async def _recover_evm_initiation(self, message_hash: str) -> Optional[InitiationRecord]:
        logs = await self._evm.adapter.get_logs(LogFilter(
            topics=(MESSAGE_INITIATED_TOPIC, message_hash),
            address=self._evm.bridge_address,
        ))
        if not logs:
            logger.info(f"No MessageInitiated event for {message_hash}")
            return None

        try:
            init = await self._evm_initiation(log_snapshot(logs[0]))
        except BridgeExplorerError as e:
            logger.warning(f"Origin of {message_hash} could not be decoded: {e}")
            return None

        return self._matching(message_hash, init)

    def _matching(self, message_hash: str, init: InitiationRecord) -> Optional[InitiationRecord]:
        if init.message.message_hash != message_hash:
            logger.warning(
                f"Recovered origin hashes to {init.message.message_hash}, expected {message_hash}"
            )
            return None
        return init

    async def _evm_destination_message(
        self,
        identification: EvmIdentification,
        message_hash: str,
        destination: DestinationRecords,
    ) -> BridgeMessage:
        """Destination view of a Solana -> EVM message, used when the origin is unavailable."""
        snapshot = identification.snapshot(TRANSFER_FINALIZED_TOPIC)
        if snapshot is None and destination.execute is not None:
            execution = await self._evm.identify(destination.execute.transaction_hash)
            snapshot = execution.snapshot(TRANSFER_FINALIZED_TOPIC)

        if snapshot is None:
            raise DecodeError(
                f"No decodable record of message {message_hash} on either chain",
                field_name="message",
                reference=identification.transaction.tx_ref,
                chain=Chain.EVM.value,
            )
        return await self._evm.decode_execution(snapshot, message_hash)

    def _require_hash(self, identification: Identification) -> str:
        if not identification.message_hash:
            raise DecodeError(
                "Bridge transaction does not reveal a message hash",
                field_name="message_hash",
                reference=identification.transaction.tx_ref,
                chain=identification.chain.value,
            )
        return identification.message_hash

    # ─────────────────────────────────────────────────────────────
    # Destination search
    # ─────────────────────────────────────────────────────────────

    async def search_destination(self, chain: Chain, message_hash: str) -> DestinationRecords:
        """Find validation, execution and failed attempts of a message on its destination chain."""
        adapter = self._adapter(chain)
        if adapter.supports(AdapterCapability.INDEXED_EVENT_LOGS):
            return await self._search_event_logs(message_hash)
        if adapter.supports(AdapterCapability.PROGRAM_DERIVED_ADDRESSES):
            return await self._search_message_account(message_hash)
        raise CapabilityNotSupportedError(
            message=f"{adapter.name} offers no way to locate messages by hash",
            adapter_name=adapter.name,
            chain=chain.value,
            capability=AdapterCapability.INDEXED_EVENT_LOGS.value,
        )

    async def _search_event_logs(self, message_hash: str) -> DestinationRecords:
        adapter = self._evm.adapter
        registered, relayed, failed = await gather_strict(
            adapter.get_logs(LogFilter(
                topics=(MESSAGE_REGISTERED_TOPIC, message_hash),
                address=self._evm.validator_address,
            )),
            adapter.get_logs(LogFilter(
                topics=(MESSAGE_SUCCESSFULLY_RELAYED_TOPIC, None, message_hash),
                address=self._evm.bridge_address,
            )),
            adapter.get_logs(LogFilter(
                topics=(FAILED_TO_RELAY_MESSAGE_TOPIC, None, message_hash),
                address=self._evm.bridge_address,
            )),
        )
        if len(registered) > 1 or len(relayed) > 1:
            logger.warning(
                f"{message_hash}: {len(registered)} registrations, {len(relayed)} relays; using the earliest"
            )

        registration = registered[0] if registered else None
        relay = relayed[0] if relayed else None
        validate, execute, *failed_events = await gather_strict(
            self._log_event(Stage.VALIDATE, registration),
            self._log_event(Stage.EXECUTE, relay),
            *(self._log_event(Stage.EXECUTE, log) for log in failed),
        )
        return DestinationRecords(
            validate=validate,
            execute=execute,
            failed=tuple(failed_events),
            registration=log_snapshot(registration) if registration else None,
        )

    async def _search_message_account(self, message_hash: str) -> DestinationRecords:
        address = derive_incoming_message_address(message_hash, self._solana.program_id)
        history = await self._solana.adapter.get_address_history(address)

        succeeded = [entry for entry in history if entry.succeeded]
        failed = [entry for entry in history if not entry.succeeded]
        if len(succeeded) > 2:
            logger.warning(f"IncomingMessage {address} has {len(succeeded)} successful transactions")

        validate, execute, *failed_events = await gather_strict(
            self._history_event(Stage.VALIDATE, succeeded[0] if succeeded else None),
            self._history_event(Stage.EXECUTE, succeeded[1] if len(succeeded) > 1 else None),
            *(self._history_event(Stage.EXECUTE, entry) for entry in failed),
        )
        return DestinationRecords(validate=validate, execute=execute, failed=tuple(failed_events))

    # ─────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────

    async def _log_event(self, stage: Stage, log: Optional[LogEntry]) -> Optional[LifecycleEvent]:
        if log is None:
            return None
        return await self._event(stage, Chain.EVM, log.transaction_hash, log.block_time, log.block_ref or log.block_number)

    async def _history_event(self, stage: Stage, entry: Optional[HistoryEntry]) -> Optional[LifecycleEvent]:
        if entry is None:
            return None
        return await self._event(stage, Chain.SOLANA, entry.tx_ref, entry.block_time, entry.slot)

    async def _event(
        self,
        stage: Stage,
        chain: Chain,
        tx_ref: str,
        block_time: Optional[int],
        block_ref: Any,
    ) -> LifecycleEvent:
        adapter = self._adapter(chain)
        if block_time is None:
            block_time = await adapter.get_block_timestamp(block_ref)
        return LifecycleEvent(
            stage=stage,
            chain=chain,
            transaction_hash=tx_ref,
            block_timestamp=to_utc(block_time),
            chain_name=adapter.config.display_name,
            explorer_url=adapter.config.tx_url(tx_ref),
        )

    def _adapter(self, chain: Chain) -> BaseChainAdapter:
        return self._evm.adapter if chain == Chain.EVM else self._solana.adapter

    def _assemble(
        self,
        message_hash: str,
        message: BridgeMessage,
        init: Optional[InitiationRecord],
        destination: DestinationRecords,
    ) -> Lifecycle:
        lifecycle = Lifecycle.build(
            message_hash=message_hash,
            message=message,
            events=[init.event if init else None, destination.validate, destination.execute],
            failed_attempts=list(destination.failed),
        )
        logger.info(
            f"{message_hash}: {lifecycle.status.value}, "
            f"{len(lifecycle.events)} events, {len(lifecycle.failed_attempts)} failed attempts"
        )
        return lifecycle
