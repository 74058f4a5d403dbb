"""
EVM Message Decoder - Bridge and validator contract events.

Event layouts (indexed fields are topics, the rest ABI-encoded data):

    MessageInitiated(bytes32 indexed messageHash, uint64 nonce, address sender,
                     bytes32 to, address localToken, bytes32 remoteToken,
                     uint256 amount)                                   [bridge]
    MessageRegistered(bytes32 indexed messageHash,
                      bytes32 outgoingMessage)                        [validator]
    MessageSuccessfullyRelayed(address indexed submitter,
                               bytes32 indexed messageHash)            [bridge]
    FailedToRelayMessage(address indexed submitter,
                         bytes32 indexed messageHash)                  [bridge]
    TransferFinalized(address localToken, bytes32 remoteToken,
                      address to, uint256 amount)                      [bridge]
"""

import logging
from dataclasses import dataclass
from typing import Optional

from eth_abi import decode as abi_decode
from solders.pubkey import Pubkey
from web3 import Web3

from chain_adapters.exceptions import RpcError
from chain_adapters.models import Chain, LogEntry, TokenInfo, TxRecord
from chain_adapters.providers.evm import EvmAdapter

from bridge_explorer.decoding.hashing import NATIVE_ASSET, bytes32_to_address, message_hash_of
from bridge_explorer.entities import (
    MESSAGE_INITIATED_TOPIC,
    TRANSFER_FINALIZED_TOPIC,
    classify_log,
    message_hash_from_log,
    primary_kind,
)
from bridge_explorer.exceptions import (
    DecodeError,
    TransactionNotFoundError,
    UnrecognizedTransactionError,
)
from bridge_explorer.models import (
    BridgeMessage,
    ChainSnapshot,
    EntityKind,
    MessageKind,
    TransferVariant,
)


logger = logging.getLogger(__name__)


MESSAGE_INITIATED_DATA_TYPES = ["uint64", "address", "bytes32", "address", "bytes32", "uint256"]
MESSAGE_REGISTERED_DATA_TYPES = ["bytes32"]
TRANSFER_FINALIZED_DATA_TYPES = ["address", "bytes32", "address", "uint256"]


def log_snapshot(log: LogEntry) -> ChainSnapshot:
    return ChainSnapshot(
        chain=Chain.EVM,
        address=log.address,
        data=log.data,
        topics=log.topics,
        transaction_hash=log.transaction_hash,
        block_ref=log.block_ref,
        block_time=log.block_time,
    )


def _abi_decode(types: list[str], snapshot: ChainSnapshot, event: str) -> tuple:
    try:
        return abi_decode(types, snapshot.data)
    except Exception as e:
        raise DecodeError(
            f"Malformed {event} event data",
            field_name="data",
            reference=snapshot.transaction_hash,
            chain=Chain.EVM.value,
            original_error=e,
        )


def _evm_asset(address: str) -> str:
    return NATIVE_ASSET if int(address, 16) == 0 else Web3.to_checksum_address(address)


def decode_outgoing_message_address(snapshot: ChainSnapshot) -> str:
    """Solana OutgoingMessage account named by a MessageRegistered event."""
    (outgoing,) = _abi_decode(MESSAGE_REGISTERED_DATA_TYPES, snapshot, "MessageRegistered")
    return str(Pubkey.from_bytes(bytes(outgoing)))


@dataclass(frozen=True)
class EvmIdentification:
    """What an EVM transaction is to the bridge."""
    kind: EntityKind
    transaction: TxRecord
    snapshots: tuple[ChainSnapshot, ...] = ()
    message_hash: Optional[str] = None

    @property
    def chain(self) -> Chain:
        return Chain.EVM

    def snapshot(self, topic: str) -> Optional[ChainSnapshot]:
        """First bridge event with the given topic0."""
        for snapshot in self.snapshots:
            if snapshot.topics and snapshot.topics[0].lower() == topic:
                return snapshot
        return None


class EvmMessageDecoder:
    """
    Identifies and decodes bridge transactions on an EVM chain.

    Only logs emitted by the configured bridge and validator contracts are
    considered; the same topics from other contracts are ignored.
    """

    def __init__(self, adapter: EvmAdapter) -> None:
        self._adapter = adapter
        self._bridge_address = adapter.config.require("bridge_address")
        self._validator_address = adapter.config.require("validator_address")

    @property
    def adapter(self) -> EvmAdapter:
        return self._adapter

    @property
    def bridge_address(self) -> str:
        return self._bridge_address

    @property
    def validator_address(self) -> str:
        return self._validator_address

    async def identify(self, tx_hash: str) -> EvmIdentification:
        """
        Classify a transaction by the bridge events in its receipt.

        Raises:
            TransactionNotFoundError: No receipt for the hash
            UnrecognizedTransactionError: No bridge or validator event in the receipt
        """
        tx = (await self._adapter.get_transaction(tx_hash)).value_or_none()
        if tx is None:
            raise TransactionNotFoundError(
                f"Transaction {tx_hash} not found",
                reference=tx_hash,
                chain=Chain.EVM.value,
            )

        contracts = (self._bridge_address, self._validator_address)
        classified = [(log, classify_log(log, contracts)) for log in tx.logs]
        bridge_logs = [(log, kind) for log, kind in classified if kind != EntityKind.UNRELATED]
        if not bridge_logs:
            raise UnrecognizedTransactionError(
                "Transaction emitted no bridge events",
                reference=tx_hash,
                chain=Chain.EVM.value,
            )

        kind = primary_kind(k for _, k in bridge_logs)
        hashes = [message_hash_from_log(log) for log, k in bridge_logs if k == kind]
        hashes += [message_hash_from_log(log) for log, _ in bridge_logs]
        message_hash = next((h for h in hashes if h), None)

        logger.debug(f"[evm] {tx_hash} is {kind.value} of {message_hash}")
        return EvmIdentification(
            kind=kind,
            transaction=tx,
            snapshots=tuple(log_snapshot(log) for log, _ in bridge_logs),
            message_hash=message_hash,
        )

    async def decode_initiation(self, snapshot: ChainSnapshot) -> BridgeMessage:
        """
        Decode a MessageInitiated event into an EVM -> Solana message.

        Raises:
            DecodeError: If the event is malformed or its indexed hash does
                not match the hash derived from its fields.
        """
        if len(snapshot.topics) < 2 or snapshot.topics[0].lower() != MESSAGE_INITIATED_TOPIC:
            raise DecodeError("Not a MessageInitiated event", reference=snapshot.transaction_hash, chain=Chain.EVM.value)

        nonce, sender, to, local_token, remote_token, amount = _abi_decode(
            MESSAGE_INITIATED_DATA_TYPES, snapshot, "MessageInitiated",
        )
        asset = _evm_asset(local_token)
        info = await self._token_info(asset, snapshot)

        message = BridgeMessage(
            message_hash=snapshot.topics[1].lower(),
            source_chain=Chain.EVM,
            dest_chain=Chain.SOLANA,
            kind=MessageKind.TRANSFER,
            variant=TransferVariant.NATIVE if asset == NATIVE_ASSET else TransferVariant.TOKEN,
            sender=Web3.to_checksum_address(sender),
            receiver=str(Pubkey.from_bytes(bytes(to))),
            asset_identifier=asset,
            asset_chain=Chain.EVM,
            raw_amount=str(amount),
            decimals=info.decimals,
            symbol=info.symbol,
            remote_asset=bytes32_to_address(Chain.SOLANA, bytes(remote_token)),
            nonce=nonce,
        )

        derived = message_hash_of(message)
        if derived != message.message_hash:
            raise DecodeError(
                f"Derived message hash {derived} does not match event hash {message.message_hash}",
                field_name="message_hash",
                reference=snapshot.transaction_hash,
                chain=Chain.EVM.value,
            )
        return message

    async def decode_execution(self, snapshot: ChainSnapshot, message_hash: str) -> BridgeMessage:
        """Decode a TransferFinalized event into a Solana -> EVM message (destination view)."""
        if not snapshot.topics or snapshot.topics[0].lower() != TRANSFER_FINALIZED_TOPIC:
            raise DecodeError("Not a TransferFinalized event", reference=snapshot.transaction_hash, chain=Chain.EVM.value)

        local_token, remote_token, to, amount = _abi_decode(
            TRANSFER_FINALIZED_DATA_TYPES, snapshot, "TransferFinalized",
        )
        asset = _evm_asset(local_token)
        remote_asset = bytes32_to_address(Chain.SOLANA, bytes(remote_token))
        info = await self._token_info(asset, snapshot)

        return BridgeMessage(
            message_hash=message_hash,
            source_chain=Chain.SOLANA,
            dest_chain=Chain.EVM,
            kind=MessageKind.TRANSFER,
            variant=TransferVariant.NATIVE if remote_asset == NATIVE_ASSET else TransferVariant.TOKEN,
            sender=None,
            receiver=Web3.to_checksum_address(to),
            asset_identifier=asset,
            asset_chain=Chain.EVM,
            raw_amount=str(amount),
            decimals=info.decimals,
            symbol=info.symbol,
            remote_asset=remote_asset,
        )

    async def _token_info(self, asset: str, snapshot: ChainSnapshot) -> TokenInfo:
        try:
            return await self._adapter.get_token_info(asset)
        except RpcError as e:
            raise DecodeError(
                f"Token metadata unavailable for {asset}",
                field_name="local_token",
                reference=snapshot.transaction_hash,
                chain=Chain.EVM.value,
                original_error=e,
            )
