"""
Solana Message Decoder - Borsh layouts of the bridge program's accounts.

Account layouts (after the 8-byte Anchor discriminator):

    OutgoingMessage: nonce u64 | sender Pubkey | message
        message 0 = Call (not interpreted)
        message 1 = Transfer: to [u8;20] | local_token Pubkey
                              | remote_token [u8;20] | amount u64 | ...

    IncomingMessage: sender [u8;20] | message
        message 0 = Call (not interpreted)
        message 1 = Transfer, tagged:
            0 Sol:          remote_token [u8;20] | to Pubkey | amount u64
            1 Spl:          remote_token [u8;20] | local_token Pubkey | to Pubkey | amount u64
            2 WrappedToken: local_token Pubkey | to Pubkey | amount u64

Trailing bytes (optional calls, relay instructions) are ignored. Bridge
instructions that carry a message hash end with it (last 32 bytes).
"""

import logging
import struct
from dataclasses import dataclass, replace
from typing import Any, Optional

import base58
from solders.pubkey import Pubkey
from web3 import Web3

from chain_adapters.exceptions import RpcError
from chain_adapters.models import Chain, HistoryEntry, TokenInfo, TxRecord
from chain_adapters.providers.solana import TOKEN_2022_PROGRAM_ID, SolanaAdapter

from bridge_explorer.decoding.hashing import (
    NATIVE_ASSET,
    SOL_NATIVE_ADDRESS,
    message_hash_of,
)
from bridge_explorer.entities import (
    DISCRIMINATOR_SIZE,
    SOLANA_ACCOUNT_KINDS,
    SolanaAccountType,
    identify_solana_account,
    is_relay_instruction,
)
from bridge_explorer.exceptions import (
    DecodeError,
    TransactionNotFoundError,
    UnrecognizedTransactionError,
    UnsupportedMessageKindError,
)
from bridge_explorer.models import (
    BridgeMessage,
    ChainSnapshot,
    EntityKind,
    MessageKind,
    NativeTransfer,
    TokenTransfer,
    TransferPayload,
    TransferVariant,
    UnsupportedTransfer,
)


logger = logging.getLogger(__name__)


INCOMING_MESSAGE_SEED = b"incoming_message"
MESSAGE_HASH_SIZE = 32

MESSAGE_TAG_CALL = 0
MESSAGE_TAG_TRANSFER = 1

TRANSFER_TAG_SOL = 0
TRANSFER_TAG_SPL = 1
TRANSFER_TAG_WRAPPED_TOKEN = 2


class BorshReader:
    """Sequential little-endian reader; running past the end is a DecodeError."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = bytes(data)
        self.offset = offset

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self._data):
            raise DecodeError(
                f"Account data truncated: need {end} bytes, have {len(self._data)}",
                chain=Chain.SOLANA.value,
            )
        chunk = self._data[self.offset:end]
        self.offset = end
        return chunk

    def u8(self) -> int:
        return self._take(1)[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def fixed(self, size: int) -> bytes:
        return self._take(size)

    def pubkey(self) -> str:
        return str(Pubkey.from_bytes(self._take(32)))

    def evm_address(self) -> str:
        return Web3.to_checksum_address("0x" + self._take(20).hex())

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset


@dataclass(frozen=True)
class OutgoingMessageAccount:
    nonce: int
    sender: str
    payload: TransferPayload


@dataclass(frozen=True)
class IncomingMessageAccount:
    sender: str
    payload: TransferPayload


def _evm_token(reader: BorshReader) -> str:
    address = reader.evm_address()
    return NATIVE_ASSET if int(address, 16) == 0 else address


def decode_outgoing_message(data: bytes) -> OutgoingMessageAccount:
    """Decode an OutgoingMessage account (Solana -> EVM)."""
    if identify_solana_account(data) != SolanaAccountType.OUTGOING_MESSAGE:
        raise DecodeError("Not an OutgoingMessage account", field_name="discriminator", chain=Chain.SOLANA.value)

    reader = BorshReader(data, DISCRIMINATOR_SIZE)
    nonce = reader.u64()
    sender = reader.pubkey()
    tag = reader.u8()

    if tag == MESSAGE_TAG_CALL:
        return OutgoingMessageAccount(nonce, sender, UnsupportedTransfer("call"))
    if tag != MESSAGE_TAG_TRANSFER:
        return OutgoingMessageAccount(nonce, sender, UnsupportedTransfer(f"message tag {tag}"))

    receiver = reader.evm_address()
    local_token = reader.pubkey()
    remote_token = _evm_token(reader)
    amount = reader.u64()

    if local_token == SOL_NATIVE_ADDRESS:
        payload: TransferPayload = NativeTransfer(receiver=receiver, amount=amount, remote_asset=remote_token)
    else:
        payload = TokenTransfer(asset=local_token, receiver=receiver, amount=amount, remote_asset=remote_token)
    return OutgoingMessageAccount(nonce, sender, payload)


def decode_incoming_message(data: bytes) -> IncomingMessageAccount:
    """Decode an IncomingMessage account (EVM -> Solana)."""
    if identify_solana_account(data) != SolanaAccountType.INCOMING_MESSAGE:
        raise DecodeError("Not an IncomingMessage account", field_name="discriminator", chain=Chain.SOLANA.value)

    reader = BorshReader(data, DISCRIMINATOR_SIZE)
    sender = reader.evm_address()
    tag = reader.u8()

    if tag == MESSAGE_TAG_CALL:
        return IncomingMessageAccount(sender, UnsupportedTransfer("call"))
    if tag != MESSAGE_TAG_TRANSFER:
        return IncomingMessageAccount(sender, UnsupportedTransfer(f"message tag {tag}"))

    transfer_tag = reader.u8()
    if transfer_tag == TRANSFER_TAG_SOL:
        remote_token = _evm_token(reader)
        receiver = reader.pubkey()
        payload: TransferPayload = NativeTransfer(receiver=receiver, amount=reader.u64(), remote_asset=remote_token)
    elif transfer_tag == TRANSFER_TAG_SPL:
        remote_token = _evm_token(reader)
        local_token = reader.pubkey()
        receiver = reader.pubkey()
        payload = TokenTransfer(
            asset=local_token, receiver=receiver, amount=reader.u64(),
            remote_asset=remote_token, wrapped=False,
        )
    elif transfer_tag == TRANSFER_TAG_WRAPPED_TOKEN:
        local_token = reader.pubkey()
        receiver = reader.pubkey()
        payload = TokenTransfer(asset=local_token, receiver=receiver, amount=reader.u64(), wrapped=True)
    else:
        payload = UnsupportedTransfer(f"transfer tag {transfer_tag}")

    return IncomingMessageAccount(sender, payload)


def derive_incoming_message_address(message_hash: str, program_id: str) -> str:
    """PDA of the IncomingMessage account for a message hash."""
    try:
        hash_bytes = bytes.fromhex(message_hash[2:] if message_hash.startswith("0x") else message_hash)
    except ValueError as e:
        raise DecodeError(f"Invalid message hash {message_hash!r}", field_name="message_hash", original_error=e)
    if len(hash_bytes) != MESSAGE_HASH_SIZE:
        raise DecodeError(f"Message hash must be 32 bytes, got {len(hash_bytes)}", field_name="message_hash")

    address, _bump = Pubkey.find_program_address(
        [INCOMING_MESSAGE_SEED, hash_bytes],
        Pubkey.from_string(program_id),
    )
    return str(address)


def message_hash_from_instruction_data(data: bytes) -> str:
    if len(data) < DISCRIMINATOR_SIZE + MESSAGE_HASH_SIZE:
        raise DecodeError(
            f"Instruction data too short to carry a message hash ({len(data)} bytes)",
            field_name="instruction_data",
            chain=Chain.SOLANA.value,
        )
    return "0x" + bytes(data[-MESSAGE_HASH_SIZE:]).hex()


def _instruction_data(instruction: dict[str, Any]) -> bytes:
    encoded = instruction.get("data")
    if not encoded:
        return b""
    try:
        return base58.b58decode(encoded)
    except ValueError:
        return b""


@dataclass(frozen=True)
class SolanaIdentification:
    """What a Solana transaction is to the bridge."""
    kind: EntityKind
    transaction: TxRecord
    account_type: Optional[SolanaAccountType] = None
    snapshot: Optional[ChainSnapshot] = None
    message_hash: Optional[str] = None

    @property
    def chain(self) -> Chain:
        return Chain.SOLANA


class SolanaMessageDecoder:
    """
    Identifies and decodes bridge transactions on Solana.

    Usage:
        decoder = SolanaMessageDecoder(adapters[Chain.SOLANA])
        identification = await decoder.identify(signature)
        if identification.kind == EntityKind.INITIATION:
            message = await decoder.decode_outgoing(identification.snapshot)
    """

    def __init__(self, adapter: SolanaAdapter) -> None:
        self._adapter = adapter
        self._program_id = adapter.config.require("bridge_address")

    @property
    def adapter(self) -> SolanaAdapter:
        return self._adapter

    @property
    def program_id(self) -> str:
        return self._program_id

    # ─────────────────────────────────────────────────────────────
    # Identification
    # ─────────────────────────────────────────────────────────────

    async def identify(self, signature: str) -> SolanaIdentification:
        """
        Classify a transaction by the bridge accounts it creates or relays.

        Raises:
            TransactionNotFoundError: Unknown signature
            UnrecognizedTransactionError: The bridge program is not involved,
                or is involved without a recognisable message account
        """
        tx = (await self._adapter.get_transaction(signature)).value_or_none()
        if tx is None:
            raise TransactionNotFoundError(
                f"Transaction {signature} not found",
                reference=signature,
                chain=Chain.SOLANA.value,
            )

        message = (tx.raw.get("transaction") or {}).get("message") or {}
        bridge_instructions = [
            ix for ix in message.get("instructions") or []
            if ix.get("programId") == self._program_id
        ]
        if not bridge_instructions:
            raise UnrecognizedTransactionError(
                "Transaction does not invoke the bridge program",
                reference=signature,
                chain=Chain.SOLANA.value,
            )

        for ix in bridge_instructions:
            data = _instruction_data(ix)
            if is_relay_instruction(data):
                return await self._identify_relay(tx, ix, data)

        created = self._created_bridge_accounts(tx)
        accounts = await self._adapter.get_accounts_raw(created) if created else []
        for account in accounts:
            if account is None:
                continue
            account_type = identify_solana_account(account.data)
            if account_type is None:
                continue

            message_hash = None
            if account_type == SolanaAccountType.INCOMING_MESSAGE:
                message_hash = self._incoming_hash_from_instructions(bridge_instructions, account.address)

            logger.debug(f"[solana] {signature} created {account_type.value} {account.address}")
            return SolanaIdentification(
                kind=SOLANA_ACCOUNT_KINDS[account_type],
                transaction=tx,
                account_type=account_type,
                snapshot=self._snapshot(tx, account.address, account.data),
                message_hash=message_hash,
            )

        raise UnrecognizedTransactionError(
            "Bridge program invoked but no message account was created",
            reference=signature,
            chain=Chain.SOLANA.value,
        )

    async def _identify_relay(
        self,
        tx: TxRecord,
        instruction: dict[str, Any],
        data: bytes,
    ) -> SolanaIdentification:
        message_hash = message_hash_from_instruction_data(data)
        expected = derive_incoming_message_address(message_hash, self._program_id)

        addresses = [a for a in instruction.get("accounts") or [] if isinstance(a, str)]
        if expected not in addresses:
            raise DecodeError(
                f"Relay instruction does not reference IncomingMessage {expected}",
                field_name="accounts",
                reference=tx.tx_ref,
                chain=Chain.SOLANA.value,
            )

        (account,) = await self._adapter.get_accounts_raw([expected])
        if account is None or identify_solana_account(account.data) != SolanaAccountType.INCOMING_MESSAGE:
            raise DecodeError(
                f"IncomingMessage {expected} missing or malformed",
                reference=tx.tx_ref,
                chain=Chain.SOLANA.value,
            )

        return SolanaIdentification(
            kind=EntityKind.EXECUTION if tx.succeeded else EntityKind.FAILED_EXECUTION,
            transaction=tx,
            account_type=SolanaAccountType.INCOMING_MESSAGE,
            snapshot=self._snapshot(tx, expected, account.data),
            message_hash=message_hash,
        )

    def _created_bridge_accounts(self, tx: TxRecord) -> list[str]:
        """Accounts created (at any depth) with the bridge program as owner."""
        meta = tx.raw.get("meta") or {}
        message = (tx.raw.get("transaction") or {}).get("message") or {}

        instructions = list(message.get("instructions") or [])
        for inner in meta.get("innerInstructions") or []:
            instructions.extend(inner.get("instructions") or [])

        created: list[str] = []
        for ix in instructions:
            parsed = ix.get("parsed")
            if not isinstance(parsed, dict) or parsed.get("type") != "createAccount":
                continue
            info = parsed.get("info") or {}
            if info.get("owner") == self._program_id and info.get("newAccount"):
                created.append(info["newAccount"])
        return created

    def _incoming_hash_from_instructions(
        self,
        instructions: list[dict[str, Any]],
        address: str,
    ) -> str:
        for ix in instructions:
            data = _instruction_data(ix)
            if len(data) < DISCRIMINATOR_SIZE + MESSAGE_HASH_SIZE:
                continue
            candidate = message_hash_from_instruction_data(data)
            if derive_incoming_message_address(candidate, self._program_id) == address:
                return candidate

        raise DecodeError(
            f"No bridge instruction carries the hash of IncomingMessage {address}",
            field_name="message_hash",
            chain=Chain.SOLANA.value,
        )

    def _snapshot(self, tx: TxRecord, address: str, data: bytes) -> ChainSnapshot:
        return ChainSnapshot(
            chain=Chain.SOLANA,
            address=address,
            data=data,
            transaction_hash=tx.tx_ref,
            block_ref=tx.block_ref,
            block_time=tx.block_time,
        )

    # ─────────────────────────────────────────────────────────────
    # Decoding
    # ─────────────────────────────────────────────────────────────

    async def decode_outgoing(self, snapshot: ChainSnapshot) -> BridgeMessage:
        """Decode an OutgoingMessage into a Solana -> EVM message with its derived hash."""
        account = decode_outgoing_message(snapshot.data)
        payload = self._require_supported(account.payload, snapshot)

        if isinstance(payload, NativeTransfer):
            info = await self._adapter.get_token_info(NATIVE_ASSET)
            asset = NATIVE_ASSET
            variant = TransferVariant.NATIVE
        else:
            info = await self._token_info(payload.asset)
            asset = payload.asset
            variant = TransferVariant.WRAPPED_TOKEN if info.program == TOKEN_2022_PROGRAM_ID else TransferVariant.TOKEN

        message = BridgeMessage(
            message_hash="",
            source_chain=Chain.SOLANA,
            dest_chain=Chain.EVM,
            kind=MessageKind.TRANSFER,
            variant=variant,
            sender=account.sender,
            receiver=payload.receiver,
            asset_identifier=asset,
            asset_chain=Chain.SOLANA,
            raw_amount=str(payload.amount),
            decimals=info.decimals,
            symbol=info.symbol,
            remote_asset=payload.remote_asset,
            nonce=account.nonce,
        )
        return replace(message, message_hash=message_hash_of(message))

    async def decode_incoming(self, data: bytes, message_hash: str) -> BridgeMessage:
        """Decode an IncomingMessage into an EVM -> Solana message."""
        account = decode_incoming_message(data)
        payload = self._require_supported(account.payload)

        if isinstance(payload, NativeTransfer):
            info = await self._adapter.get_token_info(NATIVE_ASSET)
            asset = NATIVE_ASSET
            variant = TransferVariant.NATIVE
        else:
            info = await self._token_info(payload.asset)
            asset = payload.asset
            variant = TransferVariant.WRAPPED_TOKEN if payload.wrapped else TransferVariant.TOKEN

        return BridgeMessage(
            message_hash=message_hash,
            source_chain=Chain.EVM,
            dest_chain=Chain.SOLANA,
            kind=MessageKind.TRANSFER,
            variant=variant,
            sender=account.sender,
            receiver=payload.receiver,
            asset_identifier=asset,
            asset_chain=Chain.SOLANA,
            raw_amount=str(payload.amount),
            decimals=info.decimals,
            symbol=info.symbol,
            remote_asset=payload.remote_asset,
        )

    async def find_initiation(self, outgoing_message: str) -> Optional[HistoryEntry]:
        """The transaction that created an OutgoingMessage account."""
        history = await self._adapter.get_address_history(outgoing_message)
        if not history:
            return None
        if len(history) != 1:
            logger.warning(
                f"[solana] OutgoingMessage {outgoing_message} has {len(history)} transactions, "
                f"using the earliest"
            )
        return history[0]

    def _require_supported(
        self,
        payload: TransferPayload,
        snapshot: Optional[ChainSnapshot] = None,
    ) -> TransferPayload:
        if isinstance(payload, UnsupportedTransfer):
            raise UnsupportedMessageKindError(
                f"Unsupported bridge message: {payload.kind}",
                variant=payload.kind,
                reference=snapshot.transaction_hash if snapshot else None,
                chain=Chain.SOLANA.value,
            )
        return payload

    async def _token_info(self, mint: str) -> TokenInfo:
        try:
            return await self._adapter.get_token_info(mint)
        except RpcError as e:
            raise DecodeError(
                f"Token metadata unavailable for {mint}",
                field_name="local_token",
                chain=Chain.SOLANA.value,
                original_error=e,
            )
