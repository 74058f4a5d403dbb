"""
Bridge Explorer Models - Decoded messages and the lifecycle assembled around them.

Data flow:
    Reference -> EntityKind -> BridgeMessage + LifecycleEvent(s) -> Lifecycle

Lifecycles are immutable once built; Lifecycle.build() sorts events and
checks the stage rules so every consumer sees the same shape regardless of
which transaction the query started from.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from chain_adapters.models import Chain

from bridge_explorer.amounts import format_units
from bridge_explorer.reference import Reference


class EntityKind(Enum):
    """Role a transaction or account plays in the bridge protocol."""
    INITIATION = "initiation"
    VALIDATION = "validation"
    EXECUTION = "execution"
    FAILED_EXECUTION = "failed_execution"
    UNRELATED = "unrelated"


class MessageKind(Enum):
    TRANSFER = "transfer"


class TransferVariant(Enum):
    """How the transferred asset is represented."""
    NATIVE = "native"
    TOKEN = "token"
    WRAPPED_TOKEN = "wrapped_token"


class Stage(Enum):
    """Lifecycle stages in protocol order."""
    INIT = "init"
    VALIDATE = "validate"
    EXECUTE = "execute"

    @property
    def order(self) -> int:
        return _STAGE_ORDER[self]


_STAGE_ORDER = {Stage.INIT: 0, Stage.VALIDATE: 1, Stage.EXECUTE: 2}


class BridgeStatus(Enum):
    """Progress of a message, derived from the stages observed."""
    PENDING = "pending"
    VALIDATED = "pre-validated"
    EXECUTED = "executed"


# ─────────────────────────────────────────────────────────────
# Decoded transfer payloads
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NativeTransfer:
    """Transfer of the source chain's native asset."""
    receiver: str
    amount: int
    remote_asset: Optional[str] = None


@dataclass(frozen=True)
class TokenTransfer:
    """Transfer of a token; `wrapped` is None until the token program is known."""
    asset: str
    receiver: str
    amount: int
    remote_asset: Optional[str] = None
    wrapped: Optional[bool] = None


@dataclass(frozen=True)
class UnsupportedTransfer:
    """A message variant the decoders do not interpret (e.g. arbitrary calls)."""
    kind: str


TransferPayload = Union[NativeTransfer, TokenTransfer, UnsupportedTransfer]


# ─────────────────────────────────────────────────────────────
# Messages and events
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ChainSnapshot:
    """Raw bytes of one protocol entity as observed on a chain."""
    chain: Chain
    address: str
    data: bytes
    topics: tuple[str, ...] = ()
    transaction_hash: Optional[str] = None
    block_ref: Optional[str] = None
    block_time: Optional[int] = None


@dataclass(frozen=True)
class BridgeMessage:
    """
    A decoded bridge transfer.

    asset_identifier, raw_amount, decimals and symbol always describe the
    same token, which lives on asset_chain. remote_asset is its counterpart
    on the other chain, when known. Amounts are kept as decimal strings.
    """
    message_hash: str
    source_chain: Chain
    dest_chain: Chain
    kind: MessageKind
    variant: TransferVariant
    sender: Optional[str]
    receiver: str
    asset_identifier: str
    asset_chain: Chain
    raw_amount: str
    decimals: int
    symbol: Optional[str] = None
    remote_asset: Optional[str] = None
    nonce: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.raw_amount.isdigit():
            raise ValueError(f"raw_amount must be a non-negative integer string, got {self.raw_amount!r}")
        if self.source_chain == self.dest_chain:
            raise ValueError("source and destination chain must differ")

    @property
    def display_amount(self) -> str:
        return format_units(self.raw_amount, self.decimals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_hash": self.message_hash,
            "source_chain": self.source_chain.value,
            "dest_chain": self.dest_chain.value,
            "kind": self.kind.value,
            "variant": self.variant.value,
            "sender": self.sender,
            "receiver": self.receiver,
            "asset_identifier": self.asset_identifier,
            "asset_chain": self.asset_chain.value,
            "remote_asset": self.remote_asset,
            "raw_amount": self.raw_amount,
            "decimals": self.decimals,
            "symbol": self.symbol,
            "display_amount": self.display_amount,
            "nonce": self.nonce,
        }


def to_utc(block_time: int) -> datetime:
    """Unix seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(block_time, tz=timezone.utc)


@dataclass(frozen=True)
class LifecycleEvent:
    """One observed stage of a message on one chain."""
    stage: Stage
    chain: Chain
    transaction_hash: str
    block_timestamp: datetime
    chain_name: Optional[str] = None
    explorer_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "chain": self.chain.value,
            "chain_name": self.chain_name,
            "transaction_hash": self.transaction_hash,
            "block_timestamp": self.block_timestamp.isoformat(),
            "explorer_url": self.explorer_url,
        }


@dataclass(frozen=True)
class Lifecycle:
    """
    Everything known about one bridge message.

    Invariants:
    - at most one event per stage
    - events ordered by timestamp (stage order breaks ties)
    - on a Solana destination, EXECUTE is never present without VALIDATE
    - failed delivery attempts are listed separately and never count as a stage
    """
    message_hash: str
    message: BridgeMessage
    events: tuple[LifecycleEvent, ...] = ()
    failed_attempts: tuple[LifecycleEvent, ...] = field(default=())

    def __post_init__(self) -> None:
        stages = [event.stage for event in self.events]
        if len(stages) != len(set(stages)):
            raise ValueError(f"duplicate lifecycle stages: {[s.value for s in stages]}")

        ordered = sorted(self.events, key=_event_sort_key)
        if list(self.events) != ordered:
            raise ValueError("lifecycle events must be ordered by timestamp")

        if (
            self.message.dest_chain == Chain.SOLANA
            and Stage.EXECUTE in stages
            and Stage.VALIDATE not in stages
        ):
            raise ValueError("execution on Solana requires a validation event")

    @classmethod
    def build(
        cls,
        message_hash: str,
        message: BridgeMessage,
        events: list[Optional[LifecycleEvent]],
        failed_attempts: Optional[list[LifecycleEvent]] = None,
    ) -> "Lifecycle":
        """Build a lifecycle from unordered events; None entries are skipped."""
        present = sorted((e for e in events if e is not None), key=_event_sort_key)
        failed = sorted(failed_attempts or [], key=_event_sort_key)
        return cls(
            message_hash=message_hash,
            message=message,
            events=tuple(present),
            failed_attempts=tuple(failed),
        )

    def event(self, stage: Stage) -> Optional[LifecycleEvent]:
        for event in self.events:
            if event.stage == stage:
                return event
        return None

    @property
    def status(self) -> BridgeStatus:
        if self.event(Stage.EXECUTE) is not None:
            return BridgeStatus.EXECUTED
        if self.event(Stage.VALIDATE) is not None:
            return BridgeStatus.VALIDATED
        return BridgeStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_hash": self.message_hash,
            "status": self.status.value,
            "message": self.message.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "failed_attempts": [e.to_dict() for e in self.failed_attempts],
        }


def _event_sort_key(event: LifecycleEvent) -> tuple[datetime, int]:
    return (event.block_timestamp, event.stage.order)


@dataclass(frozen=True)
class ExploreResult:
    """Answer to one query: what the reference is and, if bridged, its lifecycle."""
    reference: Reference
    entity_kind: EntityKind
    lifecycle: Optional[Lifecycle] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference.raw_value,
            "chain": self.reference.chain_hint.value,
            "entity_kind": self.entity_kind.value,
            "lifecycle": self.lifecycle.to_dict() if self.lifecycle else None,
        }
