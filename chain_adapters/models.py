"""
Chain Adapter Models - Normalized records returned by every chain adapter.

Records are plain frozen dataclasses. They carry raw chain data (bytes,
hex topics, parsed RPC payloads) and never any protocol interpretation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from chain_adapters.exceptions import ChainAdapterError


T = TypeVar("T")


class Chain(Enum):
    """Supported chain families."""
    EVM = "evm"
    SOLANA = "solana"


class Network(Enum):
    """Network variant. Always chosen explicitly, never inferred."""
    MAINNET = "mainnet"
    TESTNET = "testnet"


class AdapterCapability(Enum):
    """Optional features an adapter may offer on top of the common interface."""
    INDEXED_EVENT_LOGS = "indexed_event_logs"
    PROGRAM_DERIVED_ADDRESSES = "program_derived_addresses"
    BATCHED_CALLS = "batched_calls"
    ACCOUNT_HISTORY = "account_history"


class LookupStatus(Enum):
    """Outcome of a single point lookup."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """
    Result of a point lookup against a chain.

    Distinguishes "nothing there" (NOT_FOUND) from "could not check"
    (ERROR) so callers never mistake an outage for an absent record.
    """
    status: LookupStatus
    value: Optional[T] = None
    error: Optional[ChainAdapterError] = None

    @classmethod
    def found(cls, value: T) -> "Lookup[T]":
        return cls(status=LookupStatus.FOUND, value=value)

    @classmethod
    def not_found(cls) -> "Lookup[T]":
        return cls(status=LookupStatus.NOT_FOUND)

    @classmethod
    def failed(cls, error: ChainAdapterError) -> "Lookup[T]":
        return cls(status=LookupStatus.ERROR, error=error)

    @property
    def is_found(self) -> bool:
        return self.status == LookupStatus.FOUND

    @property
    def reason(self) -> Optional[str]:
        """Human-readable failure reason for ERROR results."""
        return str(self.error) if self.error else None

    def value_or_none(self) -> Optional[T]:
        """
        Return the value, or None when nothing exists.

        Raises:
            ChainAdapterError: The stored error for ERROR results.
        """
        if self.status == LookupStatus.ERROR:
            raise self.error
        return self.value


@dataclass(frozen=True)
class LogEntry:
    """A single event log (EVM) or program data record (Solana)."""
    address: str
    topics: tuple[str, ...]
    data: bytes
    transaction_hash: str
    block_ref: Optional[str] = None
    block_number: Optional[int] = None
    log_index: Optional[int] = None
    block_time: Optional[int] = None

    @property
    def topic0(self) -> Optional[str]:
        return self.topics[0].lower() if self.topics else None


@dataclass(frozen=True)
class LogFilter:
    """Filter for log searches; topics are positional, None is a wildcard."""
    topics: tuple[Optional[str], ...] = ()
    address: Optional[str] = None
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.topics) > 4:
            raise ValueError("at most 4 topics can be filtered")

    def to_explorer_params(self) -> dict[str, str]:
        """Render as explorer `logs/getLogs` query parameters."""
        params: dict[str, str] = {"module": "logs", "action": "getLogs"}
        if self.address:
            params["address"] = self.address
        present = [i for i, topic in enumerate(self.topics) if topic is not None]
        for i in present:
            params[f"topic{i}"] = self.topics[i]
        for left, right in zip(present, present[1:]):
            params[f"topic{left}_{right}_opr"] = "and"
        params["fromBlock"] = str(self.from_block) if self.from_block is not None else "0"
        params["toBlock"] = str(self.to_block) if self.to_block is not None else "latest"
        if self.limit:
            params["page"] = "1"
            params["offset"] = str(self.limit)
        return params

    def matches(self, entry: LogEntry) -> bool:
        if self.address and entry.address.lower() != self.address.lower():
            return False
        for i, topic in enumerate(self.topics):
            if topic is None:
                continue
            if i >= len(entry.topics) or entry.topics[i].lower() != topic.lower():
                return False
        return True


@dataclass(frozen=True)
class TxRecord:
    """A transaction as seen by one chain."""
    chain: Chain
    tx_ref: str
    block_ref: Optional[str]
    block_time: Optional[int]
    succeeded: bool
    logs: tuple[LogEntry, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class AccountRecord:
    """Raw account data (Solana) or contract code (EVM)."""
    address: str
    data: bytes
    owner: Optional[str] = None
    lamports: Optional[int] = None


@dataclass(frozen=True)
class HistoryEntry:
    """One transaction touching an address. Lists are oldest first."""
    tx_ref: str
    block_time: Optional[int]
    succeeded: bool = True
    slot: Optional[int] = None


@dataclass(frozen=True)
class TokenInfo:
    """Display metadata for a chain-native asset."""
    decimals: int
    symbol: Optional[str] = None
    program: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "decimals": self.decimals,
            "symbol": self.symbol,
            "program": self.program,
        }
