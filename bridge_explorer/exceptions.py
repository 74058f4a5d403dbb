"""
Bridge Explorer Exceptions - Typed failures of a lifecycle query.

Decode and classification failures are deterministic for a given input and
are never retried. Transport failures come from chain_adapters
(UpstreamUnavailableError) and missing credentials or deployments from
ConfigurationError; both are re-exported by the package.
"""

from datetime import datetime
from typing import Any, Optional


class BridgeExplorerError(Exception):
    """Base exception for lifecycle query failures."""

    def __init__(
        self,
        message: str,
        reference: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reference = reference
        self.chain = chain
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "reference": self.reference,
            "chain": self.chain,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.reference:
            parts.append(f"[reference={self.reference}]")
        if self.chain:
            parts.append(f"[chain={self.chain}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class InvalidReferenceError(BridgeExplorerError):
    """Input is neither an EVM transaction hash nor a Solana signature."""


class TransactionNotFoundError(BridgeExplorerError):
    """The referenced transaction does not exist on the chain."""


class UnrecognizedTransactionError(BridgeExplorerError):
    """The transaction exists but shows no trace of the bridge protocol."""


class UnsupportedMessageKindError(BridgeExplorerError):
    """The message uses a variant the decoder does not handle yet."""

    def __init__(
        self,
        message: str,
        variant: Optional[str] = None,
        reference: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, reference, chain, original_error, context)
        self.variant = variant

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["variant"] = self.variant
        return data


class DecodeError(BridgeExplorerError):
    """Raw bridge data is malformed or inconsistent."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        reference: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, reference, chain, original_error, context)
        self.field_name = field_name

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field_name"] = self.field_name
        return data


class ExploreTimeoutError(BridgeExplorerError):
    """The query did not finish within its deadline; partial results were dropped."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        reference: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, reference, None, original_error)
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["timeout_seconds"] = self.timeout_seconds
        return data
