"""
Chain Adapter Exceptions - Custom exception hierarchy.

Transport failures are retryable; definitive answers from a chain
(a JSON-RPC error, a missing credential) are not.
"""

from datetime import datetime
from typing import Any, Optional


class ChainAdapterError(Exception):
    """Base exception for all chain adapter errors."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.adapter_name = adapter_name
        self.chain = chain
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "adapter_name": self.adapter_name,
            "chain": self.chain,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.adapter_name:
            parts.append(f"[adapter={self.adapter_name}]")
        if self.chain:
            parts.append(f"[chain={self.chain}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class FetchError(ChainAdapterError):
    """Transport-level error while talking to an RPC node or explorer."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message, adapter_name, chain, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        self._retryable = retryable

    @property
    def is_retryable(self) -> bool:
        """Client errors (4xx other than 429) are deterministic."""
        if self._retryable is not None:
            return self._retryable
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data


class RateLimitError(FetchError):
    """Rate limit exceeded error."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        retry_after_seconds: Optional[float] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            adapter_name=adapter_name,
            chain=chain,
            status_code=429,
            original_error=original_error,
            context=context,
        )
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class RpcError(ChainAdapterError):
    """JSON-RPC error object returned by a node. Not retried."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        code: Optional[int] = None,
        method: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, adapter_name, chain, original_error, context)
        self.code = code
        self.method = method

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "code": self.code,
            "method": self.method,
        })
        return data


class UpstreamUnavailableError(ChainAdapterError):
    """Transport failures persisted after every retry."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        attempts: int = 0,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, adapter_name, chain, original_error, context)
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["attempts"] = self.attempts
        return data


class CapabilityNotSupportedError(ChainAdapterError):
    """Requested operation is not offered by the adapter."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        capability: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, adapter_name, chain, original_error, context)
        self.capability = capability

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["capability"] = self.capability
        return data


class ConfigurationError(ChainAdapterError):
    """A required endpoint, deployment address or credential is absent."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        config_key: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, adapter_name, chain, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data
