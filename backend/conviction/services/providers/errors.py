"""
Provider Adapters - Error Classes

Typed failures for upstream market-data and transaction-history providers,
plus the pipeline-level errors raised by normalization and ingestion.
"""

from typing import Optional, Dict, Any, List, Tuple
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors that can occur"""
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    API_ERROR = "api_error"
    NOT_CONFIGURED = "not_configured"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


class UpstreamError(Exception):
    """Base exception for all provider errors"""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.category = category
        self.status_code = status_code
        self.response_data = response_data or {}
        self.retry_after = retry_after

    def __str__(self):
        return f"[{self.provider}:{self.category.value}] {self.message}"

    def is_retryable(self) -> bool:
        """Check if this error should trigger a retry"""
        return self.category in [
            ErrorCategory.NETWORK,
            ErrorCategory.RATE_LIMIT,
            ErrorCategory.API_ERROR
        ]


class UpstreamUnavailable(UpstreamError):
    """Raised when a provider answers with a non-success status or times out"""

    def __init__(self, message: str = "Provider unavailable", **kwargs):
        kwargs.setdefault("category", ErrorCategory.API_ERROR)
        super().__init__(message=message, **kwargs)


class AuthenticationError(UpstreamError):
    """Raised when the provider rejects our credentials"""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.AUTHENTICATION,
            **kwargs
        )


class RateLimitError(UpstreamError):
    """Raised when rate limit is exceeded"""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        **kwargs
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.RATE_LIMIT,
            retry_after=retry_after,
            **kwargs
        )


class NetworkError(UpstreamError):
    """Raised when network request fails"""

    def __init__(self, message: str = "Network request failed", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.NETWORK,
            **kwargs
        )


class ProviderNotConfigured(UpstreamError):
    """Raised when a provider is called without its API key"""

    def __init__(self, message: str = "Provider API key not configured", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.NOT_CONFIGURED,
            **kwargs
        )


class InvalidRecordError(ValueError):
    """Raised when a normalized trade fails validation"""

    def __init__(self, message: str, record_hash: Optional[str] = None):
        super().__init__(message)
        self.record_hash = record_hash


class AllProvidersExhausted(Exception):
    """Raised when every provider in a chain's fallback list failed"""

    def __init__(self, chain: str, failures: List[Tuple[str, str]]):
        self.chain = chain
        self.failures = failures
        detail = "; ".join(f"{name}: {reason}" for name, reason in failures)
        super().__init__(
            f"All transaction providers failed for {chain}"
            + (f" ({detail})" if detail else "")
        )


def categorize_error(
    status_code: Optional[int],
    response: Optional[Dict[str, Any]]
) -> ErrorCategory:
    """
    Categorize error based on HTTP status code and response.

    Args:
        status_code: HTTP status code
        response: API response dictionary

    Returns:
        ErrorCategory enum value
    """
    if status_code == 401 or status_code == 403:
        return ErrorCategory.AUTHENTICATION

    if status_code == 429:
        return ErrorCategory.RATE_LIMIT

    if status_code and status_code >= 500:
        return ErrorCategory.API_ERROR

    if status_code and status_code >= 400:
        # 4xx other than auth/quota will not improve on retry
        return ErrorCategory.INVALID_RESPONSE

    return ErrorCategory.UNKNOWN
