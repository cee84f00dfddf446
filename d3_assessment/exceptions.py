"""
D3 Assessment exceptions
"""
from typing import Optional

from core.exceptions import A11yAuditError

# Error message fragments that indicate a transient network condition
RETRYABLE_SIGNATURES = (
    "net::ERR_CONNECTION_RESET",
    "net::ERR_CONNECTION_REFUSED",
    "net::ERR_CONNECTION_TIMED_OUT",
    "net::ERR_NAME_NOT_RESOLVED",
    "Navigation timeout",
    "Protocol error",
    "ECONNREFUSED",
    "ETIMEDOUT",
)


def has_retryable_signature(message: str) -> bool:
    return any(signature in message for signature in RETRYABLE_SIGNATURES)


class AssessmentError(A11yAuditError):
    """Base exception for assessment errors"""


class FetchError(AssessmentError):
    """Raised when a page could not be rendered and evaluated"""

    def __init__(self, message: str, url: Optional[str] = None, attempts: int = 0, **details):
        super().__init__(
            message=message,
            details={"url": url, "attempts": attempts, **details},
            status_code=502,
        )
        self.url = url
        self.attempts = attempts


class TransientNetworkError(FetchError):
    """Network-level failure that may succeed on a later attempt"""


class EngineInitializationError(FetchError):
    """Page loaded but the rule engine could not be loaded or initialized"""


class SemanticCheckError(AssessmentError):
    """Semantic check call or response parsing failed"""

    def __init__(self, message: str, **details):
        super().__init__(message=message, details=details, status_code=502)
