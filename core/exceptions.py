"""
Error hierarchy for A11yAudit

Each error carries a machine-readable code, an HTTP-style status and a
details dict; ``to_dict`` is the shape handed to callers and logs.
"""
from typing import Any, Dict, Optional


class A11yAuditError(Exception):
    """Base exception for all A11yAudit errors"""

    default_code: Optional[str] = None
    default_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code or self.__class__.__name__
        self.details = details or {}
        self.status_code = status_code or self.default_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


def _keyed(name: str, value: Optional[str], details: Dict[str, Any]) -> Dict[str, Any]:
    return {name: value, **details} if value else details


class ValidationError(A11yAuditError):
    """A submission was rejected before any record or message was created"""

    default_code = "VALIDATION_ERROR"
    default_status = 400

    def __init__(self, message: str, field: Optional[str] = None, **details):
        super().__init__(message, details=_keyed("field", field, details))


class ConfigurationError(A11yAuditError):
    """Settings cannot support the requested operation"""

    default_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(message, details=_keyed("setting", setting, {}))


class ExternalAPIError(A11yAuditError):
    """A third-party HTTP API failed or answered with an error"""

    default_code = "EXTERNAL_API_ERROR"
    default_status = 502

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **details,
    ):
        super().__init__(
            f"{provider} API error: {message}",
            details={
                "provider": provider,
                "api_status_code": status_code,
                "response_body": response_body,
                **details,
            },
            status_code=status_code,
        )


class RateLimitError(ExternalAPIError):
    """Provider answered 429"""

    def __init__(self, provider: str, retry_after: Optional[int] = None):
        message = "Rate limit exceeded"
        if retry_after:
            message += f", retry after {retry_after} seconds"
        super().__init__(provider=provider, message=message, status_code=429, retry_after=retry_after)


class StoreError(A11yAuditError):
    """The report store cannot read or write a record"""

    default_code = "STORE_ERROR"

    def __init__(self, message: str, operation: Optional[str] = None, **details):
        super().__init__(message, details=_keyed("operation", operation, details))


class QueueError(A11yAuditError):
    """The job queue cannot accept or hand out messages"""

    default_code = "QUEUE_ERROR"
    default_status = 503

    def __init__(self, message: str, queue_name: Optional[str] = None, **details):
        super().__init__(message, details=_keyed("queue_name", queue_name, details))
