"""Core utilities and configuration for A11yAudit"""
from core.config import settings
from core.exceptions import A11yAuditError, ExternalAPIError, ValidationError
from core.logging import get_logger

__all__ = [
    "settings",
    "get_logger",
    "A11yAuditError",
    "ValidationError",
    "ExternalAPIError",
]
