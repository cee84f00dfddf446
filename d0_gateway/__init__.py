"""
D0 Gateway - Facade for external HTTP APIs

No other domain makes direct calls to third-party APIs; the semantic check
goes through the OpenAI provider defined here.
"""

from .base import BaseAPIClient

__all__ = ["BaseAPIClient"]
