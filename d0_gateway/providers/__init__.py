"""
Provider-specific API clients for D0 Gateway
"""

from .openai import OpenAIClient

__all__ = ["OpenAIClient"]
