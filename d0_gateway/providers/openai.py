"""
OpenAI API client implementation for semantic accessibility review
"""
from typing import Any, Dict, List, Optional

from core.config import get_settings

from ..base import BaseAPIClient


class OpenAIClient(BaseAPIClient):
    """OpenAI-compatible chat completions client"""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        settings = get_settings()
        super().__init__(
            provider="openai",
            api_key=api_key or settings.get_openai_key(),
            base_url=base_url or settings.openai_base_url,
            **kwargs,
        )

    def _get_base_url(self) -> str:
        """Get OpenAI API base URL"""
        return "https://api.openai.com"

    def _get_headers(self) -> Dict[str, str]:
        """Get OpenAI API headers"""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        response_format: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Create a chat completion

        Args:
            messages: List of message objects
            model: Model to use
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            response_format: Response format specification

        Returns:
            Dict containing the completion response
        """
        payload = {"model": model, "messages": messages, "temperature": temperature}

        if max_tokens:
            payload["max_tokens"] = max_tokens

        if response_format:
            payload["response_format"] = response_format

        return await self.make_request("POST", "/v1/chat/completions", json=payload)

    @staticmethod
    def extract_content(response: Dict[str, Any]) -> str:
        """Pull the first choice's message text out of a completion response"""
        choices = response.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""
