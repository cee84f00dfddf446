"""
Tests for the OpenAI provider and the shared HTTP client base
"""
import json

import httpx
import pytest

from core.exceptions import ExternalAPIError, RateLimitError
from d0_gateway.providers.openai import OpenAIClient

pytestmark = pytest.mark.unit


def make_client(handler):
    return OpenAIClient(
        api_key="sk-test",
        base_url="https://llm.example.com",
        transport=httpx.MockTransport(handler),
    )


class TestChatCompletion:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": '{"violations": []}'}}]})

        async with make_client(handler) as client:
            response = await client.chat_completion(
                messages=[{"role": "user", "content": "hi"}],
                model="gpt-4o-mini",
                max_tokens=2000,
                response_format={"type": "json_object"},
            )

        assert captured["url"] == "https://llm.example.com/v1/chat/completions"
        assert captured["auth"] == "Bearer sk-test"
        assert captured["body"]["model"] == "gpt-4o-mini"
        assert captured["body"]["max_tokens"] == 2000
        assert captured["body"]["response_format"] == {"type": "json_object"}
        assert OpenAIClient.extract_content(response) == '{"violations": []}'

    @pytest.mark.asyncio
    async def test_optional_fields_omitted(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": []})

        async with make_client(handler) as client:
            response = await client.chat_completion(messages=[])

        assert "max_tokens" not in captured["body"]
        assert "response_format" not in captured["body"]
        assert OpenAIClient.extract_content(response) == ""


class TestErrors:
    @pytest.mark.asyncio
    async def test_rate_limit(self):
        def handler(request):
            return httpx.Response(429, headers={"retry-after": "12"}, json={})

        async with make_client(handler) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.chat_completion(messages=[])

        assert exc_info.value.details["retry_after"] == 12

    @pytest.mark.asyncio
    async def test_api_error_message_is_extracted(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

        async with make_client(handler) as client:
            with pytest.raises(ExternalAPIError) as exc_info:
                await client.chat_completion(messages=[])

        assert "Incorrect API key provided" in exc_info.value.message
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async with make_client(handler) as client:
            with pytest.raises(ExternalAPIError, match="connection refused"):
                await client.chat_completion(messages=[])

    @pytest.mark.asyncio
    async def test_invalid_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        async with make_client(handler) as client:
            with pytest.raises(ExternalAPIError, match="Invalid JSON"):
                await client.chat_completion(messages=[])
