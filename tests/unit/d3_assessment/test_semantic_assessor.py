"""
Tests for the semantic accessibility check
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.exceptions import ExternalAPIError
from d3_assessment.assessors.semantic_assessor import SemanticAnalyzer
from d3_assessment.exceptions import SemanticCheckError
from d3_assessment.models import PageContent
from d3_assessment.prompts import SemanticPrompts
from tests.helpers import FakeClock

pytestmark = pytest.mark.unit


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def digest():
    content = PageContent(
        title="Checkout",
        text="Complete your order",
        headings=[{"level": 1, "text": "Checkout"}],
        links=[{"text": "click here", "href": "/terms", "aria_label": None}],
        images=[{"src": "/logo.png", "alt": "", "has_alt": False}],
        buttons=[{"text": "Go", "aria_label": None, "type": "submit"}],
    )
    return content.to_digest(500)


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.chat_completion = AsyncMock(
        return_value=completion(
            json.dumps(
                {
                    "violations": [
                        {
                            "type": "unclear-link-text",
                            "severity": "serious",
                            "description": "Link text 'click here' has no context",
                            "recommendation": "Describe the destination",
                            "examples": ["click here"],
                        }
                    ]
                }
            )
        )
    )
    client.aclose = AsyncMock()
    return client


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_successful_analysis(self, mock_client, digest):
        analyzer = SemanticAnalyzer(client=mock_client, enabled=True, call_delay_seconds=0)

        result = await analyzer.analyze(digest)

        assert not result.skipped
        assert not result.degraded
        assert len(result.violations) == 1
        assert result.violations[0].category == "unclear-link-text"
        assert result.violations[0].examples == ["click here"]

        kwargs = mock_client.chat_completion.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0]["role"] == "system"
        assert "click here" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_disabled_check_is_skipped(self, mock_client, digest):
        analyzer = SemanticAnalyzer(client=mock_client, enabled=False)

        result = await analyzer.analyze(digest)

        assert result.skipped
        assert result.violations == []
        mock_client.chat_completion.assert_not_called()

    @pytest.mark.asyncio
    async def test_api_error_degrades_to_empty_result(self, mock_client, digest):
        mock_client.chat_completion.side_effect = ExternalAPIError(provider="openai", message="HTTP 500")
        analyzer = SemanticAnalyzer(client=mock_client, enabled=True, call_delay_seconds=0)

        result = await analyzer.analyze(digest)

        assert result.violations == []
        assert result.degraded
        assert "HTTP 500" in result.error

    @pytest.mark.asyncio
    async def test_invalid_json_degrades_to_empty_result(self, mock_client, digest):
        mock_client.chat_completion.return_value = completion("I found some issues!")
        analyzer = SemanticAnalyzer(client=mock_client, enabled=True, call_delay_seconds=0)

        result = await analyzer.analyze(digest)

        assert result.violations == []
        assert result.degraded

    @pytest.mark.asyncio
    async def test_calls_are_paced(self, mock_client, digest, recording_sleep):
        clock = FakeClock(start=100.0)
        analyzer = SemanticAnalyzer(
            client=mock_client,
            enabled=True,
            call_delay_seconds=0.5,
            sleep=recording_sleep,
            clock=clock,
        )

        await analyzer.analyze(digest)
        clock.advance(0.2)
        await analyzer.analyze(digest)
        clock.advance(1.0)
        await analyzer.analyze(digest)

        assert recording_sleep.calls == [pytest.approx(0.3)]

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self, mock_client):
        analyzer = SemanticAnalyzer(client=mock_client, enabled=True)
        await analyzer.aclose()
        mock_client.aclose.assert_awaited_once()


class TestParseResponse:
    def test_empty_violations(self):
        assert SemanticAnalyzer.parse_response('{"violations": []}') == []

    def test_missing_violations_key(self):
        assert SemanticAnalyzer.parse_response("{}") == []

    @pytest.mark.parametrize("content", ["", "not json", "[1, 2]", '{"violations": "none"}'])
    def test_malformed_content_raises(self, content):
        with pytest.raises(SemanticCheckError):
            SemanticAnalyzer.parse_response(content)

    def test_non_dict_items_are_ignored(self):
        violations = SemanticAnalyzer.parse_response('{"violations": ["x", {"type": "complex-language"}]}')
        assert [v.category for v in violations] == ["complex-language"]


class TestPrompts:
    def test_system_prompt_lists_categories(self):
        for category in ("unclear-link-text", "complex-language", "poor-heading-structure"):
            assert category in SemanticPrompts.SYSTEM_PROMPT

    def test_page_prompt_includes_digest(self, digest):
        prompt = SemanticPrompts.build_page_prompt(digest)

        assert "Checkout" in prompt
        assert "click here" in prompt
        assert "/logo.png" in prompt
