"""
Semantic accessibility check

Sends a bounded digest of the page to an OpenAI-compatible chat model and
turns its JSON answer into SemanticViolation objects. Any failure degrades to
an empty result; the pipeline never fails because of this check.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from core.config import get_settings
from core.logging import get_logger
from core.metrics import semantic_checks
from d0_gateway.providers.openai import OpenAIClient
from d3_assessment.exceptions import SemanticCheckError
from d3_assessment.models import SemanticViolation
from d3_assessment.prompts import SemanticPrompts

logger = get_logger(__name__, domain="d3")

MAX_COMPLETION_TOKENS = 2000
TEMPERATURE = 0.3


@dataclass
class SemanticAnalysisResult:
    violations: list[SemanticViolation] = field(default_factory=list)
    skipped: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


class SemanticAnalyzer:
    """
    Runs the semantic check with cooperative pacing

    One instance is shared by all workers of a pool so the minimum interval
    between calls holds process-wide.
    """

    def __init__(
        self,
        client: Optional[OpenAIClient] = None,
        enabled: Optional[bool] = None,
        model: Optional[str] = None,
        call_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.enabled = settings.semantic_check_enabled if enabled is None else enabled
        self.model = model or settings.openai_model
        self.call_delay_seconds = (
            settings.semantic_call_delay_seconds if call_delay_seconds is None else call_delay_seconds
        )
        self._client = client
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_call: Optional[float] = None

        if not self.enabled:
            logger.warning("Semantic check disabled: no OpenAI API key configured or feature turned off")

    @property
    def client(self) -> OpenAIClient:
        if self._client is None:
            self._client = OpenAIClient()
        return self._client

    async def analyze(self, digest: dict[str, Any]) -> SemanticAnalysisResult:
        """
        Review one page digest

        Args:
            digest: Output of PageContent.to_digest()

        Returns:
            SemanticAnalysisResult; empty with ``error`` set on any failure
        """
        if not self.enabled:
            semantic_checks.labels(outcome="skipped").inc()
            return SemanticAnalysisResult(skipped=True, reason="Semantic check not configured")

        try:
            await self._wait_for_slot()
            response = await self.client.chat_completion(
                messages=SemanticPrompts.build_messages(digest),
                model=self.model,
                temperature=TEMPERATURE,
                max_tokens=MAX_COMPLETION_TOKENS,
                response_format={"type": "json_object"},
            )
            violations = self.parse_response(OpenAIClient.extract_content(response))
        except Exception as e:
            logger.error(f"Semantic check failed, continuing without it: {e}")
            semantic_checks.labels(outcome="degraded").inc()
            return SemanticAnalysisResult(error=str(e) or type(e).__name__)

        semantic_checks.labels(outcome="success").inc()
        logger.info(f"Semantic check found {len(violations)} violations")
        return SemanticAnalysisResult(violations=violations)

    @staticmethod
    def parse_response(content: str) -> list[SemanticViolation]:
        """
        Parse the model's JSON answer

        Raises:
            SemanticCheckError: If the content is not the expected JSON object
        """
        if not content:
            raise SemanticCheckError("Empty response from semantic check")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise SemanticCheckError(f"Invalid JSON from semantic check: {e}", content=content[:200]) from e

        if not isinstance(data, dict):
            raise SemanticCheckError("Semantic check response is not a JSON object")

        items = data.get("violations") or []
        if not isinstance(items, list):
            raise SemanticCheckError("'violations' is not a list")

        return [SemanticViolation.from_dict(item) for item in items if isinstance(item, dict)]

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _wait_for_slot(self) -> None:
        async with self._lock:
            if self._last_call is not None and self.call_delay_seconds > 0:
                elapsed = self._clock() - self._last_call
                if elapsed < self.call_delay_seconds:
                    await self._sleep(self.call_delay_seconds - elapsed)
            self._last_call = self._clock()
