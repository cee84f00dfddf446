"""
Tests for the audit pipeline and completion callbacks
"""
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from batch_runner.callbacks import CallbackNotifier, build_callback_payload
from batch_runner.pipeline import AuditPipeline
from d3_assessment.assessors.semantic_assessor import SemanticAnalysisResult
from d3_assessment.combiner import ResultCombiner
from d3_assessment.exceptions import TransientNetworkError
from d3_assessment.fetch_coordinator import FetchCoordinator, RetryPolicy
from d3_assessment.models import RawViolation, SemanticViolation
from d3_assessment.schemas import AuditOptions, AuditRecord
from d3_assessment.types import Severity
from tests.helpers import RecordingSleep, ScriptedSessionFactory

pytestmark = pytest.mark.unit


@pytest.fixture
def semantic_analyzer():
    analyzer = MagicMock()
    analyzer.analyze = AsyncMock(
        return_value=SemanticAnalysisResult(
            violations=[SemanticViolation(category="unclear-link-text", severity="minor")]
        )
    )
    analyzer.aclose = AsyncMock()
    return analyzer


def make_pipeline(factory, analyzer):
    coordinator = FetchCoordinator(
        factory,
        policy=RetryPolicy(max_retries=2, base_delay_ms=10),
        proxies=[],
        sleep=RecordingSleep(),
    )
    return AuditPipeline(coordinator, analyzer)


class TestAuditPipeline:
    @pytest.mark.asyncio
    async def test_run_combines_both_sources(self, semantic_analyzer):
        factory = ScriptedSessionFactory(
            violations=[RawViolation(rule_id="image-alt", impact=Severity.CRITICAL, tags=["wcag111"])]
        )
        pipeline = make_pipeline(factory, semantic_analyzer)

        outcome = await pipeline.run("https://example.com")

        assert outcome.report.source_counts == {"rule": 1, "semantic": 1}
        assert outcome.report.compliance_score == 89
        assert outcome.summary.critical_issues == 1
        assert outcome.fetch_result.attempts == 1
        digest = semantic_analyzer.analyze.call_args.args[0]
        assert digest["title"] == "Example"

    @pytest.mark.asyncio
    async def test_skip_semantic_check(self, semantic_analyzer):
        pipeline = make_pipeline(ScriptedSessionFactory(), semantic_analyzer)

        outcome = await pipeline.run("https://example.com", AuditOptions(skip_semantic_check=True))

        semantic_analyzer.analyze.assert_not_called()
        assert outcome.semantic.skipped
        assert outcome.semantic_check_info() == {
            "skipped": True,
            "reason": "Skipped by request",
            "error": None,
            "violations": 0,
        }

    @pytest.mark.asyncio
    async def test_degraded_semantic_check_still_produces_report(self, semantic_analyzer):
        semantic_analyzer.analyze.return_value = SemanticAnalysisResult(error="openai API error: HTTP 500")
        pipeline = make_pipeline(ScriptedSessionFactory(), semantic_analyzer)

        outcome = await pipeline.run("https://example.com")

        assert outcome.report.compliance_score == 100
        assert outcome.semantic.degraded

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, semantic_analyzer):
        factory = ScriptedSessionFactory(outcomes=[RuntimeError("ECONNREFUSED")] * 2)
        pipeline = make_pipeline(factory, semantic_analyzer)

        with pytest.raises(TransientNetworkError):
            await pipeline.run("https://example.com")
        semantic_analyzer.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_and_close(self, semantic_analyzer):
        factory = ScriptedSessionFactory()
        pipeline = make_pipeline(factory, semantic_analyzer)

        await pipeline.start()
        await pipeline.close()

        assert factory.started == 1
        assert factory.closed == 1
        semantic_analyzer.aclose.assert_awaited_once()


@pytest.fixture
def completed_record(audit_job, fetch_result):
    combiner = ResultCombiner()
    report = combiner.combine([], [])
    return AuditRecord.pending(audit_job).complete(report, combiner.summarize(report), fetch_result, 1.0)


class TestCallbacks:
    def test_payload(self, completed_record):
        payload = build_callback_payload(completed_record)

        assert payload["event"] == "audit.completed"
        assert payload["job_id"] == completed_record.job_id
        assert payload["url"] == "https://example.com"
        assert payload["score"] == 100
        assert payload["compliance_level"] == "AAA"
        assert payload["total_issues"] == 0
        assert "timestamp" in payload

    @pytest.mark.asyncio
    async def test_notify_posts_payload(self, completed_record):
        received = {}

        def handler(request: httpx.Request) -> httpx.Response:
            received["method"] = request.method
            received["body"] = json.loads(request.content)
            return httpx.Response(204)

        notifier = CallbackNotifier(timeout=5, transport=httpx.MockTransport(handler))
        delivered = await notifier.notify("https://hooks.example.com/done", completed_record)
        await notifier.aclose()

        assert delivered is True
        assert received["method"] == "POST"
        assert received["body"]["job_id"] == completed_record.job_id

    @pytest.mark.asyncio
    async def test_error_status_is_reported_not_raised(self, completed_record):
        notifier = CallbackNotifier(timeout=5, transport=httpx.MockTransport(lambda r: httpx.Response(500)))

        assert await notifier.notify("https://hooks.example.com/done", completed_record) is False
        await notifier.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_is_reported_not_raised(self, completed_record):
        def handler(request):
            raise httpx.ConnectTimeout("timed out")

        notifier = CallbackNotifier(timeout=5, transport=httpx.MockTransport(handler))

        assert await notifier.notify("https://hooks.example.com/done", completed_record) is False
        await notifier.aclose()
