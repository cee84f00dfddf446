"""
Tests for the Job Dispatcher
"""
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from batch_runner.dispatcher import JobDispatcher, generate_job_id
from core.exceptions import ValidationError
from d3_assessment.combiner import ResultCombiner
from d3_assessment.schemas import AuditJob
from d3_assessment.types import AuditPriority, AuditStatus
from infra.audit_queue import InMemoryAuditQueue
from infra.report_store import InMemoryReportStore
from tests.helpers import FakeClock

pytestmark = pytest.mark.unit

JOB_ID_PATTERN = re.compile(r"^audit-\d{13}-[a-z0-9]{6}$")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return InMemoryAuditQueue(queue_name="test_audits", clock=clock)


@pytest.fixture
def store():
    return InMemoryReportStore(capacity=100)


@pytest.fixture
def dispatcher(queue, store):
    return JobDispatcher(queue, store)


class TestJobIds:
    def test_format(self):
        assert JOB_ID_PATTERN.match(generate_job_id())
        assert generate_job_id("batch").startswith("batch-")

    def test_unique(self):
        assert len({generate_job_id() for _ in range(50)}) == 50


class TestSubmitAudit:
    @pytest.mark.asyncio
    async def test_creates_pending_record_and_message(self, dispatcher, queue, store):
        job_id = await dispatcher.submit_audit("https://example.com")

        assert JOB_ID_PATTERN.match(job_id)
        record = await store.get(job_id)
        assert record.status == AuditStatus.PENDING
        assert record.url == "https://example.com"

        messages = await queue.receive(10)
        job = AuditJob.from_message_body(messages[0].body)
        assert job.job_id == job_id
        assert job.options.priority == AuditPriority.NORMAL

    @pytest.mark.asyncio
    async def test_record_is_written_before_enqueue(self, queue, store):
        order = []
        store.put = AsyncMock(side_effect=lambda record: order.append("put"))
        queue.send = AsyncMock(side_effect=lambda body, delay_seconds=0: order.append("send") or "msg-1")

        await JobDispatcher(queue, store).submit_audit("https://example.com")

        assert order == ["put", "send"]

    @pytest.mark.asyncio
    async def test_caller_supplied_job_id(self, dispatcher, store):
        job_id = await dispatcher.submit_audit("https://example.com", job_id="custom-1")

        assert job_id == "custom-1"
        assert await store.get("custom-1") is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["", "example.com", "ftp://example.com", None])
    async def test_invalid_url_rejected_before_any_write(self, dispatcher, queue, store, url):
        with pytest.raises(ValidationError):
            await dispatcher.submit_audit(url)

        assert await store.scan_recent() == []
        assert (await queue.stats()).visible == 0

    @pytest.mark.asyncio
    async def test_invalid_options_rejected(self, dispatcher, store):
        with pytest.raises(ValidationError) as exc_info:
            await dispatcher.submit_audit("https://example.com", {"priority": "urgent"})

        assert exc_info.value.details["field"] == "options"
        assert await store.scan_recent() == []

    @pytest.mark.asyncio
    async def test_low_priority_is_delayed(self, dispatcher, queue, clock):
        await dispatcher.submit_audit("https://example.com", {"priority": "low"})

        assert await queue.receive(10) == []
        assert (await queue.stats()).delayed == 1

        clock.advance(30)
        assert len(await queue.receive(10)) == 1

    @pytest.mark.asyncio
    async def test_high_priority_is_immediate(self, dispatcher, queue):
        await dispatcher.submit_audit("https://example.com", {"priority": "high", "skip_semantic_check": True})

        messages = await queue.receive(10)
        job = AuditJob.from_message_body(messages[0].body)
        assert job.options.skip_semantic_check is True


class TestSubmitBatch:
    @pytest.mark.asyncio
    async def test_fan_out(self, dispatcher, queue, store):
        urls = ["https://a.example", "https://b.example", "https://c.example"]

        job_ids = await dispatcher.submit_batch(urls)

        batch_id = job_ids[0].rsplit("-", 1)[0]
        assert batch_id.startswith("batch-")
        assert job_ids == [f"{batch_id}-{i}" for i in range(3)]
        assert len(await queue.receive(10)) == 3
        for job_id, url in zip(job_ids, urls):
            assert (await store.get(job_id)).url == url

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "urls",
        [
            [],
            [f"https://site{i}.example" for i in range(11)],
            ["https://ok.example", "not a url"],
            "https://example.com",
        ],
    )
    async def test_invalid_batches_create_nothing(self, dispatcher, queue, store, urls):
        with pytest.raises(ValidationError):
            await dispatcher.submit_batch(urls)

        assert await store.scan_recent() == []
        assert (await queue.stats()).visible == 0

    @pytest.mark.asyncio
    async def test_batch_at_limit(self, dispatcher):
        job_ids = await dispatcher.submit_batch([f"https://site{i}.example" for i in range(10)])
        assert len(job_ids) == 10


class TestReads:
    @pytest.mark.asyncio
    async def test_get_report_and_listings(self, dispatcher):
        first = await dispatcher.submit_audit("https://a.example")
        second = await dispatcher.submit_audit("https://b.example")

        assert (await dispatcher.get_report(first)).job_id == first
        assert await dispatcher.get_report("missing") is None
        assert {r.job_id for r in await dispatcher.list_recent()} == {first, second}
        assert [r.job_id for r in await dispatcher.list_by_url("https://b.example")] == [second]

    @pytest.mark.asyncio
    async def test_queue_stats(self, dispatcher):
        await dispatcher.submit_audit("https://a.example")
        await dispatcher.submit_audit("https://b.example", {"priority": "low"})

        stats = await dispatcher.queue_stats()

        assert stats.visible == 1
        assert stats.delayed == 1

    @pytest.mark.asyncio
    async def test_requeue_dead_letter(self, dispatcher, queue, clock):
        await dispatcher.submit_audit("https://a.example")
        for _ in range(queue.max_delivery_count + 1):
            await queue.receive(1)
            clock.advance(queue.visibility_timeout)
        message_id = (await queue.dead_letters())[0].message_id

        await dispatcher.requeue_dead_letter(message_id)

        assert (await queue.receive(1))[0].message_id == message_id


class TestAuditBatch:
    @pytest.mark.asyncio
    async def test_sequential_with_pacing_and_isolated_failures(self, queue, store, mock_pipeline, recording_sleep):
        combiner = ResultCombiner()
        report = combiner.combine([], [])
        outcome = MagicMock()
        outcome.report = report
        outcome.summary = combiner.summarize(report)

        async def run(url, options):
            if "broken" in url:
                raise RuntimeError("net::ERR_NAME_NOT_RESOLVED")
            return outcome

        mock_pipeline.run.side_effect = run
        dispatcher = JobDispatcher(queue, store, sleep=recording_sleep)

        results = await dispatcher.audit_batch(
            ["https://a.example", "https://broken.example", "not-a-url", "https://c.example"],
            mock_pipeline,
        )

        assert [r["success"] for r in results] == [True, False, False, True]
        assert results[1]["error"] == "net::ERR_NAME_NOT_RESOLVED"
        assert results[0]["summary"]["overall_score"] == 100
        assert recording_sleep.calls == [1.0, 1.0, 1.0]
        assert mock_pipeline.run.await_count == 3
