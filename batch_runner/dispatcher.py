"""
Job Dispatcher

Submission side of the audit pipeline. Validates requests, persists a
pending record before anything is enqueued, and exposes the read
operations an HTTP layer binds to.
"""
import asyncio
import secrets
import string
import time
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from core.config import get_settings
from core.exceptions import ValidationError
from core.logging import get_logger
from core.metrics import audits_submitted
from d3_assessment.schemas import AuditJob, AuditOptions, AuditRecord, is_valid_url
from d3_assessment.types import AuditPriority
from infra.audit_queue import BaseAuditQueue, QueueStats
from infra.report_store import BaseReportStore

from .pipeline import AuditPipeline

logger = get_logger(__name__, domain="batch")

_ID_ALPHABET = string.ascii_lowercase + string.digits

OptionsInput = Union[AuditOptions, dict[str, Any], None]


def generate_job_id(prefix: str = "audit") -> str:
    """<prefix>-<epoch ms>-<6 random base36 chars>"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


class JobDispatcher:
    """Accepts audit requests and hands them to the queue"""

    def __init__(
        self,
        queue: BaseAuditQueue,
        store: BaseReportStore,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = get_settings()
        self.queue = queue
        self.store = store
        self._sleep = sleep

    async def submit_audit(self, url: str, options: OptionsInput = None, job_id: Optional[str] = None) -> str:
        """
        Submit one URL for auditing

        Args:
            url: Absolute http(s) URL
            options: AuditOptions or a dict of its fields
            job_id: Caller-supplied id; generated when omitted

        Returns:
            The job id. A pending record exists for it before this returns.

        Raises:
            ValidationError: Malformed URL or options
        """
        self._validate_url(url)
        job = self._build_job(job_id or generate_job_id(), url, self._parse_options(options))

        await self.store.put(AuditRecord.pending(job, self.settings.report_ttl_days))
        await self.enqueue(job)

        logger.with_context(job_id=job.job_id, url=job.url).info("Audit job submitted")
        return job.job_id

    async def submit_batch(self, urls: Sequence[str], options: OptionsInput = None) -> list[str]:
        """
        Fan a batch out into one job per URL, ids ``<batch_id>-<index>``

        The whole batch is validated before any record or message is created.
        """
        if not urls or isinstance(urls, str):
            raise ValidationError("URLs array is required", field="urls")
        if len(urls) > self.settings.max_batch_urls:
            raise ValidationError(
                f"Batch limited to {self.settings.max_batch_urls} URLs",
                field="urls",
                provided=len(urls),
            )
        for url in urls:
            self._validate_url(url)

        parsed_options = self._parse_options(options)
        batch_id = generate_job_id("batch")
        jobs = [self._build_job(f"{batch_id}-{i}", url, parsed_options) for i, url in enumerate(urls)]

        for job in jobs:
            await self.store.put(AuditRecord.pending(job, self.settings.report_ttl_days))
        for job in jobs:
            await self.enqueue(job)

        logger.info(f"Batch {batch_id}: enqueued {len(jobs)} jobs")
        return [job.job_id for job in jobs]

    async def enqueue(self, job: AuditJob) -> str:
        """Send the job to the queue; low priority jobs start delayed"""
        delay = 0
        if job.options.priority == AuditPriority.LOW:
            delay = self.settings.low_priority_delay_seconds

        message_id = await self.queue.send(job.to_message_body(), delay_seconds=delay)
        audits_submitted.labels(priority=job.options.priority.value).inc()
        logger.debug(f"Job {job.job_id} enqueued as message {message_id} (delay={delay}s)")
        return message_id

    async def get_report(self, job_id: str) -> Optional[AuditRecord]:
        return await self.store.get(job_id)

    async def list_recent(self, limit: int = 50) -> list[AuditRecord]:
        return await self.store.scan_recent(limit)

    async def list_by_url(self, url: str, limit: int = 20) -> list[AuditRecord]:
        return await self.store.query_by_url(url, limit)

    async def queue_stats(self) -> QueueStats:
        return await self.queue.stats()

    async def requeue_dead_letter(self, message_id: str) -> str:
        """Operator action: give a dead-lettered job a fresh set of deliveries"""
        return await self.queue.requeue_dead_letter(message_id)

    async def audit_batch(
        self,
        urls: Sequence[str],
        pipeline: AuditPipeline,
        options: OptionsInput = None,
    ) -> list[dict[str, Any]]:
        """
        Audit a small batch inline, one page after another

        Pages are paced by ``batch_item_delay_seconds``; one failure does not
        stop the rest of the batch.
        """
        parsed_options = self._parse_options(options)
        results = []

        for index, url in enumerate(urls):
            if index:
                await self._sleep(self.settings.batch_item_delay_seconds)
            try:
                self._validate_url(url)
                outcome = await pipeline.run(url, parsed_options)
            except Exception as e:
                logger.error(f"Batch audit failed for {url}: {e}")
                results.append({"url": url, "success": False, "error": str(e) or type(e).__name__})
                continue

            results.append(
                {
                    "url": url,
                    "success": True,
                    "summary": outcome.summary.to_dict(),
                    "report": outcome.report.to_dict(),
                }
            )

        return results

    @staticmethod
    def _validate_url(url: Any) -> None:
        if not url:
            raise ValidationError("URL is required", field="url")
        if not is_valid_url(url):
            raise ValidationError("Invalid URL format", field="url", provided=str(url))

    @staticmethod
    def _parse_options(options: OptionsInput) -> AuditOptions:
        if options is None:
            return AuditOptions()
        if isinstance(options, AuditOptions):
            return options
        try:
            return AuditOptions.model_validate(options)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid audit options: {e.errors()[0]['msg']}", field="options") from e

    @staticmethod
    def _build_job(job_id: str, url: str, options: AuditOptions) -> AuditJob:
        try:
            return AuditJob(job_id=job_id, url=url, options=options)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid audit job: {e.errors()[0]['msg']}", field="job_id") from e
