"""
Audit workers

A worker claims messages from the audit queue, runs the pipeline for each
job and acknowledges only what succeeded. Failures are isolated per message
and reported as a partial batch failure; unacknowledged messages come back
after the visibility window.
"""
import asyncio
import os
import socket
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from core.config import get_settings
from core.logging import get_logger
from core.metrics import active_workers, record_audit_processed
from d3_assessment.schemas import AuditJob, AuditRecord
from d3_assessment.types import AuditStatus
from infra.audit_queue import BaseAuditQueue, QueueMessage
from infra.report_store import BaseReportStore

from .callbacks import CallbackNotifier
from .pipeline import AuditPipeline

logger = get_logger(__name__, domain="batch")

# Marker for a redelivered job whose record was already completed
_ALREADY_COMPLETED = object()


@dataclass
class BatchResult:
    """Message ids that succeeded and failed in one batch"""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def batch_item_failures(self) -> dict[str, Any]:
        """Partial batch failure response, one entry per failed message"""
        return {"batchItemFailures": [{"itemIdentifier": message_id} for message_id in self.failed]}


class AuditWorker:
    """Processes queue messages one job at a time"""

    def __init__(
        self,
        queue: BaseAuditQueue,
        store: BaseReportStore,
        pipeline: AuditPipeline,
        notifier: Optional[CallbackNotifier] = None,
        worker_id: Optional[str] = None,
    ):
        self.settings = get_settings()
        self.queue = queue
        self.store = store
        self.pipeline = pipeline
        self.notifier = notifier
        self.worker_id = worker_id or f"{socket.gethostname()}:{os.getpid()}"
        self.job_deadline_seconds = queue.visibility_timeout
        self.logger = logger.with_context(worker_id=self.worker_id)
        self._started = False

    async def start(self) -> None:
        if not self._started:
            await self.pipeline.start()
            self._started = True

    async def close(self) -> None:
        """Release the shared browser; unacknowledged messages stay queued"""
        if self._started:
            await self.pipeline.close()
            self._started = False

    async def run_once(self, max_messages: Optional[int] = None) -> BatchResult:
        """Receive one batch and process it"""
        messages = await self.queue.receive(max_messages or self.settings.worker_batch_size)
        if not messages:
            return BatchResult()
        return await self.process_messages(messages)

    async def process_messages(self, messages: list[QueueMessage]) -> BatchResult:
        """
        Process a batch of claimed messages

        Returns:
            BatchResult; if the shared browser cannot start, every message
            in the batch is reported failed
        """
        result = BatchResult()

        try:
            await self.start()
        except Exception as e:
            self.logger.error(f"Worker initialization failed, failing batch of {len(messages)}: {e}")
            result.failed.extend(m.message_id for m in messages)
            return result

        for message in messages:
            if await self.process_message(message):
                result.succeeded.append(message.message_id)
            else:
                result.failed.append(message.message_id)

        if result.failed:
            self.logger.warning(f"Batch finished with {len(result.failed)}/{result.total} failures")
        return result

    async def process_message(self, message: QueueMessage) -> bool:
        """
        Run one job; True when it was completed and acknowledged

        Any error, including a store or queue failure, fails only this
        message. The completion callback runs after the acknowledgement and
        never changes the outcome.
        """
        log = self.logger.with_context(message_id=message.message_id)

        try:
            job = AuditJob.from_message_body(message.body, delivery_count=message.delivery_count)
        except PydanticValidationError as e:
            log.error(f"Discarding unreadable message body: {e}")
            return False

        log = log.with_context(job_id=job.job_id, url=job.url)
        try:
            completed = await self._run_job(job, message, log)
        except Exception as e:
            log.error(f"Job processing error, leaving message for redelivery: {e}")
            return False

        if completed is None:
            return False
        if completed is not _ALREADY_COMPLETED and job.options.callback_url:
            await self._notify(job.options.callback_url, completed, log)
        return True

    async def _run_job(self, job: AuditJob, message: QueueMessage, log) -> Any:
        """Completed record, ``_ALREADY_COMPLETED`` for an acknowledged redelivery, or None on failure"""
        record = await self.store.get(job.job_id)

        if record is not None and record.status == AuditStatus.COMPLETED:
            log.info("Job already completed, acknowledging redelivery")
            await self.queue.delete(message.receipt_handle)
            return _ALREADY_COMPLETED

        if record is None or record.is_terminal:
            record = AuditRecord.pending(job, self.settings.report_ttl_days)

        started = time.monotonic()
        log.info(f"Processing job (delivery {message.delivery_count}/{self.queue.max_delivery_count})")

        try:
            outcome = await asyncio.wait_for(
                self.pipeline.run(job.url, job.options),
                timeout=self.job_deadline_seconds,
            )
        except Exception as e:
            duration = time.monotonic() - started
            error = str(e) or type(e).__name__
            if isinstance(e, asyncio.TimeoutError):
                error = f"Job exceeded its {self.job_deadline_seconds}s deadline"
            log.error(f"Job failed on delivery {message.delivery_count}: {error}")

            if message.delivery_count >= self.queue.max_delivery_count:
                await self.store.put(record.fail(error, duration))
                record_audit_processed("failed", duration)
                log.warning("Delivery attempts exhausted, job marked failed")
            else:
                record_audit_processed("retry", duration)
            return None

        final = record.complete(
            outcome.report,
            outcome.summary,
            outcome.fetch_result,
            outcome.duration_seconds,
            semantic_check=outcome.semantic_check_info(),
        )
        await self.store.put(final)
        await self.queue.delete(message.receipt_handle)
        record_audit_processed("completed", outcome.duration_seconds, final.compliance_score)
        return final

    async def _notify(self, callback_url: str, record: AuditRecord, log) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(callback_url, record)
        except Exception as e:
            log.warning(f"Completion callback raised, job stays completed: {e}")

    async def run(self, stop_event: asyncio.Event, max_messages: int = 1) -> None:
        """Poll until stop_event is set"""
        poll_interval = self.settings.worker_poll_interval_seconds
        active_workers.inc()
        try:
            while not stop_event.is_set():
                try:
                    result = await self.run_once(max_messages)
                except Exception as e:
                    self.logger.error(f"Worker loop error: {e}")
                    result = BatchResult()

                if result.total == 0:
                    try:
                        await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
                    except asyncio.TimeoutError:
                        pass
        finally:
            active_workers.dec()


class WorkerPool:
    """N concurrent workers sharing one queue, one store and one pipeline"""

    def __init__(
        self,
        queue: BaseAuditQueue,
        store: BaseReportStore,
        pipeline: AuditPipeline,
        size: Optional[int] = None,
        notifier: Optional[CallbackNotifier] = None,
    ):
        self.size = size or get_settings().worker_pool_size
        self.pipeline = pipeline
        self.notifier = notifier
        base_id = f"{socket.gethostname()}:{os.getpid()}"
        self.workers = [
            AuditWorker(queue, store, pipeline, notifier=notifier, worker_id=f"{base_id}:{i}")
            for i in range(self.size)
        ]
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        await self.pipeline.start()
        self._tasks = [asyncio.create_task(worker.run(self._stop_event)) for worker in self.workers]
        logger.info(f"Worker pool started with {self.size} workers")

    async def run_until_stopped(self) -> None:
        await self.start()
        try:
            await asyncio.gather(*self._tasks)
        finally:
            await self.close()

    def stop(self) -> None:
        self._stop_event.set()

    async def close(self) -> None:
        self.stop()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
        await self.pipeline.close()
        if self.notifier is not None:
            await self.notifier.aclose()
        logger.info("Worker pool stopped")
