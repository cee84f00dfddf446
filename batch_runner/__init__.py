"""
Batch Runner - Job submission and queue-driven audit workers
"""

from .dispatcher import JobDispatcher, generate_job_id
from .pipeline import AuditOutcome, AuditPipeline
from .worker import AuditWorker, BatchResult, WorkerPool

__all__ = [
    "JobDispatcher",
    "generate_job_id",
    "AuditPipeline",
    "AuditOutcome",
    "AuditWorker",
    "BatchResult",
    "WorkerPool",
]
