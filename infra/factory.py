"""
Backend selection for the queue and the report store

Backends are chosen by ``queue_backend`` / ``store_backend``; callers only
ever see the base contracts.
"""
from typing import Optional

from core.config import Settings, get_settings
from core.exceptions import ConfigurationError
from core.logging import get_logger
from infra.audit_queue import BaseAuditQueue, InMemoryAuditQueue, RedisAuditQueue
from infra.report_store import BaseReportStore, InMemoryReportStore, RedisReportStore

logger = get_logger(__name__, domain="infra")


def create_queue(settings: Optional[Settings] = None) -> BaseAuditQueue:
    settings = settings or get_settings()
    if settings.queue_backend == "memory":
        return InMemoryAuditQueue()
    if settings.queue_backend == "redis":
        logger.info(f"Using Redis queue '{settings.queue_name}'")
        return RedisAuditQueue(redis_url=settings.redis_url)
    raise ConfigurationError(f"Unknown queue backend: {settings.queue_backend}", setting="queue_backend")


def create_report_store(settings: Optional[Settings] = None) -> BaseReportStore:
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        return InMemoryReportStore(capacity=settings.memory_store_capacity)
    if settings.store_backend == "redis":
        logger.info("Using Redis report store")
        return RedisReportStore(redis_url=settings.redis_url)
    raise ConfigurationError(f"Unknown store backend: {settings.store_backend}", setting="store_backend")
