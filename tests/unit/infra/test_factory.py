"""
Tests for backend selection
"""
import pytest

from core.config import Settings
from core.exceptions import ConfigurationError
from infra.audit_queue import InMemoryAuditQueue, RedisAuditQueue
from infra.factory import create_queue, create_report_store
from infra.report_store import InMemoryReportStore, RedisReportStore

pytestmark = pytest.mark.unit


class TestFactory:
    def test_memory_backends(self):
        settings = Settings(_env_file=None, queue_backend="memory", store_backend="memory", memory_store_capacity=5)

        assert isinstance(create_queue(settings), InMemoryAuditQueue)
        store = create_report_store(settings)
        assert isinstance(store, InMemoryReportStore)
        assert store.capacity == 5

    def test_redis_backends(self):
        settings = Settings(
            _env_file=None,
            queue_backend="redis",
            store_backend="redis",
            redis_url="redis://cache:6379/2",
        )

        queue = create_queue(settings)
        store = create_report_store(settings)

        assert isinstance(queue, RedisAuditQueue)
        assert queue.redis_url == "redis://cache:6379/2"
        assert isinstance(store, RedisReportStore)

    def test_unknown_backend(self):
        settings = Settings(_env_file=None)
        settings.queue_backend = "sqs"

        with pytest.raises(ConfigurationError):
            create_queue(settings)
