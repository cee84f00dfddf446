"""
Report store for audit records

Records are keyed by job_id, so re-running a job overwrites its record
instead of duplicating it. Every record carries ``expires_at``; expired
records are never returned.
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, Optional

import redis.asyncio as aioredis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from core.config import get_settings
from core.exceptions import StoreError
from core.logging import get_logger
from d3_assessment.schemas import AuditRecord

logger = get_logger(__name__, domain="infra")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseReportStore(ABC):
    """Durable keyed storage for pending and finished audit records"""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    @abstractmethod
    async def put(self, record: AuditRecord) -> None:
        """Insert or overwrite the record for record.job_id"""

    @abstractmethod
    async def get(self, job_id: str) -> Optional[AuditRecord]:
        """Return the record or None when absent or expired"""

    @abstractmethod
    async def query_by_url(self, url: str, limit: int = 20) -> list[AuditRecord]:
        """Records for one URL, newest submission first"""

    @abstractmethod
    async def scan_recent(self, limit: int = 50) -> list[AuditRecord]:
        """Most recently submitted records first"""

    @abstractmethod
    async def delete(self, job_id: str) -> bool:
        """Remove a record; False when it did not exist"""

    async def close(self) -> None:
        """Release backend connections"""

    def _now(self) -> datetime:
        return self._clock()


class InMemoryReportStore(BaseReportStore):
    """Fixed-capacity store; the oldest record is evicted when full"""

    def __init__(self, capacity: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.capacity = capacity or get_settings().memory_store_capacity
        self._records: "OrderedDict[str, AuditRecord]" = OrderedDict()

    async def put(self, record: AuditRecord) -> None:
        self._records[record.job_id] = record
        while len(self._records) > self.capacity:
            evicted, _ = self._records.popitem(last=False)
            logger.debug(f"Evicted audit record {evicted} (capacity {self.capacity})")

    async def get(self, job_id: str) -> Optional[AuditRecord]:
        record = self._records.get(job_id)
        if record is None:
            return None
        if record.is_expired(self._now()):
            del self._records[job_id]
            return None
        return record

    async def query_by_url(self, url: str, limit: int = 20) -> list[AuditRecord]:
        return self._newest_first([r for r in self._live() if r.url == url])[:limit]

    async def scan_recent(self, limit: int = 50) -> list[AuditRecord]:
        return self._newest_first(self._live())[:limit]

    async def delete(self, job_id: str) -> bool:
        return self._records.pop(job_id, None) is not None

    def _live(self) -> list[AuditRecord]:
        now = self._now()
        expired = [job_id for job_id, r in self._records.items() if r.is_expired(now)]
        for job_id in expired:
            del self._records[job_id]
        return list(self._records.values())

    @staticmethod
    def _newest_first(records: list[AuditRecord]) -> list[AuditRecord]:
        # Stable: ties keep insertion order, reversed
        return sorted(reversed(records), key=lambda r: r.submitted_at, reverse=True)


class RedisReportStore(BaseReportStore):
    """
    Redis-backed store

    Each record is a JSON string with a TTL matching its expiry. Two sorted
    sets index records by submission time: one global, one per URL. Index
    entries pointing at expired records are pruned on read.
    """

    SCAN_PAGE = 50

    def __init__(self, redis_url: Optional[str] = None, client: Optional[aioredis.Redis] = None, **kwargs):
        super().__init__(**kwargs)
        self.settings = get_settings()
        self.redis_url = redis_url or self.settings.redis_url
        self._redis: Optional[aioredis.Redis] = client
        self.prefix = f"{self.settings.environment}_audit"

    async def _get_redis(self) -> aioredis.Redis:
        """Get Redis connection (lazy initialization)"""
        if self._redis is None:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    def _record_key(self, job_id: str) -> str:
        return f"{self.prefix}:record:{job_id}"

    def _recent_key(self) -> str:
        return f"{self.prefix}:recent"

    def _url_key(self, url: str) -> str:
        return f"{self.prefix}:url:{url}"

    async def put(self, record: AuditRecord) -> None:
        ttl = int((record.expires_at - self._now()).total_seconds())
        if ttl <= 0:
            logger.warning(f"Not storing already-expired record {record.job_id}")
            return

        score = record.submitted_at.timestamp()
        try:
            redis = await self._get_redis()
            async with redis.pipeline(transaction=True) as pipe:
                pipe.set(self._record_key(record.job_id), record.model_dump_json(), ex=ttl)
                pipe.zadd(self._recent_key(), {record.job_id: score})
                pipe.zadd(self._url_key(record.url), {record.job_id: score})
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"Failed to store record {record.job_id}: {e}", operation="put") from e

    async def get(self, job_id: str) -> Optional[AuditRecord]:
        try:
            redis = await self._get_redis()
            data = await redis.get(self._record_key(job_id))
        except RedisError as e:
            raise StoreError(f"Failed to read record {job_id}: {e}", operation="get") from e

        if data is None:
            return None
        return self._parse(job_id, data)

    async def query_by_url(self, url: str, limit: int = 20) -> list[AuditRecord]:
        return await self._collect(self._url_key(url), limit)

    async def scan_recent(self, limit: int = 50) -> list[AuditRecord]:
        return await self._collect(self._recent_key(), limit)

    async def delete(self, job_id: str) -> bool:
        record = await self.get(job_id)
        redis = await self._get_redis()
        async with redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._record_key(job_id))
            pipe.zrem(self._recent_key(), job_id)
            if record is not None:
                pipe.zrem(self._url_key(record.url), job_id)
            results = await pipe.execute()
        return bool(results[0])

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def _collect(self, index_key: str, limit: int) -> list[AuditRecord]:
        """Walk an index newest first until limit live records are found"""
        try:
            redis = await self._get_redis()
            records: list[AuditRecord] = []
            start = 0
            while len(records) < limit:
                job_ids = await redis.zrevrange(index_key, start, start + self.SCAN_PAGE - 1)
                if not job_ids:
                    break
                start += len(job_ids)

                values = await redis.mget([self._record_key(j) for j in job_ids])
                stale = []
                for job_id, data in zip(job_ids, values):
                    if data is None:
                        stale.append(job_id)
                        continue
                    record = self._parse(job_id, data)
                    if record is not None:
                        records.append(record)

                if stale:
                    await redis.zrem(index_key, *stale)
                    start -= len(stale)
        except RedisError as e:
            raise StoreError(f"Failed to scan {index_key}: {e}", operation="scan") from e

        return records[:limit]

    @staticmethod
    def _parse(job_id: str, data: str) -> Optional[AuditRecord]:
        try:
            return AuditRecord.model_validate_json(data)
        except PydanticValidationError as e:
            logger.error(f"Discarding unreadable record {job_id}: {e}")
            return None
