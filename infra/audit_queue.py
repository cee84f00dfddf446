"""
Audit job queue with visibility-timeout semantics

At-least-once delivery: a received message is hidden from other consumers
for the visibility window and reappears if it is not deleted in time. Each
delivery gets a fresh receipt handle; only the latest one can delete the
message. Messages received more than ``max_delivery_count`` times move to a
dead-letter set for manual inspection.

Two backends share the BaseAuditQueue contract: an in-process queue for
local runs and tests, and a Redis queue for shared deployments.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import uuid4

import redis.asyncio as aioredis
from pydantic import BaseModel, Field
from redis.exceptions import RedisError, ResponseError

from core.config import get_settings
from core.exceptions import QueueError
from core.logging import get_logger
from core.metrics import dead_lettered_messages


class QueueMessage(BaseModel):
    """One delivery of a queued message"""

    message_id: str
    body: str
    receipt_handle: str
    delivery_count: int = Field(default=1, ge=1)
    visible_at: float = Field(description="Epoch seconds when the message becomes visible again")


class QueueStats(BaseModel):
    """Queue statistics for monitoring"""

    queue_name: str
    visible: int = 0
    in_flight: int = 0
    delayed: int = 0
    dead_lettered: int = 0


class DeadLetterEntry(BaseModel):
    message_id: str
    body: str
    delivery_count: int
    dead_lettered_at: datetime


class QueueDeliveryExhausted(QueueError):
    """Raised when a dead-lettered message cannot be found for requeue"""

    def __init__(self, message_id: str, queue_name: Optional[str] = None):
        super().__init__(
            message=f"Dead-lettered message not found: {message_id}",
            queue_name=queue_name,
            message_id=message_id,
        )
        self.message_id = message_id


def new_message_id() -> str:
    return str(uuid4())


def new_receipt_handle() -> str:
    return uuid4().hex


class BaseAuditQueue(ABC):
    """Queue contract used by the dispatcher and the workers"""

    def __init__(
        self,
        queue_name: Optional[str] = None,
        visibility_timeout: Optional[int] = None,
        max_delivery_count: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = get_settings()
        self.queue_name = queue_name or settings.queue_name
        self.visibility_timeout = visibility_timeout or settings.visibility_timeout_seconds
        self.max_delivery_count = max_delivery_count or settings.max_delivery_count
        self.logger = get_logger(f"queue.{self.queue_name}", domain="infra")
        self._clock = clock

    @abstractmethod
    async def send(self, body: str, delay_seconds: int = 0) -> str:
        """Enqueue a message body; returns the message id"""

    @abstractmethod
    async def receive(self, max_messages: int = 10, visibility_timeout: Optional[int] = None) -> list[QueueMessage]:
        """Claim up to max_messages visible messages"""

    @abstractmethod
    async def delete(self, receipt_handle: str) -> bool:
        """Acknowledge a delivery; False when the receipt is stale or unknown"""

    @abstractmethod
    async def stats(self) -> QueueStats:
        """Point-in-time counts, approximate under concurrency"""

    @abstractmethod
    async def dead_letters(self, limit: int = 50) -> list[DeadLetterEntry]:
        """Most recently dead-lettered messages first"""

    @abstractmethod
    async def requeue_dead_letter(self, message_id: str) -> str:
        """
        Move a dead-lettered message back onto the queue with a reset count

        Raises:
            QueueDeliveryExhausted: If no such dead letter exists
        """

    async def close(self) -> None:
        """Release backend connections"""

    def _now(self) -> float:
        return self._clock()

    def _record_dead_letters(self, count: int) -> None:
        if count:
            dead_lettered_messages.inc(count)
            self.logger.warning(f"Moved {count} message(s) to the dead-letter set after {self.max_delivery_count} deliveries")


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    visible_at: float
    sequence: int
    delivery_count: int = 0
    receipt_handle: Optional[str] = None


class InMemoryAuditQueue(BaseAuditQueue):
    """Process-local queue; all workers must share this instance"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._messages: dict[str, _StoredMessage] = {}
        self._receipts: dict[str, str] = {}
        self._dead: dict[str, DeadLetterEntry] = {}
        self._sequence = 0
        self._lock = asyncio.Lock()

    async def send(self, body: str, delay_seconds: int = 0) -> str:
        async with self._lock:
            message_id = new_message_id()
            self._sequence += 1
            self._messages[message_id] = _StoredMessage(
                message_id=message_id,
                body=body,
                visible_at=self._now() + max(0, delay_seconds),
                sequence=self._sequence,
            )
        self.logger.debug(f"Enqueued message {message_id} (delay={delay_seconds}s)")
        return message_id

    async def receive(self, max_messages: int = 10, visibility_timeout: Optional[int] = None) -> list[QueueMessage]:
        visibility = visibility_timeout or self.visibility_timeout
        claimed: list[QueueMessage] = []
        dead_count = 0

        async with self._lock:
            now = self._now()
            ready = sorted(
                (m for m in self._messages.values() if m.visible_at <= now),
                key=lambda m: (m.visible_at, m.sequence),
            )
            for stored in ready:
                if len(claimed) >= max_messages:
                    break

                if stored.receipt_handle:
                    self._receipts.pop(stored.receipt_handle, None)
                    stored.receipt_handle = None

                if stored.delivery_count + 1 > self.max_delivery_count:
                    del self._messages[stored.message_id]
                    self._dead[stored.message_id] = DeadLetterEntry(
                        message_id=stored.message_id,
                        body=stored.body,
                        delivery_count=stored.delivery_count,
                        dead_lettered_at=datetime.fromtimestamp(now, tz=timezone.utc),
                    )
                    dead_count += 1
                    continue

                stored.delivery_count += 1
                stored.visible_at = now + visibility
                stored.receipt_handle = new_receipt_handle()
                self._receipts[stored.receipt_handle] = stored.message_id
                claimed.append(
                    QueueMessage(
                        message_id=stored.message_id,
                        body=stored.body,
                        receipt_handle=stored.receipt_handle,
                        delivery_count=stored.delivery_count,
                        visible_at=stored.visible_at,
                    )
                )

        self._record_dead_letters(dead_count)
        return claimed

    async def delete(self, receipt_handle: str) -> bool:
        async with self._lock:
            message_id = self._receipts.pop(receipt_handle, None)
            if message_id is None:
                return False
            stored = self._messages.get(message_id)
            if stored is None or stored.receipt_handle != receipt_handle:
                return False
            del self._messages[message_id]
        return True

    async def stats(self) -> QueueStats:
        now = self._now()
        visible = in_flight = delayed = 0
        for stored in self._messages.values():
            if stored.visible_at <= now:
                visible += 1
            elif stored.receipt_handle:
                in_flight += 1
            else:
                delayed += 1
        return QueueStats(
            queue_name=self.queue_name,
            visible=visible,
            in_flight=in_flight,
            delayed=delayed,
            dead_lettered=len(self._dead),
        )

    async def dead_letters(self, limit: int = 50) -> list[DeadLetterEntry]:
        entries = sorted(self._dead.values(), key=lambda e: e.dead_lettered_at, reverse=True)
        return entries[:limit]

    async def requeue_dead_letter(self, message_id: str) -> str:
        async with self._lock:
            entry = self._dead.pop(message_id, None)
            if entry is None:
                raise QueueDeliveryExhausted(message_id, self.queue_name)
            self._sequence += 1
            self._messages[message_id] = _StoredMessage(
                message_id=message_id,
                body=entry.body,
                visible_at=self._now(),
                sequence=self._sequence,
            )
        self.logger.info(f"Requeued dead-lettered message {message_id}")
        return message_id


class RedisAuditQueue(BaseAuditQueue):
    """
    Redis-backed queue

    Claiming and deleting run as Lua scripts so that two workers can never
    hold the same delivery. Keys are prefixed with the environment name.
    """

    SCRIPT_DIR = Path(__file__).parent / "lua_scripts"

    def __init__(self, redis_url: Optional[str] = None, client: Optional[aioredis.Redis] = None, **kwargs):
        super().__init__(**kwargs)
        self.settings = get_settings()
        self.redis_url = redis_url or self.settings.redis_url
        self._redis: Optional[aioredis.Redis] = client
        self._script_source: dict[str, str] = {}
        self._script_sha: dict[str, str] = {}

        prefix = f"{self.settings.environment}_{self.queue_name}"
        self.visible_key = f"{prefix}:visible"
        self.messages_key = f"{prefix}:messages"
        self.deliveries_key = f"{prefix}:deliveries"
        self.receipts_key = f"{prefix}:receipts"
        self.current_key = f"{prefix}:current"
        self.dlq_key = f"{prefix}:dlq"

    async def _get_redis(self) -> aioredis.Redis:
        """Get Redis connection (lazy initialization)"""
        if self._redis is None:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    def _load_script(self, name: str) -> str:
        if name not in self._script_source:
            self._script_source[name] = (self.SCRIPT_DIR / f"{name}.lua").read_text(encoding="utf-8")
        return self._script_source[name]

    async def _run_script(self, name: str, keys: list[str], args: list[Any]) -> Any:
        """EVALSHA with EVAL fallback when the script cache was flushed"""
        redis = await self._get_redis()
        source = self._load_script(name)
        str_args = [str(arg) for arg in args]

        sha = self._script_sha.get(name)
        if sha is None:
            sha = await redis.script_load(source)
            self._script_sha[name] = sha

        try:
            return await redis.evalsha(sha, len(keys), *keys, *str_args)
        except ResponseError as e:
            if "NOSCRIPT" not in str(e):
                raise
            self.logger.warning(f"Script '{name}' missing from Redis cache, falling back to EVAL")
            self._script_sha.pop(name, None)
            return await redis.eval(source, len(keys), *keys, *str_args)

    async def send(self, body: str, delay_seconds: int = 0) -> str:
        message_id = new_message_id()
        try:
            redis = await self._get_redis()
            async with redis.pipeline(transaction=True) as pipe:
                pipe.hset(self.messages_key, message_id, body)
                pipe.zadd(self.visible_key, {message_id: self._now() + max(0, delay_seconds)})
                await pipe.execute()
        except RedisError as e:
            self.logger.error(f"Failed to enqueue to {self.queue_name}: {e}")
            raise QueueError(f"Failed to enqueue message: {e}", queue_name=self.queue_name) from e

        self.logger.debug(f"Enqueued message {message_id} (delay={delay_seconds}s)")
        return message_id

    async def receive(self, max_messages: int = 10, visibility_timeout: Optional[int] = None) -> list[QueueMessage]:
        visibility = visibility_timeout or self.visibility_timeout
        now = self._now()
        receipts = [new_receipt_handle() for _ in range(max_messages)]

        try:
            result = await self._run_script(
                "claim_messages",
                [
                    self.visible_key,
                    self.messages_key,
                    self.deliveries_key,
                    self.receipts_key,
                    self.current_key,
                    self.dlq_key,
                ],
                [now, visibility, max_messages, self.max_delivery_count, *receipts],
            )
        except RedisError as e:
            self.logger.error(f"Redis error during receive: {e}")
            raise QueueError(f"Failed to receive messages: {e}", queue_name=self.queue_name) from e

        self._record_dead_letters(int(result[0]))

        messages = []
        flat = result[1:]
        for i in range(0, len(flat), 4):
            message_id, receipt, body, deliveries = flat[i : i + 4]
            messages.append(
                QueueMessage(
                    message_id=message_id,
                    body=body,
                    receipt_handle=receipt,
                    delivery_count=int(deliveries),
                    visible_at=now + visibility,
                )
            )
        return messages

    async def delete(self, receipt_handle: str) -> bool:
        try:
            removed = await self._run_script(
                "delete_message",
                [self.visible_key, self.messages_key, self.deliveries_key, self.receipts_key, self.current_key],
                [receipt_handle],
            )
        except RedisError as e:
            raise QueueError(f"Failed to delete message: {e}", queue_name=self.queue_name) from e
        return bool(int(removed))

    async def stats(self) -> QueueStats:
        redis = await self._get_redis()
        now = self._now()

        visible = await redis.zcount(self.visible_key, "-inf", now)
        hidden = await redis.zcount(self.visible_key, f"({now}", "+inf")
        dead = await redis.zcard(self.dlq_key)

        in_flight = 0
        claimed_ids = await redis.hkeys(self.current_key)
        if claimed_ids:
            scores = await redis.zmscore(self.visible_key, claimed_ids)
            in_flight = sum(1 for score in scores if score is not None and score > now)

        return QueueStats(
            queue_name=self.queue_name,
            visible=visible,
            in_flight=in_flight,
            delayed=max(0, hidden - in_flight),
            dead_lettered=dead,
        )

    async def dead_letters(self, limit: int = 50) -> list[DeadLetterEntry]:
        redis = await self._get_redis()
        entries = await redis.zrevrange(self.dlq_key, 0, limit - 1, withscores=True)
        if not entries:
            return []

        ids = [message_id for message_id, _ in entries]
        bodies = await redis.hmget(self.messages_key, ids)
        deliveries = await redis.hmget(self.deliveries_key, ids)

        return [
            DeadLetterEntry(
                message_id=message_id,
                body=body or "",
                delivery_count=int(count or 0),
                dead_lettered_at=datetime.fromtimestamp(score, tz=timezone.utc),
            )
            for (message_id, score), body, count in zip(entries, bodies, deliveries)
        ]

    async def requeue_dead_letter(self, message_id: str) -> str:
        redis = await self._get_redis()
        removed = await redis.zrem(self.dlq_key, message_id)
        if not removed:
            raise QueueDeliveryExhausted(message_id, self.queue_name)

        async with redis.pipeline(transaction=True) as pipe:
            pipe.hdel(self.deliveries_key, message_id)
            pipe.zadd(self.visible_key, {message_id: self._now()})
            await pipe.execute()

        self.logger.info(f"Requeued dead-lettered message {message_id}")
        return message_id

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
