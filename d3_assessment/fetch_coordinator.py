"""
Fetch Coordinator

Wraps the render + rule evaluation capability with capped exponential
backoff and round-robin egress proxy rotation. Each attempt gets its own
session, which is always closed before the next attempt starts.
"""
import asyncio
import socket
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from core.config import Settings, get_settings
from core.logging import get_logger
from core.metrics import proxy_rotations, record_fetch_attempt
from d3_assessment.assessors.base import RenderSession, SessionFactory
from d3_assessment.exceptions import (
    EngineInitializationError,
    FetchError,
    TransientNetworkError,
    has_retryable_signature,
)
from d3_assessment.models import FetchResult

logger = get_logger(__name__, domain="d3")

TRANSIENT_BUILTIN_ERRORS = (ConnectionError, TimeoutError, asyncio.TimeoutError, socket.gaierror)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_retries=settings.fetch_max_retries,
            base_delay_ms=settings.fetch_base_delay_ms,
            max_delay_ms=settings.fetch_max_delay_ms,
            multiplier=settings.fetch_backoff_multiplier,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt"""
        delay_ms = min(self.base_delay_ms * self.multiplier ** (attempt - 1), self.max_delay_ms)
        return delay_ms / 1000.0


def is_retryable(error: BaseException) -> bool:
    """Whether a failed attempt is worth repeating"""
    if isinstance(error, EngineInitializationError):
        return False
    if isinstance(error, TransientNetworkError):
        return True
    if isinstance(error, TRANSIENT_BUILTIN_ERRORS):
        return True
    return has_retryable_signature(str(error))


class ProxyPool:
    """Round-robin egress proxy selection; yields None when empty"""

    def __init__(self, proxies: Optional[Sequence[str]] = None):
        self._proxies = [p for p in (proxies or []) if p]
        self._index = 0

    def __len__(self) -> int:
        return len(self._proxies)

    @property
    def current(self) -> Optional[str]:
        if not self._proxies:
            return None
        return self._proxies[self._index]

    def rotate(self) -> Optional[str]:
        if self._proxies:
            self._index = (self._index + 1) % len(self._proxies)
        return self.current


class FetchCoordinator:
    """Produces a FetchResult for one URL, resilient to transient failures"""

    def __init__(
        self,
        session_factory: SessionFactory,
        policy: Optional[RetryPolicy] = None,
        proxies: Optional[Sequence[str]] = None,
        navigation_timeout_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.policy = policy or RetryPolicy.from_settings(settings)
        self.proxy_pool = ProxyPool(settings.proxies if proxies is None else proxies)
        self.navigation_timeout_ms = navigation_timeout_ms or settings.navigation_timeout_ms
        self._sleep = sleep

    async def start(self) -> None:
        """Start the shared browser; failures here are fatal for the caller"""
        await self.session_factory.start()

    async def close(self) -> None:
        await self.session_factory.close()

    async def fetch(self, url: str) -> FetchResult:
        """
        Render the page and evaluate rules, retrying transient failures

        Raises:
            EngineInitializationError: Rule engine unavailable (never retried)
            FetchError: Non-retryable failure, with the attempts used
            TransientNetworkError: Retries exhausted
        """
        log = logger.with_context(url=url)
        waited = 0.0
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.policy.max_retries + 1):
            proxy = self.proxy_pool.current
            try:
                result = await self._attempt(url, proxy)
            except Exception as e:
                last_error = e

                if not is_retryable(e):
                    record_fetch_attempt("failed")
                    log.error(f"Non-retryable fetch failure on attempt {attempt}: {e}")
                    fetch_error = self._as_fetch_error(e, url, attempt)
                    if fetch_error is e:
                        raise
                    raise fetch_error from e

                record_fetch_attempt("retry")
                if attempt >= self.policy.max_retries:
                    break

                delay = self.policy.delay_for(attempt)
                log.warning(
                    f"Attempt {attempt}/{self.policy.max_retries} failed: {e}. Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
                waited += delay

                if len(self.proxy_pool):
                    next_proxy = self.proxy_pool.rotate()
                    proxy_rotations.inc()
                    log.info(f"Rotated egress proxy to {next_proxy}")
                continue

            record_fetch_attempt("success")
            result.attempts = attempt
            result.waited_seconds = waited
            return result

        attempts = self.policy.max_retries
        raise TransientNetworkError(
            f"Failed to fetch {url} after {attempts} attempts: {last_error}",
            url=url,
            attempts=attempts,
            last_error=str(last_error),
        ) from last_error

    async def _attempt(self, url: str, proxy: Optional[str]) -> FetchResult:
        session: Optional[RenderSession] = None
        started = time.time()
        try:
            session = await self.session_factory.open_session(proxy)
            page = await session.render(url, self.navigation_timeout_ms)
            violations = await session.evaluate_rules()
        finally:
            if session is not None:
                await session.close()

        logger.debug(f"Fetched {url} in {time.time() - started:.2f}s via {proxy or 'direct'}")
        return FetchResult(
            url=url,
            rule_violations=violations,
            content=page.content,
            screenshot=page.screenshot,
            page_metadata={"viewport": page.viewport, "user_agent": page.user_agent},
            proxy=proxy,
        )

    @staticmethod
    def _as_fetch_error(error: Exception, url: str, attempts: int) -> FetchError:
        if isinstance(error, FetchError):
            error.url = error.url or url
            error.attempts = attempts
            error.details.update({"url": error.url, "attempts": attempts})
            return error
        return FetchError(str(error) or type(error).__name__, url=url, attempts=attempts)
