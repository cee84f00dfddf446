"""
Test doubles shared across the unit suite
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from d3_assessment.assessors.base import RenderSession, SessionFactory
from d3_assessment.models import PageContent, RawViolation, RenderedPage


class FakeClock:
    """Manually advanced clock returning epoch seconds"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateClock:
    """Manually advanced clock returning aware datetimes"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Async sleep replacement that records requested delays"""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)

    @property
    def total(self) -> float:
        return sum(self.calls)


class ScriptedSession(RenderSession):
    """Render session whose outcome is decided by the owning factory"""

    def __init__(self, factory: "ScriptedSessionFactory", proxy: Optional[str]):
        self.factory = factory
        self.proxy = proxy
        self.closed = False

    async def render(self, url: str, timeout_ms: int) -> RenderedPage:
        self.factory.rendered.append((url, timeout_ms, self.proxy))
        outcome = self.factory.next_outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return RenderedPage(
            content=PageContent(title="Example", text="Hello"),
            screenshot="c2NyZWVuc2hvdA==",
            viewport={"width": 1280, "height": 720},
            user_agent="TestAgent/1.0",
        )

    async def evaluate_rules(self) -> list[RawViolation]:
        return list(self.factory.violations)

    async def close(self) -> None:
        self.closed = True


class ScriptedSessionFactory(SessionFactory):
    """
    Session factory driven by a list of outcomes

    Each render consumes one outcome: an exception instance is raised,
    anything else renders successfully.
    """

    def __init__(self, outcomes=None, violations=None):
        self.outcomes = list(outcomes or [])
        self.violations = list(violations or [])
        self.sessions: list[ScriptedSession] = []
        self.rendered: list[tuple] = []
        self.started = 0
        self.closed = 0

    def next_outcome(self):
        return self.outcomes.pop(0) if self.outcomes else "ok"

    async def start(self) -> None:
        self.started += 1
        self._started = True

    async def open_session(self, proxy: Optional[str] = None) -> ScriptedSession:
        session = ScriptedSession(self, proxy)
        self.sessions.append(session)
        return session

    async def close(self) -> None:
        self.closed += 1
        self._started = False


