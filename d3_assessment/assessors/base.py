"""
Base classes for the page rendering and rule evaluation capability

A SessionFactory owns the long-lived browser; each fetch attempt opens its
own RenderSession bound to one egress proxy, and discards it afterwards.
"""

from abc import ABC, abstractmethod
from typing import Optional

from d3_assessment.models import RawViolation, RenderedPage


class RenderSession(ABC):
    """One isolated page session. Belongs to at most one in-flight job."""

    @abstractmethod
    async def render(self, url: str, timeout_ms: int) -> RenderedPage:
        """
        Navigate to the URL and extract content and a screenshot

        Raises:
            TransientNetworkError: On navigation or connection failures
        """

    @abstractmethod
    async def evaluate_rules(self) -> list[RawViolation]:
        """
        Run the rule engine against the rendered page

        Raises:
            EngineInitializationError: When the engine cannot be loaded
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the session; must be safe to call after a failure"""


class SessionFactory(ABC):
    """Shared rendering capability reused across fetches"""

    @abstractmethod
    async def start(self) -> None:
        """Bring up the shared resource (e.g. launch the browser)"""

    @abstractmethod
    async def open_session(self, proxy: Optional[str] = None) -> RenderSession:
        """Create a fresh session routed through the given egress proxy"""

    @abstractmethod
    async def close(self) -> None:
        """Tear down the shared resource"""

    @property
    def is_started(self) -> bool:
        return getattr(self, "_started", False)
