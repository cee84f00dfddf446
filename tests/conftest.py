"""
Shared fixtures for the unit test suite
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.config import get_settings
from d3_assessment.models import FetchResult, PageContent
from d3_assessment.schemas import AuditJob, AuditOptions
from tests.helpers import FakeClock, RecordingSleep


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that patch the env need a fresh read"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def axe_violation():
    """One axe-core violation entry as returned by axe.run()"""
    return {
        "id": "color-contrast",
        "impact": "serious",
        "description": "Ensures the contrast between foreground and background colors meets WCAG 2 AA",
        "help": "Elements must have sufficient color contrast",
        "helpUrl": "https://dequeuniversity.com/rules/axe/4.10/color-contrast",
        "tags": ["cat.color", "wcag2aa", "wcag143"],
        "nodes": [
            {
                "html": f'<a href="/p{i}">Item {i}</a>',
                "target": ["nav", f"a:nth-child({i})"],
                "failureSummary": "Fix any of the following: contrast ratio 2.1:1",
            }
            for i in range(5)
        ],
    }


@pytest.fixture
def audit_job():
    return AuditJob(job_id="audit-1700000000000-abc123", url="https://example.com", options=AuditOptions())


@pytest.fixture
def fetch_result():
    return FetchResult(
        url="https://example.com",
        rule_violations=[],
        content=PageContent(title="Example"),
        screenshot="c2NyZWVuc2hvdA==",
        page_metadata={"viewport": {"width": 1280, "height": 720}, "user_agent": "TestAgent/1.0"},
    )


@pytest.fixture
def mock_pipeline():
    pipeline = MagicMock()
    pipeline.start = AsyncMock()
    pipeline.close = AsyncMock()
    pipeline.run = AsyncMock()
    return pipeline
