"""
Audit job and record schemas

Pydantic models for what travels through the queue (AuditJob) and what is
persisted in the report store (AuditRecord).
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from .models import CombinedReport, FetchResult, ReportSummary
from .types import AuditPriority, AuditStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_url(value: Any) -> bool:
    """Absolute http(s) URL with a host"""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class AuditOptions(BaseModel):
    """Per-job options supplied at submission"""

    skip_semantic_check: bool = Field(default=False, description="Run the rule engine only")
    priority: AuditPriority = Field(default=AuditPriority.NORMAL)
    callback_url: Optional[str] = Field(default=None, description="URL to POST a notification to when done")

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v):
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("callback_url")
    @classmethod
    def validate_callback_url(cls, v):
        if v is not None and not is_valid_url(v):
            raise ValueError("Callback URL must be an absolute http(s) URL")
        return v


class AuditJob(BaseModel):
    """Unit of work carried by one queue message"""

    job_id: str = Field(..., min_length=1)
    url: str
    options: AuditOptions = Field(default_factory=AuditOptions)
    submitted_at: datetime = Field(default_factory=utcnow)
    delivery_count: int = Field(default=0, ge=0, description="Set from the queue on receipt")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if not is_valid_url(v):
            raise ValueError(f"Invalid URL: {v}")
        return v.strip()

    def to_message_body(self) -> str:
        return self.model_dump_json(exclude={"delivery_count"})

    @classmethod
    def from_message_body(cls, body: str, delivery_count: int = 0) -> "AuditJob":
        job = cls.model_validate_json(body)
        job.delivery_count = delivery_count
        return job


class AuditRecord(BaseModel):
    """
    Persisted state of one audit

    Created pending at submission and moved to completed or failed exactly
    once. Transitions return new instances; a terminal record never changes.
    """

    job_id: str
    url: str
    status: AuditStatus = AuditStatus.PENDING
    submitted_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    scanned_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    violations: list[dict[str, Any]] = Field(default_factory=list)
    severity_counts: dict[str, int] = Field(default_factory=dict)
    source_counts: dict[str, int] = Field(default_factory=dict)
    wcag_coverage: dict[str, int] = Field(default_factory=dict)
    compliance_score: Optional[int] = None
    compliance_level: Optional[str] = None
    total_issues: int = 0
    summary: Optional[dict[str, Any]] = None

    page_metadata: dict[str, Any] = Field(default_factory=dict)
    screenshot: Optional[str] = None
    semantic_check: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def pending(cls, job: AuditJob, ttl_days: int = 90) -> "AuditRecord":
        return cls(
            job_id=job.job_id,
            url=job.url,
            submitted_at=job.submitted_at,
            expires_at=job.submitted_at + timedelta(days=ttl_days),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def complete(
        self,
        report: CombinedReport,
        summary: ReportSummary,
        fetch_result: FetchResult,
        duration_seconds: float,
        semantic_check: Optional[dict[str, Any]] = None,
    ) -> "AuditRecord":
        self._ensure_pending()
        report_data = report.to_dict()
        return self.model_copy(
            update={
                "status": AuditStatus.COMPLETED,
                "scanned_at": utcnow(),
                "duration_seconds": round(duration_seconds, 3),
                "violations": report_data["violations"],
                "severity_counts": report_data["severity_counts"],
                "source_counts": report_data["source_counts"],
                "wcag_coverage": report_data["wcag_coverage"],
                "compliance_score": report.compliance_score,
                "compliance_level": report.compliance_level,
                "total_issues": report.total_issues,
                "summary": summary.to_dict(),
                "page_metadata": {
                    **fetch_result.page_metadata,
                    "attempts": fetch_result.attempts,
                    "proxy": fetch_result.proxy,
                },
                "screenshot": fetch_result.screenshot,
                "semantic_check": semantic_check or {},
            }
        )

    def fail(self, error: str, duration_seconds: Optional[float] = None) -> "AuditRecord":
        self._ensure_pending()
        return self.model_copy(
            update={
                "status": AuditStatus.FAILED,
                "scanned_at": utcnow(),
                "duration_seconds": round(duration_seconds, 3) if duration_seconds is not None else None,
                "error": error,
            }
        )

    def _ensure_pending(self) -> None:
        if self.is_terminal:
            raise ValueError(f"Audit record {self.job_id} is already {self.status.value}")
