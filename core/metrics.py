"""
Core metrics collection for A11yAudit using Prometheus
"""
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest

from core.config import settings

# Create a global registry for the application
REGISTRY = CollectorRegistry()

app_info = Info("a11yaudit_app", "A11yAudit application information", registry=REGISTRY)
app_info.info({"version": settings.app_version, "environment": settings.environment})

# Submission side
audits_submitted = Counter(
    "a11yaudit_audits_submitted_total",
    "Total audit jobs accepted for processing",
    ["priority"],
    registry=REGISTRY,
)

# Worker side
audits_processed = Counter(
    "a11yaudit_audits_processed_total",
    "Total audit jobs processed by workers",
    ["status"],
    registry=REGISTRY,
)

audit_duration = Histogram(
    "a11yaudit_audit_duration_seconds",
    "Time taken to run the full audit pipeline for one job",
    buckets=(1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
    registry=REGISTRY,
)

compliance_scores = Histogram(
    "a11yaudit_compliance_score",
    "Distribution of compliance scores for completed audits",
    buckets=(10, 25, 50, 70, 90, 100),
    registry=REGISTRY,
)

# Fetch coordinator
fetch_attempts = Counter(
    "a11yaudit_fetch_attempts_total",
    "Page fetch attempts by outcome",
    ["outcome"],
    registry=REGISTRY,
)

proxy_rotations = Counter(
    "a11yaudit_proxy_rotations_total",
    "Egress proxy rotations after transient failures",
    registry=REGISTRY,
)

# Semantic check
semantic_checks = Counter(
    "a11yaudit_semantic_checks_total",
    "Semantic check calls by outcome",
    ["outcome"],
    registry=REGISTRY,
)

# Queue
dead_lettered_messages = Counter(
    "a11yaudit_dead_lettered_messages_total",
    "Messages moved to the dead-letter list after exhausting deliveries",
    registry=REGISTRY,
)

active_workers = Gauge("a11yaudit_active_workers", "Number of running worker tasks", registry=REGISTRY)


def record_fetch_attempt(outcome: str) -> None:
    """outcome: success, retry, failed"""
    if settings.prometheus_enabled:
        fetch_attempts.labels(outcome=outcome).inc()


def record_audit_processed(status: str, duration_seconds: float = 0.0, score: int = None) -> None:
    if not settings.prometheus_enabled:
        return
    audits_processed.labels(status=status).inc()
    if duration_seconds:
        audit_duration.observe(duration_seconds)
    if score is not None:
        compliance_scores.observe(score)


def get_metrics() -> tuple:
    """Render the registry in Prometheus exposition format

    Returns:
        (payload bytes, content type)
    """
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
