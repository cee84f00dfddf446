"""
D3 Assessment - Accessibility assessment and scoring

Renders pages, evaluates axe-core rules, runs the semantic check and
combines both into a scored WCAG compliance report.
"""

from .combiner import ResultCombiner
from .models import CombinedReport, NormalizedViolation, RawViolation, ReportSummary, SemanticViolation
from .schemas import AuditJob, AuditOptions, AuditRecord
from .types import AuditPriority, AuditStatus, Severity, ViolationSource, WCAGLevel

__all__ = [
    # Models
    "RawViolation",
    "SemanticViolation",
    "NormalizedViolation",
    "CombinedReport",
    "ReportSummary",
    # Schemas
    "AuditJob",
    "AuditOptions",
    "AuditRecord",
    # Types
    "Severity",
    "ViolationSource",
    "AuditPriority",
    "AuditStatus",
    "WCAGLevel",
    # Engine
    "ResultCombiner",
]
