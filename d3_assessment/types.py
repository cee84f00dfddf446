"""
D3 Assessment Types

Enums and type definitions for accessibility audit functionality.
"""

from enum import Enum
from typing import Any


class Severity(Enum):
    """Impact level of a violation, shared by rule and semantic findings"""

    CRITICAL = "critical"
    SERIOUS = "serious"
    MODERATE = "moderate"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        """Sort rank, critical first"""
        return _SEVERITY_RANK[self]

    @property
    def penalty(self) -> int:
        """Points deducted from the compliance score per violation"""
        return _SEVERITY_PENALTY[self]

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Coerce free text into a severity; anything unrecognized is moderate"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.MODERATE


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.SERIOUS: 1,
    Severity.MODERATE: 2,
    Severity.MINOR: 3,
}

_SEVERITY_PENALTY = {
    Severity.CRITICAL: 10,
    Severity.SERIOUS: 5,
    Severity.MODERATE: 2,
    Severity.MINOR: 1,
}


class ViolationSource(Enum):
    """Which checker produced a violation"""

    RULE = "rule"
    SEMANTIC = "semantic"


class AuditPriority(Enum):
    """Submission priority; low priority jobs are delayed on enqueue"""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class AuditStatus(Enum):
    """Lifecycle of a persisted audit record"""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AuditStatus.PENDING


class WCAGLevel(Enum):
    """WCAG conformance levels"""

    A = "A"
    AA = "AA"
    AAA = "AAA"


NOT_COMPLIANT = "Not Compliant"
