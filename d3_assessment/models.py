"""
D3 Assessment Models

Violation, page content and report shapes produced by the audit pipeline.
Everything here is built from loosely-typed engine or LLM output, so the
``from_*`` constructors coerce rather than raise.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from d3_assessment.types import Severity, ViolationSource

MAX_SAMPLE_NODES = 3
DIGEST_MAX_HEADINGS = 15
DIGEST_MAX_LINKS = 20
DIGEST_MAX_IMAGES = 10
DIGEST_MAX_BUTTONS = 10
DIGEST_MAX_FORMS = 5
DIGEST_MAX_FORM_INPUTS = 15
DIGEST_IMAGE_SRC_LENGTH = 50


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _inputs(form: dict[str, Any]) -> list[Any]:
    inputs = form.get("inputs")
    return inputs if isinstance(inputs, list) else []


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class ViolationNode:
    """One affected element reported by the rule engine"""

    html: str = ""
    target: str = ""
    failure_summary: str = ""

    @classmethod
    def from_axe(cls, node: Any) -> "ViolationNode":
        if not isinstance(node, dict):
            return cls()
        target = node.get("target") or []
        if isinstance(target, (list, tuple)):
            target = " > ".join(_text(t) for t in target)
        return cls(
            html=_text(node.get("html")),
            target=_text(target),
            failure_summary=_text(node.get("failureSummary")),
        )


@dataclass
class RawViolation:
    """A rule engine finding, one per rule id"""

    rule_id: str
    impact: Severity = Severity.MODERATE
    description: str = ""
    help_text: str = ""
    help_url: str = ""
    tags: list[str] = field(default_factory=list)
    affected_node_count: int = 0
    sample_nodes: list[ViolationNode] = field(default_factory=list)

    @classmethod
    def from_axe(cls, data: dict[str, Any]) -> "RawViolation":
        """Build from one entry of axe-core's ``violations`` array"""
        nodes = data.get("nodes") or []
        if not isinstance(nodes, list):
            nodes = []
        tags = data.get("tags") or []
        return cls(
            rule_id=_text(data.get("id")) or "unknown-rule",
            impact=Severity.parse(data.get("impact")),
            description=_text(data.get("description")),
            help_text=_text(data.get("help")),
            help_url=_text(data.get("helpUrl")),
            # Keep engine order, drop duplicates
            tags=list(dict.fromkeys(_text(t) for t in tags)) if isinstance(tags, (list, tuple, set)) else [],
            affected_node_count=len(nodes),
            sample_nodes=[ViolationNode.from_axe(n) for n in nodes[:MAX_SAMPLE_NODES]],
        )


@dataclass
class SemanticViolation:
    """A finding returned by the semantic check; severity is left as free text"""

    category: str
    severity: str = "moderate"
    description: str = ""
    recommendation: str = ""
    examples: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SemanticViolation":
        examples = data.get("examples") or []
        if isinstance(examples, str):
            examples = [examples]
        elif not isinstance(examples, (list, tuple)):
            examples = []
        return cls(
            # The model answers with "type"; accept "category" as well
            category=_text(data.get("type") or data.get("category")) or "uncategorized",
            severity=_text(data.get("severity")),
            description=_text(data.get("description")),
            recommendation=_text(data.get("recommendation")),
            examples=[_text(e) for e in examples],
        )


@dataclass
class NormalizedViolation:
    """Unified violation shape used in reports"""

    id: str
    source: ViolationSource
    severity: Severity
    description: str = ""
    help_text: str = ""
    help_url: str = ""
    recommendation: str = ""
    wcag_criteria: list[str] = field(default_factory=list)
    affected_node_count: int = 0
    sample_nodes: list[ViolationNode] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.value,
            "severity": self.severity.value,
            "description": self.description,
            "help_text": self.help_text,
            "help_url": self.help_url,
            "recommendation": self.recommendation,
            "wcag_criteria": list(self.wcag_criteria),
            "affected_node_count": self.affected_node_count,
            "sample_nodes": [asdict(n) for n in self.sample_nodes],
            "examples": list(self.examples),
        }


@dataclass
class CombinedReport:
    violations: list[NormalizedViolation]
    severity_counts: dict[str, int]
    source_counts: dict[str, int]
    wcag_coverage: dict[str, int]
    compliance_score: int
    compliance_level: str

    @property
    def total_issues(self) -> int:
        return len(self.violations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "violations": [v.to_dict() for v in self.violations],
            "severity_counts": dict(self.severity_counts),
            "source_counts": dict(self.source_counts),
            "wcag_coverage": dict(self.wcag_coverage),
            "compliance_score": self.compliance_score,
            "compliance_level": self.compliance_level,
            "total_issues": self.total_issues,
        }


@dataclass
class ReportSummary:
    overall_score: int
    compliance_level: str
    total_issues: int
    critical_issues: int
    recommendation: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PageContent:
    """Content extracted from a rendered page for the semantic check"""

    title: str = ""
    text: str = ""
    headings: list[dict[str, Any]] = field(default_factory=list)
    links: list[dict[str, Any]] = field(default_factory=list)
    images: list[dict[str, Any]] = field(default_factory=list)
    forms: list[dict[str, Any]] = field(default_factory=list)
    buttons: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "PageContent":
        data = data or {}

        def _list(key: str) -> list[dict[str, Any]]:
            value = data.get(key) or []
            return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []

        return cls(
            title=_text(data.get("title")),
            text=_text(data.get("text")),
            headings=_list("headings"),
            links=_list("links"),
            images=_list("images"),
            forms=_list("forms"),
            buttons=_list("buttons"),
        )

    def to_digest(self, max_text_length: int = 2000) -> dict[str, Any]:
        """Bounded view of the page handed to the semantic check"""
        return {
            "title": self.title,
            "headings": self.headings[:DIGEST_MAX_HEADINGS],
            "links": self.links[:DIGEST_MAX_LINKS],
            "images": [
                {**img, "src": _text(img.get("src"))[:DIGEST_IMAGE_SRC_LENGTH]}
                for img in self.images[:DIGEST_MAX_IMAGES]
            ],
            "forms": [
                {**form, "inputs": _inputs(form)[:DIGEST_MAX_FORM_INPUTS]}
                for form in self.forms[:DIGEST_MAX_FORMS]
            ],
            "buttons": self.buttons[:DIGEST_MAX_BUTTONS],
            "text": self.text[:max_text_length],
            "max_text_length": max_text_length,
        }


@dataclass
class RenderedPage:
    """What one render session returns for a navigated page"""

    content: PageContent
    screenshot: str | None = None
    viewport: dict[str, Any] | None = None
    user_agent: str = ""


@dataclass
class FetchResult:
    url: str
    rule_violations: list[RawViolation]
    content: PageContent
    screenshot: str | None = None
    page_metadata: dict[str, Any] = field(default_factory=dict)
    attempts: int = 1
    proxy: str | None = None
    waited_seconds: float = 0.0
