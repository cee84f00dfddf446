"""
Result Combiner

Merges rule engine and semantic check findings into one scored report.
Pure apart from logging: the same inputs always produce the same report.
"""
from typing import Any, Iterable, Optional, Sequence

from core.logging import get_logger
from d3_assessment.models import (
    CombinedReport,
    NormalizedViolation,
    RawViolation,
    ReportSummary,
    SemanticViolation,
)
from d3_assessment.types import NOT_COMPLIANT, Severity, ViolationSource, WCAGLevel
from d3_assessment.wcag import WCAG_CRITERIA, criteria_for_category, criteria_from_tags, is_known_category

logger = get_logger(__name__, domain="d3")

COMPLIANCE_THRESHOLD = 90

# (minimum score, advice), evaluated top down
RECOMMENDATION_BANDS = (
    (
        90,
        "Excellent! Your site has strong accessibility compliance. "
        "Focus on addressing the remaining minor issues.",
    ),
    (
        70,
        "Good progress, but improvements needed. Prioritize fixing critical and serious violations.",
    ),
    (
        50,
        "Moderate accessibility. Significant work required to meet WCAG standards. "
        "Start with critical violations.",
    ),
    (
        0,
        "Poor accessibility. Immediate action required. "
        "This site likely violates ADA/Section 508 requirements.",
    ),
)


class ResultCombiner:
    """Normalizes, merges, ranks and scores violations"""

    def combine(
        self,
        rule_violations: Optional[Iterable[Any]],
        semantic_violations: Optional[Iterable[Any]],
    ) -> CombinedReport:
        """
        Build a CombinedReport from both violation streams

        Args:
            rule_violations: RawViolation objects or raw axe-core violation dicts
            semantic_violations: SemanticViolation objects or raw LLM dicts

        Returns:
            CombinedReport with violations sorted by severity (stable)
        """
        normalized: list[NormalizedViolation] = []

        for item in rule_violations or []:
            violation = self._coerce_rule(item)
            if violation is not None:
                normalized.append(self._normalize_rule(violation))

        for item in semantic_violations or []:
            violation = self._coerce_semantic(item)
            if violation is not None:
                normalized.append(self._normalize_semantic(violation))

        severity_counts = {s.value: 0 for s in Severity}
        source_counts = {s.value: 0 for s in ViolationSource}
        for v in normalized:
            severity_counts[v.severity.value] += 1
            source_counts[v.source.value] += 1

        # sorted() is stable, so equal severities keep input order
        ordered = sorted(normalized, key=lambda v: v.severity.rank)

        coverage = self.calculate_wcag_coverage(ordered)

        return CombinedReport(
            violations=ordered,
            severity_counts=severity_counts,
            source_counts=source_counts,
            wcag_coverage=coverage,
            compliance_score=self.calculate_compliance_score(severity_counts),
            compliance_level=self.determine_compliance_level(coverage),
        )

    def calculate_compliance_score(self, severity_counts: dict[str, int]) -> int:
        """100 minus 10/5/2/1 points per critical/serious/moderate/minor, clamped to 0-100"""
        score = 100
        for severity in Severity:
            score -= severity.penalty * max(0, int(severity_counts.get(severity.value, 0)))
        return max(0, min(100, score))

    def calculate_wcag_coverage(self, violations: Sequence[NormalizedViolation]) -> dict[str, int]:
        """Percentage of each level's criteria that no violation touches"""
        violated = set()
        for v in violations:
            violated.update(v.wcag_criteria)

        coverage = {}
        for level, criteria in WCAG_CRITERIA.items():
            total = len(criteria)
            violated_count = sum(1 for c in criteria if c in violated)
            coverage[level.value] = round(100 * (total - violated_count) / total)
        return coverage

    def determine_compliance_level(self, coverage: dict[str, int]) -> str:
        for level in (WCAGLevel.AAA, WCAGLevel.AA, WCAGLevel.A):
            if coverage.get(level.value, 0) >= COMPLIANCE_THRESHOLD:
                return level.value
        return NOT_COMPLIANT

    def summarize(self, report: CombinedReport) -> ReportSummary:
        """Headline numbers and advice for a report"""
        return ReportSummary(
            overall_score=report.compliance_score,
            compliance_level=report.compliance_level,
            total_issues=report.total_issues,
            critical_issues=report.severity_counts.get(Severity.CRITICAL.value, 0),
            recommendation=self.get_recommendation(report.compliance_score),
        )

    @staticmethod
    def get_recommendation(score: int) -> str:
        for minimum, advice in RECOMMENDATION_BANDS:
            if score >= minimum:
                return advice
        return RECOMMENDATION_BANDS[-1][1]

    def _coerce_rule(self, item: Any) -> Optional[RawViolation]:
        if isinstance(item, RawViolation):
            return item
        if isinstance(item, dict):
            return RawViolation.from_axe(item)
        logger.warning(f"Skipping rule violation of unexpected type {type(item).__name__}")
        return None

    def _coerce_semantic(self, item: Any) -> Optional[SemanticViolation]:
        if isinstance(item, SemanticViolation):
            return item
        if isinstance(item, dict):
            return SemanticViolation.from_dict(item)
        logger.warning(f"Skipping semantic violation of unexpected type {type(item).__name__}")
        return None

    def _normalize_rule(self, violation: RawViolation) -> NormalizedViolation:
        return NormalizedViolation(
            id=violation.rule_id,
            source=ViolationSource.RULE,
            severity=Severity.parse(violation.impact),
            description=violation.description,
            help_text=violation.help_text,
            help_url=violation.help_url,
            recommendation=violation.help_text,
            wcag_criteria=criteria_from_tags(violation.tags),
            affected_node_count=violation.affected_node_count,
            sample_nodes=list(violation.sample_nodes),
        )

    def _normalize_semantic(self, violation: SemanticViolation) -> NormalizedViolation:
        if not is_known_category(violation.category):
            logger.info(f"Semantic category '{violation.category}' has no WCAG mapping")
        return NormalizedViolation(
            id=violation.category,
            source=ViolationSource.SEMANTIC,
            severity=Severity.parse(violation.severity),
            description=violation.description,
            recommendation=violation.recommendation,
            wcag_criteria=criteria_for_category(violation.category),
            examples=list(violation.examples),
        )
