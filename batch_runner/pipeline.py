"""
Audit pipeline

fetch -> semantic check -> combine, for one job. Holds the shared resources
(browser via the fetch coordinator, paced semantic analyzer) used by every
worker in a process.
"""
import time
from dataclasses import dataclass
from typing import Optional

from core.config import get_settings
from core.logging import get_logger
from d3_assessment.assessors.playwright_renderer import PlaywrightSessionFactory
from d3_assessment.assessors.semantic_assessor import SemanticAnalysisResult, SemanticAnalyzer
from d3_assessment.combiner import ResultCombiner
from d3_assessment.fetch_coordinator import FetchCoordinator
from d3_assessment.models import CombinedReport, FetchResult, ReportSummary
from d3_assessment.schemas import AuditOptions

logger = get_logger(__name__, domain="batch")


@dataclass
class AuditOutcome:
    url: str
    report: CombinedReport
    summary: ReportSummary
    fetch_result: FetchResult
    semantic: SemanticAnalysisResult
    duration_seconds: float

    def semantic_check_info(self) -> dict:
        return {
            "skipped": self.semantic.skipped,
            "reason": self.semantic.reason,
            "error": self.semantic.error,
            "violations": len(self.semantic.violations),
        }


class AuditPipeline:
    """Runs one audit end to end; raises only when the fetch fails"""

    def __init__(
        self,
        fetch_coordinator: FetchCoordinator,
        semantic_analyzer: SemanticAnalyzer,
        combiner: Optional[ResultCombiner] = None,
    ):
        self.fetch_coordinator = fetch_coordinator
        self.semantic_analyzer = semantic_analyzer
        self.combiner = combiner or ResultCombiner()
        self.max_text_length = get_settings().semantic_max_text_length

    @classmethod
    def from_settings(cls) -> "AuditPipeline":
        return cls(
            fetch_coordinator=FetchCoordinator(PlaywrightSessionFactory()),
            semantic_analyzer=SemanticAnalyzer(),
        )

    async def start(self) -> None:
        await self.fetch_coordinator.start()

    async def close(self) -> None:
        """Release the shared browser and HTTP clients"""
        try:
            await self.fetch_coordinator.close()
        finally:
            await self.semantic_analyzer.aclose()

    async def run(self, url: str, options: Optional[AuditOptions] = None) -> AuditOutcome:
        options = options or AuditOptions()
        started = time.monotonic()

        fetch_result = await self.fetch_coordinator.fetch(url)

        if options.skip_semantic_check:
            semantic = SemanticAnalysisResult(skipped=True, reason="Skipped by request")
        else:
            semantic = await self.semantic_analyzer.analyze(fetch_result.content.to_digest(self.max_text_length))

        report = self.combiner.combine(fetch_result.rule_violations, semantic.violations)
        summary = self.combiner.summarize(report)
        duration = time.monotonic() - started

        logger.with_context(url=url).info(
            f"Audit finished: score={report.compliance_score} level={report.compliance_level} "
            f"issues={report.total_issues} in {duration:.1f}s"
        )

        return AuditOutcome(
            url=url,
            report=report,
            summary=summary,
            fetch_result=fetch_result,
            semantic=semantic,
            duration_seconds=duration,
        )
