"""
Assessment capabilities: page rendering with rule evaluation, and the semantic check
"""

from d3_assessment.assessors.base import RenderSession, SessionFactory
from d3_assessment.assessors.playwright_renderer import PlaywrightSession, PlaywrightSessionFactory
from d3_assessment.assessors.semantic_assessor import SemanticAnalysisResult, SemanticAnalyzer

__all__ = [
    "RenderSession",
    "SessionFactory",
    "PlaywrightSession",
    "PlaywrightSessionFactory",
    "SemanticAnalysisResult",
    "SemanticAnalyzer",
]
