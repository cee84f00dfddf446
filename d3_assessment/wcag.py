"""
WCAG 2.1 success criteria tables and tag parsing
"""
import re
from typing import Iterable, Optional

from d3_assessment.types import WCAGLevel

# Canonical success criteria per conformance level. 2.5.5 and 2.5.6 are
# listed under both AA and AAA to keep scores comparable with existing reports.
WCAG_CRITERIA: dict[WCAGLevel, tuple[str, ...]] = {
    WCAGLevel.A: (
        "1.1.1", "1.2.1", "1.2.2", "1.2.3", "1.3.1", "1.3.2", "1.3.3", "1.4.1",
        "1.4.2", "2.1.1", "2.1.2", "2.1.4", "2.2.1", "2.2.2", "2.3.1", "2.4.1",
        "2.4.2", "2.4.3", "2.4.4", "2.5.1", "2.5.2", "2.5.3", "2.5.4", "3.1.1",
        "3.2.1", "3.2.2", "3.3.1", "3.3.2", "4.1.1", "4.1.2", "4.1.3",
    ),
    WCAGLevel.AA: (
        "1.2.4", "1.2.5", "1.3.4", "1.3.5", "1.4.3", "1.4.4", "1.4.5", "1.4.10",
        "1.4.11", "1.4.12", "1.4.13", "2.4.5", "2.4.6", "2.4.7", "2.5.5", "2.5.6",
        "3.1.2", "3.2.3", "3.2.4", "3.3.3", "3.3.4",
    ),
    WCAGLevel.AAA: (
        "1.2.6", "1.2.7", "1.2.8", "1.2.9", "1.4.6", "1.4.7", "1.4.8", "1.4.9",
        "2.1.3", "2.2.3", "2.2.4", "2.2.5", "2.2.6", "2.3.2", "2.3.3", "2.4.8",
        "2.4.9", "2.4.10", "2.5.5", "2.5.6", "3.1.3", "3.1.4", "3.1.5", "3.1.6",
        "3.2.5", "3.3.5", "3.3.6",
    ),
}

# Semantic check categories and the criteria they fall under
SEMANTIC_CATEGORY_CRITERIA: dict[str, tuple[str, ...]] = {
    "unclear-link-text": ("2.4.4", "2.4.9"),
    "complex-language": ("3.1.5",),
    "poor-heading-structure": ("1.3.1", "2.4.6"),
    "missing-context": ("3.3.2", "3.3.3"),
    "ambiguous-labels": ("3.3.2", "2.4.4", "2.4.6"),
    "confusing-navigation": ("2.4.1", "2.4.4"),
    "missing-alt-text": ("1.1.1",),
    "low-color-contrast": ("1.4.3",),
    "missing-form-labels": ("3.3.2", "1.3.1"),
}

# wcag143 -> 1.4.3, wcag1410 -> 1.4.10; level tags such as wcag2aa never match
_TAG_PATTERN = re.compile(r"^wcag(\d)(\d)(\d{1,2})$")


def parse_wcag_tag(tag: str) -> Optional[str]:
    """Convert an axe-core tag to a dotted criterion id, or None"""
    if not isinstance(tag, str):
        return None
    match = _TAG_PATTERN.match(tag.strip().lower())
    if not match:
        return None
    principle, guideline, criterion = match.groups()
    return f"{principle}.{guideline}.{int(criterion)}"


def criteria_from_tags(tags: Iterable[str]) -> list[str]:
    """Dotted criteria for a tag set, in tag order without duplicates"""
    found = (parse_wcag_tag(t) for t in tags)
    return list(dict.fromkeys(c for c in found if c))


def criteria_for_category(category: str) -> list[str]:
    return list(SEMANTIC_CATEGORY_CRITERIA.get(category.strip().lower(), ()))


def is_known_category(category: str) -> bool:
    return category.strip().lower() in SEMANTIC_CATEGORY_CRITERIA
