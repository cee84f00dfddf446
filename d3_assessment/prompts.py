"""
LLM prompts for the semantic accessibility check

The system prompt fixes the category names the model may use; they must stay
in sync with the category table in d3_assessment.wcag.
"""
from typing import Any


class SemanticPrompts:
    """Prompt templates for semantic violation detection"""

    SYSTEM_PROMPT = """You are an expert WCAG 2.1 accessibility auditor. Analyze web content for accessibility issues that automated tools cannot detect.

Focus on semantic and contextual violations:
1. **Unclear link text** (unclear-link-text): Links with text like "click here", "read more", "here" without context
2. **Complex language** (complex-language): Text that's too complex (target 8th grade reading level)
3. **Poor heading structure** (poor-heading-structure): Skipped heading levels, misleading headings, too many H1s
4. **Missing context** (missing-context): Form errors, buttons, or instructions that lack clear meaning
5. **Ambiguous labels** (ambiguous-labels): Buttons or form fields with unclear purposes
6. **Confusing navigation** (confusing-navigation): Navigation that is hard to follow or lacks a way to skip repeated blocks

Return ONLY valid JSON in this exact format:
{
  "violations": [
    {
      "type": "unclear-link-text",
      "severity": "serious",
      "description": "Specific description of the issue",
      "recommendation": "How to fix it",
      "examples": ["Example 1", "Example 2"]
    }
  ]
}

Severity levels: critical, serious, moderate, minor"""

    PAGE_ANALYSIS_PROMPT = """
Analyze this webpage for accessibility issues:

**PAGE TITLE**: {title}

**HEADING STRUCTURE**:
{headings}

**LINKS** (first 20):
{links}

**IMAGES** (first 10):
{images}

**FORM FIELDS**:
{forms}

**BUTTONS**:
{buttons}

**PAGE TEXT** (first {max_text_length} characters):
{text}

---

Find accessibility violations in the above content. Focus on issues that axe-core cannot detect.
"""

    @classmethod
    def build_messages(cls, digest: dict[str, Any]) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": cls.SYSTEM_PROMPT},
            {"role": "user", "content": cls.build_page_prompt(digest)},
        ]

    @classmethod
    def build_page_prompt(cls, digest: dict[str, Any]) -> str:
        """Render a page digest (see PageContent.to_digest) into the user prompt"""
        return cls.PAGE_ANALYSIS_PROMPT.format(
            title=digest.get("title", ""),
            headings="\n".join(_format_heading(h) for h in digest.get("headings", [])),
            links="\n".join(_format_link(link) for link in digest.get("links", [])),
            images="\n".join(_format_image(i, img) for i, img in enumerate(digest.get("images", []), start=1)),
            forms="\n".join(_format_form(i, form) for i, form in enumerate(digest.get("forms", []), start=1)),
            buttons="\n".join(_format_button(b) for b in digest.get("buttons", [])),
            max_text_length=digest.get("max_text_length", 2000),
            text=digest.get("text", ""),
        ).strip()


def _format_heading(heading: dict[str, Any]) -> str:
    return f"{heading.get('level', '')}: {heading.get('text', '')}"


def _format_link(link: dict[str, Any]) -> str:
    aria_label = link.get("aria_label")
    if aria_label:
        return f'"{link.get("text", "")}" (aria-label: "{aria_label}") -> {link.get("href", "")}'
    return f'"{link.get("text", "")}" -> {link.get("href", "")}'


def _format_image(index: int, image: dict[str, Any]) -> str:
    has_alt = image.get("has_alt")
    alt_status = f'alt="{image.get("alt", "")}"' if has_alt else "NO ALT TEXT"
    return f"{index}. {alt_status} | src={image.get('src', '')}"


def _format_form(index: int, form: dict[str, Any]) -> str:
    lines = [f"Form {index}: {form.get('action', '')}"]
    for field in form.get("inputs") or []:
        aria_label = field.get("aria_label")
        if field.get("has_label"):
            label_status = "has label"
        elif aria_label:
            label_status = f'aria-label="{aria_label}"'
        else:
            label_status = "NO LABEL"
        name = field.get("name") or field.get("id") or "unnamed"
        lines.append(f"  - {field.get('type', '')} ({name}) {label_status}")
    return "\n".join(lines)


def _format_button(button: dict[str, Any]) -> str:
    aria_label = button.get("aria_label")
    label = f'aria-label="{aria_label}"' if aria_label else button.get("text")
    return f'"{label or "NO TEXT"}" ({button.get("type", "")})'
