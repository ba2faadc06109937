"""
Keyword-based ticket classifier for Plane Agent.

Maps free text to category, priority, complexity and technology labels
using fixed vocabularies and case-insensitive substring matching.

Everything here is pure: no network access, no hidden state.
"""

import logging

from .models import (
    Category,
    ClassificationResult,
    Complexity,
    Priority,
)


logger = logging.getLogger(__name__)


# Checked in this order, first matching category wins
CATEGORY_KEYWORDS: tuple[tuple[Category, tuple[str, ...]], ...] = (
    (Category.BUG, ("bug", "error", "fix", "issue", "problem", "broken")),
    (Category.FEATURE, ("feature", "add", "implement", "new")),
    (Category.IMPROVEMENT, ("improve", "optimize", "enhance", "better")),
    (Category.TASK, ("task", "todo", "setup", "configure")),
)

DEFAULT_CATEGORY = Category.GENERAL

CATEGORY_PRIORITY: dict[Category, Priority] = {
    Category.BUG: Priority.HIGH,
    Category.FEATURE: Priority.MEDIUM,
    Category.IMPROVEMENT: Priority.LOW,
    Category.TASK: Priority.MEDIUM,
    Category.GENERAL: Priority.MEDIUM,
}

URGENCY_KEYWORDS = ("urgent", "critical", "asap", "crash")
LOW_PRIORITY_KEYWORDS = ("low priority", "when possible")

COMPLEXITY_KEYWORDS = (
    "integration",
    "database",
    "api",
    "security",
    "performance",
    "architecture",
)
HIGH_COMPLEXITY_WORDS = 100
MEDIUM_COMPLEXITY_WORDS = 30

LABEL_KEYWORDS = (
    "api",
    "database",
    "frontend",
    "backend",
    "ui",
    "ux",
    "security",
    "performance",
)

MAX_TITLE_LENGTH = 80
ELLIPSIS = "..."


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def categorize(text: str) -> Category:
    """
    Determine the category of a text.

    Args:
        text: Free text (any case).

    Returns:
        The first category whose vocabulary matches, or General.
    """
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if _contains_any(lowered, keywords):
            return category
    return DEFAULT_CATEGORY


def suggest_priority(text: str, category: Category) -> Priority:
    """
    Suggest a priority for a text of the given category.

    The category sets the base priority. Urgency terms then raise it to
    Urgent, and explicit low-priority phrasing is checked last, so it wins
    when both match.
    """
    lowered = text.lower()
    priority = CATEGORY_PRIORITY[category]

    if _contains_any(lowered, URGENCY_KEYWORDS):
        priority = Priority.URGENT
    if _contains_any(lowered, LOW_PRIORITY_KEYWORDS):
        priority = Priority.LOW

    return priority


def estimate_complexity(text: str) -> Complexity:
    """Estimate complexity from word count and complexity keywords."""
    word_count = len(text.split())

    if word_count > HIGH_COMPLEXITY_WORDS or _contains_any(
        text.lower(), COMPLEXITY_KEYWORDS
    ):
        return Complexity.HIGH
    if word_count > MEDIUM_COMPLEXITY_WORDS:
        return Complexity.MEDIUM
    return Complexity.LOW


def extract_labels(text: str) -> frozenset[str]:
    """Collect technology keywords present anywhere in the text."""
    lowered = text.lower()
    return frozenset(keyword for keyword in LABEL_KEYWORDS if keyword in lowered)


def classify(text: str) -> ClassificationResult:
    """
    Classify free text into structured ticket metadata.

    Args:
        text: The prompt or issue text to classify.

    Returns:
        Frozen ClassificationResult.
    """
    category = categorize(text)
    result = ClassificationResult(
        category=category,
        priority=suggest_priority(text, category),
        complexity=estimate_complexity(text),
        labels=extract_labels(text),
    )

    logger.debug(
        f"Classified text ({len(text)} chars): {result.category.value} / "
        f"{result.priority.value} / {result.complexity.value} "
        f"labels={result.sorted_labels()}"
    )
    return result


def derive_title(text: str) -> str:
    """
    Derive a ticket title from the first sentence of a text.

    Takes everything up to the first period, trimmed. Titles longer than
    80 characters are cut to 77 and suffixed with an ellipsis. When the text
    starts with a period the whole trimmed text is used instead.
    """
    title = text.split(".", 1)[0].strip()
    if not title:
        title = text.strip()

    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - len(ELLIPSIS)].rstrip() + ELLIPSIS
    return title


def format_analysis_comment(
    result: ClassificationResult,
    source: str = "Plane Agent",
) -> str:
    """
    Render the analysis comment posted next to a ticket.

    Args:
        result: Classification to describe.
        source: Name of the component that produced the analysis.

    Returns:
        Multi-line comment text.
    """
    tags = ", ".join(result.sorted_labels()) or "none"
    return (
        "🤖 **AI Analysis:**\n"
        "\n"
        f"**Category:** {result.category.value}\n"
        f"**Estimated Complexity:** {result.complexity.value}\n"
        f"**Suggested Priority:** {result.priority.value}\n"
        f"**Auto-generated Tags:** {tags}\n"
        "\n"
        f"*This analysis was generated automatically by {source}. "
        "Please review and adjust as needed.*"
    )
