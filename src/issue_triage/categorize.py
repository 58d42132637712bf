"""Keyword heuristics for issue categorization.

Pure and deterministic: the same content always yields the same result.
"""

from __future__ import annotations

from dataclasses import dataclass, field

UNKNOWN = "unknown"

# Order matters: ties go to the category listed first.
TYPE_INDICATORS: dict[str, tuple[str, ...]] = {
    "bug": (
        "error",
        "bug",
        "crash",
        "fix",
        "issue",
        "broken",
        "failure",
        "unexpected behavior",
        "regression",
    ),
    "feature": (
        "feature",
        "enhancement",
        "request",
        "new",
        "add",
        "proposal",
        "improvement",
    ),
    "documentation": (
        "docs",
        "documentation",
        "typo",
        "readme",
        "wiki",
        "guide",
        "example",
    ),
    "question": (
        "question",
        "help",
        "support",
        "how to",
        "clarification",
        "explain",
    ),
    "infrastructure": (
        "build",
        "ci",
        "pipeline",
        "deploy",
        "infrastructure",
        "setup",
        "configuration",
    ),
}

# label -> substrings that suggest it
TECHNICAL_AREAS: dict[str, tuple[str, ...]] = {
    "python": ("python",),
    "typescript": ("typescript", "javascript"),
    "performance": ("performance",),
    "security": ("security",),
    "ui": ("ui", "interface"),
    "backend": ("api", "backend"),
}


@dataclass(frozen=True, slots=True)
class Categorization:
    primary_type: str
    suggested_labels: list[str]
    confidence: float
    scores: dict[str, int] = field(default_factory=dict)
    reasoning: str = ""


def score_content(content: str) -> dict[str, int]:
    """Count keyword occurrences (substring matches) per category."""
    lowered = content.lower()
    return {kind: sum(lowered.count(keyword) for keyword in keywords) for kind, keywords in TYPE_INDICATORS.items()}


def pick_primary(scores: dict[str, int]) -> tuple[str, float]:
    best_type = UNKNOWN
    best_score = 0
    for kind, score in scores.items():
        if score > best_score:
            best_type, best_score = kind, score
    max_score = max(scores.values(), default=0)
    confidence = best_score / max_score if max_score > 0 else 0.0
    return best_type, confidence


def detect_technical_areas(content: str) -> list[str]:
    lowered = content.lower()
    return [label for label, needles in TECHNICAL_AREAS.items() if any(n in lowered for n in needles)]


def categorize(content: str) -> Categorization:
    """Categorize issue content by keyword frequency."""
    scores = score_content(content)
    primary, confidence = pick_primary(scores)
    areas = detect_technical_areas(content)

    suggested: list[str] = []
    if primary != UNKNOWN:
        suggested.append(primary)
    suggested.extend(a for a in areas if a not in suggested)

    if primary == UNKNOWN:
        reasoning = "No category keywords matched. "
    else:
        lowered = content.lower()
        matched = [k for k in TYPE_INDICATORS[primary] if k in lowered]
        reasoning = f"Categorized as {primary} based on {len(matched)} keyword matches: {', '.join(matched)}. "
    reasoning += f"Technical areas detected: {', '.join(areas) if areas else 'none'}"

    return Categorization(
        primary_type=primary,
        suggested_labels=suggested,
        confidence=confidence,
        scores=scores,
        reasoning=reasoning,
    )
