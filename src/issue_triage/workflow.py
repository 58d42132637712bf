"""Status workflow rules.

Statuses form a documented progression, but only one rule is enforced: an
issue may be moved to ``Done`` only when GitHub closed it as completed. Any
other move, including a backward one, is accepted.
"""

from __future__ import annotations

from dataclasses import dataclass

DONE = "Done"
COMPLETED = "completed"

VALID_STATUSES: tuple[str, ...] = (
    "",
    "Triage",
    "Backlog",
    "Up Next",
    "In Progress",
    "PR Ready",
    "Ready for Verification",
    "In Verification",
    DONE,
)

# Advisory order shown to the model; not enforced.
STATUS_PROGRESSION: tuple[tuple[str, ...], ...] = (
    ("Triage",),
    ("Backlog", "Up Next"),
    ("In Progress",),
    ("PR Ready",),
    ("Ready for Verification",),
    ("In Verification",),
    (DONE,),
)


@dataclass(frozen=True, slots=True)
class StatusDecision:
    """Status transition decision."""

    allowed: bool
    reason: str | None = None


def is_valid_status(value: str) -> bool:
    return value in VALID_STATUSES


def check_status_transition(suggested_status: str, state_reason: str | None) -> StatusDecision:
    """Return whether ``suggested_status`` may be applied to an issue.

    ``state_reason`` is only consulted for ``Done``.
    """
    if not is_valid_status(suggested_status):
        return StatusDecision(
            False,
            f"Invalid status: {suggested_status!r}. Must be one of: {', '.join(repr(s) for s in VALID_STATUSES)}",
        )
    if suggested_status == DONE and state_reason != COMPLETED:
        return StatusDecision(False, "Cannot set status to Done for non-completed issues")
    return StatusDecision(True)


def annotate_body(body: str | None, status: str, reason: str) -> str:
    """Append the status annotation to an issue body."""
    annotation = f"Status: {status}\nReason: {reason}"
    if not body:
        return annotation
    return f"{body.rstrip()}\n\n{annotation}"


def describe_progression() -> str:
    """Render the advisory progression, e.g. for the system prompt."""
    return " → ".join("/".join(step) for step in STATUS_PROGRESSION)
