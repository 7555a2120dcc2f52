"""AI narratives over computed compliance facts, with deterministic fallbacks."""

from src.narrative.generator import (
    NarrativeOutcome,
    explain_violation,
    narrate_urgent_action,
    summarize_facility,
)

__all__ = [
    "NarrativeOutcome",
    "explain_violation",
    "narrate_urgent_action",
    "summarize_facility",
]
