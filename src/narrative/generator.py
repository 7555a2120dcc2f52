"""Narrative generator: plain-English gloss over computed compliance facts.

Every generator makes at most one remote call and always returns a
``NarrativeOutcome`` with a payload of the documented shape. When the call
fails, returns nothing, or returns something that is not the expected JSON,
the payload is built locally from the same structured facts and
``fallback_used`` is set so the substitution stays observable.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass

from src.narrative.client import generate_text
from src.narrative.prompts import (
    SYSTEM_PROMPT,
    facility_summary_prompt,
    urgent_action_prompt,
    violation_explanation_prompt,
)
from src.records import ComplianceAnalysis, UrgentAction

logger = logging.getLogger(__name__)

URGENT_ACTION_MAX_TOKENS = 600
URGENT_ACTION_TEMPERATURE = 0.2
FACILITY_SUMMARY_MAX_TOKENS = 800
FACILITY_SUMMARY_TEMPERATURE = 0.3
EXPLANATION_MAX_TOKENS = 500
EXPLANATION_TEMPERATURE = 0.3

HEALTH_BASED_URGENCY = "HIGH PRIORITY - Health-based"
PROCEDURAL_URGENCY = "Standard Priority - Procedural"

STATUS_LEVELS = ("good", "caution", "critical")

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

# Handler-level defaults, used when the facts themselves could not be loaded
GENERIC_URGENT_ACTION = {
    "priority": "medium",
    "title": "Review Compliance Status",
    "actionNeeded": "Check recent monitoring and inspection requirements",
    "timeframe": "Within 1 week",
    "reason": "Regular compliance monitoring is essential for system operation",
    "nextSteps": [
        "Review recent monitoring results",
        "Check upcoming sampling deadlines",
        "Contact regulatory authority if questions arise",
    ],
}

GENERIC_FACILITY_SUMMARY = {
    "healthScore": 75,
    "statusLevel": "caution",
    "priorityActions": {
        "urgent": [],
        "thisWeek": ["Review facility compliance status"],
        "thisMonth": ["Contact regulatory authority for guidance"],
    },
    "insights": "Unable to generate detailed analysis. Please review facility records manually.",
    "lastInspection": "Data unavailable",
    "nextMilestones": ["Standard compliance monitoring"],
}

GENERIC_EXPLANATION = {
    "title": "Violation Requires Attention",
    "explanation": (
        "This violation indicates a compliance issue that needs to be addressed. "
        "Please review the specific requirements for this violation type."
    ),
    "actionNeeded": (
        "Contact your laboratory or regulatory authority for specific guidance "
        "on resolving this violation."
    ),
    "whyItMatters": (
        "Addressing violations promptly helps ensure water quality and regulatory compliance."
    ),
    "urgency": "Standard Priority",
    "timeframe": "Review as soon as possible",
}


@dataclass
class NarrativeOutcome:
    """Payload plus whether it came from the model or the local fallback."""

    payload: dict
    fallback_used: bool = False
    error: str | None = None


def generic_urgent_action() -> dict:
    return copy.deepcopy(GENERIC_URGENT_ACTION)


def generic_facility_summary() -> dict:
    return copy.deepcopy(GENERIC_FACILITY_SUMMARY)


def generic_explanation() -> dict:
    return copy.deepcopy(GENERIC_EXPLANATION)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def parse_json_response(text: str) -> dict:
    """Parse a model response into a dict, tolerating markdown fences."""
    text = text.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("response is not a JSON object")
    return data


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"missing or empty {key!r}")
    return value.strip()


def _require_str_list(data: dict, key: str, non_empty: bool = False) -> list[str]:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{key!r} is not a list of strings")
    items = [item.strip() for item in value if item.strip()]
    if non_empty and not items:
        raise ValueError(f"{key!r} is empty")
    return items


def _validate_urgent_action(data: dict, action: UrgentAction) -> dict:
    return {
        "priority": action.priority,
        "title": _require_str(data, "title"),
        "actionNeeded": _require_str(data, "actionNeeded"),
        "timeframe": _require_str(data, "timeframe"),
        "reason": _require_str(data, "reason"),
        "nextSteps": _require_str_list(data, "nextSteps", non_empty=True),
    }


def _validate_facility_summary(data: dict) -> dict:
    score = data.get("healthScore")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValueError("healthScore is not a number")
    status = data.get("statusLevel")
    if status not in STATUS_LEVELS:
        raise ValueError(f"unknown statusLevel {status!r}")
    actions = data.get("priorityActions")
    if not isinstance(actions, dict):
        raise ValueError("priorityActions is not an object")
    return {
        "healthScore": int(round(max(0, min(100, score)))),
        "statusLevel": status,
        "priorityActions": {
            "urgent": _require_str_list(actions, "urgent"),
            "thisWeek": _require_str_list(actions, "thisWeek"),
            "thisMonth": _require_str_list(actions, "thisMonth"),
        },
        "insights": _require_str(data, "insights"),
        "lastInspection": _require_str(data, "lastInspection"),
        "nextMilestones": _require_str_list(data, "nextMilestones"),
    }


def _validate_explanation(data: dict) -> dict:
    return {
        key: _require_str(data, key)
        for key in ("title", "explanation", "actionNeeded", "whyItMatters", "urgency", "timeframe")
    }


# ---------------------------------------------------------------------------
# Deterministic fallbacks
# ---------------------------------------------------------------------------

def timeframe_for(days_remaining: int | None) -> str:
    if days_remaining is not None and days_remaining <= 1:
        return "Immediate (within 24 hours)"
    if days_remaining:
        return f"Within {days_remaining} days"
    return "As soon as possible"


def fallback_urgent_action(action: UrgentAction) -> dict:
    """Operator guidance computed from the action alone."""
    if action.action_type == "inspection":
        action_needed = "Correct the significant deficiency identified during the last inspection"
        reason = "Significant deficiencies must be corrected under a state-approved plan"
        next_steps = [
            "Review the inspection report findings",
            "Submit a corrective action plan to the state",
            "Document corrections as they are completed",
        ]
    elif action.is_health_based:
        action_needed = "Issue public notice immediately and contact state regulatory agency"
        reason = "Health-based violation poses immediate risk to public health"
        next_steps = [
            "Contact state regulatory agency",
            "Issue public notice to customers",
            "Document corrective actions taken",
        ]
    else:
        action_needed = "Submit compliance response and schedule corrective action"
        reason = "Regulatory compliance violation requires formal response"
        next_steps = [
            "Contact state regulatory agency",
            "Review compliance procedures",
            "Document corrective actions taken",
        ]
    return {
        "priority": action.priority,
        "title": action.title,
        "actionNeeded": action_needed,
        "timeframe": timeframe_for(action.days_remaining),
        "reason": reason,
        "nextSteps": next_steps,
    }


def fallback_facility_summary(analysis: ComplianceAnalysis) -> dict:
    """Summary computed from the aggregated counts."""
    active = len(analysis.active)
    if analysis.health_based > 0:
        status = "critical"
    elif active > 3:
        status = "caution"
    else:
        status = "good"

    latest = analysis.latest_inspection
    if latest is not None and latest.visit_date is not None:
        findings = ", ".join(analysis.recent_findings) or "No significant findings"
        last_inspection = f"{latest.visit_date.isoformat()}: {findings}"
    else:
        last_inspection = "No recent inspection"

    pending = [
        f"Milestone {m.milestone_code or m.event_schedule_id} due {m.end_date.isoformat()}"
        for m in analysis.milestones
        if m.actual_date is None and m.end_date is not None
    ]

    return {
        "healthScore": 60 if analysis.health_based > 0 else 85,
        "statusLevel": status,
        "priorityActions": {
            "urgent": ["Resolve health-based violations immediately"] if analysis.health_based else [],
            "thisWeek": ["Address procedural violations"] if analysis.procedural else [],
            "thisMonth": ["Review compliance procedures", "Schedule routine monitoring"],
        },
        "insights": (
            f"Facility has {active} active violations with a {analysis.recent_trend} trend. "
            "Focus on immediate compliance resolution."
        ),
        "lastInspection": last_inspection,
        "nextMilestones": pending or ["Regular monitoring", "Annual compliance review"],
    }


def urgency_label(fact: dict) -> str:
    return HEALTH_BASED_URGENCY if fact.get("isHealthBased") == "Y" else PROCEDURAL_URGENCY


def fallback_explanation(
    fact: dict,
    violation_desc: str | None,
) -> dict:
    """Explanation built from the reference description and flags.

    Contaminant text is left out: the result is cached under
    ``explanation_cache_key``, which other contaminants share.
    """
    code = fact.get("violationCode") or "unknown"
    health_based = fact.get("isHealthBased") == "Y"
    described = violation_desc or "an unrecognized violation type"

    sentences = [f'SDWIS records violation code {code} as "{described}".']
    if health_based:
        sentences.append("This is a health-based violation: a drinking water standard was not met.")
    else:
        sentences.append(
            "This is a procedural violation, usually a missed monitoring, reporting "
            "or notification requirement."
        )
    if fact.get("isMajor") == "Y":
        sentences.append("It is flagged as a major violation.")

    if health_based:
        action_needed = (
            "Issue public notice and contact your state drinking water program "
            "about corrective action."
        )
        why = (
            "Health-based violations mean water may not have met a drinking water "
            "standard, which can put customers at risk."
        )
        timeframe = "Within 24 hours"
    else:
        action_needed = (
            "Complete the missed requirement and confirm with your state drinking "
            "water program how to return to compliance."
        )
        why = (
            "Procedural violations mean regulators cannot confirm the water is safe, "
            "and unresolved ones can escalate to enforcement."
        )
        timeframe = "Within 30 days"

    return {
        "title": violation_desc or f"Violation {code}",
        "explanation": " ".join(sentences),
        "actionNeeded": action_needed,
        "whyItMatters": why,
        "urgency": urgency_label(fact),
        "timeframe": timeframe,
    }


def explanation_cache_key(fact: dict) -> str:
    """Cache key for an explanation. contaminantCode is not part of it, so
    explanations are shared across contaminants for the same violation.
    """
    parts = ("violationCode", "violationCategory", "ruleCode", "isHealthBased", "isMajor")
    return "-".join(str(fact.get(p) if fact.get(p) is not None else "") for p in parts)


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------

async def _generate(label: str, prompt: str, max_tokens: int, temperature: float,
                    validate, fallback) -> NarrativeOutcome:
    result = await generate_text(
        prompt,
        system_prompt=SYSTEM_PROMPT,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    if not result.success:
        reason = result.error or "call failed"
    elif not result.text.strip():
        reason = "empty response"
    else:
        try:
            return NarrativeOutcome(payload=validate(parse_json_response(result.text)))
        except ValueError as e:
            reason = f"unusable response: {e}"

    logger.warning("[narrative] %s using fallback: %s", label, reason)
    return NarrativeOutcome(payload=fallback(), fallback_used=True, error=reason)


async def narrate_urgent_action(
    action: UrgentAction,
    violation_desc: str | None = None,
    contaminant_desc: str | None = None,
) -> NarrativeOutcome:
    return await _generate(
        "urgent_action",
        urgent_action_prompt(action, violation_desc, contaminant_desc),
        URGENT_ACTION_MAX_TOKENS,
        URGENT_ACTION_TEMPERATURE,
        lambda data: _validate_urgent_action(data, action),
        lambda: fallback_urgent_action(action),
    )


async def summarize_facility(
    analysis: ComplianceAnalysis,
    violation_descriptions: dict[str, str] | None = None,
) -> NarrativeOutcome:
    return await _generate(
        "facility_summary",
        facility_summary_prompt(analysis, violation_descriptions or {}),
        FACILITY_SUMMARY_MAX_TOKENS,
        FACILITY_SUMMARY_TEMPERATURE,
        _validate_facility_summary,
        lambda: fallback_facility_summary(analysis),
    )


async def explain_violation(
    fact: dict,
    violation_desc: str | None = None,
    contaminant_desc: str | None = None,
) -> NarrativeOutcome:
    """Explain one violation given its coded attributes.

    ``fact`` uses the request field names: violationCode, violationCategory,
    ruleCode, isHealthBased ("Y"/"N"), isMajor ("Y"/"N"), contaminantCode.
    """
    urgency = urgency_label(fact)
    return await _generate(
        "violation_explanation",
        violation_explanation_prompt(fact, violation_desc, contaminant_desc, urgency),
        EXPLANATION_MAX_TOKENS,
        EXPLANATION_TEMPERATURE,
        _validate_explanation,
        lambda: fallback_explanation(fact, violation_desc),
    )
