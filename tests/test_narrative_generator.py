"""Tests for narrative/generator.py: parsing, validation and fallbacks.

generate_text is patched where the generator imports it; no SDK involved.
"""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from src.narrative.client import NarrativeResult
from src.narrative.generator import (
    EXPLANATION_MAX_TOKENS,
    FACILITY_SUMMARY_MAX_TOKENS,
    HEALTH_BASED_URGENCY,
    PROCEDURAL_URGENCY,
    URGENT_ACTION_MAX_TOKENS,
    URGENT_ACTION_TEMPERATURE,
    explain_violation,
    explanation_cache_key,
    fallback_explanation,
    fallback_facility_summary,
    fallback_urgent_action,
    generic_urgent_action,
    narrate_urgent_action,
    parse_json_response,
    summarize_facility,
    timeframe_for,
)
from src.records import (
    ComplianceAnalysis,
    EventMilestone,
    SiteVisit,
    UrgentAction,
    Violation,
    WaterSystem,
)

GEN = "src.narrative.generator.generate_text"


def _ok(text):
    return AsyncMock(return_value=NarrativeResult(success=True, text=text))


def _fail(error="boom"):
    return AsyncMock(return_value=NarrativeResult(success=False, text="", error=error))


def _action(**kwargs):
    defaults = dict(
        action_type="violation",
        priority="critical",
        title="Health-Based Violation 02",
        description="Violation 02 outstanding since 01/10/2024.",
        days_remaining=0,
        violation_code="02",
        contaminant_code="3100",
        is_health_based=True,
        notification_tier=1,
    )
    defaults.update(kwargs)
    return UrgentAction(**defaults)


def _analysis(health_based=1, procedural=1, **kwargs):
    active = (
        [Violation(violation_id=f"H{i}", violation_code="02", is_health_based=True) for i in range(health_based)]
        + [Violation(violation_id=f"P{i}", violation_code="03") for i in range(procedural)]
    )
    defaults = dict(
        system=WaterSystem(pwsid="GA0010000", name="Baxley Water Works", activity_code="A"),
        active=active,
        total=len(active) + 3,
        health_based=health_based,
        procedural=procedural,
        recent_trend="declining",
    )
    defaults.update(kwargs)
    return ComplianceAnalysis(**defaults)


FACT = {
    "violationCode": "02",
    "violationCategory": "MCL",
    "ruleCode": "110",
    "isHealthBased": "Y",
    "isMajor": "N",
    "contaminantCode": "3100",
}


# ── parse_json_response ──────────────────────────────────────────────────────


def test_parse_plain_json():
    assert parse_json_response('{"a": 1}') == {"a": 1}


def test_parse_fenced_json():
    assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_response('```\n{"a": 1}\n```') == {"a": 1}


@pytest.mark.parametrize("text", ["not json", "[1, 2]", '"string"'])
def test_parse_rejects_non_objects(text):
    with pytest.raises(ValueError):
        parse_json_response(text)


# ── deterministic fallbacks ──────────────────────────────────────────────────


@pytest.mark.parametrize("days,expected", [
    (0, "Immediate (within 24 hours)"),
    (1, "Immediate (within 24 hours)"),
    (12, "Within 12 days"),
    (None, "As soon as possible"),
])
def test_timeframe_for(days, expected):
    assert timeframe_for(days) == expected


def test_fallback_urgent_action_health_based():
    payload = fallback_urgent_action(_action())
    assert payload["priority"] == "critical"
    assert payload["title"] == "Health-Based Violation 02"
    assert payload["timeframe"] == "Immediate (within 24 hours)"
    assert "public notice" in payload["actionNeeded"].lower()
    assert len(payload["nextSteps"]) == 3


def test_fallback_urgent_action_procedural():
    payload = fallback_urgent_action(_action(priority="high", is_health_based=False, days_remaining=20))
    assert payload["priority"] == "high"
    assert payload["timeframe"] == "Within 20 days"
    assert payload["reason"] == "Regulatory compliance violation requires formal response"


def test_fallback_urgent_action_inspection():
    action = _action(action_type="inspection", priority="high", days_remaining=None, is_health_based=False)
    payload = fallback_urgent_action(action)
    assert "inspection" in payload["actionNeeded"]
    assert payload["timeframe"] == "As soon as possible"


def test_fallback_summary_with_health_based():
    summary = fallback_facility_summary(_analysis())
    assert summary["healthScore"] == 60
    assert summary["statusLevel"] == "critical"
    assert summary["priorityActions"]["urgent"] == ["Resolve health-based violations immediately"]
    assert summary["insights"].startswith("Facility has 2 active violations with a declining trend.")
    assert summary["lastInspection"] == "No recent inspection"
    assert summary["nextMilestones"] == ["Regular monitoring", "Annual compliance review"]


def test_fallback_summary_many_procedural_is_caution():
    summary = fallback_facility_summary(_analysis(health_based=0, procedural=4))
    assert summary["healthScore"] == 85
    assert summary["statusLevel"] == "caution"
    assert summary["priorityActions"]["urgent"] == []


def test_fallback_summary_clean_is_good():
    summary = fallback_facility_summary(_analysis(health_based=0, procedural=0))
    assert summary["statusLevel"] == "good"
    assert summary["priorityActions"]["thisWeek"] == []


def test_fallback_summary_inspection_and_milestones():
    visit = SiteVisit(visit_id="SV4", visit_date=date(2024, 5, 1), treatment_eval="S")
    milestones = [
        EventMilestone(event_schedule_id="M1", end_date=date(2024, 12, 31), milestone_code="CAP"),
        EventMilestone(event_schedule_id="M2", end_date=date(2023, 6, 30), actual_date=date(2023, 6, 15)),
    ]
    summary = fallback_facility_summary(_analysis(
        latest_inspection=visit,
        recent_findings=visit.findings(),
        milestones=milestones,
    ))
    assert summary["lastInspection"] == "2024-05-01: Significant deficiency in treatment"
    assert summary["nextMilestones"] == ["Milestone CAP due 2024-12-31"]


def test_fallback_explanation():
    payload = fallback_explanation(FACT, "Maximum Contaminant Level Violation, Average")
    assert payload["title"] == "Maximum Contaminant Level Violation, Average"
    assert "Maximum Contaminant Level Violation, Average" in payload["explanation"]
    assert payload["urgency"] == HEALTH_BASED_URGENCY
    assert payload["timeframe"] == "Within 24 hours"


def test_fallback_explanation_unknown_procedural():
    fact = dict(FACT, violationCode="77", isHealthBased="N", contaminantCode=None)
    payload = fallback_explanation(fact, None)
    assert payload["title"] == "Violation 77"
    assert payload["urgency"] == PROCEDURAL_URGENCY
    assert payload["timeframe"] == "Within 30 days"


def test_explanation_cache_key():
    assert explanation_cache_key(FACT) == "02-MCL-110-Y-N"
    assert explanation_cache_key({"violationCode": "03"}) == "03----"


def test_generic_payloads_are_copies():
    first = generic_urgent_action()
    first["nextSteps"].append("mutated")
    assert "mutated" not in generic_urgent_action()["nextSteps"]


# ── narrate_urgent_action ────────────────────────────────────────────────────


URGENT_JSON = """{
  "priority": "medium",
  "title": "Notify customers about coliform",
  "actionNeeded": "Issue a Tier 1 public notice today",
  "timeframe": "Immediate (within 24 hours)",
  "reason": "Coliform was detected above the limit",
  "nextSteps": ["Call the state", "Post the notice"]
}"""


@pytest.mark.asyncio
async def test_urgent_action_uses_model_text_but_keeps_engine_priority():
    mock = _ok(URGENT_JSON)
    with patch(GEN, mock):
        outcome = await narrate_urgent_action(_action(), "MCL, Average", "Coliform (TCR)")
    assert outcome.fallback_used is False
    assert outcome.payload["priority"] == "critical"
    assert outcome.payload["title"] == "Notify customers about coliform"
    assert outcome.payload["nextSteps"] == ["Call the state", "Post the notice"]

    kwargs = mock.call_args.kwargs
    assert kwargs["max_tokens"] == URGENT_ACTION_MAX_TOKENS
    assert kwargs["temperature"] == URGENT_ACTION_TEMPERATURE
    assert "Coliform (TCR)" in mock.call_args.args[0]


@pytest.mark.asyncio
async def test_urgent_action_call_failure_falls_back():
    with patch(GEN, _fail("ANTHROPIC_API_KEY not configured")):
        outcome = await narrate_urgent_action(_action())
    assert outcome.fallback_used is True
    assert outcome.error == "ANTHROPIC_API_KEY not configured"
    assert outcome.payload == fallback_urgent_action(_action())


@pytest.mark.asyncio
async def test_urgent_action_missing_field_falls_back():
    with patch(GEN, _ok('{"title": "only a title"}')):
        outcome = await narrate_urgent_action(_action())
    assert outcome.fallback_used is True
    assert outcome.error.startswith("unusable response")


@pytest.mark.asyncio
@pytest.mark.parametrize("steps", ["[]", '["  ", ""]'])
async def test_urgent_action_without_next_steps_falls_back(steps):
    text = URGENT_JSON.replace('["Call the state", "Post the notice"]', steps)
    assert steps in text
    with patch(GEN, _ok(text)):
        outcome = await narrate_urgent_action(_action())
    assert outcome.fallback_used is True
    assert len(outcome.payload["nextSteps"]) == 3


@pytest.mark.asyncio
async def test_urgent_action_empty_text_falls_back():
    with patch(GEN, _ok("   ")):
        outcome = await narrate_urgent_action(_action())
    assert outcome.fallback_used is True
    assert outcome.error == "empty response"


# ── summarize_facility ───────────────────────────────────────────────────────


SUMMARY_JSON = """```json
{
  "healthScore": 140,
  "statusLevel": "critical",
  "priorityActions": {"urgent": ["Fix coliform"], "thisWeek": [], "thisMonth": ["Review"]},
  "insights": "One health-based violation is open.",
  "lastInspection": "2024-09-12: no findings",
  "nextMilestones": ["CAP due 2024-12-31"]
}
```"""


@pytest.mark.asyncio
async def test_summary_parses_fenced_json_and_clamps_score():
    mock = _ok(SUMMARY_JSON)
    with patch(GEN, mock):
        outcome = await summarize_facility(_analysis(), {"02": "MCL, Average"})
    assert outcome.fallback_used is False
    assert outcome.payload["healthScore"] == 100
    assert outcome.payload["priorityActions"]["urgent"] == ["Fix coliform"]
    assert mock.call_args.kwargs["max_tokens"] == FACILITY_SUMMARY_MAX_TOKENS


@pytest.mark.asyncio
async def test_summary_unknown_status_falls_back():
    bad = SUMMARY_JSON.replace('"critical"', '"meltdown"')
    with patch(GEN, _ok(bad)):
        outcome = await summarize_facility(_analysis())
    assert outcome.fallback_used is True
    assert outcome.payload["statusLevel"] == "critical"
    assert outcome.payload["healthScore"] == 60


@pytest.mark.asyncio
async def test_summary_non_json_falls_back():
    with patch(GEN, _ok("The facility looks fine overall.")):
        outcome = await summarize_facility(_analysis(health_based=0, procedural=0))
    assert outcome.fallback_used is True
    assert outcome.payload["statusLevel"] == "good"


# ── explain_violation ────────────────────────────────────────────────────────


EXPLAIN_JSON = """{
  "title": "Coliform above the limit",
  "explanation": "Samples showed coliform bacteria.",
  "actionNeeded": "Notify customers and resample.",
  "whyItMatters": "Coliform can indicate contamination.",
  "urgency": "HIGH PRIORITY - Health-based",
  "timeframe": "Within 24 hours"
}"""


@pytest.mark.asyncio
async def test_explain_success():
    mock = _ok(EXPLAIN_JSON)
    with patch(GEN, mock):
        outcome = await explain_violation(FACT, "MCL, Average", "Coliform (TCR)")
    assert outcome.fallback_used is False
    assert outcome.payload["title"] == "Coliform above the limit"
    assert mock.call_args.kwargs["max_tokens"] == EXPLANATION_MAX_TOKENS
    assert HEALTH_BASED_URGENCY in mock.call_args.args[0]


@pytest.mark.asyncio
async def test_explain_failure_falls_back():
    with patch(GEN, _fail()):
        outcome = await explain_violation(FACT, "MCL, Average")
    assert outcome.fallback_used is True
    assert outcome.payload["title"] == "MCL, Average"
    assert outcome.payload["urgency"] == HEALTH_BASED_URGENCY
