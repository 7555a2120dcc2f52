"""Compliance signal engine: urgent action, violation calendar, trend.

Pure functions, no database dependency. Callers pass in records already
loaded by ``src.facilities``; every function that depends on the current
date takes an optional ``today`` so results are reproducible in tests.

Urgent action ranking (one action per facility, never a list):
  1. Health-based violations before everything else
  2. Public notification tier 1, 2, 3, then unset
  3. Oldest compliance period begin date first

Calendar severity per day: 3 x health-based + 1 x procedural.
"""

from __future__ import annotations

from datetime import date

from src.records import (
    EVAL_SIGNIFICANT,
    CalendarDay,
    ComplianceAnalysis,
    EventMilestone,
    SiteVisit,
    UrgentAction,
    Violation,
    WaterSystem,
)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

UNADDRESSED = "Unaddressed"
RESOLVED = "Resolved"

# Public notice windows (days from compliance period begin)
HEALTH_BASED_NOTICE_DAYS = 1
PROCEDURAL_NOTICE_DAYS = 30

# Calendar severity weights
HEALTH_BASED_WEIGHT = 3
PROCEDURAL_WEIGHT = 1

# Heatmap intensity buckets: (max value, level)
_CALENDAR_LEVELS = [
    (0, 0),
    (2, 1),
    (4, 2),
    (6, 3),
]
_CALENDAR_MAX_LEVEL = 4

# Site visit categories that escalate to an inspection action
URGENT_EVAL_CATEGORIES = (
    "management_ops_eval",
    "source_water_eval",
    "compliance_eval",
    "treatment_eval",
)

INSPECTION_ACTION_TITLE = "Address Significant Deficiency from Inspection"
INSPECTION_ACTION_DESCRIPTION = (
    "The most recent sanitary survey found a significant deficiency that "
    "must be corrected."
)
NO_ACTION_TITLE = "No Urgent Actions"
NO_ACTION_DESCRIPTION = "No outstanding violations or significant inspection findings."

_UNSET_TIER_RANK = 4


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def is_outstanding(v: Violation) -> bool:
    """No end date, an end date stored as "nan", or status Unaddressed.

    Resolved status is not consulted here; see ``is_active``.
    """
    if v.status == UNADDRESSED:
        return True
    if v.end_date is not None:
        return False
    return v.end_date_raw.strip().lower() in ("", "nan")


def is_active(v: Violation) -> bool:
    """Outstanding and not marked Resolved (used for summary counts)."""
    return is_outstanding(v) and v.status != RESOLVED


# ---------------------------------------------------------------------------
# Urgent action
# ---------------------------------------------------------------------------

def _urgency_key(v: Violation) -> tuple:
    tier = v.notification_tier if v.notification_tier in (1, 2, 3) else _UNSET_TIER_RANK
    begin = v.begin_date.toordinal() if v.begin_date else date.max.toordinal()
    return (0 if v.is_health_based else 1, tier, begin, v.violation_id)


def rank_outstanding(violations: list[Violation]) -> list[Violation]:
    """Outstanding violations, most urgent first."""
    return sorted((v for v in violations if is_outstanding(v)), key=_urgency_key)


def days_remaining(v: Violation, today: date | None = None) -> int | None:
    """Days left in the public notice window, floored at 0."""
    if v.begin_date is None:
        return None
    today = today or date.today()
    window = HEALTH_BASED_NOTICE_DAYS if v.is_health_based else PROCEDURAL_NOTICE_DAYS
    elapsed = (today - v.begin_date).days
    return max(0, window - elapsed)


def priority_for(v: Violation) -> str:
    if v.is_health_based:
        return "critical"
    if v.notification_tier == 2:
        return "high"
    return "medium"


def _violation_title(v: Violation) -> str:
    kind = "Health-Based Violation" if v.is_health_based else "Compliance Violation"
    return f"{kind} {v.violation_code}".strip()


def _violation_description(v: Violation) -> str:
    begun = v.begin_date.strftime("%m/%d/%Y") if v.begin_date else "an unknown date"
    parts = [f"Violation {v.violation_code or 'of unknown code'} outstanding since {begun}"]
    if v.contaminant_code:
        parts.append(f"contaminant {v.contaminant_code}")
    if v.notification_tier:
        parts.append(f"Tier {v.notification_tier} public notice")
    return ", ".join(parts) + "."


def has_significant_deficiency(visit: SiteVisit | None) -> bool:
    if visit is None:
        return False
    return any(getattr(visit, attr) == EVAL_SIGNIFICANT for attr in URGENT_EVAL_CATEGORIES)


def select_urgent_action(
    violations: list[Violation],
    latest_visit: SiteVisit | None = None,
    today: date | None = None,
) -> UrgentAction:
    """Pick the single most urgent action for a facility.

    ``latest_visit`` is only consulted when nothing is outstanding.
    """
    ranked = rank_outstanding(violations)
    if ranked:
        top = ranked[0]
        return UrgentAction(
            action_type="violation",
            priority=priority_for(top),
            title=_violation_title(top),
            description=_violation_description(top),
            days_remaining=days_remaining(top, today),
            violation_code=top.violation_code or None,
            contaminant_code=top.contaminant_code,
            is_health_based=top.is_health_based,
            notification_tier=top.notification_tier,
        )

    if has_significant_deficiency(latest_visit):
        return UrgentAction(
            action_type="inspection",
            priority="high",
            title=INSPECTION_ACTION_TITLE,
            description=INSPECTION_ACTION_DESCRIPTION,
        )

    return UrgentAction(
        action_type="none",
        priority="medium",
        title=NO_ACTION_TITLE,
        description=NO_ACTION_DESCRIPTION,
    )


# ---------------------------------------------------------------------------
# Violation calendar
# ---------------------------------------------------------------------------

def aggregate_violation_calendar(violations: list[Violation]) -> dict[date, CalendarDay]:
    """Group violations by begin date into per-day severity records.

    Only days with at least one violation appear. The result is a mapping;
    callers that need chronological order must sort it themselves.
    """
    days: dict[date, CalendarDay] = {}
    for v in violations:
        if v.begin_date is None:
            continue
        day = days.get(v.begin_date)
        if day is None:
            day = days[v.begin_date] = CalendarDay(day=v.begin_date)
        if v.is_health_based:
            day.health_based += 1
        else:
            day.procedural += 1
        day.violations.append(v)

    for day in days.values():
        day.value = HEALTH_BASED_WEIGHT * day.health_based + PROCEDURAL_WEIGHT * day.procedural
    return days


def calendar_level(value: int) -> int:
    """Map a day's severity score to a heatmap intensity level 0-4."""
    for max_value, level in _CALENDAR_LEVELS:
        if value <= max_value:
            return level
    return _CALENDAR_MAX_LEVEL


def initial_calendar_year(days, today: date | None = None) -> int:
    """Year the calendar should open on.

    The current year when it has data, else the most recent year that
    does, else the current year.
    """
    current = (today or date.today()).year
    years = {d.year for d in days}
    if not years or current in years:
        return current
    return max(years)


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------

def trend_from_counts(last_year: int, previous_year: int) -> str:
    if last_year < previous_year:
        return "improving"
    if last_year > previous_year:
        return "declining"
    return "stable"


def compute_trend(violations: list[Violation], today: date | None = None) -> str:
    """Compare violation counts for (year - 1) against (year - 2).

    A two-point comparison with no smoothing; treat it as a coarse signal.
    Status is ignored.
    """
    year = (today or date.today()).year
    last_year = sum(1 for v in violations if v.begin_date and v.begin_date.year == year - 1)
    previous_year = sum(1 for v in violations if v.begin_date and v.begin_date.year == year - 2)
    return trend_from_counts(last_year, previous_year)


# ---------------------------------------------------------------------------
# Compliance analysis
# ---------------------------------------------------------------------------

def build_compliance_analysis(
    system: WaterSystem,
    violations: list[Violation],
    site_visits: list[SiteVisit],
    milestones: list[EventMilestone],
    today: date | None = None,
) -> ComplianceAnalysis:
    """Assemble the facility summary facts the narrative is written from.

    ``site_visits`` is expected most-recent-first, as returned by
    ``get_site_visits``.
    """
    active = [v for v in violations if is_active(v)]
    health_based = sum(1 for v in active if v.is_health_based)
    latest = site_visits[0] if site_visits else None
    return ComplianceAnalysis(
        system=system,
        active=active,
        total=len(violations),
        health_based=health_based,
        procedural=len(active) - health_based,
        recent_trend=compute_trend(violations, today),
        latest_inspection=latest,
        recent_findings=latest.findings() if latest else [],
        milestones=list(milestones),
    )
