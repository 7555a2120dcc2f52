"""Facility record accessors: water systems and their SDWIS history.

Every function here reads; nothing writes. Rows are converted into the
dataclasses from ``src.records`` before they leave this module, so date
parsing and bad-data exclusion happen in one place.
"""

import logging
from datetime import date

from src.db import query
from src.records import (
    EventMilestone,
    SiteVisit,
    Violation,
    WaterSystem,
    parse_iso_date,
)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
TOP_VIOLATORS_LIMIT = 30

# ---------------------------------------------------------------------------
# Column mappings (SELECT column order)
# ---------------------------------------------------------------------------

SYSTEM_COLS = [
    "PWSID", "PWS_NAME", "PWS_TYPE_CODE", "POPULATION_SERVED_COUNT",
    "PWS_ACTIVITY_CODE", "CITY_NAME", "STATE_CODE", "OWNER_TYPE_CODE",
    "PRIMARY_SOURCE_CODE",
]

VIOLATION_COLS = [
    "VIOLATION_ID", "PWSID", "COMPL_PER_BEGIN_DATE", "COMPL_PER_END_DATE",
    "VIOLATION_CODE", "VIOLATION_CATEGORY_CODE", "IS_HEALTH_BASED_IND",
    "IS_MAJOR_VIOL_IND", "VIOLATION_STATUS", "CONTAMINANT_CODE",
    "PUBLIC_NOTIFICATION_TIER", "RULE_CODE",
]

SITE_VISIT_COLS = [
    "VISIT_ID", "PWSID", "VISIT_DATE", "MANAGEMENT_OPS_EVAL_CODE",
    "SOURCE_WATER_EVAL_CODE", "SECURITY_EVAL_CODE", "PUMPS_EVAL_CODE",
    "OTHER_EVAL_CODE", "COMPLIANCE_EVAL_CODE", "DATA_VERIFICATION_EVAL_CODE",
    "TREATMENT_EVAL_CODE", "FINISHED_WATER_STOR_EVAL_CODE",
    "DISTRIBUTION_EVAL_CODE", "FINANCIAL_EVAL_CODE", "VISIT_COMMENTS",
]

MILESTONE_COLS = [
    "EVENT_SCHEDULE_ID", "PWSID", "EVENT_END_DATE", "EVENT_ACTUAL_DATE",
    "EVENT_COMMENTS_TEXT", "EVENT_MILESTONE_CODE", "EVENT_REASON_CODE",
]

# Fields get_violations() may order by
VIOLATION_ORDER_FIELDS = {
    "begin_date", "end_date", "violation_id", "violation_code", "status",
}


def _row_to_dict(row, cols) -> dict:
    """Convert a tuple row to a dict using column name list."""
    return {cols[i]: row[i] for i in range(min(len(cols), len(row)))}


def _select(cols: list[str], table: str) -> str:
    return f"SELECT {', '.join(cols)} FROM {table}"


def _date_sort_key(value: date | None, descending: bool):
    """Sort key that puts undated records last in either direction."""
    if value is None:
        return (1, 0)
    ordinal = value.toordinal()
    return (0, -ordinal if descending else ordinal)


# ---------------------------------------------------------------------------
# Water systems
# ---------------------------------------------------------------------------

def search_water_systems(search: str) -> list[WaterSystem]:
    """Case-insensitive match on PWSID, name or city among active systems."""
    term = f"%{search.strip().upper()}%"
    sql = (
        _select(SYSTEM_COLS, "sdwa_pub_water_systems")
        + " WHERE PWS_ACTIVITY_CODE = 'A'"
        " AND (UPPER(PWSID) LIKE %s OR UPPER(PWS_NAME) LIKE %s OR UPPER(CITY_NAME) LIKE %s)"
        f" ORDER BY PWS_NAME LIMIT {SEARCH_LIMIT}"
    )
    rows = query(sql, (term, term, term))
    return [WaterSystem.from_row(_row_to_dict(r, SYSTEM_COLS)) for r in rows]


def get_water_system(pwsid: str) -> WaterSystem | None:
    """Exact lookup; inactive systems are treated as not found."""
    sql = (
        _select(SYSTEM_COLS, "sdwa_pub_water_systems")
        + " WHERE PWSID = %s AND PWS_ACTIVITY_CODE = 'A'"
    )
    rows = query(sql, (pwsid.strip(),))
    if not rows:
        return None
    return WaterSystem.from_row(_row_to_dict(rows[0], SYSTEM_COLS))


def get_top_violators(limit: int = TOP_VIOLATORS_LIMIT) -> list[dict]:
    """Active systems ranked by total violation count."""
    sql = (
        "SELECT ws.PWSID, ws.PWS_NAME, ws.CITY_NAME, COUNT(v.VIOLATION_ID) AS violation_count"
        " FROM sdwa_pub_water_systems ws"
        " JOIN sdwa_violations_enforcement v ON v.PWSID = ws.PWSID"
        " WHERE ws.PWS_ACTIVITY_CODE = 'A'"
        " GROUP BY ws.PWSID, ws.PWS_NAME, ws.CITY_NAME"
        " ORDER BY violation_count DESC, ws.PWS_NAME"
        " LIMIT %s"
    )
    rows = query(sql, (int(limit),))
    return [
        {
            "pwsid": r[0],
            "name": r[1],
            "city": r[2],
            "violationCount": int(r[3]),
        }
        for r in rows
    ]


# ---------------------------------------------------------------------------
# Facility history
# ---------------------------------------------------------------------------

def get_violations(
    pwsid: str,
    date_from: str | date | None = None,
    date_to: str | date | None = None,
    order_by: str = "begin_date",
    descending: bool = False,
) -> list[Violation]:
    """All violations for a facility with a parseable begin date.

    ``date_from``/``date_to`` are inclusive YYYY-MM-DD bounds on the begin
    date. Stored MM/DD/YYYY text is parsed here; records whose begin date
    is missing or malformed are dropped rather than raising.
    """
    if order_by not in VIOLATION_ORDER_FIELDS:
        raise ValueError(f"Cannot order violations by {order_by!r}")
    lo = date_from if isinstance(date_from, date) else parse_iso_date(date_from)
    hi = date_to if isinstance(date_to, date) else parse_iso_date(date_to)

    rows = query(
        _select(VIOLATION_COLS, "sdwa_violations_enforcement") + " WHERE PWSID = %s",
        (pwsid,),
    )
    violations = []
    dropped = 0
    for r in rows:
        v = Violation.from_row(_row_to_dict(r, VIOLATION_COLS))
        if v.begin_date is None:
            dropped += 1
            continue
        if lo and v.begin_date < lo:
            continue
        if hi and v.begin_date > hi:
            continue
        violations.append(v)
    if dropped:
        logger.debug("Dropped %d violations with unparseable begin dates for %s", dropped, pwsid)

    if order_by in ("begin_date", "end_date"):
        violations.sort(
            key=lambda v: (_date_sort_key(getattr(v, order_by), descending), v.violation_id)
        )
    else:
        violations.sort(key=lambda v: getattr(v, order_by), reverse=descending)
    return violations


def get_site_visits(pwsid: str, limit: int | None = None) -> list[SiteVisit]:
    """Site visits for a facility, most recent first (undated last)."""
    rows = query(
        _select(SITE_VISIT_COLS, "sdwa_site_visits") + " WHERE PWSID = %s",
        (pwsid,),
    )
    visits = [SiteVisit.from_row(_row_to_dict(r, SITE_VISIT_COLS)) for r in rows]
    visits.sort(key=lambda sv: (_date_sort_key(sv.visit_date, descending=True), sv.visit_id))
    return visits[:limit] if limit is not None else visits


def get_latest_site_visit(pwsid: str) -> SiteVisit | None:
    visits = get_site_visits(pwsid, limit=1)
    return visits[0] if visits else None


def get_milestones(pwsid: str) -> list[EventMilestone]:
    """Compliance milestones, latest scheduled end date first."""
    rows = query(
        _select(MILESTONE_COLS, "sdwa_events_milestones") + " WHERE PWSID = %s",
        (pwsid,),
    )
    milestones = [EventMilestone.from_row(_row_to_dict(r, MILESTONE_COLS)) for r in rows]
    milestones.sort(
        key=lambda m: (_date_sort_key(m.end_date, descending=True), m.event_schedule_id)
    )
    return milestones
