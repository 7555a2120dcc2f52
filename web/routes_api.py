"""API routes: facility search, violation calendar, AI compliance narratives.

Blueprint: api (no url_prefix)

Handlers are thin: validate input, call the accessors and the compliance
engine, optionally narrate. Narrative endpoints never return an error for
upstream failures; they degrade to a deterministic fallback instead.
"""

import logging
from datetime import date

from flask import Blueprint, jsonify, request

from src import compliance, facilities, reference
from src.cache import (
    facility_summary_cache,
    urgent_action_cache,
    violation_explanation_cache,
)
from src.narrative import explain_violation, narrate_urgent_action, summarize_facility
from src.narrative.generator import (
    explanation_cache_key,
    generic_explanation,
    generic_facility_summary,
    generic_urgent_action,
)
from src.records import parse_iso_date
from web.helpers import json_error, run_async, yes_no

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)

MIN_QUERY_LENGTH = 2
CALENDAR_START = "1985-01-01"


# ---------------------------------------------------------------------------
# Search + lookup
# ---------------------------------------------------------------------------

@bp.route("/api/search")
def api_search():
    """Search active water systems by PWSID, name or city.

    GET /api/search?q=<at least 2 characters>
    """
    q = (request.args.get("q") or "").strip()
    if len(q) < MIN_QUERY_LENGTH:
        return json_error("Query must be at least 2 characters", 400)

    try:
        results = facilities.search_water_systems(q)
    except Exception:
        logger.exception("Search failed for %r", q)
        return json_error("Search failed", 500)
    return jsonify({"results": [s.to_dict() for s in results], "count": len(results)})


@bp.route("/api/facility/<pwsid>")
def api_facility(pwsid):
    """Single active water system with its codes resolved."""
    try:
        system = facilities.get_water_system(pwsid)
        if system is None:
            return json_error("Facility not found", 404)
        body = system.to_dict()
        body.update(reference.describe_system_codes(system))
    except Exception:
        logger.exception("Facility lookup failed for %s", pwsid)
        return json_error("Facility lookup failed", 500)
    return jsonify(body)


@bp.route("/api/top-violators")
def api_top_violators():
    try:
        results = facilities.get_top_violators()
    except Exception:
        logger.exception("Top violators fetch failed")
        return json_error("Failed to fetch top violators", 500)
    return jsonify({"results": results, "count": len(results)})


# ---------------------------------------------------------------------------
# Violation calendar
# ---------------------------------------------------------------------------

@bp.route("/api/violations/calendar")
def api_violation_calendar():
    """Per-day violation severity for a facility.

    GET /api/violations/calendar?pwsid=<id>&from=YYYY-MM-DD&to=YYYY-MM-DD

    Only days with violations are returned; the client fills the gaps.
    """
    pwsid = (request.args.get("pwsid") or "").strip()
    if not pwsid:
        return json_error("PWSID is required", 400)

    date_from = request.args.get("from") or CALENDAR_START
    date_to = request.args.get("to") or date.today().isoformat()
    try:
        lo, hi = parse_iso_date(date_from), parse_iso_date(date_to)
    except ValueError:
        return json_error("Dates must be YYYY-MM-DD", 400)
    if lo > hi:
        return json_error("'from' must not be after 'to'", 400)

    try:
        violations = facilities.get_violations(pwsid, lo, hi)
    except Exception:
        logger.exception("Calendar fetch failed for %s", pwsid)
        return json_error("Failed to fetch violations", 500)

    days = compliance.aggregate_violation_calendar(violations)
    data = [
        {
            "day": d.day.isoformat(),
            "value": d.value,
            "level": compliance.calendar_level(d.value),
            "healthBased": d.health_based,
            "procedural": d.procedural,
            "violations": [v.to_dict() for v in d.violations],
        }
        for d in sorted(days.values(), key=lambda d: d.day)
    ]
    return jsonify({
        "data": data,
        "from": lo.isoformat(),
        "to": hi.isoformat(),
        "totalViolations": len(violations),
        "initialYear": compliance.initial_calendar_year(days.keys()),
    })


# ---------------------------------------------------------------------------
# AI narratives
# ---------------------------------------------------------------------------

@bp.route("/api/action/urgent")
def api_urgent_action():
    """The single most urgent action for a facility, in plain English.

    Returns {"urgentAction": null} when nothing needs attention.
    """
    pwsid = (request.args.get("pwsid") or "").strip()
    if not pwsid:
        return json_error("PWSID is required", 400)

    cached = urgent_action_cache.get(pwsid)
    if cached is not None:
        return jsonify(cached)

    try:
        violations = facilities.get_violations(pwsid)
        latest_visit = facilities.get_latest_site_visit(pwsid)
        action = compliance.select_urgent_action(violations, latest_visit)

        if action.action_type == "none":
            response = {"urgentAction": None}
        else:
            violation_desc = reference.describe(reference.VIOLATION_CODE, action.violation_code)
            contaminant_desc = reference.describe(reference.CONTAMINANT_CODE, action.contaminant_code)
            outcome = run_async(narrate_urgent_action(action, violation_desc, contaminant_desc))
            response = {"urgentAction": outcome.payload}
    except Exception:
        logger.exception("Urgent action failed for %s", pwsid)
        return jsonify({"urgentAction": generic_urgent_action()})

    urgent_action_cache.set(pwsid, response)
    return jsonify(response)


@bp.route("/api/facility/summary")
def api_facility_summary():
    """AI compliance summary for one facility."""
    pwsid = (request.args.get("pwsid") or "").strip()
    if not pwsid:
        return json_error("PWSID is required", 400)

    cached = facility_summary_cache.get(pwsid)
    if cached is not None:
        return jsonify({"summary": cached})

    try:
        system = facilities.get_water_system(pwsid)
        if system is None:
            return json_error("Facility not found", 404)
        analysis = compliance.build_compliance_analysis(
            system,
            facilities.get_violations(pwsid),
            facilities.get_site_visits(pwsid),
            facilities.get_milestones(pwsid),
        )
        descriptions = {}
        for v in analysis.active:
            if v.violation_code and v.violation_code not in descriptions:
                descriptions[v.violation_code] = (
                    reference.describe(reference.VIOLATION_CODE, v.violation_code)
                    or "Unknown violation"
                )
        outcome = run_async(summarize_facility(analysis, descriptions))
    except Exception:
        logger.exception("Facility summary failed for %s", pwsid)
        return jsonify({"summary": generic_facility_summary()})

    facility_summary_cache.set(pwsid, outcome.payload)
    return jsonify({"summary": outcome.payload})


@bp.route("/api/violation/explain", methods=["POST"])
def api_violation_explain():
    """Plain-English explanation of one violation's coded attributes.

    POST JSON: {violationCode, violationCategory, ruleCode, isHealthBased,
                isMajor, contaminantCode}
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return json_error("Request body must be a JSON object", 400)
    code = str(data.get("violationCode") or "").strip()
    if not code:
        return json_error("Violation code is required", 400)

    contaminant = data.get("contaminantCode")
    fact = {
        "violationCode": code,
        "violationCategory": data.get("violationCategory"),
        "ruleCode": data.get("ruleCode"),
        "isHealthBased": yes_no(data.get("isHealthBased")),
        "isMajor": yes_no(data.get("isMajor")),
        "contaminantCode": str(contaminant) if contaminant not in (None, "") else None,
    }
    key = explanation_cache_key(fact)
    cached = violation_explanation_cache.get(key)
    if cached is not None:
        return jsonify({"explanation": cached})

    try:
        violation_desc = reference.describe(reference.VIOLATION_CODE, code)
        contaminant_desc = reference.describe(reference.CONTAMINANT_CODE, fact["contaminantCode"])
        outcome = run_async(explain_violation(fact, violation_desc, contaminant_desc))
    except Exception:
        logger.exception("Violation explanation failed for %s", key)
        return jsonify({"explanation": generic_explanation()})

    violation_explanation_cache.set(key, outcome.payload)
    return jsonify({"explanation": outcome.payload})
