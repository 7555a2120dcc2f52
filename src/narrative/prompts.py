"""Prompts for compliance narratives.

Each prompt embeds the exact SDWIS codes alongside their resolved
descriptions and asks for one JSON object of a fixed shape, so the
response can be validated field by field.
"""

import json

from src.records import ComplianceAnalysis, UrgentAction

SYSTEM_PROMPT = (
    "You are an expert drinking water compliance advisor helping public water "
    "system operators understand Safe Drinking Water Information System (SDWIS) "
    "records. Use plain, operator-friendly language and avoid regulatory jargon. "
    "Respond with a single JSON object only. No markdown fences, no text "
    "outside the JSON."
)


def _or_na(value) -> str:
    if value is None or value == "":
        return "N/A"
    return str(value)


def urgent_action_prompt(
    action: UrgentAction,
    violation_desc: str | None,
    contaminant_desc: str | None,
) -> str:
    days = action.days_remaining if action.days_remaining is not None else "N/A"
    return (
        "Provide urgent action guidance to a water system operator based on "
        "this SDWIS data.\n\n"
        "URGENT ACTION DETECTED:\n"
        f"Type: {action.action_type}\n"
        f"Priority: {action.priority}\n"
        f"Title: {action.title}\n"
        f"Description: {action.description}\n"
        f"Days Remaining: {days}\n"
        f"Health-Based: {'YES' if action.is_health_based else 'NO'}\n"
        f"Violation Code: {_or_na(action.violation_code)}\n"
        f"Violation Description: {_or_na(violation_desc)}\n"
        f"Contaminant Code: {_or_na(action.contaminant_code)}\n"
        f"Contaminant: {_or_na(contaminant_desc)}\n"
        f"Public Notification Tier: {_or_na(action.notification_tier)}\n\n"
        "Return JSON with this exact structure:\n"
        "{\n"
        f'  "priority": "{action.priority}",\n'
        '  "title": "<clear, operator-friendly title>",\n'
        '  "actionNeeded": "<specific action in plain English>",\n'
        '  "timeframe": "<when this needs to be done>",\n'
        '  "reason": "<why this is urgent: health, regulatory or compliance impact>",\n'
        '  "nextSteps": ["<step 1>", "<step 2>", "<step 3>"]\n'
        "}\n\n"
        "Requirements:\n"
        "- Health-based violations require public notice within 24 hours\n"
        "- Non-health violations typically require notice within 30 days\n"
        "- Provide 3 specific next steps\n"
        "- Reference the violation code or contaminant when relevant"
    )


def facility_summary_prompt(
    analysis: ComplianceAnalysis,
    violation_descriptions: dict[str, str],
) -> str:
    system = analysis.system
    population = (
        f"{system.population_served:,}" if system.population_served is not None else "N/A"
    )
    active_context = [
        {
            "code": v.violation_code,
            "description": violation_descriptions.get(v.violation_code, "Unknown violation"),
            "isHealthBased": v.is_health_based,
            "isMajor": v.is_major,
            "status": v.status,
            "beginDate": v.begin_date.isoformat() if v.begin_date else None,
        }
        for v in analysis.active
    ]

    latest = analysis.latest_inspection
    if latest is not None:
        visit_date = latest.visit_date.isoformat() if latest.visit_date else "unknown date"
        inspection = (
            f"- Latest: {visit_date}\n"
            f"- Findings: {', '.join(analysis.recent_findings) or 'No significant issues'}\n"
            f"- Comments: {latest.comments or 'None'}"
        )
    else:
        inspection = "- No recent inspection data"

    return (
        "Generate a compliance summary for this water system based on SDWIS data.\n\n"
        f"FACILITY: {system.name} ({system.pwsid})\n"
        f"- Type: {system.type_code}\n"
        f"- Population: {population}\n"
        f"- Source: {system.primary_source_code}\n"
        f"- Owner: {system.owner_type_code}\n\n"
        "VIOLATIONS:\n"
        f"- Active: {len(analysis.active)} ({analysis.health_based} health-based, "
        f"{analysis.procedural} procedural)\n"
        f"- Total historical: {analysis.total}\n"
        f"- Recent trend: {analysis.recent_trend}\n"
        f"- Details: {json.dumps(active_context, indent=2)}\n\n"
        f"INSPECTIONS:\n{inspection}\n\n"
        f"MILESTONES: {len(analysis.milestones)} compliance milestones on record\n\n"
        "Return JSON with this exact structure:\n"
        "{\n"
        '  "healthScore": <number 0-100 based on compliance status>,\n'
        '  "statusLevel": "<good|caution|critical>",\n'
        '  "priorityActions": {\n'
        '    "urgent": ["<action for health-based violations or overdue items>"],\n'
        '    "thisWeek": ["<action for minor issues or upcoming deadlines>"],\n'
        '    "thisMonth": ["<action for inspection findings or preventive measures>"]\n'
        "  },\n"
        '  "insights": "<2-3 sentences on compliance standing, trend and risk>",\n'
        '  "lastInspection": "<date and summary of findings, or No recent inspection>",\n'
        '  "nextMilestones": ["<upcoming compliance requirements>"]\n'
        "}\n\n"
        "Prioritize health-based issues over procedural ones and keep every "
        "recommendation specific to the violations listed."
    )


def violation_explanation_prompt(
    fact: dict,
    violation_desc: str | None,
    contaminant_desc: str | None,
    urgency: str,
) -> str:
    contaminant = f"\n- Contaminant: {contaminant_desc}" if contaminant_desc else ""
    return (
        "Here is the exact violation information from the SDWIS database:\n"
        f"- Violation Code: {fact.get('violationCode')}\n"
        f'- Official Description: "{violation_desc or "Unknown violation type"}"\n'
        f"- Category: {fact.get('violationCategory') or 'Not specified'}\n"
        f"- Rule: {fact.get('ruleCode') or 'Not specified'}\n"
        f"- Health-based: {'Yes' if fact.get('isHealthBased') == 'Y' else 'No'}\n"
        f"- Major violation: {'Yes' if fact.get('isMajor') == 'Y' else 'No'}"
        f"{contaminant}\n\n"
        "Using this exact description, explain what it means for a water "
        "system operator in plain English.\n\n"
        "Return JSON with this exact structure:\n"
        "{\n"
        '  "title": "<brief, clear title of what this violation means>",\n'
        '  "explanation": "<2-3 sentences on what happened>",\n'
        '  "actionNeeded": "<specific steps the operator should take>",\n'
        '  "whyItMatters": "<why this matters for water safety or compliance>",\n'
        f'  "urgency": "{urgency}",\n'
        '  "timeframe": "<typical timeframe, e.g. within 24 hours, within 30 days>"\n'
        "}"
    )
