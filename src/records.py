"""SDWIS record types: immutable snapshots of the pre-loaded dataset.

Rows come out of the database with SDWIS column names and MM/DD/YYYY text
dates. Everything downstream of the accessors works with these dataclasses
and real ``date`` objects instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

# Stored values that mean "no date" (pandas exports leave these behind)
_NULL_DATE_TEXT = {"", "nan", "nat", "none", "null"}

# Site visit evaluation codes
EVAL_SIGNIFICANT = "S"
EVAL_MINOR = "M"

EVAL_CODE_LABELS: dict[str, str] = {
    "S": "Significant deficiency",
    "M": "Minor deficiency",
    "R": "Recommendations made",
    "N": "No deficiencies",
    "D": "Sanitary defect",
    "X": "Not evaluated",
    "Z": "Not applicable",
}

# Site visit evaluation categories: attribute name -> label
EVAL_CATEGORIES: dict[str, str] = {
    "management_ops_eval": "management/operations",
    "source_water_eval": "source water",
    "security_eval": "security",
    "pumps_eval": "pumps",
    "other_eval": "other",
    "compliance_eval": "compliance",
    "data_verification_eval": "data verification",
    "treatment_eval": "treatment",
    "finished_water_storage_eval": "finished water storage",
    "distribution_eval": "distribution",
    "financial_eval": "financial",
}


def parse_sdwis_date(val) -> date | None:
    """Parse a stored SDWIS date into a ``date``.

    Accepts MM/DD/YYYY (optionally followed by a time), ISO YYYY-MM-DD,
    ``date``/``datetime`` objects and None. Anything else returns None.
    """
    if val is None:
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    text = str(val).strip()
    if text.lower() in _NULL_DATE_TEXT:
        return None
    token = text.split()[0]
    try:
        if "/" in token:
            return datetime.strptime(token, "%m/%d/%Y").date()
        return date.fromisoformat(token[:10])
    except ValueError:
        return None


def parse_iso_date(val: str | None) -> date | None:
    """Parse a caller-supplied YYYY-MM-DD range bound.

    Unlike stored data, a malformed bound is the caller's mistake, so this
    raises ValueError instead of returning None.
    """
    if val is None or val == "":
        return None
    return date.fromisoformat(val)


def _text(val) -> str:
    if val is None:
        return ""
    text = str(val).strip()
    return "" if text.lower() == "nan" else text


def _optional_text(val) -> str | None:
    return _text(val) or None


def _flag(val) -> bool:
    return _text(val).upper() == "Y"


def _tier(val) -> int | None:
    """Public notification tier: 1, 2 or 3. Other values become None."""
    text = _text(val)
    try:
        tier = int(float(text))
    except (ValueError, OverflowError):
        return None
    return tier if tier in (1, 2, 3) else None


def _population(val) -> int | None:
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class WaterSystem:
    """Registry record for a public water system."""

    pwsid: str
    name: str = ""
    type_code: str = ""
    owner_type_code: str = ""
    primary_source_code: str = ""
    population_served: int | None = None
    activity_code: str = ""
    city: str = ""
    state: str = ""

    @property
    def is_active(self) -> bool:
        return self.activity_code == "A"

    @classmethod
    def from_row(cls, row: dict) -> WaterSystem:
        return cls(
            pwsid=_text(row.get("PWSID")),
            name=_text(row.get("PWS_NAME")),
            type_code=_text(row.get("PWS_TYPE_CODE")),
            owner_type_code=_text(row.get("OWNER_TYPE_CODE")),
            primary_source_code=_text(row.get("PRIMARY_SOURCE_CODE")),
            population_served=_population(row.get("POPULATION_SERVED_COUNT")),
            activity_code=_text(row.get("PWS_ACTIVITY_CODE")),
            city=_text(row.get("CITY_NAME")),
            state=_text(row.get("STATE_CODE")),
        )

    def to_dict(self) -> dict:
        return {
            "pwsid": self.pwsid,
            "name": self.name,
            "type": self.type_code,
            "population": self.population_served,
            "city": self.city,
            "state": self.state,
            "ownerType": self.owner_type_code,
            "sourceCode": self.primary_source_code,
        }


@dataclass(frozen=True)
class Violation:
    """One compliance violation event."""

    violation_id: str
    pwsid: str = ""
    begin_date: date | None = None
    end_date: date | None = None
    end_date_raw: str = ""
    violation_code: str = ""
    category_code: str = ""
    is_health_based: bool = False
    is_major: bool = False
    status: str = ""
    contaminant_code: str | None = None
    notification_tier: int | None = None
    rule_code: str = ""

    @classmethod
    def from_row(cls, row: dict) -> Violation:
        end_raw = row.get("COMPL_PER_END_DATE")
        return cls(
            violation_id=_text(row.get("VIOLATION_ID")),
            pwsid=_text(row.get("PWSID")),
            begin_date=parse_sdwis_date(row.get("COMPL_PER_BEGIN_DATE")),
            end_date=parse_sdwis_date(end_raw),
            end_date_raw="" if end_raw is None else str(end_raw).strip(),
            violation_code=_text(row.get("VIOLATION_CODE")),
            category_code=_text(row.get("VIOLATION_CATEGORY_CODE")),
            is_health_based=_flag(row.get("IS_HEALTH_BASED_IND")),
            is_major=_flag(row.get("IS_MAJOR_VIOL_IND")),
            status=_text(row.get("VIOLATION_STATUS")),
            contaminant_code=_optional_text(row.get("CONTAMINANT_CODE")),
            notification_tier=_tier(row.get("PUBLIC_NOTIFICATION_TIER")),
            rule_code=_text(row.get("RULE_CODE")),
        )

    def to_dict(self) -> dict:
        return {
            "violationId": self.violation_id,
            "pwsid": self.pwsid,
            "beginDate": self.begin_date.isoformat() if self.begin_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "violationCode": self.violation_code,
            "categoryCode": self.category_code,
            "isHealthBased": self.is_health_based,
            "isMajor": self.is_major,
            "status": self.status,
            "contaminantCode": self.contaminant_code,
            "notificationTier": self.notification_tier,
            "ruleCode": self.rule_code,
        }


@dataclass(frozen=True)
class SiteVisit:
    """One sanitary survey / inspection event."""

    visit_id: str
    pwsid: str = ""
    visit_date: date | None = None
    management_ops_eval: str = ""
    source_water_eval: str = ""
    security_eval: str = ""
    pumps_eval: str = ""
    other_eval: str = ""
    compliance_eval: str = ""
    data_verification_eval: str = ""
    treatment_eval: str = ""
    finished_water_storage_eval: str = ""
    distribution_eval: str = ""
    financial_eval: str = ""
    comments: str = ""

    @classmethod
    def from_row(cls, row: dict) -> SiteVisit:
        return cls(
            visit_id=_text(row.get("VISIT_ID")),
            pwsid=_text(row.get("PWSID")),
            visit_date=parse_sdwis_date(row.get("VISIT_DATE")),
            management_ops_eval=_text(row.get("MANAGEMENT_OPS_EVAL_CODE")).upper(),
            source_water_eval=_text(row.get("SOURCE_WATER_EVAL_CODE")).upper(),
            security_eval=_text(row.get("SECURITY_EVAL_CODE")).upper(),
            pumps_eval=_text(row.get("PUMPS_EVAL_CODE")).upper(),
            other_eval=_text(row.get("OTHER_EVAL_CODE")).upper(),
            compliance_eval=_text(row.get("COMPLIANCE_EVAL_CODE")).upper(),
            data_verification_eval=_text(row.get("DATA_VERIFICATION_EVAL_CODE")).upper(),
            treatment_eval=_text(row.get("TREATMENT_EVAL_CODE")).upper(),
            finished_water_storage_eval=_text(row.get("FINISHED_WATER_STOR_EVAL_CODE")).upper(),
            distribution_eval=_text(row.get("DISTRIBUTION_EVAL_CODE")).upper(),
            financial_eval=_text(row.get("FINANCIAL_EVAL_CODE")).upper(),
            comments=_text(row.get("VISIT_COMMENTS")),
        )

    def findings(self) -> list[str]:
        """Human-readable significant/minor findings, in category order."""
        out = []
        for attr, label in EVAL_CATEGORIES.items():
            code = getattr(self, attr)
            if code in (EVAL_SIGNIFICANT, EVAL_MINOR):
                out.append(f"{EVAL_CODE_LABELS[code]} in {label}")
        return out

    def to_dict(self) -> dict:
        return {
            "visitId": self.visit_id,
            "visitDate": self.visit_date.isoformat() if self.visit_date else None,
            "evaluations": {
                label: getattr(self, attr) or None
                for attr, label in EVAL_CATEGORIES.items()
            },
            "comments": self.comments,
        }


@dataclass(frozen=True)
class EventMilestone:
    """A scheduled or completed compliance milestone."""

    event_schedule_id: str
    pwsid: str = ""
    end_date: date | None = None
    actual_date: date | None = None
    comments: str = ""
    milestone_code: str = ""
    reason_code: str = ""

    @classmethod
    def from_row(cls, row: dict) -> EventMilestone:
        return cls(
            event_schedule_id=_text(row.get("EVENT_SCHEDULE_ID")),
            pwsid=_text(row.get("PWSID")),
            end_date=parse_sdwis_date(row.get("EVENT_END_DATE")),
            actual_date=parse_sdwis_date(row.get("EVENT_ACTUAL_DATE")),
            comments=_text(row.get("EVENT_COMMENTS_TEXT")),
            milestone_code=_text(row.get("EVENT_MILESTONE_CODE")),
            reason_code=_text(row.get("EVENT_REASON_CODE")),
        )

    def to_dict(self) -> dict:
        return {
            "eventScheduleId": self.event_schedule_id,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "actualDate": self.actual_date.isoformat() if self.actual_date else None,
            "comments": self.comments,
            "milestoneCode": self.milestone_code,
            "reasonCode": self.reason_code,
        }


@dataclass(frozen=True)
class CodeDescription:
    """A (code type, code value) -> description mapping."""

    value_type: str
    value_code: str
    description: str


@dataclass
class CalendarDay:
    """One calendar day's aggregated violations."""

    day: date
    value: int = 0
    health_based: int = 0
    procedural: int = 0
    violations: list[Violation] = field(default_factory=list)


@dataclass(frozen=True)
class UrgentAction:
    """The single highest-priority outstanding action for a facility."""

    action_type: str  # violation, inspection, milestone, none
    priority: str  # critical, high, medium
    title: str
    description: str
    days_remaining: int | None = None
    violation_code: str | None = None
    contaminant_code: str | None = None
    is_health_based: bool = False
    notification_tier: int | None = None

    def to_dict(self) -> dict:
        return {
            "actionType": self.action_type,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "daysRemaining": self.days_remaining,
            "violationCode": self.violation_code,
            "contaminantCode": self.contaminant_code,
            "isHealthBased": self.is_health_based,
            "publicNotificationTier": self.notification_tier,
        }


@dataclass
class ComplianceAnalysis:
    """Aggregated compliance state for one facility."""

    system: WaterSystem
    active: list[Violation] = field(default_factory=list)
    total: int = 0
    health_based: int = 0
    procedural: int = 0
    recent_trend: str = "stable"
    latest_inspection: SiteVisit | None = None
    recent_findings: list[str] = field(default_factory=list)
    milestones: list[EventMilestone] = field(default_factory=list)
