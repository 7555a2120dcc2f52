"""Unit tests for SDWIS record parsing: pure functions, no DB needed."""

from datetime import date, datetime

import pytest

from src.records import (
    EventMilestone,
    SiteVisit,
    Violation,
    WaterSystem,
    parse_iso_date,
    parse_sdwis_date,
)


class TestParseSdwisDate:

    def test_us_format(self):
        assert parse_sdwis_date("01/10/2024") == date(2024, 1, 10)

    def test_us_format_with_time(self):
        assert parse_sdwis_date("03/05/2022 00:00:00") == date(2022, 3, 5)

    def test_iso_format(self):
        assert parse_sdwis_date("2024-02-01") == date(2024, 2, 1)

    def test_date_and_datetime_passthrough(self):
        assert parse_sdwis_date(date(2020, 1, 1)) == date(2020, 1, 1)
        assert parse_sdwis_date(datetime(2020, 1, 1, 12, 30)) == date(2020, 1, 1)

    @pytest.mark.parametrize("val", [None, "", "  ", "nan", "NaN", "NaT", "13/45/2020", "garbage"])
    def test_unparseable_is_none(self, val):
        assert parse_sdwis_date(val) is None


class TestParseIsoDate:

    def test_valid(self):
        assert parse_iso_date("1985-01-01") == date(1985, 1, 1)

    def test_blank_is_none(self):
        assert parse_iso_date(None) is None
        assert parse_iso_date("") is None

    def test_malformed_raises(self):
        with pytest.raises(ValueError):
            parse_iso_date("01/01/2024")


class TestViolationFromRow:

    def _row(self, **overrides):
        row = {
            "VIOLATION_ID": "V1",
            "PWSID": "GA0010000",
            "COMPL_PER_BEGIN_DATE": "01/10/2024",
            "COMPL_PER_END_DATE": None,
            "VIOLATION_CODE": "02",
            "VIOLATION_CATEGORY_CODE": "MCL",
            "IS_HEALTH_BASED_IND": "Y",
            "IS_MAJOR_VIOL_IND": "N",
            "VIOLATION_STATUS": "Unaddressed",
            "CONTAMINANT_CODE": "3100",
            "PUBLIC_NOTIFICATION_TIER": "1",
            "RULE_CODE": "110",
        }
        row.update(overrides)
        return row

    def test_flags_and_dates(self):
        v = Violation.from_row(self._row())
        assert v.begin_date == date(2024, 1, 10)
        assert v.end_date is None
        assert v.end_date_raw == ""
        assert v.is_health_based is True
        assert v.is_major is False
        assert v.notification_tier == 1
        assert v.contaminant_code == "3100"

    def test_nan_end_date_kept_raw(self):
        v = Violation.from_row(self._row(COMPL_PER_END_DATE="nan"))
        assert v.end_date is None
        assert v.end_date_raw == "nan"

    @pytest.mark.parametrize("tier", [None, "", "nan", "4", "x", "inf", "1e999", "-inf"])
    def test_unset_or_other_tier_is_none(self, tier):
        assert Violation.from_row(self._row(PUBLIC_NOTIFICATION_TIER=tier)).notification_tier is None

    def test_float_text_tier(self):
        assert Violation.from_row(self._row(PUBLIC_NOTIFICATION_TIER="2.0")).notification_tier == 2

    def test_nan_contaminant_is_none(self):
        assert Violation.from_row(self._row(CONTAMINANT_CODE="nan")).contaminant_code is None

    def test_to_dict_uses_iso_dates(self):
        d = Violation.from_row(self._row()).to_dict()
        assert d["beginDate"] == "2024-01-10"
        assert d["endDate"] is None
        assert d["isHealthBased"] is True


def test_water_system_active_flag():
    ws = WaterSystem.from_row({"PWSID": "GA1", "PWS_ACTIVITY_CODE": "A", "POPULATION_SERVED_COUNT": "120"})
    assert ws.is_active
    assert ws.population_served == 120
    assert not WaterSystem.from_row({"PWSID": "GA2", "PWS_ACTIVITY_CODE": "I"}).is_active


def test_site_visit_findings_lists_significant_and_minor():
    visit = SiteVisit(visit_id="SV", treatment_eval="S", pumps_eval="M", security_eval="R")
    assert visit.findings() == [
        "Minor deficiency in pumps",
        "Significant deficiency in treatment",
    ]


def test_site_visit_codes_are_uppercased():
    visit = SiteVisit.from_row({"VISIT_ID": "SV", "TREATMENT_EVAL_CODE": "s", "VISIT_DATE": "05/01/2024"})
    assert visit.treatment_eval == "S"
    assert visit.visit_date == date(2024, 5, 1)


def test_milestone_from_row():
    m = EventMilestone.from_row({
        "EVENT_SCHEDULE_ID": "M1",
        "EVENT_END_DATE": "12/31/2024",
        "EVENT_ACTUAL_DATE": None,
        "EVENT_MILESTONE_CODE": "CAP",
    })
    assert m.end_date == date(2024, 12, 31)
    assert m.actual_date is None
    assert m.to_dict()["milestoneCode"] == "CAP"


def test_overflowing_tier_does_not_break_row_parsing():
    v = Violation.from_row({
        "VIOLATION_ID": "X",
        "COMPL_PER_BEGIN_DATE": "01/01/2024",
        "PUBLIC_NOTIFICATION_TIER": "inf",
    })
    assert v.notification_tier is None
    assert v.begin_date == date(2024, 1, 1)
