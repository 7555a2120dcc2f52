"""Root-level test conftest: fixtures shared across all test files.

Database isolation: each pytest session gets its own temp DuckDB file,
created with the SDWIS schema and seeded with a small fixed dataset.
Narrative caches are cleared around every test so cached payloads never
leak between files.
"""
import os

import pytest


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

SYSTEMS = [
    # PWSID, name, type, population, activity, city, state, owner, source
    ("GA0010000", "Baxley Water Works", "CWS", 4400, "A", "BAXLEY", "GA", "L", "GW"),
    ("GA0010001", "Baxter Springs Utility", "CWS", 900, "A", "ATLANTA", "GA", "P", "SW"),
    ("GA0020000", "Inactive Creek System", "NTNCWS", 100, "I", "BAXLEY", "GA", "P", "GW"),
    ("GA0030000", "Clean Valley Water", "CWS", 12000, "A", "MACON", "GA", "L", "SW"),
    ("GA0040000", "Quiet Pines", "TNCWS", 50, "A", "VALDOSTA", "GA", "P", "GW"),
]

VIOLATIONS = [
    # id, pwsid, begin, end, code, category, health, major, status, contaminant, tier, rule
    ("V1", "GA0010000", "01/10/2024", None, "02", "MCL", "Y", "Y", "Unaddressed", "3100", "1", "110"),
    ("V2", "GA0010000", "02/01/2024", "", "03", "MR", "N", "N", "Addressed", None, "2", "110"),
    ("V3", "GA0010000", "02/01/2024", "03/01/2024", "03", "MR", "N", "N", "Resolved", None, "3", "110"),
    ("V4", "GA0010000", "nan", "nan", "27", "Other", "N", "N", "Unaddressed", None, None, "140"),
    ("V5", "GA0010000", "06/15/2023", "07/15/2023", "01", "MCL", "Y", "N", "Archived", "1040", "2", "331"),
    ("V6", "GA0010000", "13/45/2020", None, "03", "MR", "N", "N", "Unaddressed", None, None, "110"),
    ("V7", "GA0010000", "03/05/2022 00:00:00", "04/05/2022", "03", "MR", "N", "N", "Resolved", None, "3", "110"),
    ("V8", "GA0010001", "05/05/2021", "06/05/2021", "03", "MR", "N", "N", "Resolved", None, "3", "110"),
    ("V9", "GA0020000", "01/01/2019", None, "03", "MR", "N", "N", "Unaddressed", None, None, "110"),
    ("V10", "GA0020000", "01/02/2019", None, "03", "MR", "N", "N", "Unaddressed", None, None, "110"),
    ("V11", "GA0020000", "01/03/2019", None, "03", "MR", "N", "N", "Unaddressed", None, None, "110"),
]

_NNN = ["N"] * 11

SITE_VISITS = [
    # id, pwsid, date, 11 evaluation codes, comments
    ("SV1", "GA0010000", "03/01/2023", "N", "N", "N", "M", "N", "N", "N", "N", "N", "N", "N", "Pump seal wear"),
    ("SV2", "GA0010000", "09/12/2024", *_NNN, "Routine survey, no issues"),
    ("SV3", "GA0010000", "nan", *_NNN, ""),
    ("SV4", "GA0030000", "05/01/2024", "N", "N", "N", "N", "N", "N", "N", "S", "N", "N", "N", "Chlorine feed failure"),
    ("SV5", "GA0030000", "01/01/2020", *_NNN, ""),
    ("SV6", "GA0040000", "04/04/2024", "N", "N", "R", "N", "N", "N", "N", "N", "N", "N", "N", ""),
]

MILESTONES = [
    ("M1", "GA0010000", "12/31/2024", None, "Corrective action plan due", "CAP", "MCL"),
    ("M2", "GA0010000", "06/30/2023", "06/15/2023", "Public notice issued", "PN", "MCL"),
]

REF_CODES = [
    ("VIOLATION_CODE", "02", "Maximum Contaminant Level Violation, Average"),
    ("VIOLATION_CODE", "03", "Monitoring, Regular"),
    ("CONTAMINANT_CODE", "3100", "Coliform (TCR)"),
    ("CONTAMINANT_CODE", "1040", "Nitrate"),
    ("PWS_TYPE_CODE", "CWS", "Community water system"),
    ("OWNER_TYPE_CODE", "L", "Local government"),
    ("PRIMARY_SOURCE_CODE", "GW", "Ground water"),
]


def _seed(conn):
    conn.executemany("INSERT INTO sdwa_pub_water_systems VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)", SYSTEMS)
    conn.executemany(
        "INSERT INTO sdwa_violations_enforcement VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        VIOLATIONS,
    )
    conn.executemany(
        "INSERT INTO sdwa_site_visits VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        SITE_VISITS,
    )
    conn.executemany("INSERT INTO sdwa_events_milestones VALUES (?, ?, ?, ?, ?, ?, ?)", MILESTONES)
    conn.executemany("INSERT INTO sdwa_ref_code_values VALUES (?, ?, ?)", REF_CODES)


# ---------------------------------------------------------------------------
# Session-scoped DB isolation fixture
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True, scope="session")
def _isolated_test_db(tmp_path_factory):
    """Point src.db at a seeded temp DuckDB for the whole session."""
    import src.db as db_mod

    original_backend = db_mod.BACKEND
    original_url = db_mod.DATABASE_URL
    original_duckdb_path = db_mod._DUCKDB_PATH

    db_path = str(tmp_path_factory.mktemp("duckdb") / "test_h2operator.duckdb")
    db_mod._DUCKDB_PATH = db_path
    db_mod.BACKEND = "duckdb"
    db_mod.DATABASE_URL = None

    conn = db_mod.get_connection()
    try:
        db_mod.init_schema(conn)
        _seed(conn)
    finally:
        conn.close()

    yield db_path

    db_mod._DUCKDB_PATH = original_duckdb_path
    db_mod.BACKEND = original_backend
    db_mod.DATABASE_URL = original_url


@pytest.fixture(autouse=True)
def _clear_narrative_caches():
    from src.cache import (
        facility_summary_cache,
        urgent_action_cache,
        violation_explanation_cache,
    )
    caches = (urgent_action_cache, facility_summary_cache, violation_explanation_cache)
    for c in caches:
        c.clear()
    yield
    for c in caches:
        c.clear()


@pytest.fixture
def no_api_key(monkeypatch):
    """Force every narrative call down the fallback path."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    return os.environ["ANTHROPIC_API_KEY"]
