"""Database connection for the h2operator compliance dashboard.

Supports two backends:
  - PostgreSQL (production): when DATABASE_URL is set
  - DuckDB (local development): fallback when no DATABASE_URL

The SDWIS dataset is loaded ahead of time and only ever read here. The SQL
is standard enough to work on both backends; callers write ``%s``
placeholders and ``query()`` converts them for DuckDB.
"""

import atexit
import logging
import os
import time
from pathlib import Path

logger = logging.getLogger(__name__)

# ── Backend detection ─────────────────────────────────────────────
DATABASE_URL = os.environ.get("DATABASE_URL")

# DuckDB fallback path (local development)
_DUCKDB_PATH = os.environ.get(
    "H2OPERATOR_DB",
    str(Path(__file__).parent.parent / "data" / "h2operator.duckdb"),
)

# Which backend are we using?
BACKEND = "postgres" if DATABASE_URL else "duckdb"


# ── PostgreSQL Connection Pool ────────────────────────────────────

# Lazy singleton: created on first get_connection() call
_pool = None


def _get_pool():
    """Get or create the PostgreSQL connection pool (lazy singleton)."""
    global _pool
    if _pool is None:
        import psycopg2.pool
        _maxconn = int(os.environ.get("DB_POOL_MAX", "10"))
        _pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=1,
            maxconn=_maxconn,
            dsn=DATABASE_URL,
            connect_timeout=10,
        )
        logger.info("PostgreSQL connection pool created (minconn=1, maxconn=%d)", _maxconn)
    return _pool


def get_pool_stats() -> dict:
    """Return connection pool statistics for /health endpoint."""
    if _pool is None:
        return {"status": "no_pool", "backend": BACKEND}
    return {
        "backend": BACKEND,
        "minconn": _pool.minconn,
        "maxconn": _pool.maxconn,
        "closed": _pool.closed,
    }


def _close_pool():
    """Close the connection pool on shutdown."""
    global _pool
    if _pool is not None:
        try:
            _pool.closeall()
            logger.info("PostgreSQL connection pool closed")
        except Exception as e:
            logger.warning("Error closing pool: %s", e)
        _pool = None


atexit.register(_close_pool)


class _PooledConnection:
    """Wrapper around a psycopg2 connection that returns it to the pool on close.

    Instead of destroying the connection, .close() rolls back the (read-only)
    transaction and returns the connection to the pool via putconn().
    """

    def __init__(self, conn, pool):
        self._conn = conn
        self._pool = pool

    def close(self):
        if self._conn is not None:
            try:
                self._conn.rollback()
            except Exception:
                logger.debug("Rollback before putconn failed", exc_info=True)
            try:
                self._pool.putconn(self._conn)
            except Exception:
                logger.debug("putconn failed", exc_info=True)
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __getattr__(self, name):
        return getattr(self._conn, name)


def get_connection(db_path: str | None = None):
    """Get a database connection (Postgres or DuckDB).

    Args:
        db_path: Optional DuckDB file path override (for loading scripts).
                 Ignored when BACKEND is 'postgres'.

    Returns a connection object. Caller is responsible for closing it.
    """
    if BACKEND == "postgres" and not db_path:
        try:
            pool = _get_pool()
            raw_conn = pool.getconn()
            with raw_conn.cursor() as cur:
                cur.execute("SET statement_timeout = '30s'")
            raw_conn.commit()
            return _PooledConnection(raw_conn, pool)
        except Exception as e:
            logger.error("Postgres pool connection failed: %s", e)
            raise
    else:
        import duckdb
        path = db_path or _DUCKDB_PATH
        os.makedirs(os.path.dirname(path), exist_ok=True)
        return duckdb.connect(path)


SLOW_QUERY_THRESHOLD_SECS = 5.0


def query(sql: str, params=None) -> list:
    """Execute a SELECT and return all rows as a list of tuples.

    Callers should use %s placeholders: this function auto-converts them
    to ? for DuckDB.
    """
    conn = get_connection()
    try:
        if BACKEND == "duckdb" and params:
            sql = sql.replace("%s", "?")
        t0 = time.monotonic()
        if BACKEND == "postgres":
            with conn.cursor() as cur:
                cur.execute(sql, params)
                result = cur.fetchall()
        else:
            if params:
                result = conn.execute(sql, params).fetchall()
            else:
                result = conn.execute(sql).fetchall()
        elapsed = time.monotonic() - t0
        if elapsed >= SLOW_QUERY_THRESHOLD_SECS:
            logger.warning("Slow query detected (%.1fs): %s", elapsed, sql[:200])
        return result
    finally:
        conn.close()


def query_one(sql: str, params=None):
    """Execute a SELECT and return the first row, or None."""
    rows = query(sql, params)
    return rows[0] if rows else None


# ── Schema (DuckDB dev/test datasets) ────────────────────────────

def init_schema(conn) -> None:
    """Create the SDWIS tables in DuckDB if they don't exist.

    Production data is loaded externally; this exists so local and test
    databases have the same shape. Dates stay as the MM/DD/YYYY text the
    SDWIS export ships with.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS sdwa_pub_water_systems (
            PWSID TEXT PRIMARY KEY,
            PWS_NAME TEXT,
            PWS_TYPE_CODE TEXT,
            POPULATION_SERVED_COUNT INTEGER,
            PWS_ACTIVITY_CODE TEXT,
            CITY_NAME TEXT,
            STATE_CODE TEXT,
            OWNER_TYPE_CODE TEXT,
            PRIMARY_SOURCE_CODE TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sdwa_violations_enforcement (
            VIOLATION_ID TEXT,
            PWSID TEXT,
            COMPL_PER_BEGIN_DATE TEXT,
            COMPL_PER_END_DATE TEXT,
            VIOLATION_CODE TEXT,
            VIOLATION_CATEGORY_CODE TEXT,
            IS_HEALTH_BASED_IND TEXT,
            IS_MAJOR_VIOL_IND TEXT,
            VIOLATION_STATUS TEXT,
            CONTAMINANT_CODE TEXT,
            PUBLIC_NOTIFICATION_TIER TEXT,
            RULE_CODE TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sdwa_site_visits (
            VISIT_ID TEXT,
            PWSID TEXT,
            VISIT_DATE TEXT,
            MANAGEMENT_OPS_EVAL_CODE TEXT,
            SOURCE_WATER_EVAL_CODE TEXT,
            SECURITY_EVAL_CODE TEXT,
            PUMPS_EVAL_CODE TEXT,
            OTHER_EVAL_CODE TEXT,
            COMPLIANCE_EVAL_CODE TEXT,
            DATA_VERIFICATION_EVAL_CODE TEXT,
            TREATMENT_EVAL_CODE TEXT,
            FINISHED_WATER_STOR_EVAL_CODE TEXT,
            DISTRIBUTION_EVAL_CODE TEXT,
            FINANCIAL_EVAL_CODE TEXT,
            VISIT_COMMENTS TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sdwa_events_milestones (
            EVENT_SCHEDULE_ID TEXT,
            PWSID TEXT,
            EVENT_END_DATE TEXT,
            EVENT_ACTUAL_DATE TEXT,
            EVENT_COMMENTS_TEXT TEXT,
            EVENT_MILESTONE_CODE TEXT,
            EVENT_REASON_CODE TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sdwa_ref_code_values (
            VALUE_TYPE TEXT,
            VALUE_CODE TEXT,
            VALUE_DESCRIPTION TEXT
        )
    """)

    _create_indexes(conn)


def _create_indexes(conn) -> None:
    """Create indexes on the lookup columns (DuckDB)."""
    import duckdb
    indexes = [
        ("idx_systems_name", "sdwa_pub_water_systems", "PWS_NAME"),
        ("idx_violations_pwsid", "sdwa_violations_enforcement", "PWSID"),
        ("idx_site_visits_pwsid", "sdwa_site_visits", "PWSID"),
        ("idx_milestones_pwsid", "sdwa_events_milestones", "PWSID"),
        ("idx_ref_codes", "sdwa_ref_code_values", "VALUE_TYPE, VALUE_CODE"),
    ]
    for idx_name, table, columns in indexes:
        try:
            conn.execute(f"CREATE INDEX IF NOT EXISTS {idx_name} ON {table} ({columns})")
        except duckdb.CatalogException:
            logger.debug("Index %s already present", idx_name)
