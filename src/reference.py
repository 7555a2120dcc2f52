"""Reference code lookups: translate SDWIS codes into readable descriptions."""

import logging

from src.db import query_one
from src.records import CodeDescription, WaterSystem

logger = logging.getLogger(__name__)

# VALUE_TYPE keys in sdwa_ref_code_values
VIOLATION_CODE = "VIOLATION_CODE"
CONTAMINANT_CODE = "CONTAMINANT_CODE"
PWS_TYPE_CODE = "PWS_TYPE_CODE"
OWNER_TYPE_CODE = "OWNER_TYPE_CODE"
SOURCE_CODE = "PRIMARY_SOURCE_CODE"


def get_code_description(value_type: str, code: str | None) -> CodeDescription | None:
    """Look up one code. Blank codes return None without a query."""
    code = (code or "").strip()
    if not code:
        return None
    row = query_one(
        "SELECT VALUE_TYPE, VALUE_CODE, VALUE_DESCRIPTION "
        "FROM sdwa_ref_code_values WHERE VALUE_TYPE = %s AND VALUE_CODE = %s",
        (value_type, code),
    )
    if row is None:
        logger.debug("No %s description for %r", value_type, code)
        return None
    return CodeDescription(value_type=row[0], value_code=row[1], description=row[2] or "")


def get_violation_code_description(code: str | None) -> CodeDescription | None:
    return get_code_description(VIOLATION_CODE, code)


def get_contaminant_code_description(code: str | None) -> CodeDescription | None:
    return get_code_description(CONTAMINANT_CODE, code)


def describe(value_type: str, code: str | None) -> str | None:
    """Description text for a code, or None."""
    found = get_code_description(value_type, code)
    return found.description if found else None


def describe_system_codes(system: WaterSystem) -> dict:
    """Resolve a water system's type/owner/source codes for the detail view."""
    return {
        "typeDescription": describe(PWS_TYPE_CODE, system.type_code),
        "ownerTypeDescription": describe(OWNER_TYPE_CODE, system.owner_type_code),
        "sourceDescription": describe(SOURCE_CODE, system.primary_source_code),
    }
