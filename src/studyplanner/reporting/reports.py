"""Build CLI reports."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from studyplanner.errors import PlannerError

REPORT_SCHEMA_VERSION = "1.0.0"


def _generated_at() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_error_report(error: PlannerError) -> dict[str, Any]:
    """Return a JSON-serializable error report."""
    return {
        "status": "error",
        "schema_version": REPORT_SCHEMA_VERSION,
        "generated_at": _generated_at(),
        "error": error.as_dict(),
    }


def build_success_report(operation: str, result: BaseModel, **extra: Any) -> dict[str, Any]:
    """Return a JSON-serializable success report for one operation."""
    payload: dict[str, Any] = {
        "status": "ok",
        "schema_version": REPORT_SCHEMA_VERSION,
        "generated_at": _generated_at(),
        "operation": operation,
        "result": result.model_dump(mode="json"),
    }
    payload.update(extra)
    return payload
