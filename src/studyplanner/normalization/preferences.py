"""Load-boundary migration of study preferences to the current schema version.

Version 1 payloads come in two shapes:
- ``study_days`` + ``preferred_start_time``/``preferred_end_time`` (one window for every day),
- ``day_time_slots`` with camelCase ``startTime``/``endTime`` keys.

Both are converted once here; the rest of the package only sees version 2.
"""

from __future__ import annotations

import logging
from typing import Any

from studyplanner.models import PREFERENCES_SCHEMA_VERSION, WEEKDAYS

logger = logging.getLogger(__name__)

_DEFAULT_START = "09:00"
_DEFAULT_END = "17:00"

# v1 keys dropped on migration; they carried UI-only state.
_DROPPED_V1_KEYS = {"study_days", "preferred_start_time", "preferred_end_time", "aiNotes", "ai_notes"}

_V1_RENAMES = {
    "free_period_times": "free_periods",
}


def _migrate_slot(slot: dict[str, Any]) -> dict[str, Any]:
    return {
        "day": str(slot.get("day", "")).lower(),
        "start_time": slot.get("start_time", slot.get("startTime", _DEFAULT_START)),
        "end_time": slot.get("end_time", slot.get("endTime", _DEFAULT_END)),
        "enabled": bool(slot.get("enabled", True)),
    }


def _migrate_free_periods(raw: Any) -> list[dict[str, Any]]:
    periods: list[dict[str, Any]] = []
    if not isinstance(raw, list):
        return periods
    for item in raw:
        if isinstance(item, dict):
            periods.append({"start": item.get("start"), "end": item.get("end")})
        elif isinstance(item, str) and "-" in item:
            start, _, end = item.partition("-")
            periods.append({"start": start.strip(), "end": end.strip()})
    return periods


def preferences_version(raw: dict[str, Any]) -> int:
    version = raw.get("schema_version")
    if isinstance(version, int) and not isinstance(version, bool):
        return version
    return 1


def migrate_preferences(raw: dict[str, Any] | None) -> dict[str, Any]:
    """Return a version-2 preferences payload for any supported input version."""
    if not raw:
        return {"schema_version": PREFERENCES_SCHEMA_VERSION}
    if preferences_version(raw) >= PREFERENCES_SCHEMA_VERSION:
        return dict(raw)

    migrated: dict[str, Any] = {
        key: value for key, value in raw.items() if key not in _DROPPED_V1_KEYS and key != "day_time_slots"
    }
    for old_key, new_key in _V1_RENAMES.items():
        if old_key in migrated:
            migrated[new_key] = _migrate_free_periods(migrated.pop(old_key))

    slots = raw.get("day_time_slots")
    if isinstance(slots, list):
        migrated["day_time_slots"] = [_migrate_slot(slot) for slot in slots if isinstance(slot, dict)]
    else:
        study_days = {str(day).lower() for day in raw.get("study_days", []) or []}
        start = raw.get("preferred_start_time") or _DEFAULT_START
        end = raw.get("preferred_end_time") or _DEFAULT_END
        migrated["day_time_slots"] = [
            {"day": day, "start_time": start, "end_time": end, "enabled": day in study_days}
            for day in WEEKDAYS
        ]

    migrated.setdefault("session_duration", 45)
    migrated.setdefault("break_duration", 15)
    migrated.setdefault("duration_mode", "flexible")
    migrated["schema_version"] = PREFERENCES_SCHEMA_VERSION
    logger.debug("Migrated study preferences from v1 to v%s", PREFERENCES_SCHEMA_VERSION)
    return migrated
