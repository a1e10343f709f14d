"""Normalization for incoming request payloads."""

from __future__ import annotations

from typing import Any

from .preferences import migrate_preferences


def normalize_request(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a normalized copy of a generation request payload.

    Preferences are migrated to the current schema version; ``homeworks`` is
    accepted as an alias of ``homework``.
    """
    normalized = dict(payload)
    if "homeworks" in normalized and "homework" not in normalized:
        normalized["homework"] = normalized.pop("homeworks")
    if isinstance(normalized.get("preferences"), dict) or "preferences" not in normalized:
        normalized["preferences"] = migrate_preferences(normalized.get("preferences"))
    return normalized
