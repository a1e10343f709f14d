"""Resolve effective scheduler configuration from layered inputs."""

from __future__ import annotations

from typing import Any

from studyplanner.validation.errors import ValidationReport

DEFAULT_SCHEDULER_CONFIG: dict[str, Any] = {
    "min_session_minutes": 15,
    "max_window_days": 28,
    "max_iterations_per_day": 500,
    "time_budget_seconds": None,
    "test_prep_multiplier": 1.5,
    "priority_cap_days": 28,
    "homework_split_minutes": 120,
    "utilization_busy": 0.85,
    "utilization_overwhelming": 1.10,
    "notes_timeout_seconds": 5.0,
    "fill_to_end": True,
}

# (minimum, maximum) for numeric keys; values outside are clamped with an info entry.
_NUMERIC_BOUNDS: dict[str, tuple[float, float]] = {
    "min_session_minutes": (5, 120),
    "max_window_days": (1, 28),
    "max_iterations_per_day": (10, 100_000),
    "test_prep_multiplier": (1.0, 3.0),
    "priority_cap_days": (1, 365),
    "homework_split_minutes": (30, 600),
    "utilization_busy": (0.1, 2.0),
    "utilization_overwhelming": (0.1, 3.0),
    "notes_timeout_seconds": (0.1, 60.0),
}


def resolve_effective_config(
    overrides: dict[str, Any] | None,
    validation_report: ValidationReport | None = None,
) -> dict[str, Any]:
    """Build an engine-ready configuration: defaults first, then caller overrides."""
    report = validation_report if validation_report is not None else ValidationReport()
    config = dict(DEFAULT_SCHEDULER_CONFIG)

    for key, value in (overrides or {}).items():
        if key not in DEFAULT_SCHEDULER_CONFIG:
            report.add_error(
                code="INVALID_CONFIG_KEY",
                message=f"Config key {key!r} is not allowed",
                field_path=f"$.config.{key}",
                suggested_fix=f"Use one of: {', '.join(sorted(DEFAULT_SCHEDULER_CONFIG))}",
            )
            continue
        config[key] = value

    for key, (low, high) in _NUMERIC_BOUNDS.items():
        value = config.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            report.add_error(
                code="INVALID_TYPE",
                message=f"Config key {key!r} must be numeric",
                field_path=f"$.config.{key}",
            )
            config[key] = DEFAULT_SCHEDULER_CONFIG[key]
            continue
        clamped = min(high, max(low, value))
        if clamped != value:
            config[key] = type(DEFAULT_SCHEDULER_CONFIG[key])(clamped)
            report.add_info(
                code="INFO_CLAMP_APPLIED",
                message=f"{key} was clamped into [{low},{high}]",
                field_path=f"$.config.{key}",
                extra={"applied_value": config[key]},
            )

    budget = config.get("time_budget_seconds")
    if budget is not None and (not isinstance(budget, (int, float)) or isinstance(budget, bool) or budget <= 0):
        report.add_error(
            code="OUT_OF_RANGE",
            message="time_budget_seconds must be a positive number or null",
            field_path="$.config.time_budget_seconds",
        )
        config["time_budget_seconds"] = None

    if config["utilization_overwhelming"] < config["utilization_busy"]:
        report.add_error(
            code="INVALID_THRESHOLDS",
            message="utilization_overwhelming must be >= utilization_busy",
            field_path="$.config.utilization_overwhelming",
        )

    return config
