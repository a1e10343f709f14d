"""Deterministic study-session scheduler."""

from .engine import (
    apply_day_replan,
    create_timetable,
    estimate_feasibility,
    generate_schedule,
    move_session,
    move_session_in_store,
    redistribute_incomplete,
    redistribute_incomplete_in_store,
    replan_day,
    replan_day_in_store,
)
from .errors import ConflictError, GenerationTimeout, InfeasibleError, PlannerError, ValidationError
from .store import InMemoryScheduleStore, JsonFileScheduleStore, ScheduleStore
from .validation.request import parse_day_replan_request, parse_generation_request

__all__ = [
    "ConflictError",
    "GenerationTimeout",
    "InMemoryScheduleStore",
    "InfeasibleError",
    "JsonFileScheduleStore",
    "PlannerError",
    "ScheduleStore",
    "ValidationError",
    "apply_day_replan",
    "create_timetable",
    "estimate_feasibility",
    "generate_schedule",
    "move_session",
    "move_session_in_store",
    "parse_day_replan_request",
    "parse_generation_request",
    "redistribute_incomplete",
    "redistribute_incomplete_in_store",
    "replan_day",
    "replan_day_in_store",
]
