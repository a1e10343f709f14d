"""Scheduling engine."""

from .allocator import allocate_sessions
from .availability import Interval, blocked_intervals_for_day, build_free_intervals, free_intervals_for_day
from .scoring import DEFAULT_PRIORITY_WEIGHTS, compute_priority, deterministic_tie_breaker_key
from .work_items import WorkItem, build_work_items
from .runner import (
    create_timetable,
    estimate_feasibility,
    generate_schedule,
    move_session_in_store,
    redistribute_incomplete_in_store,
    replan_day_in_store,
)
from .reschedule import apply_day_replan, move_session, redistribute_incomplete, replan_day

__all__ = [
    "DEFAULT_PRIORITY_WEIGHTS",
    "Interval",
    "WorkItem",
    "allocate_sessions",
    "apply_day_replan",
    "blocked_intervals_for_day",
    "build_free_intervals",
    "build_work_items",
    "compute_priority",
    "create_timetable",
    "deterministic_tie_breaker_key",
    "estimate_feasibility",
    "free_intervals_for_day",
    "generate_schedule",
    "move_session",
    "move_session_in_store",
    "redistribute_incomplete",
    "redistribute_incomplete_in_store",
    "replan_day",
    "replan_day_in_store",
]
