"""Priority scoring and deterministic tie-breakers for work items."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from .policy import policy_for

if TYPE_CHECKING:
    from .work_items import WorkItem

DEFAULT_PRIORITY_WEIGHTS: dict[str, float] = {
    "w_test_proximity": 0.35,
    "w_focus": 0.20,
    "w_difficulty": 0.15,
    "w_deadline": 0.30,
    "w_hard_deadline": 0.25,
    "w_mode": 0.10,
}


def proximity(days_left: int, cap_days: int) -> float:
    """Map days left to [0, 1]: today is 1.0, ``cap_days`` or later is 0.0."""
    cap = max(1, cap_days)
    return 1.0 - min(max(0, days_left), cap) / cap


def priority_features(item: "WorkItem", reference_day: date, cap_days: int = 28) -> dict[str, float]:
    test_proximity = 0.0
    if item.test_date is not None:
        test_proximity = proximity((item.test_date - reference_day).days, cap_days)
    deadline_proximity = 0.0
    hard_deadline = 0.0
    if item.deadline is not None:
        deadline_proximity = proximity((item.deadline - reference_day).days, cap_days)
        hard_deadline = 1.0
    difficulty = 0.5 if item.confidence is None else (10 - item.confidence) / 9
    return {
        "test_proximity": test_proximity,
        "focus": 1.0 if item.focus else 0.0,
        "difficulty": difficulty if item.kind == "topic" else 0.0,
        "deadline_proximity": deadline_proximity,
        "hard_deadline": hard_deadline,
        "mode_intensity": policy_for(item.mode).intensity,
    }


def compute_priority(features: dict[str, float], weights: dict[str, float] | None = None) -> float:
    """Compute the weighted priority formula."""
    w = DEFAULT_PRIORITY_WEIGHTS if weights is None else weights
    return (
        float(w.get("w_test_proximity", 0.0)) * float(features.get("test_proximity", 0.0))
        + float(w.get("w_focus", 0.0)) * float(features.get("focus", 0.0))
        + float(w.get("w_difficulty", 0.0)) * float(features.get("difficulty", 0.0))
        + float(w.get("w_deadline", 0.0)) * float(features.get("deadline_proximity", 0.0))
        + float(w.get("w_hard_deadline", 0.0)) * float(features.get("hard_deadline", 0.0))
        + float(w.get("w_mode", 0.0)) * float(features.get("mode_intensity", 0.0))
    )


def score_item(
    item: "WorkItem",
    reference_day: date,
    *,
    cap_days: int = 28,
    weights: dict[str, float] | None = None,
) -> float:
    if item.priority_override is not None:
        return item.priority_override
    return round(compute_priority(priority_features(item, reference_day, cap_days), weights), 6)


def deterministic_tie_breaker_key(score: float, item: "WorkItem") -> tuple[float, int, str]:
    """Higher score first, then input order, then item id."""
    return (-score, item.order, item.item_id)


def rank_items(
    items: list["WorkItem"],
    reference_day: date,
    *,
    cap_days: int = 28,
    weights: dict[str, float] | None = None,
) -> list[tuple[float, "WorkItem"]]:
    scored = [(score_item(item, reference_day, cap_days=cap_days, weights=weights), item) for item in items]
    scored.sort(key=lambda pair: deterministic_tie_breaker_key(pair[0], pair[1]))
    return scored
