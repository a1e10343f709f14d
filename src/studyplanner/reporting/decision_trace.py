"""Decision trace for allocator placements."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any


@dataclass(slots=True, frozen=True)
class TraceEntry:
    sequence: int
    timestamp: datetime
    slot_id: str
    selected_item_id: str
    session_id: str
    candidates: tuple[tuple[str, float], ...]
    applied_rules: tuple[str, ...]
    blocked_constraints: tuple[str, ...]
    note: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "decision_id": f"d-{self.sequence:06d}",
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "slot_id": self.slot_id,
            "candidate_items": [item_id for item_id, _ in self.candidates],
            "scores_by_item": {item_id: score for item_id, score in sorted(self.candidates)},
            "selected_item_id": self.selected_item_id,
            "session_id": self.session_id,
            "applied_rules": list(self.applied_rules),
            "blocked_constraints": sorted(self.blocked_constraints),
            "note": self.note,
        }


@dataclass(slots=True)
class DecisionTraceCollector:
    """Collect one entry per placed session.

    Timestamps are synthetic (one second apart from ``start_timestamp``) so
    that two runs over the same request produce identical traces.
    """

    start_timestamp: datetime
    entries: list[TraceEntry] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.start_timestamp.tzinfo is None:
            self.start_timestamp = self.start_timestamp.replace(tzinfo=timezone.utc)

    def record(
        self,
        *,
        slot_id: str,
        candidate_items: list[str],
        scores_by_item: dict[str, float],
        selected_item_id: str,
        session_id: str,
        applied_rules: list[str],
        blocked_constraints: list[str],
        note: str,
    ) -> None:
        sequence = len(self.entries) + 1
        self.entries.append(
            TraceEntry(
                sequence=sequence,
                timestamp=self.start_timestamp + timedelta(seconds=sequence),
                slot_id=slot_id,
                selected_item_id=selected_item_id,
                session_id=session_id,
                candidates=tuple((item_id, float(scores_by_item[item_id])) for item_id in candidate_items),
                applied_rules=tuple(applied_rules),
                blocked_constraints=tuple(blocked_constraints),
                note=note,
            )
        )

    def __len__(self) -> int:
        return len(self.entries)

    def as_list(self) -> list[dict[str, Any]]:
        return [entry.as_dict() for entry in self.entries]
