"""Scheduler error taxonomy.

ValidationError and InfeasibleError are terminal for the caller; ConflictError is
retryable after re-reading the timetable; GenerationTimeout may be retried with a
narrower window.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from studyplanner.models import GenerationResult
    from studyplanner.validation.errors import ValidationReport


class PlannerError(Exception):
    """Base class for scheduler failures."""

    code = "planner_error"

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class ValidationError(PlannerError):
    """Malformed or out-of-range input, rejected before any computation."""

    code = "validation_error"

    def __init__(self, report: "ValidationReport") -> None:
        self.report = report
        fields = ", ".join(issue.field_path for issue in report.errors[:5])
        more = "" if len(report.errors) <= 5 else f" (+{len(report.errors) - 5} more)"
        super().__init__(f"{len(report.errors)} invalid field(s): {fields}{more}")

    @classmethod
    def single(cls, *, code: str, message: str, field_path: str) -> "ValidationError":
        from studyplanner.validation.errors import ValidationReport

        report = ValidationReport()
        report.add_error(code=code, message=message, field_path=field_path)
        return cls(report)

    def as_dict(self) -> dict[str, Any]:
        payload = super().as_dict()
        payload["validation_report"] = self.report.as_dict()
        return payload


class InfeasibleError(PlannerError):
    """Mandatory work items could not be placed; carries the partial result."""

    code = "infeasible"

    def __init__(self, result: "GenerationResult") -> None:
        self.result = result
        unplaced = result.infeasibility.unplaced
        super().__init__(f"{len(unplaced)} work item(s) could not be scheduled")

    def as_dict(self) -> dict[str, Any]:
        payload = super().as_dict()
        payload["infeasibility"] = self.result.infeasibility.model_dump(mode="json")
        return payload


class ConflictError(PlannerError):
    """Concurrent modification or no room for a moved session."""

    code = "conflict"


class TimetableNotFound(PlannerError):
    """No stored timetable under the requested id."""

    code = "not_found"


class GenerationTimeout(PlannerError):
    """The allocator exceeded its iteration or time budget."""

    code = "generation_timeout"
