"""Issue records shared by request, config and schedule validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Severity = Literal["error", "info"]


@dataclass(slots=True)
class ValidationIssue:
    code: str
    message: str
    field_path: str
    suggested_fix: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message, "field_path": self.field_path}
        if self.suggested_fix:
            payload["suggested_fix"] = self.suggested_fix
        payload.update(self.extra)
        return payload


@dataclass(slots=True)
class ValidationReport:
    """Every problem found in one pass; errors reject, infos only inform."""

    errors: list[ValidationIssue] = field(default_factory=list)
    infos: list[ValidationIssue] = field(default_factory=list)

    def _add(self, severity: Severity, issue: ValidationIssue) -> None:
        (self.errors if severity == "error" else self.infos).append(issue)

    def add_error(
        self,
        *,
        code: str,
        message: str,
        field_path: str,
        suggested_fix: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self._add("error", ValidationIssue(code, message, field_path, suggested_fix, dict(extra or {})))

    def add_info(self, *, code: str, message: str, field_path: str, extra: dict[str, Any] | None = None) -> None:
        self._add("info", ValidationIssue(code, message, field_path, None, dict(extra or {})))

    def extend(self, other: ValidationReport) -> None:
        for issue in other.errors:
            self._add("error", issue)
        for issue in other.infos:
            self._add("info", issue)

    @property
    def ok(self) -> bool:
        return not self.errors

    def codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "errors": [issue.as_dict() for issue in self.errors],
            "infos": [issue.as_dict() for issue in self.infos],
        }
