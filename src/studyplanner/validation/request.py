"""Parse raw request payloads into validated models.

Every malformed field is collected into one ValidationReport; nothing is
computed from a payload that has any error.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from studyplanner.errors import ValidationError
from studyplanner.models import DayReplanRequest, GenerationRequest
from studyplanner.normalization.config_resolver import DEFAULT_SCHEDULER_CONFIG
from studyplanner.normalization.request import normalize_request

from .domain_validator import validate_generation_request
from .errors import ValidationReport

ModelT = TypeVar("ModelT", bound=BaseModel)

_CODE_BY_PYDANTIC_TYPE = {
    "missing": "MISSING_FIELD",
    "extra_forbidden": "UNKNOWN_FIELD",
    "too_long": "TOO_LONG",
    "too_short": "TOO_SHORT",
    "greater_than": "OUT_OF_RANGE",
    "greater_than_equal": "OUT_OF_RANGE",
    "less_than": "OUT_OF_RANGE",
    "less_than_equal": "OUT_OF_RANGE",
    "string_pattern_mismatch": "INVALID_FORMAT",
    "enum": "INVALID_ENUM",
    "value_error": "INVALID_VALUE",
}


def field_path(loc: tuple[Any, ...], root: str = "$") -> str:
    """Render a pydantic error location as ``$.topics[3].confidence``."""
    path = root
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def report_from_pydantic(exc: PydanticValidationError, root: str = "$") -> ValidationReport:
    report = ValidationReport()
    for error in exc.errors():
        error_type = str(error.get("type", ""))
        code = _CODE_BY_PYDANTIC_TYPE.get(error_type)
        if code is None:
            code = "INVALID_TYPE" if error_type.endswith(("_type", "_parsing")) else "INVALID_VALUE"
        report.add_error(
            code=code,
            message=str(error.get("msg", "invalid value")),
            field_path=field_path(tuple(error.get("loc", ())), root),
        )
    return report


def parse_model(model: type[ModelT], payload: Any, *, root: str = "$") -> ModelT:
    if not isinstance(payload, dict):
        raise ValidationError.single(code="INVALID_TYPE", message="Payload must be a JSON object", field_path=root)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(report_from_pydantic(exc, root)) from exc


def parse_generation_request(
    payload: Any,
    *,
    config: dict[str, Any] | None = None,
    validation_report: ValidationReport | None = None,
) -> GenerationRequest:
    """Validate a raw generation request wholesale; raise ValidationError on any issue."""
    if not isinstance(payload, dict):
        raise ValidationError.single(code="INVALID_TYPE", message="Request must be a JSON object", field_path="$")
    request = parse_model(GenerationRequest, normalize_request(payload))
    domain_report = validate_generation_request(request, config or DEFAULT_SCHEDULER_CONFIG)
    if validation_report is not None:
        validation_report.extend(domain_report)
    if domain_report.errors:
        raise ValidationError(domain_report)
    return request


def parse_day_replan_request(payload: Any) -> DayReplanRequest:
    return parse_model(DayReplanRequest, payload)
