"""Validation helpers."""

from .errors import ValidationIssue, ValidationReport
from .domain_validator import validate_generation_request
from .request import parse_day_replan_request, parse_generation_request, parse_model
from .schedule_validator import Catalog, SanitizeResult, sanitize_schedule

__all__ = [
    "Catalog",
    "SanitizeResult",
    "ValidationIssue",
    "ValidationReport",
    "parse_day_replan_request",
    "parse_generation_request",
    "parse_model",
    "sanitize_schedule",
    "validate_generation_request",
]
