"""CLI entrypoint for the study scheduler."""

from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable

from studyplanner.engine import (
    create_timetable,
    estimate_feasibility,
    generate_schedule,
    move_session_in_store,
    redistribute_incomplete_in_store,
    replan_day_in_store,
)
from studyplanner.errors import (
    ConflictError,
    GenerationTimeout,
    InfeasibleError,
    PlannerError,
    TimetableNotFound,
    ValidationError,
)
from studyplanner.io import read_json, write_json
from studyplanner.reporting import build_error_report, build_success_report
from studyplanner.store import JsonFileScheduleStore
from studyplanner.validation.request import parse_generation_request

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_VALIDATION = 2
EXIT_INFEASIBLE = 3
EXIT_CONFLICT = 4
EXIT_TIMEOUT = 5

_EXIT_BY_ERROR: list[tuple[type[PlannerError], int]] = [
    (ValidationError, EXIT_VALIDATION),
    (TimetableNotFound, EXIT_VALIDATION),
    (InfeasibleError, EXIT_INFEASIBLE),
    (ConflictError, EXIT_CONFLICT),
    (GenerationTimeout, EXIT_TIMEOUT),
]


def exit_code_for(error: PlannerError) -> int:
    for error_type, code in _EXIT_BY_ERROR:
        if isinstance(error, error_type):
            return code
    return EXIT_VALIDATION


def _read_payload(path: str, field_path: str) -> dict[str, Any]:
    try:
        return read_json(path)
    except FileNotFoundError as exc:
        raise ValidationError.single(code="FILE_NOT_FOUND", message=f"File not found: {path}", field_path=field_path) from exc
    except ValueError as exc:
        raise ValidationError.single(code="INVALID_JSON", message=str(exc), field_path=field_path) from exc


def _read_config(path: str | None) -> dict[str, Any] | None:
    return _read_payload(path, "$.config") if path else None


def _parse_date(value: str, field_path: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError.single(code="INVALID_DATE", message=f"{value!r} is not an ISO date", field_path=field_path) from exc


def _run(output_path: str, command: Callable[[], dict[str, Any]]) -> int:
    try:
        report = command()
    except PlannerError as exc:
        code = exit_code_for(exc)
        logger.error("%s failed: %s", exc.code, exc)
        write_json(output_path, build_error_report(exc))
        return code
    write_json(output_path, report)
    return EXIT_OK


def run_generate_command(args: argparse.Namespace) -> int:
    def command() -> dict[str, Any]:
        config = _read_config(args.config)
        request = parse_generation_request(_read_payload(args.request, "$.request"), config=config)
        result = generate_schedule(request, config=config, strict=args.strict)
        extra: dict[str, Any] = {}
        if args.store:
            document = create_timetable(JsonFileScheduleStore(args.store), args.timetable_id, request, result)
            extra = {"timetable_id": document.timetable_id, "version": document.version}
        return build_success_report("generate", result, **extra)

    return _run(args.output, command)


def run_estimate_command(args: argparse.Namespace) -> int:
    def command() -> dict[str, Any]:
        config = _read_config(args.config)
        report = estimate_feasibility(_read_payload(args.request, "$.request"), config=config)
        return build_success_report("estimate", report)

    return _run(args.output, command)


def run_move_command(args: argparse.Namespace) -> int:
    def command() -> dict[str, Any]:
        result = move_session_in_store(
            JsonFileScheduleStore(args.store),
            args.timetable_id,
            _parse_date(args.source_date, "$.source_date"),
            args.session_id,
            _parse_date(args.target_date, "$.target_date"),
        )
        return build_success_report("move", result)

    return _run(args.output, command)


def run_replan_command(args: argparse.Namespace) -> int:
    def command() -> dict[str, Any]:
        document, result = replan_day_in_store(
            JsonFileScheduleStore(args.store),
            args.timetable_id,
            _read_payload(args.request, "$.request"),
            config=_read_config(args.config),
        )
        return build_success_report("replan", result, timetable_id=document.timetable_id, version=document.version)

    return _run(args.output, command)


def run_redistribute_command(args: argparse.Namespace) -> int:
    def command() -> dict[str, Any]:
        result = redistribute_incomplete_in_store(
            JsonFileScheduleStore(args.store),
            args.timetable_id,
            _parse_date(args.date, "$.date"),
            args.session_ids,
        )
        return build_success_report("redistribute", result)

    return _run(args.output, command)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="studyplanner", description="Deterministic study-session scheduler")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a schedule from a request JSON")
    generate.add_argument("--request", required=True, help="Path to the generation request JSON")
    generate.add_argument("--output", required=True, help="Path to the report JSON")
    generate.add_argument("--config", help="Path to scheduler config overrides JSON")
    generate.add_argument("--strict", action="store_true", help="Fail with exit code 3 when work is left unplaced")
    generate.add_argument("--store", help="Directory of the timetable store; saves the result when given")
    generate.add_argument("--timetable-id", default="default", help="Timetable id used with --store")

    estimate = subparsers.add_parser("estimate", help="Estimate needed vs available study hours")
    estimate.add_argument("--request", required=True, help="Path to the generation request JSON")
    estimate.add_argument("--output", required=True, help="Path to the report JSON")
    estimate.add_argument("--config", help="Path to scheduler config overrides JSON")

    move = subparsers.add_parser("move", help="Move one session to another date")
    move.add_argument("--store", required=True, help="Directory of the timetable store")
    move.add_argument("--timetable-id", required=True)
    move.add_argument("--session-id", required=True)
    move.add_argument("--from", dest="source_date", required=True, help="Current date of the session (YYYY-MM-DD)")
    move.add_argument("--to", dest="target_date", required=True, help="Target date (YYYY-MM-DD)")
    move.add_argument("--output", required=True, help="Path to the report JSON")

    replan = subparsers.add_parser("replan", help="Replan one day of a stored timetable")
    replan.add_argument("--store", required=True, help="Directory of the timetable store")
    replan.add_argument("--timetable-id", required=True)
    replan.add_argument("--request", required=True, help="Path to the day replan request JSON")
    replan.add_argument("--output", required=True, help="Path to the report JSON")
    replan.add_argument("--config", help="Path to scheduler config overrides JSON")

    redistribute = subparsers.add_parser("redistribute", help="Spread a day's incomplete sessions over later days")
    redistribute.add_argument("--store", required=True, help="Directory of the timetable store")
    redistribute.add_argument("--timetable-id", required=True)
    redistribute.add_argument("--date", required=True, help="Day whose incomplete sessions move (YYYY-MM-DD)")
    redistribute.add_argument(
        "--session-id", dest="session_ids", action="append", help="Only move this session (repeatable)"
    )
    redistribute.add_argument("--output", required=True, help="Path to the report JSON")

    return parser


_COMMANDS: dict[str, Callable[[argparse.Namespace], int]] = {
    "generate": run_generate_command,
    "estimate": run_estimate_command,
    "move": run_move_command,
    "replan": run_replan_command,
    "redistribute": run_redistribute_command,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Path(args.output).parent.mkdir(parents=True, exist_ok=True)
    return _COMMANDS[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
