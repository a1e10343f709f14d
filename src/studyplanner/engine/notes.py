"""Optional note text for already placed sessions.

A provider is any callable ``(session, day) -> str``. Each call is bounded by a
timeout; on failure or timeout the session keeps its deterministic note.
Placement is never touched.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import date
from typing import Callable

from studyplanner.models import Schedule, Session

from .policy import is_study_type

logger = logging.getLogger(__name__)

NotesProvider = Callable[[Session, date], str]

MAX_NOTE_LENGTH = 500
# After this many timeouts the provider is considered down for the rest of the batch.
MAX_TIMEOUTS = 3


def _new_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=1, thread_name_prefix="notes-assist")


def annotate_notes(
    schedule: Schedule,
    provider: NotesProvider | None,
    *,
    timeout_seconds: float = 5.0,
) -> tuple[Schedule, list[dict[str, object]]]:
    """Return a copy of ``schedule`` with provider notes and a list of failures.

    A call that times out keeps running on its own worker, which is abandoned;
    the next call gets a fresh one. Breaks and homework keep their notes.
    """
    if provider is None:
        return schedule, []

    annotated: Schedule = {}
    failures: list[dict[str, object]] = []
    timeouts = 0
    executor = _new_executor()
    try:
        for day_key in sorted(schedule):
            day = date.fromisoformat(day_key)
            sessions: list[Session] = []
            for session in schedule[day_key]:
                if not is_study_type(session.type):
                    sessions.append(session)
                    continue
                if timeouts >= MAX_TIMEOUTS:
                    failures.append({"session_id": session.id, "reason": "skipped"})
                    sessions.append(session)
                    continue
                future = executor.submit(provider, session, day)
                try:
                    text = future.result(timeout=timeout_seconds)
                except FutureTimeout:
                    timeouts += 1
                    logger.warning("Notes provider timed out for %s after %.1fs", session.id, timeout_seconds)
                    failures.append({"session_id": session.id, "reason": "timeout"})
                    sessions.append(session)
                    executor.shutdown(wait=False, cancel_futures=True)
                    executor = _new_executor()
                    continue
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Notes provider failed for %s: %s", session.id, exc)
                    failures.append({"session_id": session.id, "reason": type(exc).__name__})
                    sessions.append(session)
                    continue
                if not isinstance(text, str) or not text.strip():
                    sessions.append(session)
                    continue
                sessions.append(session.model_copy(update={"notes": text.strip()[:MAX_NOTE_LENGTH]}))
            annotated[day_key] = sessions
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    if timeouts >= MAX_TIMEOUTS:
        logger.warning("Notes provider skipped after %d timeouts", timeouts)
    return annotated, failures
