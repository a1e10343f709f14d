from __future__ import annotations

import json
import multiprocessing
import sys
from pathlib import Path

import pytest

from studyplanner.errors import ConflictError, TimetableNotFound, ValidationError
from studyplanner.models import Session, SessionType, TimetableDocument
from studyplanner.store import InMemoryScheduleStore, JsonFileScheduleStore


def _document(timetable_id: str = "tt1") -> TimetableDocument:
    session = Session(id="topic:t1#1", time="09:00", duration=50, subject="Maths", topic="Algebra", type=SessionType.PRACTICE)
    return TimetableDocument(
        timetable_id=timetable_id,
        start_date="2025-01-06",
        end_date="2025-01-12",
        subjects=[{"id": "maths", "name": "Maths"}],
        topics=[{"id": "t1", "subject_id": "maths", "name": "Algebra"}],
        schedule={"2025-01-06": [session], "2025-01-07": []},
    )


def test_in_memory_store_versions_and_conflicts() -> None:
    store = InMemoryScheduleStore()
    first = store.save(_document(), expected_version=0)
    assert first.version == 1

    loaded = store.load("tt1")
    second = store.save(loaded, expected_version=loaded.version)
    assert second.version == 2

    with pytest.raises(ConflictError):
        store.save(loaded, expected_version=loaded.version)
    assert store.load("tt1").version == 2


def test_in_memory_store_returns_copies() -> None:
    store = InMemoryScheduleStore()
    store.save(_document(), expected_version=0)
    loaded = store.load("tt1")
    loaded.schedule["2025-01-06"].clear()
    assert len(store.load("tt1").schedule["2025-01-06"]) == 1


def test_unknown_timetable_is_not_found() -> None:
    with pytest.raises(TimetableNotFound):
        InMemoryScheduleStore().load("missing")


def test_json_file_store_round_trip(tmp_path: Path) -> None:
    store = JsonFileScheduleStore(tmp_path / "store")
    saved = store.save(_document(), expected_version=0)

    path = tmp_path / "store" / "tt1.json"
    assert path.exists()
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1
    assert sorted(p.name for p in (tmp_path / "store").iterdir()) == ["tt1.json", "tt1.lock"]

    loaded = store.load("tt1")
    assert loaded.model_dump(mode="json") == saved.model_dump(mode="json")
    assert loaded.schedule["2025-01-06"][0].type == SessionType.PRACTICE


def test_json_file_store_rejects_stale_writes(tmp_path: Path) -> None:
    store = JsonFileScheduleStore(tmp_path)
    store.save(_document(), expected_version=0)
    reader_a = store.load("tt1")
    reader_b = store.load("tt1")

    store.save(reader_a, expected_version=reader_a.version)
    with pytest.raises(ConflictError):
        store.save(reader_b, expected_version=reader_b.version)


def test_json_file_store_rejects_unsafe_ids(tmp_path: Path) -> None:
    store = JsonFileScheduleStore(tmp_path)
    with pytest.raises(ValidationError):
        store.load("../etc/passwd")
    with pytest.raises(TimetableNotFound):
        store.load("missing")


needs_fork = pytest.mark.skipif(sys.platform == "win32", reason="fork start method and flock are POSIX only")


def _load_then_save(root: str, barrier, results) -> None:
    store = JsonFileScheduleStore(root)
    document = store.load("tt1")
    barrier.wait()
    try:
        store.save(document, expected_version=document.version)
        results.put("saved")
    except ConflictError:
        results.put("conflict")


def _save_once(root: str, results) -> None:
    store = JsonFileScheduleStore(root)
    document = store.load("tt1")
    store.save(document, expected_version=document.version)
    results.put("saved")


@needs_fork
def test_json_file_store_serializes_writers_across_processes(tmp_path: Path) -> None:
    JsonFileScheduleStore(tmp_path).save(_document(), expected_version=0)
    ctx = multiprocessing.get_context("fork")
    barrier = ctx.Barrier(2)
    results = ctx.Queue()
    workers = [ctx.Process(target=_load_then_save, args=(str(tmp_path), barrier, results)) for _ in range(2)]
    for worker in workers:
        worker.start()
    outcomes = sorted(results.get(timeout=10) for _ in workers)
    for worker in workers:
        worker.join(timeout=10)

    assert outcomes == ["conflict", "saved"]
    assert JsonFileScheduleStore(tmp_path).load("tt1").version == 2


@needs_fork
def test_json_file_store_waits_for_a_lock_held_by_another_process(tmp_path: Path) -> None:
    store = JsonFileScheduleStore(tmp_path)
    store.save(_document(), expected_version=0)
    ctx = multiprocessing.get_context("fork")
    results = ctx.Queue()

    with store.locked("tt1"):
        writer = ctx.Process(target=_save_once, args=(str(tmp_path), results))
        writer.start()
        writer.join(timeout=0.5)
        assert writer.is_alive()
        assert JsonFileScheduleStore(tmp_path).load("tt1").version == 1

    assert results.get(timeout=10) == "saved"
    writer.join(timeout=10)
    assert store.load("tt1").version == 2
