from __future__ import annotations

import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from sermon_catalog.config import load_settings
from sermon_catalog.services.scheduler_service import SchedulerService
from sermon_catalog.telemetry import TelemetryClient


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def test_scheduler_runs_task_once_per_interval() -> None:
    clock = _FakeClock()
    scheduler = SchedulerService(clock=clock)
    calls: list[float] = []
    scheduler.schedule_every(60, lambda: calls.append(clock.now), name="reconciliation")

    assert scheduler.run_pending() == 0
    clock.now += 60
    assert scheduler.run_pending() == 1
    assert scheduler.run_pending() == 0
    clock.now += 59
    assert scheduler.run_pending() == 0
    clock.now += 1
    assert scheduler.run_pending() == 1
    assert calls == [1_060.0, 1_120.0]


def test_scheduler_run_immediately_and_cancel() -> None:
    clock = _FakeClock()
    scheduler = SchedulerService(clock=clock)
    calls: list[str] = []
    handle = scheduler.schedule_every(
        3_600, lambda: calls.append("tick"), name="ingestion", run_immediately=True
    )

    assert scheduler.run_pending() == 1
    assert scheduler.cancel(handle) is True
    assert scheduler.cancel(handle) is False
    clock.now += 7_200
    assert scheduler.run_pending() == 0
    assert calls == ["tick"]
    assert scheduler.scheduled_tasks() == []


def test_scheduler_task_failure_does_not_stop_other_tasks() -> None:
    clock = _FakeClock()
    sink = _CaptureSink()
    scheduler = SchedulerService(clock=clock, telemetry=TelemetryClient(enabled=True, sink=sink))
    calls: list[str] = []

    def _explode() -> None:
        raise RuntimeError("boom")

    scheduler.schedule_every(10, _explode, name="broken", run_immediately=True)
    scheduler.schedule_every(10, lambda: calls.append("ok"), name="healthy", run_immediately=True)

    assert scheduler.run_pending() == 2
    assert calls == ["ok"]
    event_names = [name for name, _ in sink.events]
    assert "scheduler.task.error" in event_names
    assert "scheduler.task.finish" in event_names
    error_attributes = next(attrs for name, attrs in sink.events if name == "scheduler.task.error")
    assert error_attributes["task"] == "broken"
    assert error_attributes["error_type"] == "RuntimeError"


def test_scheduler_rejects_non_positive_interval() -> None:
    scheduler = SchedulerService()

    with pytest.raises(ValueError, match="interval_seconds"):
        scheduler.schedule_every(0, lambda: None, name="never")


def test_scheduler_background_thread_runs_due_tasks() -> None:
    scheduler = SchedulerService()
    ran = threading.Event()
    scheduler.schedule_every(3_600, ran.set, name="reconciliation", run_immediately=True)

    scheduler.start()
    try:
        assert ran.wait(timeout=2)
    finally:
        scheduler.stop()


def test_scheduler_lock_allows_a_single_instance(tmp_path: Path) -> None:
    lock_path = tmp_path / "scheduler.lock"
    first = SchedulerService(lock_path=lock_path)
    second = SchedulerService(lock_path=lock_path)
    second_ran = threading.Event()
    second.schedule_every(3_600, second_ran.set, name="probe", run_immediately=True)

    first.start()
    try:
        second.start()
        assert second_ran.wait(timeout=0.5) is False
    finally:
        second.stop()
        first.stop()

    assert lock_path.read_text(encoding="utf-8").strip().isdigit()


def test_load_settings_defaults_paths_under_data_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    data_dir = tmp_path / "data"
    monkeypatch.setenv("SERMON_CATALOG_DATA_DIR", str(data_dir))

    settings = load_settings()

    assert settings.data_dir == data_dir.resolve()
    assert settings.db_path == (data_dir / "catalog.db").resolve()
    assert settings.log_dir == (data_dir / "logs").resolve()
    assert settings.reconciliation_interval_seconds == 21_600
    assert settings.ingestion_interval_seconds == 0
    assert settings.default_api_key_name == "YOUTUBE_API_KEY"
    assert settings.search_query_suffix == "Christian Sermons"
    assert settings.min_duration_seconds == 60
    assert settings.public_page_size == 6
    assert settings.admin_page_size == 10
    assert settings.reset_moderation_on_reingest is False


def test_load_settings_parses_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERMON_CATALOG_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SERMON_CATALOG_DB_PATH", str(tmp_path / "elsewhere" / "videos.db"))
    monkeypatch.setenv("SERMON_CATALOG_ENABLE_SCHEDULER", "off")
    monkeypatch.setenv("SERMON_CATALOG_RESET_MODERATION_ON_REINGEST", "yes")
    monkeypatch.setenv("SERMON_CATALOG_SEARCH_PAGE_SIZE", "500")
    monkeypatch.setenv("SERMON_CATALOG_SEARCH_QUERY_SUFFIX", "  Sermons  ")
    monkeypatch.setenv("SERMON_CATALOG_INGESTION_INTERVAL_SECONDS", "86400")
    monkeypatch.setenv("SERMON_CATALOG_TELEMETRY_SINK", "none")

    settings = load_settings()

    assert settings.db_path == (tmp_path / "elsewhere" / "videos.db").resolve()
    assert settings.log_dir == (tmp_path / "data" / "logs").resolve()
    assert settings.scheduler_enabled is False
    assert settings.reset_moderation_on_reingest is True
    assert settings.search_page_size == 50
    assert settings.search_query_suffix == "Sermons"
    assert settings.ingestion_interval_seconds == 86_400
    assert settings.telemetry_sink == "none"


def test_load_settings_rejects_invalid_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERMON_CATALOG_MIN_DURATION_SECONDS", "-1")

    with pytest.raises(ValidationError, match="min_duration_seconds"):
        load_settings()


def test_load_settings_rejects_blank_default_api_key_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERMON_CATALOG_DEFAULT_API_KEY_NAME", "   ")

    with pytest.raises(ValidationError, match="default_api_key_name"):
        load_settings()
