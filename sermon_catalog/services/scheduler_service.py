from __future__ import annotations

import errno
import logging
import os
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from sermon_catalog.telemetry import TelemetryClient

LOGGER = logging.getLogger("sermon_catalog.scheduler")
IDLE_WAIT_SECONDS = 60.0

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX fallback
    fcntl = None

ScheduledTask = Callable[[], object]
Clock = Callable[[], float]


@dataclass(frozen=True)
class ScheduledTaskHandle:
    task_id: str
    name: str
    interval_seconds: float


@dataclass
class _ScheduledEntry:
    handle: ScheduledTaskHandle
    task: ScheduledTask
    next_run_at: float
    runs: int = field(default=0)


class SchedulerService:
    """Runs registered tasks on fixed intervals from a single background thread.

    Tasks are registered with :meth:`schedule_every` and removed with
    :meth:`cancel`. :meth:`run_pending` executes whatever is due and is what the
    background loop calls on every wake-up, so it can also be driven directly.
    """

    def __init__(
        self,
        *,
        telemetry: TelemetryClient | None = None,
        lock_path: Path | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._clock = clock
        self._entries: dict[str, _ScheduledEntry] = {}
        self._entries_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock_path = lock_path
        self._lock_file: Any | None = None
        self._lock_acquired = False

    def schedule_every(
        self,
        interval_seconds: float,
        task: ScheduledTask,
        *,
        name: str,
        run_immediately: bool = False,
    ) -> ScheduledTaskHandle:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        handle = ScheduledTaskHandle(
            task_id=uuid4().hex,
            name=name,
            interval_seconds=float(interval_seconds),
        )
        now = self._clock()
        entry = _ScheduledEntry(
            handle=handle,
            task=task,
            next_run_at=now if run_immediately else now + handle.interval_seconds,
        )
        with self._entries_lock:
            self._entries[handle.task_id] = entry
        self._wake_event.set()
        LOGGER.info(
            "scheduler task registered name=%s interval_seconds=%s run_immediately=%s",
            name,
            handle.interval_seconds,
            run_immediately,
        )
        return handle

    def cancel(self, handle: ScheduledTaskHandle) -> bool:
        with self._entries_lock:
            removed = self._entries.pop(handle.task_id, None)
        if removed is None:
            return False
        LOGGER.info("scheduler task cancelled name=%s", handle.name)
        return True

    def scheduled_tasks(self) -> list[ScheduledTaskHandle]:
        with self._entries_lock:
            return [entry.handle for entry in self._entries.values()]

    def run_pending(self, now: float | None = None) -> int:
        current = self._clock() if now is None else now
        with self._entries_lock:
            due = [entry for entry in self._entries.values() if entry.next_run_at <= current]
        for entry in due:
            self._run_entry(entry)
            entry.next_run_at = current + entry.handle.interval_seconds
        return len(due)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        if not self._try_acquire_process_lock():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="sermon-catalog-scheduler")
        self._thread.daemon = True
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=3)
            self._thread = None
        self._release_process_lock()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self._wake_event.clear()
            self.run_pending()
            self._wake_event.wait(self._seconds_until_next_run())

    def _seconds_until_next_run(self) -> float:
        with self._entries_lock:
            next_runs = [entry.next_run_at for entry in self._entries.values()]
        if not next_runs:
            return IDLE_WAIT_SECONDS
        return max(0.0, min(next_runs) - self._clock())

    def _run_entry(self, entry: _ScheduledEntry) -> None:
        handle = entry.handle
        tick_id = uuid4().hex
        tick_tokens = bind_contextvars(scheduler_task=handle.name, scheduler_tick_id=tick_id)
        started_at = time.perf_counter()
        self._telemetry.emit("scheduler.task.start", task=handle.name, tick_id=tick_id)
        try:
            entry.task()
        except Exception as exc:
            self._telemetry.emit(
                "scheduler.task.error",
                task=handle.name,
                tick_id=tick_id,
                duration_ms=int((time.perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            LOGGER.warning("scheduler task failed name=%s", handle.name, exc_info=True)
        else:
            self._telemetry.emit(
                "scheduler.task.finish",
                task=handle.name,
                tick_id=tick_id,
                duration_ms=int((time.perf_counter() - started_at) * 1000),
                outcome="ok",
            )
        finally:
            entry.runs += 1
            reset_contextvars(**tick_tokens)

    def _try_acquire_process_lock(self) -> bool:
        if self._lock_path is None:
            return True

        if fcntl is None:
            LOGGER.warning(
                "scheduler single-instance lock unavailable on this platform; starting scheduler"
            )
            return True

        lock_path = self._lock_path
        lock_file = None
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = lock_path.open("a+", encoding="utf-8")
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            if lock_file is not None:
                lock_file.close()
            if exc.errno in (errno.EACCES, errno.EAGAIN):
                LOGGER.info(
                    "scheduler start skipped; lock held by another process path=%s",
                    lock_path,
                )
                return False
            LOGGER.warning(
                "scheduler lock acquisition failed path=%s; starting scheduler anyway",
                lock_path,
                exc_info=True,
            )
            return True

        try:
            lock_file.seek(0)
            lock_file.truncate()
            lock_file.write(f"{os.getpid()}\n")
            lock_file.flush()
        except OSError:
            LOGGER.debug("scheduler lock pid write failed path=%s", lock_path, exc_info=True)

        self._lock_file = lock_file
        self._lock_acquired = True
        return True

    def _release_process_lock(self) -> None:
        lock_file = self._lock_file
        if lock_file is None:
            self._lock_acquired = False
            return

        try:
            if self._lock_acquired and fcntl is not None:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        except OSError:
            LOGGER.debug("scheduler lock release failed path=%s", self._lock_path, exc_info=True)
        finally:
            lock_file.close()
            self._lock_file = None
            self._lock_acquired = False
