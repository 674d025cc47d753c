"""
Periodic Task Scheduler
-----------------------
A single loop thread re-arms each registered task on a fixed interval and
starts due tasks on their own worker thread. A task that is still running
when it comes due again is skipped for that tick. Different tasks may run
at the same time.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from loguru import logger

from harvester.core.logging import log, task_context, with_trace_id
from harvester.core.metrics import record_task_run


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


@dataclass
class PeriodicTask:
    """Descriptor for one registered task."""
    name: str
    prefix: str
    interval_seconds: float
    func: Callable[[], Any]
    next_run: float
    last_run: Optional[float] = None
    last_duration: Optional[float] = None
    last_error: Optional[str] = None
    running: bool = False
    runs: int = 0
    skipped: int = 0

    def as_status(self) -> dict[str, Any]:
        return {
            "id": self.name,
            "prefix": self.prefix,
            "interval": self.interval_seconds,
            "lastRun": _iso(self.last_run),
            "nextRun": _iso(self.next_run),
            "running": self.running,
            "runs": self.runs,
            "skipped": self.skipped,
            "lastDuration": self.last_duration,
            "lastError": self.last_error,
        }


class Scheduler:
    """Owns the task list and the loop thread."""

    def __init__(self, tick_seconds: float = 1.0, clock: Callable[[], float] = time.time):
        self.tick_seconds = tick_seconds
        self._clock = clock
        self._tasks: dict[str, PeriodicTask] = {}
        self._workers: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._loop: Optional[threading.Thread] = None

    def register(
        self,
        name: str,
        func: Callable[[], Any],
        interval_seconds: float,
        prefix: Optional[str] = None,
        run_on_start: bool = True,
    ) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Task {name} already registered")

        now = self._clock()
        task = PeriodicTask(
            name=name,
            prefix=prefix or f"[{name}]",
            interval_seconds=interval_seconds,
            func=func,
            next_run=now if run_on_start else now + interval_seconds,
        )
        self._tasks[name] = task
        logger.info("📋 Registered task {} every {}s", task.prefix, interval_seconds)
        return task

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks.values())

    def tick(self) -> list[str]:
        """Start every due task that is not already running.

        Returns:
            Names of the tasks started on this tick.
        """
        now = self._clock()
        started = []

        with self._lock:
            for task in self._tasks.values():
                if now < task.next_run:
                    continue

                task.next_run = now + task.interval_seconds
                if task.running:
                    task.skipped += 1
                    logger.warning("⏭️ {} still running, skipping this run", task.prefix)
                    continue

                task.running = True
                worker = threading.Thread(
                    target=self._run_task, args=(task,), name=f"task-{task.name}", daemon=True
                )
                self._workers[task.name] = worker
                worker.start()
                started.append(task.name)

        return started

    def _run_task(self, task: PeriodicTask) -> None:
        with task_context(task.prefix):
            self._execute(task)

    @with_trace_id
    def _execute(self, task: PeriodicTask) -> None:
        start = self._clock()
        failed = False
        logger.info("▶️ {} starting", task.prefix)
        try:
            task.func()
            task.last_error = None
        except Exception as e:
            failed = True
            task.last_error = str(e)
            log.exception("❌ {} failed: {}", task.prefix, e)
        finally:
            duration = self._clock() - start
            with self._lock:
                task.running = False
                task.last_run = start
                task.last_duration = duration
                task.runs += 1
            record_task_run(task.name, duration, failed)
            logger.info("⏹️ {} finished in {:.2f}s", task.prefix, duration)

    def trigger(self, name: str) -> bool:
        """Make a task due on the next tick. Returns False for unknown tasks."""
        with self._lock:
            task = self._tasks.get(name)
            if task is None:
                return False
            task.next_run = self._clock()
        logger.info("👆 {} triggered manually", task.prefix)
        return True

    def status(self) -> list[dict[str, Any]]:
        with self._lock:
            return [task.as_status() for task in self._tasks.values()]

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Join all worker threads started so far."""
        for worker in list(self._workers.values()):
            worker.join(timeout)

    def _loop_forever(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.tick_seconds)

    def start(self) -> None:
        if self._loop and self._loop.is_alive():
            return
        self._stop.clear()
        self._loop = threading.Thread(target=self._loop_forever, name="scheduler", daemon=True)
        self._loop.start()
        logger.info("🚀 Scheduler started with {} tasks", len(self._tasks))

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._loop:
            self._loop.join(timeout)
        self.wait_idle(timeout)
        logger.info("🧹 Scheduler stopped")
