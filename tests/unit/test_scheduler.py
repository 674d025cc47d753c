"""Periodic scheduler and HTTP server tests."""

import threading

import pytest
from fastapi.testclient import TestClient

from harvester.scheduler import Scheduler
from harvester.server import HarvesterServer


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return Scheduler(tick_seconds=0.01, clock=clock)


class TestScheduler:

    def test_run_on_start(self, scheduler):
        calls = []
        scheduler.register("compounder", lambda: calls.append(1), 300)

        assert scheduler.tick() == ["compounder"]
        scheduler.wait_idle(timeout=5)

        assert calls == [1]
        (task,) = scheduler.tasks
        assert task.runs == 1
        assert task.last_error is None

    def test_delayed_start(self, scheduler, clock):
        scheduler.register("idle", lambda: None, 300, run_on_start=False)

        assert scheduler.tick() == []
        clock.now += 300
        assert scheduler.tick() == ["idle"]
        scheduler.wait_idle(timeout=5)

    def test_running_task_is_not_reentered(self, scheduler, clock):
        started = threading.Event()
        release = threading.Event()

        def slow():
            started.set()
            release.wait(5)

        scheduler.register("optimizer", slow, 300)

        assert scheduler.tick() == ["optimizer"]
        assert started.wait(5)
        clock.now += 300
        assert scheduler.tick() == []

        release.set()
        scheduler.wait_idle(timeout=5)

        (task,) = scheduler.tasks
        assert task.skipped == 1
        assert task.runs == 1
        assert not task.running

    def test_failure_is_recorded_and_task_rearmed(self, scheduler, clock):
        def broken():
            raise RuntimeError("boom")

        scheduler.register("compounder", broken, 300)
        scheduler.tick()
        scheduler.wait_idle(timeout=5)

        (task,) = scheduler.tasks
        assert task.last_error == "boom"
        assert not task.running
        assert task.next_run == clock.now + 300

    def test_trigger(self, scheduler):
        scheduler.register("idle", lambda: None, 300, run_on_start=False)

        assert scheduler.trigger("idle")
        assert not scheduler.trigger("unknown")
        assert scheduler.tick() == ["idle"]
        scheduler.wait_idle(timeout=5)

    def test_duplicate_registration(self, scheduler):
        scheduler.register("idle", lambda: None, 300)
        with pytest.raises(ValueError):
            scheduler.register("idle", lambda: None, 300)

    def test_status(self, scheduler):
        scheduler.register("idle", lambda: None, 300, prefix="[Idle Strategies]")

        (status,) = scheduler.status()

        assert status["id"] == "idle"
        assert status["prefix"] == "[Idle Strategies]"
        assert status["interval"] == 300
        assert status["lastRun"] is None
        assert status["running"] is False

    def test_start_and_stop(self):
        ran = threading.Event()
        scheduler = Scheduler(tick_seconds=0.01)
        scheduler.register("compounder", ran.set, 300)

        scheduler.start()
        try:
            assert ran.wait(5)
        finally:
            scheduler.stop(timeout=5)


class TestHarvesterServer:

    @pytest.fixture
    def client(self, scheduler):
        scheduler.register("compounder", lambda: None, 300, prefix="[Reward Compounder]", run_on_start=False)
        return TestClient(HarvesterServer(scheduler).app)

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["uptime"] >= 0
        assert "timestamp" in body

    def test_status(self, client):
        response = client.get("/status")

        assert response.status_code == 200
        tasks = response.json()["tasks"]
        assert [t["id"] for t in tasks] == ["compounder"]

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "counters" in response.json()

    def test_trigger(self, client, scheduler, clock):
        response = client.post("/tasks/compounder/trigger")

        assert response.status_code == 202
        assert scheduler.tasks[0].next_run == clock.now

    def test_trigger_unknown_task(self, client):
        assert client.post("/tasks/nope/trigger").status_code == 404
