"""HTTP server exposing health, task status, metrics and manual triggers."""

import time
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, HTTPException

from harvester import __version__
from harvester.core.logging import log
from harvester.core.metrics import get_metrics_collector
from harvester.scheduler import Scheduler


class HarvesterServer:
    """FastAPI app around a running Scheduler."""

    def __init__(self, scheduler: Scheduler, port: int = 3000) -> None:
        self.port: int = port
        self.scheduler = scheduler
        self.started_at: float = time.time()
        self.app: FastAPI = FastAPI(title="Strategy Harvester", version=__version__)

        self._setup_routes()

    def _setup_routes(self) -> None:

        @self.app.get("/health")
        async def health_check():
            """Liveness probe."""
            return {
                "status": "ok",
                "uptime": time.time() - self.started_at,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

        @self.app.get("/status")
        async def status():
            """Registered periodic tasks with their last and next run."""
            return {
                "tasks": self.scheduler.status(),
                "serverTime": datetime.now(timezone.utc).isoformat(),
            }

        @self.app.get("/metrics")
        async def get_metrics():
            try:
                return get_metrics_collector().get_all_metrics()
            except Exception as e:
                log.error("Failed to get metrics: {}", e)
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.post("/tasks/{name}/trigger", status_code=202)
        async def trigger_task(name: str):
            """Run a task on the next scheduler tick."""
            if not self.scheduler.trigger(name):
                raise HTTPException(status_code=404, detail=f"Unknown task: {name}")
            return {"status": "triggered", "task": name}

    def run(self, host: str = "0.0.0.0") -> None:
        log.info("🚀 Starting harvester HTTP server on {}:{}", host, self.port)
        uvicorn.run(self.app, host=host, port=self.port, log_level="info")
