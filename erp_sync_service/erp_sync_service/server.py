"""FastAPI health endpoints for the ERP sync worker."""

import contextlib

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .worker import SyncWorker


def create_app(worker: SyncWorker) -> FastAPI:
    """Build the health API for ``worker``.

    Args:
        worker: The sync worker whose state is reported

    Returns:
        FastAPI: Application exposing ``/health``, ``/health/ready`` and ``/stats``
    """
    app = FastAPI(title="ERP Sync Worker")
    app.state.worker = worker

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy"}

    @app.get("/health/ready")
    async def readiness_check():
        """Ready only while the worker is consuming messages."""
        if worker.is_running:
            return {"status": "ready", "worker": worker.state.value}
        return JSONResponse(status_code=503, content={"status": "not ready", "worker": worker.state.value})

    @app.get("/stats")
    async def stats():
        """Message counters of the running worker."""
        return worker.get_stats()

    return app


class HealthServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the worker process."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def create_health_server(worker: SyncWorker, port: int) -> HealthServer:
    config = uvicorn.Config(
        create_app(worker),
        host="0.0.0.0",
        port=port,
        log_level="warning",
        access_log=False,
        log_config=None,
    )
    return HealthServer(config)
