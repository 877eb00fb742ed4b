from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException

from service_monitor.tracker import StatusTracker


def create_app(tracker: StatusTracker) -> FastAPI:
    app = FastAPI(title="Service Monitor", docs_url=None, redoc_url=None)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return tracker.snapshot()

    @app.get("/health/{name}")
    def service_health(name: str) -> dict[str, Any]:
        snap = tracker.snapshot()
        if name not in snap:
            raise HTTPException(status_code=404, detail=f"unknown service {name!r}")
        return snap[name]

    return app
