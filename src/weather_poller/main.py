from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .manager import WeatherPollManager, build_manager
from .settings import AppSettings, load_settings
from .storage.db import initialize_database
from .storage.observations import count_observations, get_latest_observation


def _get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def _get_manager(request: Request) -> WeatherPollManager:
    return request.app.state.manager


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings = load_settings()
    initialize_database(settings.db_path)
    manager = build_manager(settings)
    # Registering connectivity probes the network synchronously.
    await run_in_threadpool(manager.start)

    application.state.settings = settings
    application.state.manager = manager
    application.state.started_at_utc = datetime.now(timezone.utc)

    try:
        yield
    finally:
        manager.close()


app = FastAPI(title="Weather Poller", version="0.1.0", lifespan=lifespan)


@app.get("/health", response_class=JSONResponse)
async def health(request: Request) -> JSONResponse:
    settings = _get_settings(request)
    manager = _get_manager(request)

    return JSONResponse(
        {
            "status": "ok",
            "service": "weather-poller",
            "environment": settings.env.poller_env,
            "poller": manager.describe(),
            "observation_count": count_observations(settings.db_path),
            "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        }
    )


@app.get("/observations/latest", response_class=JSONResponse)
async def latest_observation(request: Request) -> JSONResponse:
    settings = _get_settings(request)
    latest = get_latest_observation(settings.db_path)
    if latest is None:
        # The log sink keeps nothing on disk; fall back to the last emitted record.
        cycle = _get_manager(request).cycle
        if cycle.last_record is not None:
            latest = {
                "key": cycle.key.model_dump(mode="json"),
                "record": cycle.last_record.model_dump(mode="json"),
            }
    if latest is None:
        raise HTTPException(status_code=404, detail="No weather observation recorded yet")
    return JSONResponse(latest)
