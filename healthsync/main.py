"""healthsync API — FastAPI application entry point.

Run locally:
    uvicorn healthsync.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from healthsync.cache.persistence import DiskPersistence
from healthsync.cache.service import CacheService
from healthsync.config import Settings
from healthsync.config_loader import load_sync_config
from healthsync.routers import aggregates, cache, health, sync
from healthsync.sources import AppleHealthExportSource, DataSource
from healthsync.sync.conditions import (
    DeviceConditions,
    StaticDeviceConditions,
    SystemDeviceConditions,
)
from healthsync.sync.engine import SyncEngine
from healthsync.sync.transport import HttpUploadTransport, UploadTransport

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("healthsync")


# ---------- App factory ----------

def create_app(
    settings: Settings | None = None,
    data_source: DataSource | None = None,
    transport: UploadTransport | None = None,
    conditions: DeviceConditions | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings:    Process settings. Read from the environment when omitted.
        data_source: Override the Apple Health export source.
        transport:   Override the HTTP upload transport.
        conditions:  Override the device battery / network readings.
    """
    settings = settings or Settings()
    logger.setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logger.info(
            "Starting healthsync v%s [%s]",
            settings.app_version,
            settings.environment,
        )
        config = load_sync_config(settings.config_path, settings.cache_preset, settings.sync_preset)

        persistence = DiskPersistence(settings.cache_dir) if config.cache.persist_to_disk else None
        cache_service = CacheService(config.cache, persistence)

        upload_transport = transport
        owned_transport = None
        if upload_transport is None:
            owned_transport = HttpUploadTransport(
                settings.api_base_url,
                api_token=settings.api_token,
                device_id=settings.device_id,
                timeout=settings.upload_timeout_seconds,
            )
            upload_transport = owned_transport

        if conditions is not None:
            device_conditions = conditions
        elif settings.device_conditions == "static":
            device_conditions = StaticDeviceConditions()
        else:
            device_conditions = SystemDeviceConditions()

        source = data_source if data_source is not None else AppleHealthExportSource(settings.export_path)
        engine = SyncEngine(
            owner_id=settings.owner_id,
            data_source=source,
            transport=upload_transport,
            cache=cache_service,
            configuration=config.sync,
            conditions=device_conditions,
            tracked_metrics=config.tracked_metrics,
            default_lookback_days=config.default_lookback_days,
            on_demand_lookback_days=config.on_demand_lookback_days,
            device_model=settings.device_model,
            device_manufacturer=settings.device_manufacturer,
            auto_start=settings.automatic_sync,
        )
        app.state.cache = cache_service
        app.state.engine = engine
        app.state.source = source

        yield

        await engine.aclose()
        if owned_transport is not None:
            await owned_transport.aclose()
        logger.info("healthsync shut down")

    app = FastAPI(
        title="healthsync API",
        description=(
            "Operator API for the health metric cache and sync engine — "
            "trigger syncs, retry failed uploads, inspect and clear the cache."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS for a local operator dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (always at /health, outside the v1 prefix) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(sync.router, prefix=v1_prefix)
    app.include_router(cache.router, prefix=v1_prefix)
    app.include_router(aggregates.router, prefix=v1_prefix)

    return app


app = create_app()
