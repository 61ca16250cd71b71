"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from healthsync.cache.service import CacheService
from healthsync.config import Settings
from healthsync.sources import DataSource
from healthsync.sync.engine import SyncEngine


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_engine(request: Request) -> SyncEngine:
    """Return the SyncEngine built by the application lifespan."""
    return request.app.state.engine


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


def get_source(request: Request) -> DataSource:
    return request.app.state.source


# Annotated shortcuts for route signatures
AppSettings = Annotated[Settings, Depends(get_settings)]
Engine = Annotated[SyncEngine, Depends(get_engine)]
Cache = Annotated[CacheService, Depends(get_cache)]
Source = Annotated[DataSource, Depends(get_source)]
