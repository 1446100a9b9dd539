"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends, Request

from eventboard.config import Settings, get_settings
from eventboard.db import DbClient, SqlDbClient
from eventboard.storage import (
    InMemoryStorageClient,
    LocalStorageClient,
    SpacesStorageClient,
    StorageClient,
)

IN_MEMORY_DATABASE_URL = "sqlite+pysqlite:///:memory:"


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was created with."""
    settings = getattr(request.app.state, "settings", None)
    return settings or get_settings()


def build_db_client(settings: Settings) -> DbClient:
    database_url = (
        IN_MEMORY_DATABASE_URL
        if settings.use_in_memory_backends
        else settings.database_url
    )
    return SqlDbClient(database_url, default_auto_reply=settings.default_auto_reply)


def build_storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends:
        return InMemoryStorageClient()
    if settings.use_spaces:
        if not settings.spaces_bucket or not settings.spaces_endpoint:
            raise RuntimeError("USE_SPACES requires SPACES_BUCKET and SPACES_ENDPOINT")
        return SpacesStorageClient(
            bucket=settings.spaces_bucket,
            region=settings.spaces_region,
            endpoint=settings.spaces_endpoint,
            access_key_id=settings.spaces_access_key or "",
            secret_access_key=settings.spaces_secret_key or "",
        )
    return LocalStorageClient(
        root=settings.upload_dir,
        public_base_url=settings.public_base_url,
    )


def get_db_client(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> DbClient:
    """
    Return the app's DB client so every request shares one engine. It is built
    on first use from the same settings the routes see.
    """
    client = getattr(request.app.state, "db_client", None)
    if client is None:
        client = build_db_client(settings)
        request.app.state.db_client = client
    return client


def get_storage_client(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> StorageClient:
    client = getattr(request.app.state, "storage_client", None)
    if client is None:
        client = build_storage_client(settings)
        request.app.state.storage_client = client
    return client
