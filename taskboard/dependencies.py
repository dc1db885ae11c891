"""
Dependency wiring for the FastAPI app.

External clients are built once by ``build_services`` when the app is
created and stored on ``app.state.services``; request handlers reach them
only through the providers below, so tests can hand ``create_app`` a
``Services`` made of in-memory fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial

import httpx
from fastapi import Depends, Request
from supabase import Client, ClientOptions, create_client

from taskboard.config import Settings
from taskboard.db import (
    DbClient,
    InMemoryDbClient,
    PostgresDbClient,
    SupabaseDbClient,
)
from taskboard.identity import (
    IdentityProvider,
    InMemoryIdentityProvider,
    SupabaseIdentityProvider,
)
from taskboard.storage import (
    InMemoryStorageClient,
    S3StorageClient,
    StorageClient,
    SupabaseStorageClient,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    identity: IdentityProvider
    db: DbClient
    storage: StorageClient


def in_memory_services() -> Services:
    return Services(
        identity=InMemoryIdentityProvider(),
        db=InMemoryDbClient(),
        storage=InMemoryStorageClient(),
    )


def build_services(settings: Settings) -> Services:
    """Construct the external clients for the configured backends."""
    if settings.use_in_memory_backends:
        logger.warning("Using in-memory backends; nothing will be persisted")
        return in_memory_services()

    service_client = create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
        ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
            postgrest_client_timeout=settings.upstream_timeout_seconds,
            storage_client_timeout=settings.upstream_timeout_seconds,
        ),
    )

    if settings.database_url:
        db: DbClient = PostgresDbClient(
            settings.database_url, timeout_seconds=settings.upstream_timeout_seconds
        )
    else:
        db = SupabaseDbClient(service_client)

    if settings.storage_backend == "s3":
        storage: StorageClient = S3StorageClient(
            bucket=settings.avatar_bucket,
            endpoint=settings.s3_endpoint,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            public_base_url=settings.avatar_public_base_url,
            region=settings.s3_region or "",
            timeout_seconds=settings.upstream_timeout_seconds,
        )
    else:
        storage = SupabaseStorageClient(service_client, settings.avatar_bucket)

    # Auth-only clients share one pooled HTTP client carrying the timeout.
    auth_http = httpx.Client(timeout=settings.upstream_timeout_seconds)

    def auth_client(key: str) -> Client:
        return create_client(
            settings.supabase_url,
            key,
            ClientOptions(
                auto_refresh_token=False,
                persist_session=False,
                httpx_client=auth_http,
            ),
        )

    return Services(
        identity=SupabaseIdentityProvider(
            auth_client(settings.supabase_service_role_key),
            partial(auth_client, settings.supabase_anon_key),
        ),
        db=db,
        storage=storage,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_identity_provider(
    services: Services = Depends(get_services),
) -> IdentityProvider:
    return services.identity


def get_db_client(services: Services = Depends(get_services)) -> DbClient:
    return services.db


def get_storage_client(services: Services = Depends(get_services)) -> StorageClient:
    return services.storage
