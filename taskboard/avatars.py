"""
Avatar upload: store the image, point the profile at it, return the profile.

The steps span two services with no shared transaction. If anything after
the blob upload fails, the blob is removed again before the error is
re-raised so no unreferenced object is left behind.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Callable

from taskboard.db import ProfileRecord
from taskboard.errors import StorageError
from taskboard.repositories import ProfileRepository
from taskboard.storage import StorageClient

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def avatar_path(
    owner_id: str, original_filename: str | None, now_ms: int
) -> str:
    """``<owner id>/<epoch ms>.<original extension>``."""
    _, ext = os.path.splitext(original_filename or "")
    ext = ext.lstrip(".").lower()
    name = f"{now_ms}.{ext}" if ext else str(now_ms)
    return f"{owner_id}/{name}"


def upload_avatar(
    profiles: ProfileRepository,
    storage: StorageClient,
    data: bytes,
    *,
    content_type: str | None,
    original_filename: str | None,
    clock: Callable[[], float] = time.time,
) -> ProfileRecord:
    profiles.ensure()

    path = avatar_path(profiles.profile_id, original_filename, int(clock() * 1000))
    storage.upload_bytes(path, data, content_type or DEFAULT_CONTENT_TYPE, upsert=True)

    try:
        public_url = storage.public_url(path)
        profiles.set_avatar_url(public_url)
    except Exception:
        _discard(storage, path)
        raise

    logger.info("Stored avatar for %s at %s", profiles.profile_id, path)
    return profiles.get()


def _discard(storage: StorageClient, path: str) -> None:
    try:
        storage.remove(path)
    except StorageError as exc:
        logger.error("Could not remove orphaned avatar %s: %s", path, exc)
    else:
        logger.warning("Removed orphaned avatar %s after failed upload", path)
