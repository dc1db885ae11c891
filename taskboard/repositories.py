"""
Identity-scoped access to user-owned records.

Handlers never talk to a ``DbClient`` directly: they receive a repository
bound to the authenticated identity, and every query it issues carries that
identity's id as the owner condition. A record owned by someone else is
therefore reported exactly like a record that does not exist.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from taskboard.db import (
    DbClient,
    DuplicateProfile,
    ProfileRecord,
    TaskRecord,
    utcnow,
)
from taskboard.errors import DataStoreError
from taskboard.identity import Identity

logger = logging.getLogger(__name__)

TASK_UPDATABLE_FIELDS = ("title", "description", "completed", "due_date", "priority")
PROFILE_UPDATABLE_FIELDS = ("username", "location", "social", "bio")
DEFAULT_PRIORITY = "medium"


def cache_bust(url: Optional[str], stamp: int) -> Optional[str]:
    """Append a ``t=<stamp>`` query parameter so clients refetch the image."""
    if not url:
        return None
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}t={stamp}"


class TaskRepository:
    def __init__(self, db: DbClient, identity: Identity):
        self._db = db
        self.owner_id = identity.id

    def create(
        self,
        title: str,
        *,
        description: Optional[str] = None,
        due_date: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> TaskRecord:
        return self._db.insert_task(
            self.owner_id,
            {
                "title": title,
                "description": description,
                "due_date": due_date or None,
                "priority": priority or DEFAULT_PRIORITY,
            },
        )

    def list_all(
        self, *, completed: Optional[bool] = None, priority: Optional[str] = None
    ) -> list[TaskRecord]:
        return self._db.list_tasks(
            self.owner_id, completed=completed, priority=priority
        )

    def get(self, task_id: str) -> Optional[TaskRecord]:
        return self._db.get_task(self.owner_id, task_id)

    def update(self, task_id: str, changes: dict) -> Optional[TaskRecord]:
        """
        Apply allow-listed ``changes``; anything else is dropped. The
        ``updated_at`` stamp is always written, so an update carrying no
        recognised field still touches the record.
        """
        updates = {k: v for k, v in changes.items() if k in TASK_UPDATABLE_FIELDS}
        updates["updated_at"] = utcnow()
        return self._db.update_task(self.owner_id, task_id, updates)

    def delete(self, task_id: str) -> bool:
        return self._db.delete_task(self.owner_id, task_id)


class ProfileRepository:
    """The authenticated identity's own profile row."""

    def __init__(
        self,
        db: DbClient,
        identity: Identity,
        clock: Callable[[], int] = time.time_ns,
    ):
        self._db = db
        self._identity = identity
        self._clock = clock

    @property
    def profile_id(self) -> str:
        return self._identity.id

    def ensure(self) -> None:
        """Create the profile row on first use; safe to call on every request."""
        if self._db.get_profile(self.profile_id) is not None:
            return
        try:
            self._db.insert_profile(self.profile_id, self._identity.email)
            logger.info("Provisioned profile for %s", self.profile_id)
        except DuplicateProfile:
            # Lost a race with a concurrent first request.
            logger.info("Profile for %s already provisioned", self.profile_id)

    def get(self) -> ProfileRecord:
        """Return the profile with a cache-busted ``avatar_url``."""
        record = self._db.get_profile(self.profile_id)
        if record is None:
            raise DataStoreError(f"Profile {self.profile_id} not found")
        return replace(
            record, avatar_url=cache_bust(record.avatar_url, self._clock())
        )

    def update(self, changes: dict) -> None:
        updates = {k: v for k, v in changes.items() if k in PROFILE_UPDATABLE_FIELDS}
        if updates:
            self._db.update_profile(self.profile_id, updates)

    def set_avatar_url(self, url: str) -> None:
        self._db.update_profile(self.profile_id, {"avatar_url": url})
