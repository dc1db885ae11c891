"""
Database abstraction for Supabase (PostgREST), direct Postgres and an
in-memory test implementation.

Every task method takes the owning user id alongside the task id; callers
reach these through ``taskboard.repositories`` which binds the owner id to
the authenticated identity.
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from supabase import Client, PostgrestAPIError

from taskboard.errors import DataStoreError

TASKS_TABLE = "tasks"
PROFILES_TABLE = "profiles"
PROFILE_COLUMNS = "id, username, email, location, social, bio, avatar_url"

# Postgres error codes surfaced by PostgREST.
INVALID_TEXT_REPRESENTATION = "22P02"
UNIQUE_VIOLATION = "23505"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


class DuplicateProfile(DataStoreError):
    """A profile row with this id already exists."""


class DbClient(Protocol):
    """Interface for database access."""

    def insert_task(self, owner_id: str, values: dict) -> "TaskRecord":
        ...

    def list_tasks(
        self,
        owner_id: str,
        *,
        completed: Optional[bool] = None,
        priority: Optional[str] = None,
    ) -> list["TaskRecord"]:
        ...

    def get_task(self, owner_id: str, task_id: str) -> Optional["TaskRecord"]:
        ...

    def update_task(
        self, owner_id: str, task_id: str, updates: dict
    ) -> Optional["TaskRecord"]:
        ...

    def delete_task(self, owner_id: str, task_id: str) -> bool:
        ...

    def get_profile(self, profile_id: str) -> Optional["ProfileRecord"]:
        ...

    def insert_profile(self, profile_id: str, email: Optional[str]) -> None:
        ...

    def update_profile(self, profile_id: str, updates: dict) -> None:
        ...


@dataclass
class TaskRecord:
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    priority: str = "medium"
    completed: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "TaskRecord":
        known = {f.name for f in fields(cls)}
        values = {k: _iso(v) for k, v in row.items() if k in known}
        values["id"] = str(values["id"])
        return cls(**values)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "due_date": self.due_date,
            "priority": self.priority,
            "completed": self.completed,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class ProfileRecord:
    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    location: Optional[str] = None
    social: Any = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "ProfileRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "location": self.location,
            "social": self.social,
            "bio": self.bio,
            "avatar_url": self.avatar_url,
        }


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.tasks: Dict[str, TaskRecord] = {}
        self.profiles: Dict[str, ProfileRecord] = {}
        self._order: Dict[str, int] = {}
        self._seq = itertools.count()

    def insert_task(self, owner_id: str, values: dict) -> TaskRecord:
        now = utcnow().isoformat()
        record = TaskRecord(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            created_at=now,
            updated_at=now,
            **values,
        )
        self.tasks[record.id] = record
        self._order[record.id] = next(self._seq)
        return record

    def list_tasks(
        self,
        owner_id: str,
        *,
        completed: Optional[bool] = None,
        priority: Optional[str] = None,
    ) -> list[TaskRecord]:
        items = [
            task
            for task in self.tasks.values()
            if task.user_id == owner_id
            and (completed is None or task.completed == completed)
            and (priority is None or task.priority == priority)
        ]
        items.sort(key=lambda t: (t.created_at, self._order[t.id]), reverse=True)
        return items

    def get_task(self, owner_id: str, task_id: str) -> Optional[TaskRecord]:
        task = self.tasks.get(task_id)
        if task is None or task.user_id != owner_id:
            return None
        return task

    def update_task(
        self, owner_id: str, task_id: str, updates: dict
    ) -> Optional[TaskRecord]:
        task = self.get_task(owner_id, task_id)
        if task is None:
            return None
        for key, value in updates.items():
            setattr(task, key, _iso(value))
        return task

    def delete_task(self, owner_id: str, task_id: str) -> bool:
        if self.get_task(owner_id, task_id) is None:
            return False
        del self.tasks[task_id]
        self._order.pop(task_id, None)
        return True

    def get_profile(self, profile_id: str) -> Optional[ProfileRecord]:
        return self.profiles.get(profile_id)

    def insert_profile(self, profile_id: str, email: Optional[str]) -> None:
        if profile_id in self.profiles:
            raise DuplicateProfile(
                f"Profile {profile_id} already exists", code=UNIQUE_VIOLATION
            )
        self.profiles[profile_id] = ProfileRecord(id=profile_id, email=email)

    def update_profile(self, profile_id: str, updates: dict) -> None:
        profile = self.profiles.get(profile_id)
        if profile is None:
            return
        for key, value in updates.items():
            setattr(profile, key, value)


class SupabaseDbClient:
    """
    PostgREST-backed implementation using the service-role Supabase client.
    """

    def __init__(self, client: Client):
        self._client = client

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except PostgrestAPIError as exc:
            raise DataStoreError(f"{action}: {exc.message}", code=exc.code) from exc
        except httpx.HTTPError as exc:
            raise DataStoreError(f"{action}: {exc}") from exc

    def _execute_single(self, query, action: str) -> list:
        # A malformed id can never match a row; report it as absent.
        try:
            return self._execute(query, action).data or []
        except DataStoreError as exc:
            if exc.code == INVALID_TEXT_REPRESENTATION:
                return []
            raise

    def insert_task(self, owner_id: str, values: dict) -> TaskRecord:
        row = dict(values, user_id=owner_id)
        response = self._execute(
            self._client.table(TASKS_TABLE).insert(row), "insert task"
        )
        if not response.data:
            raise DataStoreError("insert task: no row returned")
        return TaskRecord.from_row(response.data[0])

    def list_tasks(
        self,
        owner_id: str,
        *,
        completed: Optional[bool] = None,
        priority: Optional[str] = None,
    ) -> list[TaskRecord]:
        query = (
            self._client.table(TASKS_TABLE)
            .select("*")
            .eq("user_id", owner_id)
            .order("created_at", desc=True)
        )
        if completed is not None:
            query = query.eq("completed", completed)
        if priority is not None:
            query = query.eq("priority", priority)
        response = self._execute(query, "list tasks")
        return [TaskRecord.from_row(row) for row in response.data or []]

    def get_task(self, owner_id: str, task_id: str) -> Optional[TaskRecord]:
        query = (
            self._client.table(TASKS_TABLE)
            .select("*")
            .eq("id", task_id)
            .eq("user_id", owner_id)
            .limit(1)
        )
        rows = self._execute_single(query, "get task")
        return TaskRecord.from_row(rows[0]) if rows else None

    def update_task(
        self, owner_id: str, task_id: str, updates: dict
    ) -> Optional[TaskRecord]:
        payload = {key: _iso(value) for key, value in updates.items()}
        query = (
            self._client.table(TASKS_TABLE)
            .update(payload)
            .eq("id", task_id)
            .eq("user_id", owner_id)
        )
        rows = self._execute_single(query, "update task")
        return TaskRecord.from_row(rows[0]) if rows else None

    def delete_task(self, owner_id: str, task_id: str) -> bool:
        query = (
            self._client.table(TASKS_TABLE)
            .delete()
            .eq("id", task_id)
            .eq("user_id", owner_id)
        )
        return bool(self._execute_single(query, "delete task"))

    def get_profile(self, profile_id: str) -> Optional[ProfileRecord]:
        query = (
            self._client.table(PROFILES_TABLE)
            .select(PROFILE_COLUMNS)
            .eq("id", profile_id)
            .limit(1)
        )
        rows = self._execute(query, "get profile").data or []
        return ProfileRecord.from_row(rows[0]) if rows else None

    def insert_profile(self, profile_id: str, email: Optional[str]) -> None:
        try:
            self._execute(
                self._client.table(PROFILES_TABLE).insert(
                    {"id": profile_id, "email": email}
                ),
                "insert profile",
            )
        except DataStoreError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise DuplicateProfile(str(exc), code=exc.code) from exc
            raise

    def update_profile(self, profile_id: str, updates: dict) -> None:
        self._execute(
            self._client.table(PROFILES_TABLE).update(updates).eq("id", profile_id),
            "update profile",
        )


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation talking to the project's Postgres
    directly. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, *, timeout_seconds: float | None = None):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        connect_args = {}
        if timeout_seconds and database_url.startswith("postgresql"):
            connect_args["connect_timeout"] = int(timeout_seconds)
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
            connect_args=connect_args,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _task_record(self, row: "TaskRow") -> TaskRecord:
        return TaskRecord(
            id=row.id,
            user_id=row.user_id,
            title=row.title,
            description=row.description,
            due_date=row.due_date,
            priority=row.priority,
            completed=row.completed,
            created_at=_iso(row.created_at),
            updated_at=_iso(row.updated_at),
        )

    def _profile_record(self, row: "ProfileRow") -> ProfileRecord:
        return ProfileRecord(
            id=row.id,
            email=row.email,
            username=row.username,
            location=row.location,
            social=row.social,
            bio=row.bio,
            avatar_url=row.avatar_url,
        )

    def _owned_task(self, session: Session, owner_id: str, task_id: str):
        stmt = select(TaskRow).where(
            TaskRow.id == task_id, TaskRow.user_id == owner_id
        )
        return session.execute(stmt).scalar_one_or_none()

    def insert_task(self, owner_id: str, values: dict) -> TaskRecord:
        now = utcnow()
        try:
            with self.Session() as session:
                row = TaskRow(
                    id=str(uuid.uuid4()),
                    user_id=owner_id,
                    created_at=now,
                    updated_at=now,
                    **values,
                )
                session.add(row)
                session.commit()
                session.refresh(row)
                return self._task_record(row)
        except SQLAlchemyError as exc:
            raise DataStoreError(f"insert task: {exc}") from exc

    def list_tasks(
        self,
        owner_id: str,
        *,
        completed: Optional[bool] = None,
        priority: Optional[str] = None,
    ) -> list[TaskRecord]:
        stmt = select(TaskRow).where(TaskRow.user_id == owner_id)
        if completed is not None:
            stmt = stmt.where(TaskRow.completed == completed)
        if priority is not None:
            stmt = stmt.where(TaskRow.priority == priority)
        stmt = stmt.order_by(TaskRow.created_at.desc())
        try:
            with self.Session() as session:
                rows = session.execute(stmt).scalars().all()
                return [self._task_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise DataStoreError(f"list tasks: {exc}") from exc

    def get_task(self, owner_id: str, task_id: str) -> Optional[TaskRecord]:
        try:
            with self.Session() as session:
                row = self._owned_task(session, owner_id, task_id)
                return self._task_record(row) if row else None
        except SQLAlchemyError as exc:
            raise DataStoreError(f"get task: {exc}") from exc

    def update_task(
        self, owner_id: str, task_id: str, updates: dict
    ) -> Optional[TaskRecord]:
        try:
            with self.Session() as session:
                row = self._owned_task(session, owner_id, task_id)
                if not row:
                    return None
                for key, value in updates.items():
                    setattr(row, key, value)
                session.commit()
                session.refresh(row)
                return self._task_record(row)
        except SQLAlchemyError as exc:
            raise DataStoreError(f"update task: {exc}") from exc

    def delete_task(self, owner_id: str, task_id: str) -> bool:
        try:
            with self.Session() as session:
                row = self._owned_task(session, owner_id, task_id)
                if not row:
                    return False
                session.delete(row)
                session.commit()
                return True
        except SQLAlchemyError as exc:
            raise DataStoreError(f"delete task: {exc}") from exc

    def get_profile(self, profile_id: str) -> Optional[ProfileRecord]:
        try:
            with self.Session() as session:
                row = session.get(ProfileRow, profile_id)
                return self._profile_record(row) if row else None
        except SQLAlchemyError as exc:
            raise DataStoreError(f"get profile: {exc}") from exc

    def insert_profile(self, profile_id: str, email: Optional[str]) -> None:
        try:
            with self.Session() as session:
                session.add(ProfileRow(id=profile_id, email=email))
                session.commit()
        except IntegrityError as exc:
            raise DuplicateProfile(
                f"Profile {profile_id} already exists", code=UNIQUE_VIOLATION
            ) from exc
        except SQLAlchemyError as exc:
            raise DataStoreError(f"insert profile: {exc}") from exc

    def update_profile(self, profile_id: str, updates: dict) -> None:
        try:
            with self.Session() as session:
                row = session.get(ProfileRow, profile_id)
                if not row:
                    return
                for key, value in updates.items():
                    setattr(row, key, value)
                session.commit()
        except SQLAlchemyError as exc:
            raise DataStoreError(f"update profile: {exc}") from exc


Base = declarative_base()


class TaskRow(Base):
    __tablename__ = TASKS_TABLE

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(String, nullable=True)
    priority = Column(String, nullable=False, default="medium")
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ProfileRow(Base):
    __tablename__ = PROFILES_TABLE

    id = Column(String, primary_key=True)
    username = Column(String, nullable=True)
    email = Column(String, nullable=True)
    location = Column(String, nullable=True)
    social = Column(JSON, nullable=True)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String, nullable=True)
