"""
HTTP routes for the Taskboard API.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from taskboard.auth import require_identity
from taskboard.avatars import upload_avatar
from taskboard.db import DbClient
from taskboard.dependencies import (
    get_db_client,
    get_identity_provider,
    get_storage_client,
)
from taskboard.errors import (
    InvalidCredentials,
    SignupRejected,
    TaskboardError,
)
from taskboard.identity import Identity, IdentityProvider
from taskboard.repositories import ProfileRepository, TaskRepository
from taskboard.schemas import (
    CredentialsPayload,
    HealthResponse,
    LoginResponse,
    MessageResponse,
    Priority,
    ProfileOut,
    ProfileResponse,
    ProfileUpdate,
    SignupResponse,
    SignupUser,
    TaskCreate,
    TaskOut,
    TaskUpdate,
)
from taskboard.storage import StorageClient

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
tasks_router = APIRouter(prefix="/tasks", tags=["tasks"])
avatar_router = APIRouter(prefix="/avatar", tags=["avatar"])


def _server_error(message: str, exc: Exception) -> HTTPException:
    logger.error("%s: %s", message, exc, exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message
    )


def _task_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


def task_repository(
    identity: Identity = Depends(require_identity),
    db: DbClient = Depends(get_db_client),
) -> TaskRepository:
    return TaskRepository(db, identity)


def profile_repository(
    identity: Identity = Depends(require_identity),
    db: DbClient = Depends(get_db_client),
) -> ProfileRepository:
    return ProfileRepository(db, identity)


def _require_credentials(payload: CredentialsPayload) -> tuple[str, str]:
    if not payload.email or not payload.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and password required",
        )
    return payload.email, payload.password


# -------------------- AUTH --------------------


@auth_router.post(
    "/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED
)
def signup(
    payload: CredentialsPayload,
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Create an auto-confirmed account with the identity provider."""
    email, password = _require_credentials(payload)
    try:
        identity = provider.create_user(email, password)
    except SignupRejected as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except TaskboardError as exc:
        raise _server_error("Signup failed", exc)

    return SignupResponse(
        message="Signup successful",
        user=SignupUser(id=identity.id, email=identity.email),
    )


@auth_router.post("/login", response_model=LoginResponse)
def login(
    payload: CredentialsPayload,
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Exchange email/password for the provider's access and refresh tokens."""
    email, password = _require_credentials(payload)
    try:
        session = provider.sign_in(email, password)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except TaskboardError as exc:
        raise _server_error("Login failed", exc)

    identity = session.identity
    user = {**identity.metadata, "id": identity.id, "email": identity.email}
    return LoginResponse(
        message="Login successful",
        user=user,
        accessToken=session.access_token,
        refreshToken=session.refresh_token,
    )


# -------------------- TASKS --------------------


@tasks_router.get("/health", response_model=HealthResponse)
def tasks_health():
    return HealthResponse(status="ok", message="Tasks API running")


@tasks_router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate, tasks: TaskRepository = Depends(task_repository)
):
    try:
        record = tasks.create(
            payload.title,
            description=payload.description,
            due_date=payload.due_date,
            priority=payload.priority,
        )
    except TaskboardError as exc:
        raise _server_error("Error creating task", exc)
    return TaskOut(**record.as_dict())


@tasks_router.get("", response_model=list[TaskOut])
def list_tasks(
    completed: Optional[Literal["true", "false"]] = Query(None),
    priority: Optional[Priority] = Query(None),
    tasks: TaskRepository = Depends(task_repository),
):
    """Caller's tasks, newest first. Filters combine with AND."""
    try:
        records = tasks.list_all(
            completed=None if completed is None else completed == "true",
            priority=priority,
        )
    except TaskboardError as exc:
        raise _server_error("Error fetching tasks", exc)
    return [TaskOut(**record.as_dict()) for record in records]


@tasks_router.get("/{task_id}", response_model=TaskOut)
def get_task(task_id: str, tasks: TaskRepository = Depends(task_repository)):
    try:
        record = tasks.get(task_id)
    except TaskboardError as exc:
        raise _server_error("Error fetching task", exc)
    if record is None:
        raise _task_not_found()
    return TaskOut(**record.as_dict())


@tasks_router.put("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: str,
    payload: TaskUpdate,
    tasks: TaskRepository = Depends(task_repository),
):
    try:
        record = tasks.update(task_id, payload.model_dump(exclude_unset=True))
    except TaskboardError as exc:
        raise _server_error("Error updating task", exc)
    if record is None:
        raise _task_not_found()
    return TaskOut(**record.as_dict())


@tasks_router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(task_id: str, tasks: TaskRepository = Depends(task_repository)):
    try:
        deleted = tasks.delete(task_id)
    except TaskboardError as exc:
        raise _server_error("Error deleting task", exc)
    if not deleted:
        raise _task_not_found()
    return MessageResponse(message="Task deleted successfully")


# -------------------- AVATAR / PROFILE --------------------


def _profile_response(profiles: ProfileRepository) -> ProfileResponse:
    return ProfileResponse(profile=ProfileOut(**profiles.get().as_dict()))


@avatar_router.get("/profile", response_model=ProfileResponse)
def get_profile(profiles: ProfileRepository = Depends(profile_repository)):
    try:
        profiles.ensure()
        return _profile_response(profiles)
    except TaskboardError as exc:
        raise _server_error("Failed to fetch profile", exc)


@avatar_router.put("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    profiles: ProfileRepository = Depends(profile_repository),
):
    try:
        profiles.ensure()
        profiles.update(payload.model_dump(exclude_unset=True))
        return _profile_response(profiles)
    except TaskboardError as exc:
        raise _server_error("Failed to update profile", exc)


@avatar_router.post("/upload", response_model=ProfileResponse)
def upload(
    avatar: Optional[UploadFile] = File(None),
    profiles: ProfileRepository = Depends(profile_repository),
    storage: StorageClient = Depends(get_storage_client),
):
    """
    Store the uploaded image and point the caller's profile at it.

    Runs in the threadpool; the storage and data clients block.
    """
    data = avatar.file.read() if avatar is not None else b""
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded"
        )
    try:
        record = upload_avatar(
            profiles,
            storage,
            data,
            content_type=avatar.content_type,
            original_filename=avatar.filename,
        )
    except TaskboardError as exc:
        raise _server_error("Failed to upload avatar", exc)
    return ProfileResponse(profile=ProfileOut(**record.as_dict()))
