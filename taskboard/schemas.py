"""
Pydantic schemas for the Taskboard API.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Priority = Literal["low", "medium", "high"]


class CredentialsPayload(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SignupUser(BaseModel):
    id: str
    email: Optional[str] = None


class SignupResponse(BaseModel):
    message: str
    user: SignupUser


class LoginResponse(BaseModel):
    message: str
    user: dict
    accessToken: Optional[str] = None
    refreshToken: Optional[str] = None


class TaskCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    description: Optional[str] = None
    due_date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("dueDate", "due_date")
    )
    priority: Optional[Priority] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Title is required")
        return value


class TaskUpdate(BaseModel):
    """Partial update; fields outside the allow-list are ignored."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    due_date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("due_date", "dueDate")
    )
    priority: Optional[Priority] = None

    @field_validator("title", "completed", "priority")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Title cannot be empty")
        return value


class TaskOut(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    priority: str
    completed: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
    message: str


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: Optional[str] = None
    location: Optional[str] = None
    social: Any = None
    bio: Optional[str] = None


class ProfileOut(BaseModel):
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    social: Any = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfileResponse(BaseModel):
    profile: ProfileOut
