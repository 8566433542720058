"""
API request and response models for taskauth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
categories/models.py and tasks/models.py, which own the internal domain
representation. Route handlers map between the two.

Wire format is camelCase (accessToken, deviceLabel, createdAt, ...). Models
declare snake_case fields with camelCase aliases; populate_by_name lets
tests and handlers construct them with either spelling.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

# bcrypt accepts at most 72 bytes of input.
_BCRYPT_MAX_BYTES = 72


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PlatformEnum(str, Enum):
    WEB = "WEB"
    MOBILE = "MOBILE"


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    """Request body for POST /auth/register."""

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=_BCRYPT_MAX_BYTES)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return str(value).strip().lower()

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise ValueError(f"password must be at most {_BCRYPT_MAX_BYTES} bytes")
        return value


class LoginRequest(_CamelModel):
    """Request body for POST /auth/login."""

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    platform: PlatformEnum
    device_label: Optional[str] = Field(default=None, max_length=255)


class RefreshRequest(_CamelModel):
    """Request body for POST /auth/refresh."""

    refresh_token: str = Field(min_length=1)


class LogoutDeviceRequest(_CamelModel):
    """Request body for POST /auth/logout-device."""

    jti: str = Field(min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class RegisterResponse(_CamelResponse):
    id: str
    email: str
    created_at: str


class UserSummary(_CamelResponse):
    id: str
    email: str


class LoginResponse(_CamelResponse):
    access_token: str
    refresh_token: str
    user: UserSummary


class TokenPairResponse(_CamelResponse):
    access_token: str
    refresh_token: str


class MessageResponse(_CamelResponse):
    message: str


class SessionResponse(_CamelResponse):
    """One active session as listed by GET /auth/sessions. No hashes."""

    jti: str
    platform: str
    device_label: Optional[str]
    user_agent: Optional[str]
    ip: Optional[str]
    created_at: str
    last_used_at: str
    expires_at: str
    current: bool


class MeResponse(_CamelResponse):
    """GET /users/me. Never includes the password hash or token_version."""

    id: str
    email: str
    created_at: str
    updated_at: str


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class CategoryCreate(_CamelModel):
    """Request body for POST /categories."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    color: str = Field(pattern=COLOR_PATTERN)
    description: Optional[str] = None


class CategoryUpdate(_CamelModel):
    """Request body for PATCH /categories/{id}.

    Omitted fields are unchanged. An explicit null clears description and is
    rejected for name and color.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    description: Optional[str] = None

    @field_validator("name", "color")
    @classmethod
    def not_null(cls, value: Optional[str]) -> str:
        # Runs only for values present in the body, so null here was explicit.
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class CategoryResponse(_CamelResponse):
    id: str
    name: str
    color: str
    description: Optional[str]
    user_id: str
    created_at: str
    updated_at: str


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskStatusEnum(str, Enum):
    PENDIENTE = "PENDIENTE"
    EN_PROGRESO = "EN_PROGRESO"
    COMPLETADA = "COMPLETADA"
    CANCELADA = "CANCELADA"


class TaskPriorityEnum(str, Enum):
    BAJA = "BAJA"
    MEDIA = "MEDIA"
    ALTA = "ALTA"
    URGENTE = "URGENTE"


class TaskCreate(_CamelModel):
    """Request body for POST /tasks."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    status: TaskStatusEnum = TaskStatusEnum.PENDIENTE
    priority: TaskPriorityEnum = TaskPriorityEnum.MEDIA
    due_date: Optional[datetime] = None
    estimated_time: Optional[int] = Field(default=None, ge=0)
    actual_time: Optional[int] = Field(default=None, ge=0)
    tags: list[str] = Field(default_factory=list)
    category_id: Optional[str] = Field(default=None, pattern=UUID_PATTERN)


class TaskUpdate(_CamelModel):
    """Request body for PATCH /tasks/{id}.

    Omitted fields are unchanged. Explicit null clears a nullable field and
    is rejected for title, status, priority and tags.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatusEnum] = None
    priority: Optional[TaskPriorityEnum] = None
    due_date: Optional[datetime] = None
    estimated_time: Optional[int] = Field(default=None, ge=0)
    actual_time: Optional[int] = Field(default=None, ge=0)
    tags: Optional[list[str]] = None
    category_id: Optional[str] = Field(default=None, pattern=UUID_PATTERN)

    @field_validator("title", "status", "priority", "tags")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class TaskStatusUpdate(_CamelModel):
    """Request body for PATCH /tasks/{id}/status."""

    status: TaskStatusEnum


class TaskCategoryResponse(_CamelResponse):
    id: str
    name: str
    color: str


class TaskResponse(_CamelResponse):
    id: str
    title: str
    description: Optional[str]
    status: TaskStatusEnum
    priority: TaskPriorityEnum
    due_date: Optional[str]
    estimated_time: Optional[int]
    actual_time: Optional[int]
    tags: list[str]
    user_id: str
    category: Optional[TaskCategoryResponse]
    created_at: str
    updated_at: str


class PaginatedTasksResponse(_CamelResponse):
    data: list[TaskResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class CategoryCountResponse(_CamelResponse):
    category_id: Optional[str]
    category_name: Optional[str]
    count: int


class TaskStatsResponse(_CamelResponse):
    """GET /tasks/stats. byStatus/byPriority are keyed by enum value."""

    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
    by_category: list[CategoryCountResponse]
    completion_rate: float
    average_completion_time: Optional[float]


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
