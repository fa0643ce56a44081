from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from models import MemberRole, TaskPriority, TaskStatus
from positions import MAX_POSITION, MIN_POSITION
from time_utils import ensure_utc, is_overdue

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """JSON field names are camelCase; snake_case names are accepted on input too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Document(CamelModel):
    """Stored document: identity and creation time are exposed as $id / $createdAt."""

    id: str = Field(validation_alias=AliasChoices("$id", "id"), serialization_alias="$id")
    created_at: datetime = Field(
        validation_alias=AliasChoices("$createdAt", "createdAt", "created_at"),
        serialization_alias="$createdAt",
    )

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# Envelopes
class DataResponse(BaseModel, Generic[DataT]):
    data: DataT


class DocumentList(BaseModel, Generic[DataT]):
    total: int
    documents: List[DataT]


class DeletedDocument(BaseModel):
    id: str = Field(validation_alias=AliasChoices("$id", "id"), serialization_alias="$id")

    model_config = ConfigDict(populate_by_name=True)


# User schemas
class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8, max_length=128)


class User(Document):
    name: str
    email: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# Workspace schemas
class Workspace(Document):
    name: str
    user_id: Optional[str] = None
    image_url: Optional[str] = None
    invite_code: str


class WorkspaceInfo(CamelModel):
    """Public view shown on the join page."""

    id: str = Field(validation_alias=AliasChoices("$id", "id"), serialization_alias="$id")
    name: str
    image_url: Optional[str] = None


class JoinWorkspace(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


# Member schemas
class Member(Document):
    workspace_id: str
    user_id: str
    role: MemberRole
    name: str
    email: str


class MemberUpdate(BaseModel):
    role: MemberRole


# Project schemas
class Project(Document):
    workspace_id: str
    name: str
    image_url: Optional[str] = None


# Comment schemas
class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment cannot be empty")
        return value


class Comment(Document):
    workspace_id: str
    task_id: str
    user_id: Optional[str] = None
    user_name: str
    text: str


# Task schemas
class TaskCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    status: TaskStatus
    priority: TaskPriority
    workspace_id: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    due_date: datetime
    assignee_id: str = Field(..., min_length=1)
    description: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def _due_date_utc(cls, value: datetime) -> datetime:
        # Stored without offset, so everything is normalized to UTC first
        return ensure_utc(value)


class TaskUpdate(CamelModel):
    """Partial update; the workspace of a task never changes."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    project_id: Optional[str] = Field(None, min_length=1)
    due_date: Optional[datetime] = None
    assignee_id: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None

    @field_validator("name", "status", "priority", "project_id", "due_date", "assignee_id")
    @classmethod
    def _not_null(cls, value):
        # Only called for fields present in the body
        if value is None:
            raise ValueError("Field cannot be null")
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


class Task(Document):
    name: str
    status: TaskStatus
    priority: TaskPriority
    workspace_id: str
    project_id: str
    assignee_id: Optional[str] = None
    position: int
    due_date: Optional[datetime] = None
    description: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def _due_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @computed_field
    @property
    def is_overdue(self) -> bool:
        return is_overdue(self.due_date, self.status)


class TaskDocument(Task):
    """Task joined with its project and assignee."""

    project: Optional[Project] = None
    assignee: Optional[Member] = None


class TaskDetail(TaskDocument):
    comments: List[Comment] = Field(default_factory=list)


class BulkTaskItem(BaseModel):
    id: str = Field(..., min_length=1, validation_alias=AliasChoices("$id", "id"))
    status: TaskStatus
    # strict: 1000.0 or "1000" are rejected, only JSON integers pass
    position: int = Field(..., strict=True, ge=MIN_POSITION, le=MAX_POSITION)


class BulkTaskUpdate(BaseModel):
    tasks: List[BulkTaskItem]


# Analytics schemas
class MetricDelta(CamelModel):
    count: int
    difference: int


class Analytics(CamelModel):
    task_count: MetricDelta
    assigned_task_count: MetricDelta
    incomplete_task_count: MetricDelta
    completed_task_count: MetricDelta
    overdue_task_count: MetricDelta
