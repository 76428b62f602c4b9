from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, StringConstraints
from pydantic.alias_generators import to_camel
from datetime import date, datetime
from typing import Annotated, Dict, List, Optional

from flowboard.models import Role, TaskPriority, TaskStatus, UserRole


def _blank_to_none(value):
    # An empty or whitespace role means "revoke"
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


NonBlankStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
RoleOrRevoke = Annotated[Optional[Role], BeforeValidator(_blank_to_none)]


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PatchModel(ApiModel):
    """Partial update payload. Unknown keys are rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# User schemas
class User(ApiModel):
    id: int
    username: str
    email: str
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    contact_number: str = ""
    birth_date: Optional[date] = None
    role: UserRole
    created_at: Optional[datetime] = None


class UserUpdate(PatchModel):
    username: Optional[NonBlankStr] = None
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    contact_number: Optional[str] = None
    birth_date: Optional[date] = None
    password: Optional[str] = Field(None, min_length=8, max_length=100)
    role: Optional[UserRole] = None


# Project schemas
class ProjectCreate(PatchModel):
    name: NonBlankStr
    description: Optional[str] = None
    team_members: List[int] = Field(default_factory=list)


class ProjectUpdate(PatchModel):
    name: Optional[NonBlankStr] = None
    description: Optional[str] = None


class Project(ApiModel):
    id: int
    name: str
    description: Optional[str] = None
    created_by: int
    team_members: List[int] = Field(default_factory=list)
    permissions: Dict[str, Role] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class ProjectMember(ApiModel):
    user_id: int
    username: Optional[str] = None
    role: Optional[Role] = None


# Membership payloads
class MembersAdd(PatchModel):
    user_ids: List[int] = Field(default_factory=list)
    permissions: Dict[int, RoleOrRevoke] = Field(default_factory=dict)


class MemberRemove(PatchModel):
    member_id: int


class PermissionUpdate(PatchModel):
    user_id: int
    role: RoleOrRevoke = None


class PermissionUpdateResult(ApiModel):
    message: str
    user_id: int
    role: Optional[Role] = None


# Category schemas
class CategoryCreate(PatchModel):
    project_id: int
    category_name: NonBlankStr


class CategoryUpdate(PatchModel):
    category_name: Optional[NonBlankStr] = None


class Category(ApiModel):
    id: int
    project_id: int
    category_name: str
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


# Comment schemas
class CommentCreate(PatchModel):
    content: NonBlankStr


class Comment(ApiModel):
    author_id: int
    content: str
    created_at: datetime


# Task schemas
class TaskCreate(PatchModel):
    project_id: int
    category_id: Optional[int] = None
    title: NonBlankStr
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.medium
    status: TaskStatus = TaskStatus.todo
    assigned_to: List[int] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class TaskUpdate(PatchModel):
    project_id: Optional[int] = None
    category_id: Optional[int] = None
    title: Optional[NonBlankStr] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    assigned_to: Optional[List[int]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class Task(ApiModel):
    id: int
    project_id: int
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    title: str
    description: Optional[str] = None
    priority: TaskPriority
    status: TaskStatus
    assigned_to: List[int] = Field(default_factory=list)
    created_by: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    comments: List[Comment] = Field(default_factory=list)


class CategoryWithTasks(ApiModel):
    category: Category
    tasks: List[Task] = Field(default_factory=list)
