from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Date, Enum, JSON
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB
import enum
from typing import Optional

from flowboard.database import Base

# Embedded collections live in JSON columns; one row UPDATE rewrites them atomically
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Role(str, enum.Enum):
    """Per-project role. Ordered Viewer < Editor < Owner."""

    Viewer = "Viewer"
    Editor = "Editor"
    Owner = "Owner"

    @property
    def rank(self) -> int:
        return _ROLE_RANKS[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= other.rank


_ROLE_RANKS = {Role.Viewer: 0, Role.Editor: 1, Role.Owner: 2}


class UserRole(str, enum.Enum):
    user = "user"
    admin = "admin"


class TaskPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class TaskStatus(str, enum.Enum):
    todo = "todo"
    in_progress = "in_progress"
    done = "done"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False, default="")
    middle_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    contact_number = Column(String(50), nullable=False, default="")
    birth_date = Column(Date, nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.user)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    team_members = Column(JSONDocument, nullable=False, default=list)
    # {str(user_id): Role value}
    permissions = Column(JSONDocument, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def role_of(self, user_id: int) -> Optional[Role]:
        value = (self.permissions or {}).get(str(user_id))
        try:
            return Role(value) if value else None
        except ValueError:
            return None

    def has_member(self, user_id: int) -> bool:
        return user_id in (self.team_members or [])


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    # Plain id, not a foreign key: project deletion does not cascade
    project_id = Column(Integer, nullable=False, index=True)
    category_name = Column(String(255), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    # Project and category references are plain ids checked on write, so
    # deleting a project leaves its tasks in place
    project_id = Column(Integer, nullable=False, index=True)
    category_id = Column(Integer, nullable=True, index=True)
    category_name = Column(String(255), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    priority = Column(Enum(TaskPriority, name="task_priority"), nullable=False, default=TaskPriority.medium)
    status = Column(Enum(TaskStatus, name="task_status"), nullable=False, default=TaskStatus.todo)
    assigned_to = Column(JSONDocument, nullable=False, default=list)
    created_by = Column(Integer, ForeignKey("users.id"))
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Append-only list of {"author_id", "content", "created_at"} (ISO string)
    comments = Column(JSONDocument, nullable=False, default=list)
