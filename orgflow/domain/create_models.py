"""Pydantic models for creating records in database."""

import re
from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from orgflow.domain.task import TaskPriority
from orgflow.domain.user import MAX_NAME_LENGTH, UserRole


# Roles that onboarding may grant; executive tiers are provisioned out of band
ONBOARDABLE_ROLES = frozenset({UserRole.EMPLOYEE, UserRole.LEAD})


def _now_utc() -> datetime:
    return datetime.now(UTC)


class TaskCreate(BaseModel):
    """Pydantic model for creating a draft task."""

    creator_id: str = Field(..., description="Manager creating the task")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    due_date: datetime | None = Field(default=None, description="Task due date")
    department: str | None = Field(default=None, description="Optional department tag")
    created_at: datetime = Field(default_factory=_now_utc, description="Creation timestamp")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate title is not blank."""
        v = v.strip()
        if not v:
            msg = "Task title cannot be empty"
            raise ValueError(msg)
        return v


class ModuleCreate(BaseModel):
    """Pydantic model for adding a module to a draft task."""

    title: str = Field(..., description="Module title")
    description: str = Field(default="", description="Detailed module description")
    due_date: datetime | None = Field(default=None, description="Module due date")
    assignee_ids: list[str] = Field(..., description="Assigned user IDs")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate title is not blank."""
        v = v.strip()
        if not v:
            msg = "Module title cannot be empty"
            raise ValueError(msg)
        return v

    @field_validator("assignee_ids")
    @classmethod
    def validate_assignees(cls, v: list[str]) -> list[str]:
        """Validate at least one assignee and drop duplicates (order kept)."""
        unique = list(dict.fromkeys(assignee for assignee in v if assignee))
        if not unique:
            msg = "A module needs at least one assignee"
            raise ValueError(msg)
        return unique


class UserOnboard(BaseModel):
    """Pydantic model for onboarding a new member."""

    name: str = Field(..., description="Display name of the user")
    email: str = Field(..., description="Email address")
    role: UserRole = Field(default=UserRole.EMPLOYEE, description="Role granted on onboarding")
    department: str | None = Field(default=None, description="Optional department tag")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is non-empty and within length limits."""
        v = v.strip()
        if not v:
            msg = "Name cannot be empty"
            raise ValueError(msg)
        if len(v) > MAX_NAME_LENGTH:
            msg = f"Name too long (max {MAX_NAME_LENGTH} characters)"
            raise ValueError(msg)
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate email has a plausible address shape."""
        v = v.strip().lower()
        if not re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", v):
            msg = "Invalid email address"
            raise ValueError(msg)
        return v

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: UserRole) -> UserRole:
        """Only contributors and leads can be onboarded."""
        if v not in ONBOARDABLE_ROLES:
            msg = "Role must be 'employee' or 'lead'"
            raise ValueError(msg)
        return v
