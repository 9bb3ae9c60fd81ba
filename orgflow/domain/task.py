"""Task and module domain models and enums."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(StrEnum):
    """Task lifecycle status (derived from module statuses once published)."""

    DRAFT = "draft"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ModuleStatus(StrEnum):
    """Module lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Module(BaseModel):
    """Independently assignable and verifiable unit of a task."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Module ID, unique within its task")
    task_id: str = Field(..., description="Owning task ID")
    title: str = Field(..., description="Module title")
    description: str = Field(default="", description="Detailed module description")
    assignee_ids: list[str] = Field(..., min_length=1, description="Assigned user IDs")
    status: ModuleStatus = Field(default=ModuleStatus.PENDING, description="Current lifecycle status")
    due_date: datetime | None = Field(default=None, description="Module due date")
    submission_note: str | None = Field(default=None, description="Proof-of-work note from the last submission")
    submitted_at: datetime | None = Field(default=None, description="Last submission timestamp")
    rejection_reason: str | None = Field(default=None, description="Reviewer reason, present only while rejected")
    retry_count: int = Field(default=0, ge=0, description="Number of times the module was rejected")
    reviewed_by: str | None = Field(default=None, description="Reviewer of the last approval or rejection")
    reviewed_at: datetime | None = Field(default=None, description="Timestamp of the last approval or rejection")


class Task(BaseModel):
    """Top-level unit of work that exclusively owns its modules."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique task ID from the document store")
    version: int = Field(default=0, description="Store version the task was read at")
    creator_id: str = Field(..., description="Manager who created the task")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    due_date: datetime | None = Field(default=None, description="Task due date")
    department: str | None = Field(default=None, description="Optional department tag")
    status: TaskStatus = Field(default=TaskStatus.DRAFT, description="Current lifecycle status")
    modules: list[Module] = Field(default_factory=list, description="Modules in insertion order")
    assignee_ids: list[str] = Field(default_factory=list, description="Union of module assignees")
    reviewer_ids: list[str] = Field(default_factory=list, description="Union of module reviewers")
    created_at: datetime = Field(..., description="Creation timestamp")
    completed_at: datetime | None = Field(default=None, description="Completion timestamp")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Task":
        """Build a task from a document store record."""
        return cls.model_validate(record)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored document (store metadata excluded)."""
        return self.model_dump(mode="json", exclude={"id", "version"})

    def find_module(self, module_id: str) -> tuple[int, Module] | None:
        """Return (index, module) for a module ID, or None."""
        for index, module in enumerate(self.modules):
            if module.id == module_id:
                return index, module
        return None
