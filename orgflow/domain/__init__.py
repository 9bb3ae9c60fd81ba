"""Domain models and DTOs."""

from orgflow.domain.create_models import ModuleCreate, TaskCreate, UserOnboard
from orgflow.domain.rating import RatingRecord, UserSkill
from orgflow.domain.task import Module, ModuleStatus, Task, TaskPriority, TaskStatus
from orgflow.domain.user import User, UserRole


__all__ = [
    "Module",
    "ModuleCreate",
    "ModuleStatus",
    "RatingRecord",
    "Task",
    "TaskCreate",
    "TaskPriority",
    "TaskStatus",
    "User",
    "UserOnboard",
    "UserRole",
    "UserSkill",
]
