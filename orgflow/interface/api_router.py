"""HTTP endpoints for the task workflow, ratings, skills and user management.

Authentication happens upstream; the authenticated caller's ID arrives in the
``X-User-Id`` header and is resolved to a profile for every request.
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from orgflow.core.errors import AuthorizationError, NotFoundError
from orgflow.domain.rating import RatingRecord, UserSkill
from orgflow.domain.task import Module, Task, TaskPriority, TaskStatus
from orgflow.domain.user import User, UserRole, is_manager
from orgflow.models.service_models import LeaderboardEntry, TerminationResult
from orgflow.services import scoring_service, skill_service, termination_service, user_service, workflow_service


router = APIRouter(prefix="/api", tags=["api"])
logger = logging.getLogger(__name__)


class TaskCreateRequest(BaseModel):
    """Request body for creating a task."""

    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    department: str | None = None


class ModuleCreateRequest(BaseModel):
    """Request body for adding a module to a draft task."""

    title: str
    description: str = ""
    due_date: datetime | None = None
    assignee_ids: list[str]


class SubmitRequest(BaseModel):
    """Request body for submitting a module."""

    note: str


class RejectRequest(BaseModel):
    """Request body for rejecting a module."""

    reason: str


class ReassignRequest(BaseModel):
    """Request body for reassigning a module."""

    assignee_ids: list[str]


class RatingRequest(BaseModel):
    """Request body for rating a user."""

    rated_user_id: str
    sub_scores: list[float] = Field(default_factory=list)


class OnboardRequest(BaseModel):
    """Request body for onboarding a member."""

    name: str
    email: str
    role: UserRole = UserRole.EMPLOYEE
    department: str | None = None


class SkillRequest(BaseModel):
    """Request body for claiming a skill."""

    skill_name: str
    proficiency: int


async def get_caller(x_user_id: Annotated[str | None, Header()] = None) -> User:
    """Resolve the authenticated caller from the X-User-Id header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")

    try:
        return await user_service.get_user(user_id=x_user_id)
    except NotFoundError as e:
        msg = f"Unknown caller: {x_user_id}"
        raise AuthorizationError(msg) from e


async def require_manager(caller: Annotated[User, Depends(get_caller)]) -> User:
    """Only leads and above may manage tasks and rate members."""
    if not is_manager(caller.role):
        msg = f"Role {caller.role} cannot perform this action"
        raise AuthorizationError(msg)
    return caller


Caller = Annotated[User, Depends(get_caller)]
Manager = Annotated[User, Depends(require_manager)]


# Tasks


@router.post("/tasks", status_code=201)
async def create_task(body: TaskCreateRequest, manager: Manager) -> Task:
    """Create a draft task owned by the calling manager."""
    return await workflow_service.create_task(
        creator_id=manager.id,
        title=body.title,
        description=body.description,
        priority=body.priority,
        due_date=body.due_date,
        department=body.department,
    )


@router.get("/tasks")
async def list_tasks(caller: Caller) -> list[Task]:
    """List the tasks visible to the caller."""
    return await workflow_service.get_tasks_for_user(user_id=caller.id, role=caller.role)


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, caller: Caller) -> Task:
    """Get one task; contributors only see published tasks they work on."""
    task = await workflow_service.get_task(task_id=task_id)

    if not is_manager(caller.role):
        assigned = any(caller.id in module.assignee_ids for module in task.modules)
        if task.status == TaskStatus.DRAFT or not assigned:
            msg = f"Task not found: {task_id}"
            raise NotFoundError(msg)

    return task


@router.post("/tasks/{task_id}/modules", status_code=201)
async def add_module(task_id: str, body: ModuleCreateRequest, _manager: Manager) -> Module:
    """Add a module to a draft task."""
    return await workflow_service.add_module(
        task_id=task_id,
        title=body.title,
        description=body.description,
        due_date=body.due_date,
        assignee_ids=body.assignee_ids,
    )


@router.post("/tasks/{task_id}/publish")
async def publish_task(task_id: str, _manager: Manager) -> Task:
    """Publish a draft task."""
    return await workflow_service.publish_task(task_id=task_id)


@router.post("/tasks/{task_id}/unpublish")
async def unpublish_task(task_id: str, _manager: Manager) -> Task:
    """Return an untouched published task to draft."""
    return await workflow_service.unpublish_task(task_id=task_id)


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, _manager: Manager) -> Task:
    """Complete a task whose modules are all approved."""
    return await workflow_service.complete_task(task_id=task_id)


@router.post("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, _manager: Manager) -> Task:
    """Cancel (archive) an open task."""
    return await workflow_service.cancel_task(task_id=task_id)


@router.post("/tasks/{task_id}/archive")
async def archive_task(task_id: str, _manager: Manager) -> Task:
    """Archive a completed task."""
    return await workflow_service.archive_task(task_id=task_id)


# Modules


@router.post("/tasks/{task_id}/modules/{module_id}/start")
async def start_module(task_id: str, module_id: str, caller: Caller) -> Task:
    """Start work on a module assigned to the caller."""
    return await workflow_service.start_module(task_id=task_id, module_id=module_id, user_id=caller.id)


@router.post("/tasks/{task_id}/modules/{module_id}/submit")
async def submit_module(task_id: str, module_id: str, body: SubmitRequest, caller: Caller) -> Task:
    """Submit a module assigned to the caller for review."""
    return await workflow_service.submit_module(
        task_id=task_id,
        module_id=module_id,
        user_id=caller.id,
        note=body.note,
    )


@router.post("/tasks/{task_id}/modules/{module_id}/approve")
async def approve_module(task_id: str, module_id: str, manager: Manager) -> Task:
    """Approve a submitted module."""
    return await workflow_service.approve_module(task_id=task_id, module_id=module_id, reviewer_id=manager.id)


@router.post("/tasks/{task_id}/modules/{module_id}/reject")
async def reject_module(task_id: str, module_id: str, body: RejectRequest, manager: Manager) -> Task:
    """Reject a submitted module with a reason."""
    return await workflow_service.reject_module(
        task_id=task_id,
        module_id=module_id,
        reason=body.reason,
        reviewer_id=manager.id,
    )


@router.post("/tasks/{task_id}/modules/{module_id}/reassign")
async def reassign_module(task_id: str, module_id: str, body: ReassignRequest, _manager: Manager) -> Task:
    """Replace a module's assignees."""
    return await workflow_service.reassign_module(task_id=task_id, module_id=module_id, assignee_ids=body.assignee_ids)


# Ratings and leaderboard


@router.post("/ratings")
async def submit_rating(body: RatingRequest, manager: Manager) -> RatingRecord:
    """Rate a member; a repeat rating from the same manager replaces the previous one."""
    return await scoring_service.submit_rating(
        rater_id=manager.id,
        rated_user_id=body.rated_user_id,
        sub_scores=body.sub_scores,
    )


@router.get("/leaderboard")
async def leaderboard(_caller: Caller, department: str | None = None) -> list[LeaderboardEntry]:
    """Contributor leaderboard, optionally for one department."""
    return await scoring_service.get_leaderboard(department=department)


# Skills


@router.post("/skills", status_code=201)
async def add_skill(body: SkillRequest, caller: Caller) -> UserSkill:
    """Claim a skill for the caller."""
    return await skill_service.add_skill_request(
        user_id=caller.id,
        skill_name=body.skill_name,
        proficiency=body.proficiency,
    )


@router.post("/skills/{skill_id}/validate")
async def validate_skill(skill_id: str, caller: Caller) -> UserSkill:
    """Validate another member's skill."""
    return await skill_service.validate_skill(skill_id=skill_id, validator_id=caller.id)


@router.get("/skills")
async def list_skills(_caller: Caller, user_id: str | None = None) -> list[UserSkill]:
    """List skill records, optionally for one user."""
    return await skill_service.list_skills(user_id=user_id)


# Users


@router.post("/users", status_code=201)
async def onboard_user(body: OnboardRequest, caller: Caller) -> User:
    """Onboard a contributor or lead."""
    return await user_service.onboard_user(
        caller_id=caller.id,
        name=body.name,
        email=body.email,
        role=body.role,
        department=body.department,
    )


@router.post("/users/{user_id}/terminate")
async def terminate_user(user_id: str, caller: Caller) -> TerminationResult:
    """Terminate a member and remove everything that references them."""
    logger.info("termination_requested", extra={"caller_id": caller.id, "target_id": user_id})
    return await termination_service.terminate_user(caller_id=caller.id, target_id=user_id)
