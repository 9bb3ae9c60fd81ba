"""Workflow service: transactional persistence around the workflow engine.

Every mutation is one optimistic read-modify-write over a single task
document. The task is read together with its version, the pure engine
computes the next state, and the full document is written back only if the
version is unchanged. A concurrent writer causes a re-read and retry, so two
operations on different modules of the same task never overwrite each other.
Side effects (point awards, activity log, change events) run after commit.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from orgflow.core import db_client
from orgflow.core.config import constants, settings
from orgflow.core.errors import ConflictError, NotFoundError, ValidationFailedError
from orgflow.core.events import emit
from orgflow.core.logging import span
from orgflow.domain.create_models import ModuleCreate, TaskCreate
from orgflow.domain.task import Module, Task, TaskPriority, TaskStatus
from orgflow.domain.user import UserRole, is_manager
from orgflow.services import scoring_service, workflow_engine
from orgflow.services.workflow_engine import TransitionResult


logger = logging.getLogger(__name__)

TASKS_COLLECTION = "tasks"
ACTIVITY_COLLECTION = "activity_logs"

TaskMutation = Callable[[Task], TransitionResult]


async def _load_task(task_id: str) -> Task:
    try:
        record = await db_client.get_record(collection=TASKS_COLLECTION, record_id=task_id)
    except db_client.RecordNotFoundError as e:
        msg = f"Task not found: {task_id}"
        raise NotFoundError(msg) from e
    return Task.from_record(record)


async def run_task_transaction(*, task_id: str, mutate: TaskMutation) -> TransitionResult:
    """Apply a pure task mutation under optimistic concurrency control.

    Args:
        task_id: Task to mutate
        mutate: Engine function applied to the freshly read task

    Returns:
        TransitionResult holding the committed task (with its new version)

    Raises:
        NotFoundError: If the task does not exist
        ConflictError: If the task kept changing for every attempt
    """
    max_attempts = max(1, settings.transaction_max_attempts)

    for attempt in range(1, max_attempts + 1):
        task = await _load_task(task_id)
        result = mutate(task)

        try:
            record = await db_client.update_record(
                collection=TASKS_COLLECTION,
                record_id=task_id,
                data=result.task.to_document(),
                expected_version=task.version,
            )
        except db_client.VersionConflictError:
            logger.info(
                "Task changed during transaction, retrying",
                extra={"task_id": task_id, "attempt": attempt},
            )
            await asyncio.sleep(constants.TRANSACTION_RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1)))
            continue
        except db_client.RecordNotFoundError as e:
            msg = f"Task not found: {task_id}"
            raise NotFoundError(msg) from e

        return TransitionResult(task=Task.from_record(record), module=result.module)

    msg = f"Task {task_id} was modified concurrently {max_attempts} times; please retry"
    logger.warning("Task transaction gave up", extra={"task_id": task_id, "attempts": max_attempts})
    raise ConflictError(msg)


async def record_activity(
    *,
    action: str,
    user_id: str | None,
    task_id: str | None = None,
    module_id: str | None = None,
    points_change: int = 0,
    details: str = "",
) -> None:
    """Append an audit entry; the committed mutation never depends on it."""
    data: dict[str, Any] = {
        "action": action,
        "user_id": user_id or "",
        "task_id": task_id or "",
        "module_id": module_id or "",
        "points_change": points_change,
        "details": details,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    try:
        await db_client.create_record(collection=ACTIVITY_COLLECTION, data=data)
    except db_client.DatabaseError as e:
        logger.warning("Failed to record activity", extra={"action": action, "task_id": task_id, "error": str(e)})


async def _after_commit(
    result: TransitionResult,
    *,
    action: str,
    user_id: str | None,
    details: str = "",
    points_change: int = 0,
) -> None:
    module_id = result.module.id if result.module else None
    await record_activity(
        action=action,
        user_id=user_id,
        task_id=result.task.id,
        module_id=module_id,
        points_change=points_change,
        details=details,
    )
    await emit("task.updated", result.task.id, action=action, status=result.task.status, module_id=module_id)
    logger.info(
        "Task updated",
        extra={"task_id": result.task.id, "module_id": module_id, "action": action, "status": result.task.status},
    )


async def create_task(
    *,
    creator_id: str,
    title: str,
    description: str = "",
    priority: TaskPriority = TaskPriority.MEDIUM,
    due_date: datetime | None = None,
    department: str | None = None,
) -> Task:
    """Create a new task in draft status.

    Returns:
        The created Task

    Raises:
        ValidationFailedError: If the title is blank
    """
    with span("workflow_service.create_task"):
        try:
            draft = TaskCreate(
                creator_id=creator_id,
                title=title,
                description=description,
                priority=priority,
                due_date=due_date,
                department=department,
            )
        except ValidationError as e:
            msg = f"Invalid task: {e.errors()[0]['msg']}"
            raise ValidationFailedError(msg) from e

        data = {
            **draft.model_dump(mode="json"),
            "status": TaskStatus.DRAFT,
            "modules": [],
            "assignee_ids": [],
            "reviewer_ids": [],
        }
        record = await db_client.create_record(collection=TASKS_COLLECTION, data=data)
        task = Task.from_record(record)

        await record_activity(action="task_created", user_id=creator_id, task_id=task.id, details=task.title)
        await emit("task.created", task.id, creator_id=creator_id)
        logger.info("Created task", extra={"task_id": task.id, "creator_id": creator_id})

        return task


async def add_module(
    *,
    task_id: str,
    title: str,
    description: str = "",
    due_date: datetime | None = None,
    assignee_ids: list[str],
) -> Module:
    """Add a module to a draft task.

    Raises:
        ValidationFailedError: If the module is invalid or the task is not a draft
        NotFoundError: If the task does not exist
    """
    with span("workflow_service.add_module"):
        try:
            module_create = ModuleCreate(
                title=title,
                description=description,
                due_date=due_date,
                assignee_ids=assignee_ids,
            )
        except ValidationError as e:
            msg = f"Invalid module: {e.errors()[0]['msg']}"
            raise ValidationFailedError(msg) from e

        module = Module(task_id=task_id, id=db_client.new_record_id(), **module_create.model_dump())
        result = await run_task_transaction(
            task_id=task_id,
            mutate=lambda task: workflow_engine.add_module(task, module),
        )
        await _after_commit(result, action="module_added", user_id=result.task.creator_id, details=module.title)
        return module


async def publish_task(*, task_id: str) -> Task:
    """Publish a draft task (draft -> assigned)."""
    with span("workflow_service.publish_task"):
        result = await run_task_transaction(task_id=task_id, mutate=workflow_engine.publish)
        await _after_commit(result, action="task_published", user_id=result.task.creator_id)
        return result.task


async def unpublish_task(*, task_id: str) -> Task:
    """Return an assigned task to draft before any module work started."""
    with span("workflow_service.unpublish_task"):
        result = await run_task_transaction(task_id=task_id, mutate=workflow_engine.unpublish)
        await _after_commit(result, action="task_unpublished", user_id=result.task.creator_id)
        return result.task


async def start_module(*, task_id: str, module_id: str, user_id: str) -> Task:
    """Assignee starts a pending or rejected module."""
    with span("workflow_service.start_module"):
        result = await run_task_transaction(
            task_id=task_id,
            mutate=lambda task: workflow_engine.start_module(task, module_id, user_id),
        )
        await _after_commit(result, action="module_started", user_id=user_id)
        return result.task


async def submit_module(*, task_id: str, module_id: str, user_id: str, note: str) -> Task:
    """Assignee submits a module for review with a proof-of-work note."""
    with span("workflow_service.submit_module"):
        result = await run_task_transaction(
            task_id=task_id,
            mutate=lambda task: workflow_engine.submit_module(task, module_id, user_id, note),
        )
        await _after_commit(result, action="module_submitted", user_id=user_id)
        return result.task


async def approve_module(*, task_id: str, module_id: str, reviewer_id: str) -> Task:
    """Approve a submitted module and award points to its assignees.

    Approval never completes the task; a task whose modules are all approved
    waits in review for complete_task.
    """
    with span("workflow_service.approve_module"):
        result = await run_task_transaction(
            task_id=task_id,
            mutate=lambda task: workflow_engine.approve_module(task, module_id, reviewer_id),
        )

        points = settings.module_approval_points
        awarded: list[str] = []
        if result.module is not None and points:
            awarded = await scoring_service.award_points(user_ids=result.module.assignee_ids, points=points)

        await _after_commit(
            result, action="module_approved", user_id=reviewer_id, points_change=points if awarded else 0
        )
        return result.task


async def reject_module(*, task_id: str, module_id: str, reason: str, reviewer_id: str | None = None) -> Task:
    """Reject a submitted module with a reason."""
    with span("workflow_service.reject_module"):
        result = await run_task_transaction(
            task_id=task_id,
            mutate=lambda task: workflow_engine.reject_module(task, module_id, reason, reviewer_id),
        )
        await _after_commit(result, action="module_rejected", user_id=reviewer_id, details=reason)
        return result.task


async def reassign_module(*, task_id: str, module_id: str, assignee_ids: list[str]) -> Task:
    """Replace a module's assignees without changing its status."""
    with span("workflow_service.reassign_module"):
        result = await run_task_transaction(
            task_id=task_id,
            mutate=lambda task: workflow_engine.reassign_module(task, module_id, assignee_ids),
        )
        await _after_commit(
            result,
            action="module_reassigned",
            user_id=result.task.creator_id,
            details=",".join(assignee_ids),
        )
        return result.task


async def complete_task(*, task_id: str) -> Task:
    """Complete a task under review whose modules are all approved."""
    with span("workflow_service.complete_task"):
        result = await run_task_transaction(task_id=task_id, mutate=workflow_engine.complete_task)
        await _after_commit(result, action="task_completed", user_id=result.task.creator_id)
        return result.task


async def cancel_task(*, task_id: str) -> Task:
    """Cancel (archive) a task that is not completed or archived."""
    with span("workflow_service.cancel_task"):
        result = await run_task_transaction(task_id=task_id, mutate=workflow_engine.cancel_task)
        await _after_commit(result, action="task_cancelled", user_id=result.task.creator_id)
        return result.task


async def archive_task(*, task_id: str) -> Task:
    """Archive a completed task."""
    with span("workflow_service.archive_task"):
        result = await run_task_transaction(task_id=task_id, mutate=workflow_engine.archive_task)
        await _after_commit(result, action="task_archived", user_id=result.task.creator_id)
        return result.task


async def get_task(*, task_id: str) -> Task:
    """Get a task by ID.

    Raises:
        NotFoundError: If the task does not exist
    """
    with span("workflow_service.get_task"):
        return await _load_task(task_id)


async def get_tasks_for_user(*, user_id: str, role: UserRole | str) -> list[Task]:
    """List the tasks a user may see.

    Managers see every task. Contributors see only published tasks that
    contain a module assigned to them.
    """
    with span("workflow_service.get_tasks_for_user"):
        if is_manager(role):
            records = await db_client.list_all_records(collection=TASKS_COLLECTION, sort="-created_at")
            return [Task.from_record(record) for record in records]

        filter_query = f'assignee_ids ?= "{db_client.sanitize_param(user_id)}" && status != "{TaskStatus.DRAFT}"'
        records = await db_client.list_all_records(
            collection=TASKS_COLLECTION,
            filter_query=filter_query,
            sort="-created_at",
        )
        tasks = [Task.from_record(record) for record in records]

        # assignee_ids is an index; the modules are authoritative
        return [task for task in tasks if any(user_id in module.assignee_ids for module in task.modules)]
