"""Pure task and module transitions.

Every function here takes the current Task and returns a new one; nothing is
mutated in place and nothing touches the database. Guards run before the new
state is built, so a rejected call leaves the caller's Task untouched. After
any module change the task status is re-derived and the denormalized
assignee/reviewer indexes are recomputed.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from orgflow.core.config import settings
from orgflow.core.errors import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationFailedError
from orgflow.domain.task import Module, ModuleStatus, Task, TaskStatus
from orgflow.services.state_machine import TERMINAL_TASK_STATUSES, can_transition_module, can_transition_task
from orgflow.services.status_derivation import derive_task_status


@dataclass(frozen=True)
class TransitionResult:
    """New task state plus the module the transition touched (if any)."""

    task: Task
    module: Module | None = None


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


def _union(values: list[list[str]]) -> list[str]:
    return list(dict.fromkeys(item for group in values for item in group))


def refresh_indexes(task: Task) -> Task:
    """Recompute assignee_ids and reviewer_ids from the modules."""
    return task.model_copy(
        update={
            "assignee_ids": _union([module.assignee_ids for module in task.modules]),
            "reviewer_ids": _union([[module.reviewed_by] for module in task.modules if module.reviewed_by]),
        }
    )


def rederive(task: Task) -> Task:
    """Refresh indexes and derived status after the module list changed."""
    task = refresh_indexes(task)
    return task.model_copy(update={"status": derive_task_status(task)})


def _get_module(task: Task, module_id: str) -> tuple[int, Module]:
    found = task.find_module(module_id)
    if found is None:
        msg = f"Module {module_id} not found in task {task.id}"
        raise NotFoundError(msg)
    return found


def _require_module_transition(module: Module, target: ModuleStatus) -> None:
    if not can_transition_module(module.status, target):
        raise InvalidTransitionError(entity=f"module {module.id}", current=module.status, target=target)


def _require_open_task(task: Task, target: ModuleStatus) -> None:
    """Module work only happens on published, non-terminal tasks."""
    if task.status == TaskStatus.DRAFT or task.status in TERMINAL_TASK_STATUSES:
        raise InvalidTransitionError(
            entity=f"module of task {task.id}",
            current=task.status,
            target=target,
            detail="task is not open for module work",
        )


def _require_assignee(module: Module, user_id: str) -> None:
    if user_id not in module.assignee_ids:
        msg = f"User {user_id} is not assigned to module {module.id}"
        raise AuthorizationError(msg)


def _replace_module(task: Task, index: int, module: Module) -> TransitionResult:
    modules = list(task.modules)
    modules[index] = module
    new_task = rederive(task.model_copy(update={"modules": modules}))
    return TransitionResult(task=new_task, module=module)


def publish(task: Task) -> TransitionResult:
    """Move a draft task with at least one module to assigned."""
    if task.status != TaskStatus.DRAFT:
        raise InvalidTransitionError(entity=f"task {task.id}", current=task.status, target=TaskStatus.ASSIGNED)

    if not task.modules:
        msg = f"Cannot publish task {task.id} with no modules"
        raise ValidationFailedError(msg)

    published = refresh_indexes(task).model_copy(update={"status": TaskStatus.ASSIGNED})
    return TransitionResult(task=published)


def unpublish(task: Task) -> TransitionResult:
    """Return an assigned task to draft while no module work has started."""
    if not can_transition_task(task.status, TaskStatus.DRAFT):
        raise InvalidTransitionError(entity=f"task {task.id}", current=task.status, target=TaskStatus.DRAFT)

    if any(module.status != ModuleStatus.PENDING for module in task.modules):
        raise InvalidTransitionError(
            entity=f"task {task.id}",
            current=task.status,
            target=TaskStatus.DRAFT,
            detail="module work has already started",
        )

    return TransitionResult(task=task.model_copy(update={"status": TaskStatus.DRAFT}))


def add_module(task: Task, module: Module) -> TransitionResult:
    """Append a module to a draft task."""
    if task.status != TaskStatus.DRAFT:
        msg = f"Can only add modules to draft tasks (task {task.id} is {task.status})"
        raise ValidationFailedError(msg)

    if task.find_module(module.id) is not None:
        msg = f"Module {module.id} already exists in task {task.id}"
        raise ValidationFailedError(msg)

    new_task = refresh_indexes(task.model_copy(update={"modules": [*task.modules, module]}))
    return TransitionResult(task=new_task, module=module)


def start_module(task: Task, module_id: str, user_id: str) -> TransitionResult:
    """Assignee starts (or restarts after rejection) a module."""
    index, module = _get_module(task, module_id)
    _require_assignee(module, user_id)
    _require_open_task(task, ModuleStatus.IN_PROGRESS)
    _require_module_transition(module, ModuleStatus.IN_PROGRESS)

    started = module.model_copy(update={"status": ModuleStatus.IN_PROGRESS, "rejection_reason": None})
    return _replace_module(task, index, started)


def submit_module(
    task: Task,
    module_id: str,
    user_id: str,
    note: str,
    *,
    now: datetime | None = None,
) -> TransitionResult:
    """Assignee submits proof of work for review."""
    index, module = _get_module(task, module_id)
    _require_assignee(module, user_id)
    _require_open_task(task, ModuleStatus.SUBMITTED)
    _require_module_transition(module, ModuleStatus.SUBMITTED)

    note = (note or "").strip()
    if len(note) < settings.submission_note_min_length:
        msg = f"Submission note must be at least {settings.submission_note_min_length} characters"
        raise ValidationFailedError(msg)

    submitted = module.model_copy(
        update={"status": ModuleStatus.SUBMITTED, "submission_note": note, "submitted_at": _now(now)}
    )
    return _replace_module(task, index, submitted)


def approve_module(task: Task, module_id: str, reviewer_id: str, *, now: datetime | None = None) -> TransitionResult:
    """Reviewer approves a submitted module."""
    index, module = _get_module(task, module_id)
    _require_open_task(task, ModuleStatus.APPROVED)
    _require_module_transition(module, ModuleStatus.APPROVED)

    approved = module.model_copy(
        update={"status": ModuleStatus.APPROVED, "reviewed_by": reviewer_id, "reviewed_at": _now(now)}
    )
    return _replace_module(task, index, approved)


def reject_module(
    task: Task,
    module_id: str,
    reason: str,
    reviewer_id: str | None = None,
    *,
    now: datetime | None = None,
) -> TransitionResult:
    """Reviewer rejects a submitted module, bumping its retry count."""
    index, module = _get_module(task, module_id)
    _require_open_task(task, ModuleStatus.REJECTED)
    _require_module_transition(module, ModuleStatus.REJECTED)

    reason = (reason or "").strip()
    if not reason:
        msg = "A rejection reason is required"
        raise ValidationFailedError(msg)

    update: dict[str, object] = {
        "status": ModuleStatus.REJECTED,
        "rejection_reason": reason,
        "retry_count": module.retry_count + 1,
    }
    if reviewer_id:
        update["reviewed_by"] = reviewer_id
        update["reviewed_at"] = _now(now)

    return _replace_module(task, index, module.model_copy(update=update))


def reassign_module(task: Task, module_id: str, new_assignee_ids: list[str]) -> TransitionResult:
    """Replace a module's assignees without touching its status."""
    index, module = _get_module(task, module_id)

    if task.status in TERMINAL_TASK_STATUSES:
        msg = f"Cannot reassign modules of a {task.status} task"
        raise ValidationFailedError(msg)

    assignees = list(dict.fromkeys(assignee for assignee in new_assignee_ids if assignee))
    if not assignees:
        msg = "A module needs at least one assignee"
        raise ValidationFailedError(msg)

    return _replace_module(task, index, module.model_copy(update={"assignee_ids": assignees}))


def remove_user_modules(task: Task, user_id: str) -> TransitionResult:
    """Drop every module assigned to a user and re-derive the task status.

    The caller decides what to do with a task left without modules.
    """
    remaining = [module for module in task.modules if user_id not in module.assignee_ids]
    return TransitionResult(task=rederive(task.model_copy(update={"modules": remaining})))


def cancel_task(task: Task) -> TransitionResult:
    """Archive any task that is not already completed or archived."""
    if task.status in TERMINAL_TASK_STATUSES:
        raise InvalidTransitionError(
            entity=f"task {task.id}",
            current=task.status,
            target=TaskStatus.ARCHIVED,
            detail="completed or archived tasks cannot be cancelled",
        )

    return TransitionResult(task=task.model_copy(update={"status": TaskStatus.ARCHIVED}))


def complete_task(task: Task, *, now: datetime | None = None) -> TransitionResult:
    """Complete a task under review whose modules are all approved."""
    if not task.modules or any(module.status != ModuleStatus.APPROVED for module in task.modules):
        msg = "All modules must be approved before completing the task"
        raise ValidationFailedError(msg)

    if not can_transition_task(task.status, TaskStatus.COMPLETED):
        raise InvalidTransitionError(entity=f"task {task.id}", current=task.status, target=TaskStatus.COMPLETED)

    return TransitionResult(
        task=task.model_copy(update={"status": TaskStatus.COMPLETED, "completed_at": _now(now)}),
    )


def archive_task(task: Task) -> TransitionResult:
    """Archive a completed task."""
    if not can_transition_task(task.status, TaskStatus.ARCHIVED):
        raise InvalidTransitionError(entity=f"task {task.id}", current=task.status, target=TaskStatus.ARCHIVED)

    return TransitionResult(task=task.model_copy(update={"status": TaskStatus.ARCHIVED}))
