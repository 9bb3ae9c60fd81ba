"""Static transition tables for task and module lifecycles."""

from orgflow.domain.task import ModuleStatus, TaskStatus


TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.DRAFT: frozenset({TaskStatus.ASSIGNED}),
    TaskStatus.ASSIGNED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.DRAFT}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.REVIEW}),
    TaskStatus.REVIEW: frozenset({TaskStatus.COMPLETED, TaskStatus.IN_PROGRESS}),
    TaskStatus.COMPLETED: frozenset({TaskStatus.ARCHIVED}),
    TaskStatus.ARCHIVED: frozenset(),
}

MODULE_TRANSITIONS: dict[ModuleStatus, frozenset[ModuleStatus]] = {
    ModuleStatus.PENDING: frozenset({ModuleStatus.IN_PROGRESS}),
    ModuleStatus.IN_PROGRESS: frozenset({ModuleStatus.SUBMITTED}),
    ModuleStatus.SUBMITTED: frozenset({ModuleStatus.APPROVED, ModuleStatus.REJECTED}),
    ModuleStatus.REJECTED: frozenset({ModuleStatus.IN_PROGRESS}),
    ModuleStatus.APPROVED: frozenset(),
}

# Sticky statuses that derivation never touches
TERMINAL_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.ARCHIVED})


def can_transition_task(current: str, target: str) -> bool:
    """Return True if the task table allows current -> target (unknown statuses are never legal)."""
    try:
        return TaskStatus(target) in TASK_TRANSITIONS[TaskStatus(current)]
    except ValueError:
        return False


def can_transition_module(current: str, target: str) -> bool:
    """Return True if the module table allows current -> target (unknown statuses are never legal)."""
    try:
        return ModuleStatus(target) in MODULE_TRANSITIONS[ModuleStatus(current)]
    except ValueError:
        return False
