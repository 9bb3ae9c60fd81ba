"""Task status derivation from module statuses."""

from orgflow.domain.task import ModuleStatus, Task, TaskStatus
from orgflow.services.state_machine import TERMINAL_TASK_STATUSES


_REVIEWABLE = frozenset({ModuleStatus.SUBMITTED, ModuleStatus.APPROVED})
_STARTED = frozenset(
    {ModuleStatus.IN_PROGRESS, ModuleStatus.SUBMITTED, ModuleStatus.REJECTED, ModuleStatus.APPROVED}
)


def derive_task_status(task: Task) -> TaskStatus:
    """Compute a task's status from its modules.

    Draft and terminal tasks keep their status, as does a task without
    modules. Otherwise the first matching rule wins:

    1. every module approved -> review (completion is always explicit)
    2. every module submitted or approved -> review
    3. any module has left pending -> in_progress
    4. otherwise (all pending) -> assigned

    Idempotent: deriving an already-derived task returns the same status.
    """
    if task.status == TaskStatus.DRAFT or task.status in TERMINAL_TASK_STATUSES:
        return task.status

    if not task.modules:
        return task.status

    statuses = [module.status for module in task.modules]

    if all(status == ModuleStatus.APPROVED for status in statuses):
        return TaskStatus.REVIEW

    if all(status in _REVIEWABLE for status in statuses):
        return TaskStatus.REVIEW

    if any(status in _STARTED for status in statuses):
        return TaskStatus.IN_PROGRESS

    return TaskStatus.ASSIGNED
