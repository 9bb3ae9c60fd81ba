"""Termination service: removes a user and everything that references them.

The cascade runs as an ordered sequence of batched, idempotent deletes
followed by a recompute pass over every user who lost a rating:

1. identity-store account (best effort)
2. tasks created or reviewed by the user, and the user's modules elsewhere
3. skill records owned or validated by the user
4. ratings received and given by the user
5. the user profile
6. rating aggregates of the users the target had rated

The profile goes last so a failed termination can simply be run again.
"""

import logging

from orgflow.core import db_client
from orgflow.core.errors import (
    AuthorizationError,
    NotFoundError,
    OrgflowError,
    TerminationError,
    ValidationFailedError,
)
from orgflow.core.events import emit
from orgflow.core.logging import log_with_context, span
from orgflow.domain.task import Task
from orgflow.domain.user import role_tier
from orgflow.interface import identity_client
from orgflow.models.service_models import ScoreSummary, TerminationResult
from orgflow.services import scoring_service, user_service, workflow_engine, workflow_service


logger = logging.getLogger(__name__)


def _quoted(value: str) -> str:
    return f'"{db_client.sanitize_param(value)}"'


async def _cascade_tasks(target_id: str) -> tuple[list[str], list[str]]:
    """Delete the target's tasks and strip their modules from everyone else's.

    Returns:
        (deleted task IDs, task IDs rewritten without the target's modules)
    """
    target = _quoted(target_id)
    records = await db_client.list_all_records(
        collection=workflow_service.TASKS_COLLECTION,
        filter_query=f"(creator_id = {target} || reviewer_ids ?= {target} || assignee_ids ?= {target})",
    )

    to_delete: list[str] = []
    updated: list[str] = []

    for record in records:
        task = Task.from_record(record)

        if task.creator_id == target_id or target_id in task.reviewer_ids:
            to_delete.append(task.id)
            continue

        if not workflow_engine.remove_user_modules(task, target_id).task.modules:
            to_delete.append(task.id)
            continue

        try:
            await workflow_service.run_task_transaction(
                task_id=task.id,
                mutate=lambda current: workflow_engine.remove_user_modules(current, target_id),
            )
        except NotFoundError:
            # Deleted concurrently; nothing left to clean
            continue
        updated.append(task.id)

    await db_client.delete_records(collection=workflow_service.TASKS_COLLECTION, record_ids=to_delete)
    return to_delete, updated


async def _delete_skills(target_id: str) -> int:
    target = _quoted(target_id)
    records = await db_client.list_all_records(
        collection="user_skills",
        filter_query=f"(user_id = {target} || validated_by = {target})",
    )
    return await db_client.delete_records(collection="user_skills", record_ids=[record["id"] for record in records])


async def _delete_ratings(target_id: str) -> tuple[int, list[str]]:
    """Delete ratings received and given by the target.

    Returns:
        (number deleted, IDs of users who lost a rating given by the target)
    """
    target = _quoted(target_id)
    received = await db_client.list_all_records(
        collection=scoring_service.RATINGS_COLLECTION,
        filter_query=f"rated_id = {target}",
    )
    given = await db_client.list_all_records(
        collection=scoring_service.RATINGS_COLLECTION,
        filter_query=f"rater_id = {target}",
    )

    rated_ids = dict.fromkeys(record["rated_id"] for record in given)
    affected = [rated_id for rated_id in rated_ids if rated_id != target_id]
    record_ids = [record["id"] for record in (*received, *given)]
    deleted = await db_client.delete_records(collection=scoring_service.RATINGS_COLLECTION, record_ids=record_ids)
    return deleted, affected


async def _recompute_affected(pending: list[str]) -> list[ScoreSummary]:
    """Recompute each pending user, removing them from ``pending`` as they finish."""
    summaries: list[ScoreSummary] = []
    for user_id in list(pending):
        try:
            summaries.append(await scoring_service.recompute(user_id=user_id))
        except NotFoundError:
            logger.info("Skipping recompute for missing user", extra={"user_id": user_id})
        pending.remove(user_id)
    return summaries


async def terminate_user(*, caller_id: str, target_id: str) -> TerminationResult:
    """Terminate a user and cascade the removal through every dependent record.

    Args:
        caller_id: Administrator requesting the termination
        target_id: User to remove

    Returns:
        TerminationResult describing what was removed and recomputed

    Raises:
        AuthorizationError: If the caller is not an administrator or does not outrank the target
        ValidationFailedError: If the caller targets themselves
        NotFoundError: If the target does not exist
        TerminationError: If the cascade failed part-way (safe to re-run)
    """
    with span("termination_service.terminate_user"):
        caller = await user_service.require_admin(caller_id=caller_id)

        if target_id == caller_id:
            msg = "Cannot terminate yourself"
            raise ValidationFailedError(msg)

        target = await user_service.get_user(user_id=target_id)

        if role_tier(target.role) >= role_tier(caller.role):
            msg = f"Cannot terminate a user with role {target.role} (caller role: {caller.role})"
            raise AuthorizationError(msg)

        log_with_context(logger, "info", "Terminating user", caller_id=caller_id, target_id=target_id)

        identity = await identity_client.delete_identity(user_id=target_id)
        if not identity.success and not identity.skipped:
            log_with_context(
                logger,
                "warning",
                "Identity deletion failed, continuing with profile cleanup",
                target_id=target_id,
                error=identity.error,
            )

        completed: list[str] = []
        pending: list[str] = []
        step = "tasks"

        try:
            deleted_tasks, updated_tasks = await _cascade_tasks(target_id)
            completed.append(step)

            step = "skills"
            deleted_skills = await _delete_skills(target_id)
            completed.append(step)

            step = "ratings"
            deleted_ratings, pending = await _delete_ratings(target_id)
            completed.append(step)

            step = "user"
            await db_client.delete_records(collection=user_service.USERS_COLLECTION, record_ids=[target_id])
            completed.append(step)

            step = "recompute"
            recomputed = await _recompute_affected(pending)
            completed.append(step)
        except OrgflowError as e:
            log_with_context(
                logger,
                "error",
                "Termination failed",
                target_id=target_id,
                failed_step=step,
                completed_steps=completed,
                error=str(e),
            )
            msg = f"Termination of {target_id} failed at step '{step}': {e}"
            raise TerminationError(
                msg,
                failed_step=step,
                completed_steps=completed,
                pending_recompute=pending,
            ) from e

        await workflow_service.record_activity(action="user_terminated", user_id=caller_id, details=target_id)
        await emit("user.terminated", target_id, caller_id=caller_id)

        log_with_context(
            logger,
            "info",
            "user_terminated",
            caller_id=caller_id,
            target_id=target_id,
            deleted_tasks=len(deleted_tasks),
            updated_tasks=len(updated_tasks),
            deleted_ratings=deleted_ratings,
            recomputed_users=len(recomputed),
        )

        return TerminationResult(
            target_id=target_id,
            identity_deleted=identity.success,
            deleted_task_ids=deleted_tasks,
            updated_task_ids=updated_tasks,
            deleted_skill_count=deleted_skills,
            deleted_rating_count=deleted_ratings,
            recomputed=recomputed,
        )
