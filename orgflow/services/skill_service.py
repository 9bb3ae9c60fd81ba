"""Skill service for skill requests and manager validation."""

import logging
from datetime import UTC, datetime

from orgflow.core import db_client
from orgflow.core.config import constants
from orgflow.core.errors import AuthorizationError, NotFoundError, ValidationFailedError
from orgflow.core.events import emit
from orgflow.core.logging import span
from orgflow.domain.rating import UserSkill
from orgflow.domain.user import User, is_manager


logger = logging.getLogger(__name__)

SKILLS_COLLECTION = "user_skills"


async def _get_user(user_id: str) -> User:
    try:
        record = await db_client.get_record(collection="users", record_id=user_id)
    except db_client.RecordNotFoundError as e:
        msg = f"User not found: {user_id}"
        raise NotFoundError(msg) from e
    return User.from_record(record)


async def add_skill_request(*, user_id: str, skill_name: str, proficiency: int) -> UserSkill:
    """Record an unvalidated skill claim for a user.

    Raises:
        ValidationFailedError: If the name is blank or proficiency is outside 1-5
        NotFoundError: If the user does not exist
    """
    with span("skill_service.add_skill_request"):
        skill_name = skill_name.strip()
        if not skill_name:
            msg = "Skill name cannot be empty"
            raise ValidationFailedError(msg)

        if not constants.SKILL_MIN_PROFICIENCY <= proficiency <= constants.SKILL_MAX_PROFICIENCY:
            msg = (
                f"Proficiency must be between {constants.SKILL_MIN_PROFICIENCY} "
                f"and {constants.SKILL_MAX_PROFICIENCY}"
            )
            raise ValidationFailedError(msg)

        await _get_user(user_id)

        record = await db_client.create_record(
            collection=SKILLS_COLLECTION,
            data={
                "user_id": user_id,
                "skill_name": skill_name,
                "proficiency": proficiency,
                "validated": False,
                "created_at": datetime.now(UTC).isoformat(),
            },
        )
        logger.info("Skill requested", extra={"user_id": user_id, "skill_name": skill_name})
        return UserSkill.model_validate(record)


async def validate_skill(*, skill_id: str, validator_id: str) -> UserSkill:
    """Mark a skill as validated by a manager.

    Raises:
        NotFoundError: If the skill or validator does not exist
        AuthorizationError: If the validator is not a manager or owns the skill
    """
    with span("skill_service.validate_skill"):
        validator = await _get_user(validator_id)
        if not is_manager(validator.role):
            msg = f"Only leads and above can validate skills (user {validator_id} is {validator.role})"
            raise AuthorizationError(msg)

        try:
            skill = await db_client.get_record(collection=SKILLS_COLLECTION, record_id=skill_id)
        except db_client.RecordNotFoundError as e:
            msg = f"Skill not found: {skill_id}"
            raise NotFoundError(msg) from e

        if skill["user_id"] == validator_id:
            msg = "Users cannot validate their own skills"
            raise AuthorizationError(msg)

        record = await db_client.update_record(
            collection=SKILLS_COLLECTION,
            record_id=skill_id,
            data={
                "validated": True,
                "validated_by": validator_id,
                "validated_at": datetime.now(UTC).isoformat(),
            },
        )
        logger.info("Skill validated", extra={"skill_id": skill_id, "validator_id": validator_id})
        await emit("skill.validated", skill_id, validator_id=validator_id)
        return UserSkill.model_validate(record)


async def list_skills(*, user_id: str | None = None) -> list[UserSkill]:
    """List skill records, optionally for one user."""
    with span("skill_service.list_skills"):
        filter_query = f'user_id = "{db_client.sanitize_param(user_id)}"' if user_id else ""
        records = await db_client.list_all_records(collection=SKILLS_COLLECTION, filter_query=filter_query)
        return [UserSkill.model_validate(record) for record in records]
