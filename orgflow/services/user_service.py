"""User service for onboarding and member management."""

import logging
from datetime import UTC, datetime

from pydantic import ValidationError

from orgflow.core import db_client
from orgflow.core.config import settings
from orgflow.core.errors import AuthorizationError, NotFoundError, ValidationFailedError
from orgflow.core.events import emit
from orgflow.core.logging import span
from orgflow.domain.create_models import UserOnboard
from orgflow.domain.user import User, UserRole


logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


def _new_profile(*, name: str, email: str, role: UserRole, department: str | None) -> dict:
    return {
        "name": name,
        "email": email,
        "role": role,
        "department": department,
        "points": 0,
        "rating_score": 0.0,
        "rating_count": 0,
        "created_at": datetime.now(UTC).isoformat(),
    }


async def get_user(*, user_id: str) -> User:
    """Get a user by ID.

    Raises:
        NotFoundError: If the user does not exist
    """
    with span("user_service.get_user"):
        try:
            record = await db_client.get_record(collection=USERS_COLLECTION, record_id=user_id)
        except db_client.RecordNotFoundError as e:
            msg = f"User not found: {user_id}"
            raise NotFoundError(msg) from e
        return User.from_record(record)


async def require_admin(*, caller_id: str) -> User:
    """Return the caller if they hold an administrator-tier role.

    A caller without a profile is treated as unauthorized, not as missing.

    Raises:
        AuthorizationError: If the caller is unknown or not an administrator
    """
    try:
        caller = await get_user(user_id=caller_id)
    except NotFoundError as e:
        msg = f"Caller {caller_id} is not a registered user"
        raise AuthorizationError(msg) from e

    if caller.role not in settings.termination_roles:
        msg = f"Only administrators can perform this action (caller role: {caller.role})"
        logger.warning(msg, extra={"caller_id": caller_id})
        raise AuthorizationError(msg)

    return caller


async def onboard_user(
    *,
    caller_id: str,
    name: str,
    email: str,
    role: UserRole | str = UserRole.EMPLOYEE,
    department: str | None = None,
) -> User:
    """Create a contributor or lead profile on behalf of an administrator.

    Raises:
        AuthorizationError: If the caller is not an administrator
        ValidationFailedError: If the input is invalid or the email is taken
    """
    with span("user_service.onboard_user"):
        await require_admin(caller_id=caller_id)

        try:
            onboard = UserOnboard(name=name, email=email, role=role, department=department)
        except ValidationError as e:
            msg = f"Invalid user: {e.errors()[0]['msg']}"
            raise ValidationFailedError(msg) from e

        existing = await db_client.get_first_record(
            collection=USERS_COLLECTION,
            filter_query=f'email = "{db_client.sanitize_param(onboard.email)}"',
        )
        if existing:
            msg = f"Email already in use: {onboard.email}"
            logger.warning(msg)
            raise ValidationFailedError(msg)

        data = _new_profile(name=onboard.name, email=onboard.email, role=onboard.role, department=onboard.department)
        data["onboarded_by"] = caller_id

        record = await db_client.create_record(collection=USERS_COLLECTION, data=data)
        user = User.from_record(record)

        logger.info("Onboarded user", extra={"user_id": user.id, "role": user.role, "caller_id": caller_id})
        await emit("user.created", user.id, role=user.role)
        return user


async def ensure_user(
    *,
    user_id: str,
    name: str,
    email: str,
    role: UserRole | str = UserRole.EMPLOYEE,
    department: str | None = None,
) -> User:
    """Return the user's profile, creating it on first authenticated access.

    An existing profile keeps its role; asking for a different one is rejected.

    Raises:
        ValidationFailedError: If the profile exists with a different role
    """
    with span("user_service.ensure_user"):
        try:
            role = UserRole(role)
        except ValueError as e:
            msg = f"Unknown role: {role}"
            raise ValidationFailedError(msg) from e

        try:
            existing = await get_user(user_id=user_id)
        except NotFoundError:
            existing = None

        if existing is not None:
            if existing.role != role:
                msg = f"User {user_id} is already assigned as {existing.role}; role override is not allowed"
                raise ValidationFailedError(msg)
            return existing

        try:
            profile = User(id=user_id, **_new_profile(name=name, email=email, role=role, department=department))
        except ValidationError as e:
            msg = f"Invalid user: {e.errors()[0]['msg']}"
            raise ValidationFailedError(msg) from e

        record = await db_client.set_record(
            collection=USERS_COLLECTION,
            record_id=user_id,
            data=profile.model_dump(mode="json", exclude={"id"}),
        )
        logger.info("Created user on first access", extra={"user_id": user_id, "role": profile.role})
        await emit("user.created", user_id, role=profile.role)
        return User.from_record(record)


async def list_users(*, role: UserRole | str | None = None, department: str | None = None) -> list[User]:
    """List users, optionally filtered by role and department."""
    with span("user_service.list_users"):
        filters = []
        if role:
            filters.append(f'role = "{db_client.sanitize_param(str(role))}"')
        if department:
            filters.append(f'department = "{db_client.sanitize_param(department)}"')

        records = await db_client.list_all_records(
            collection=USERS_COLLECTION,
            filter_query=" && ".join(filters),
            sort="name",
        )
        return [User.from_record(record) for record in records]
