"""Scoring service for ratings, rating aggregates, points and the leaderboard.

A user's ``rating_score``/``rating_count`` are always recomputed from the
rating records that exist right now, never patched incrementally, so they
stay correct when ratings are overwritten or deleted.
"""

import logging
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from orgflow.core import db_client
from orgflow.core.config import constants
from orgflow.core.errors import NotFoundError, ValidationFailedError
from orgflow.core.events import emit
from orgflow.core.logging import log_with_user_context, span
from orgflow.domain.rating import RatingRecord, rating_record_id
from orgflow.domain.user import User, UserRole
from orgflow.models.service_models import LeaderboardEntry, ScoreSummary


logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
RATINGS_COLLECTION = "ratings"


def _validate_sub_scores(sub_scores: list[float]) -> list[float]:
    if not sub_scores:
        msg = "At least one sub-score is required"
        raise ValidationFailedError(msg)

    scores: list[float] = []
    for score in sub_scores:
        if isinstance(score, bool) or not isinstance(score, int | float):
            msg = f"Sub-scores must be numbers, got {score!r}"
            raise ValidationFailedError(msg)
        if not constants.RATING_MIN_SCORE <= score <= constants.RATING_MAX_SCORE:
            msg = f"Sub-scores must be between {constants.RATING_MIN_SCORE:g} and {constants.RATING_MAX_SCORE:g}"
            raise ValidationFailedError(msg)
        scores.append(float(score))
    return scores


def _round_score(value: float) -> float:
    """Round half up to SCORE_DECIMALS places (3.125 -> 3.13)."""
    quantum = Decimal(1).scaleb(-constants.SCORE_DECIMALS)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


async def _require_user(user_id: str) -> User:
    try:
        record = await db_client.get_record(collection=USERS_COLLECTION, record_id=user_id)
    except db_client.RecordNotFoundError as e:
        msg = f"User not found: {user_id}"
        raise NotFoundError(msg) from e
    return User.from_record(record)


async def submit_rating(*, rater_id: str, rated_user_id: str, sub_scores: list[float]) -> RatingRecord:
    """Create or overwrite the rater's rating of a user, then recompute the aggregate.

    Args:
        rater_id: User submitting the rating
        rated_user_id: User being rated
        sub_scores: One score per skill dimension, each within [0, 5]

    Returns:
        The stored rating record

    Raises:
        ValidationFailedError: If the scores are empty or out of range, or a user rates themselves
        NotFoundError: If either user does not exist
    """
    with span("scoring_service.submit_rating"):
        scores = _validate_sub_scores(sub_scores)

        if rater_id == rated_user_id:
            msg = "Users cannot rate themselves"
            raise ValidationFailedError(msg)

        await _require_user(rater_id)
        await _require_user(rated_user_id)

        record_id = rating_record_id(rater_id=rater_id, rated_id=rated_user_id)
        data = {
            "rater_id": rater_id,
            "rated_id": rated_user_id,
            "sub_scores": scores,
            "average": sum(scores) / len(scores),
            "updated_at": datetime.now(UTC).isoformat(),
        }
        record = await db_client.set_record(collection=RATINGS_COLLECTION, record_id=record_id, data=data)

        log_with_user_context(
            logger,
            "info",
            "Rating submitted",
            user_id=rater_id,
            rated_id=rated_user_id,
            average=data["average"],
        )

        await recompute(user_id=rated_user_id)
        await emit("rating.submitted", record_id, rater_id=rater_id, rated_id=rated_user_id)

        return RatingRecord.model_validate(record)


async def recompute(*, user_id: str) -> ScoreSummary:
    """Recompute a user's rating score and count from their current ratings.

    Zero remaining ratings reset the score to 0 and the count to 0.

    Raises:
        NotFoundError: If the user does not exist
    """
    with span("scoring_service.recompute"):
        ratings = await db_client.list_all_records(
            collection=RATINGS_COLLECTION,
            filter_query=f'rated_id = "{db_client.sanitize_param(user_id)}"',
        )
        averages = [float(rating["average"]) for rating in ratings]
        score = _round_score(sum(averages) / len(averages)) if averages else 0.0

        try:
            await db_client.update_record(
                collection=USERS_COLLECTION,
                record_id=user_id,
                data={"rating_score": score, "rating_count": len(averages)},
            )
        except db_client.RecordNotFoundError as e:
            msg = f"User not found: {user_id}"
            raise NotFoundError(msg) from e

        logger.info(
            "Recomputed rating score",
            extra={"user_id": user_id, "rating_score": score, "rating_count": len(averages)},
        )
        return ScoreSummary(user_id=user_id, rating_score=score, rating_count=len(averages))


async def award_points(*, user_ids: list[str], points: int) -> list[str]:
    """Atomically add points to each user; users that no longer exist are skipped.

    Returns:
        IDs of the users that received points
    """
    with span("scoring_service.award_points"):
        awarded: list[str] = []
        for user_id in dict.fromkeys(user_ids):
            try:
                await db_client.increment_field(
                    collection=USERS_COLLECTION,
                    record_id=user_id,
                    field="points",
                    amount=points,
                )
            except db_client.RecordNotFoundError:
                logger.warning("Skipping points for missing user", extra={"user_id": user_id, "points": points})
                continue
            awarded.append(user_id)

        if awarded:
            logger.info("Awarded points", extra={"user_ids": awarded, "points": points})
        return awarded


async def get_leaderboard(*, department: str | None = None) -> list[LeaderboardEntry]:
    """Rank contributors by rating score, then points (both descending)."""
    with span("scoring_service.get_leaderboard"):
        filter_query = f'role = "{UserRole.EMPLOYEE}"'
        if department:
            filter_query += f' && department = "{db_client.sanitize_param(department)}"'

        records = await db_client.list_all_records(collection=USERS_COLLECTION, filter_query=filter_query)
        users = [User.from_record(record) for record in records]
        users.sort(key=lambda user: (-user.rating_score, -user.points))

        return [
            LeaderboardEntry(
                rank=rank,
                user_id=user.id,
                user_name=user.name,
                department=user.department,
                rating_score=user.rating_score,
                rating_count=user.rating_count,
                points=user.points,
            )
            for rank, user in enumerate(users, start=1)
        ]


async def recompute_all() -> list[ScoreSummary]:
    """Recompute the rating aggregate of every user."""
    with span("scoring_service.recompute_all"):
        records = await db_client.list_all_records(collection=USERS_COLLECTION)
        summaries = [await recompute(user_id=record["id"]) for record in records]
        logger.info("Recomputed all rating scores", extra={"user_count": len(summaries)})
        return summaries
