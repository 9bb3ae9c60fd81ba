"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from pydantic import BaseModel, Field


class LeaderboardEntry(BaseModel):
    """Contributor entry in the performance leaderboard."""

    rank: int
    user_id: str
    user_name: str
    department: str | None = None
    rating_score: float
    rating_count: int
    points: int


class ScoreSummary(BaseModel):
    """Recomputed rating aggregate for a user."""

    user_id: str
    rating_score: float
    rating_count: int


class TerminationResult(BaseModel):
    """Outcome of a completed user termination cascade."""

    target_id: str
    identity_deleted: bool
    deleted_task_ids: list[str] = Field(default_factory=list)
    updated_task_ids: list[str] = Field(default_factory=list)
    deleted_skill_count: int = 0
    deleted_rating_count: int = 0
    recomputed: list[ScoreSummary] = Field(default_factory=list)
