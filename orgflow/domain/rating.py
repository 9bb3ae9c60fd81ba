"""Rating and skill record domain models."""

import hashlib
import json
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


def rating_record_id(*, rater_id: str, rated_id: str) -> str:
    """Composite document ID: one rating per (rated, rater) pair.

    Hashing the JSON-encoded pair keeps the key unambiguous for any user ID,
    including ones that contain separators.
    """
    pair = json.dumps([rated_id, rater_id], ensure_ascii=False)
    return hashlib.sha256(pair.encode()).hexdigest()[:32]


class RatingRecord(BaseModel):
    """A rater's current scores for a rated user."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Hash of the (rated_id, rater_id) pair")
    rater_id: str = Field(..., description="User who submitted the rating")
    rated_id: str = Field(..., description="User being rated")
    sub_scores: list[float] = Field(..., min_length=1, description="One score per skill dimension")
    average: float = Field(..., description="Mean of sub_scores")
    updated_at: datetime = Field(..., description="Last submission timestamp")


class UserSkill(BaseModel):
    """A skill claimed by a user, optionally validated by a manager."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique skill record ID")
    user_id: str = Field(..., description="Owner of the skill")
    skill_name: str = Field(..., description="Skill name")
    proficiency: int = Field(..., ge=1, le=5, description="Self-assessed proficiency (1-5)")
    validated: bool = Field(default=False, description="Whether a manager validated the skill")
    validated_by: str | None = Field(default=None, description="Validating manager ID")
    validated_at: datetime | None = Field(default=None, description="Validation timestamp")
    created_at: datetime | None = Field(default=None, description="Request timestamp")
