"""User domain models and enums."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Constants for validation
MAX_NAME_LENGTH = 80


class UserRole(StrEnum):
    """User role in the organization."""

    EMPLOYEE = "employee"
    LEAD = "lead"
    CCO = "cco"
    COO = "coo"
    CEO = "ceo"
    ADMIN = "admin"


# Higher tier outranks lower tier; equal tiers are peers
ROLE_TIERS: dict[UserRole, int] = {
    UserRole.EMPLOYEE: 0,
    UserRole.LEAD: 1,
    UserRole.CCO: 2,
    UserRole.COO: 2,
    UserRole.CEO: 3,
    UserRole.ADMIN: 4,
}

MANAGER_MIN_TIER = ROLE_TIERS[UserRole.LEAD]


def role_tier(role: UserRole | str) -> int:
    """Return the authorization tier of a role."""
    return ROLE_TIERS[UserRole(role)]


def is_manager(role: UserRole | str) -> bool:
    """Leads and above manage tasks."""
    return role_tier(role) >= MANAGER_MIN_TIER


class User(BaseModel):
    """User data transfer object."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique user ID")
    name: str = Field(..., description="Display name of the user")
    email: str = Field(..., description="Email address")
    role: UserRole = Field(default=UserRole.EMPLOYEE, description="User role in the organization")
    department: str | None = Field(default=None, description="Optional department tag")
    points: int = Field(default=0, description="Running point total from approved modules")
    rating_score: float = Field(default=0.0, description="Mean of all ratings received (2 decimals)")
    rating_count: int = Field(default=0, description="Number of ratings received")
    created_at: datetime | None = Field(default=None, description="Profile creation timestamp")

    @field_validator("name")
    @classmethod
    def validate_name_usable(cls, v: str) -> str:
        """Validate name is non-empty and within length limits."""
        v = v.strip()

        if not v:
            raise ValueError("Name cannot be empty")

        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f"Name too long (max {MAX_NAME_LENGTH} characters)")

        return v

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "User":
        """Build a user from a document store record."""
        return cls.model_validate(record)
