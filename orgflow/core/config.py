"""Configuration management for orgflow."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document Store Configuration
    sqlite_db_path: str = Field(default="./data/orgflow.db", description="SQLite document store file path")

    # Identity Store Configuration (optional)
    identity_base_url: str | None = Field(
        default=None, description="Base URL of the external identity store (auth accounts)"
    )
    identity_api_key: str | None = Field(default=None, description="API key for the identity store admin API")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="production", description="Deployment environment name")

    # Workflow Rules
    submission_note_min_length: int = Field(
        default=20, description="Minimum number of characters in a module submission note"
    )
    module_approval_points: int = Field(
        default=50, description="Points awarded to each assignee when a module is approved"
    )
    transaction_max_attempts: int = Field(
        default=5, description="Maximum optimistic read-modify-write attempts before reporting a conflict"
    )

    # Termination Rules
    termination_roles: list[str] = Field(
        default_factory=lambda: ["admin"],
        description="Roles allowed to terminate users and onboard new members",
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30

    # HTTP Status Codes
    HTTP_NOT_FOUND: int = 404

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100  # Default pagination limit for list queries

    # Cascade Deletion
    CASCADE_BATCH_SIZE: int = 500  # Max documents per delete batch

    # Transactions
    TRANSACTION_RETRY_BASE_DELAY_SECONDS: float = 0.01  # Backoff base between optimistic retries

    # Ratings
    RATING_MIN_SCORE: float = 0.0
    RATING_MAX_SCORE: float = 5.0
    SCORE_DECIMALS: int = 2

    # Skills
    SKILL_MIN_PROFICIENCY: int = 1
    SKILL_MAX_PROFICIENCY: int = 5

    # Identity Store
    IDENTITY_MAX_RETRIES: int = 3
    IDENTITY_RETRY_DELAY_SECONDS: float = 0.5


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
