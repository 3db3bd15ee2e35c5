"""Configuration management for choreworld."""

from pathlib import Path

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

    # SQLite Configuration
    sqlite_db_path: str = Field(default="data/choreworld.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Period Configuration
    period_start_weekday: int = Field(
        default=0, ge=0, le=6, description="First day of the weekly period (0=Monday, 6=Sunday)"
    )

    # Scheduler Configuration
    scheduler_enabled: bool = Field(default=True, description="Enable/disable the periodic assignment jobs")
    daily_assignment_hour: int = Field(default=1, ge=0, le=23, description="Hour of the daily distribution job")
    daily_assignment_minute: int = Field(default=0, ge=0, le=59, description="Minute of the daily distribution job")
    weekly_rotation_hour: int = Field(default=0, ge=0, le=23, description="Hour of the weekly rotation job")
    weekly_rotation_minute: int = Field(default=1, ge=0, le=59, description="Minute of the weekly rotation job")

    @property
    def is_production(self) -> bool:
        """Whether the app runs in production."""
        return self.environment == "production"


# Application Constants
class Constants:
    """Application-wide constants."""

    # Experience Curve
    XP_BASE_COST: int = 100  # XP needed to go from level 1 to 2
    XP_GROWTH_FACTOR: float = 1.5  # Each level costs 50% more than the previous one
    BONUS_XP_MULTIPLIER: int = 2
    REGULAR_XP_MULTIPLIER: int = 1

    # Level Titles (index 0 = level 1)
    LEVEL_TITLES: tuple[str, ...] = (
        "Chore Rookie",
        "Task Helper",
        "Cleaning Cadet",
        "Chore Champion",
        "Tidiness Expert",
        "Organization Guru",
        "Cleanliness Master",
        "Chore Warrior",
        "Household Hero",
        "Supreme Organizer",
        "Legendary Cleaner",
    )

    # Period Configuration
    PERIOD_LENGTH_DAYS: int = 7

    # Weekly Duties
    DEFAULT_DUTY_NAME: str = "Dish Duty"
    DEFAULT_DUTY_DESCRIPTION: str = "Responsible for washing dishes and kitchen cleanup for the week"
    DEFAULT_DUTY_ICON: str = "🍽️"
    FALLBACK_DUTY_ICON: str = "🏠"

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 500  # Households are small, one page covers a group

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_BAD_REQUEST: int = 400
    HTTP_FORBIDDEN: int = 403
    HTTP_NOT_FOUND: int = 404
    HTTP_CONFLICT: int = 409
    HTTP_SERVER_ERROR: int = 500

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
