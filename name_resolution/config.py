"""Application configuration using pydantic-settings pattern."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Student Name Resolution"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Database (Turso)
    turso_database_url: str | None = Field(default=None)
    turso_auth_token: str | None = Field(default=None)

    # Notion CRM (student roster)
    notion_api_key: str | None = Field(default=None)
    notion_crm_database_id: str | None = Field(default=None)
    notion_api_version: str = Field(default="2022-06-28")
    notion_page_size: int = Field(default=100, ge=1, le=100)
    crm_name_property: str = Field(default="שם התלמיד")
    crm_status_property: str = Field(default="סטטוס")
    crm_active_statuses: list[str] = Field(
        default_factory=lambda: [
            "לומד 1:1",
            "לומד 1:1 לסירוגין",
            "לומד בקבוצה חמישי",
            "לומד בקבוצה -ראשון",
            "תלמידים ותיקים🎵",
        ],
        description="CRM status labels that count as currently enrolled",
    )
    roster_fetch_max_attempts: int = Field(default=5, ge=1)

    # Transcript name extraction
    teacher_aliases: list[str] = Field(
        default_factory=lambda: ["ענבל", "ענבל מיטין", "ענבל מיטין - פיתוח קול"],
        description="Speaker labels that are never the student",
    )
    extraction_max_lines: int = Field(default=30, ge=1)

    # Matching
    match_low_threshold: int = Field(default=55, ge=0, le=100)
    match_high_threshold: int = Field(default=80, ge=0, le=100)
    match_active_bonus: int = Field(default=5, ge=0, le=10)
    transliterations_path: str | None = Field(
        default=None, description="Override for bundled transliterations.json"
    )
    blacklist_path: str | None = Field(
        default=None, description="Override for bundled blacklist.json"
    )

    # Batch resolver
    batch_actor: str = Field(default="system:batch-resolver")
    batch_schedule_enabled: bool = Field(default=True)
    batch_interval_hours: int = Field(default=6, ge=1)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
