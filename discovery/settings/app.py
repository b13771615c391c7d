"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    db_path: Path = Field(
        default=Path("state/discovery.sqlite"), validation_alias="DISCOVERY_DB_PATH"
    )
    weights_path: Path | None = Field(
        default=None, validation_alias="DISCOVERY_WEIGHTS_PATH"
    )
    request_budget_ms: int = Field(
        default=250, ge=10, validation_alias="DISCOVERY_REQUEST_BUDGET_MS"
    )
    candidate_pool_size: int = Field(
        default=200, ge=1, le=5000, validation_alias="DISCOVERY_CANDIDATE_POOL_SIZE"
    )
    cluster_strategy: str = Field(
        default="peer", validation_alias="DISCOVERY_CLUSTER_STRATEGY"
    )
    trending_interval_minutes: int = Field(
        default=15, ge=1, validation_alias="DISCOVERY_TRENDING_INTERVAL_MINUTES"
    )
    log_json: bool = Field(default=True, validation_alias="DISCOVERY_LOG_JSON")
    log_level: str = Field(default="INFO", validation_alias="DISCOVERY_LOG_LEVEL")
    admin_role: str = Field(default="admin", validation_alias="DISCOVERY_ADMIN_ROLE")

    def log_level_number(self) -> int:
        """Return the numeric stdlib logging level for ``log_level``."""
        levels = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}
        return levels.get(self.log_level.upper(), 20)


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
