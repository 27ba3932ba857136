from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="RESIDENCY_", case_sensitive=False)

    environment: Literal["development", "staging", "production"] = "development"
    project_name: str = "Residency Scheduling API"
    version: str = "0.1.0"
    log_level: str = "INFO"

    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )

    default_tries: int = Field(default=100, ge=1)
    default_top_n: int = Field(default=3, ge=1)
    max_workers: int | None = Field(default=None, ge=1)

    violation_weight: float = 10_000
    fairness_weight: float = 10
    streak_weight: float = 100


@lru_cache
def get_settings() -> Settings:
    return Settings()
