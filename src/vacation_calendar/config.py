"""Runtime settings loaded from the environment (prefix ``VACATION_``)."""

from __future__ import annotations

import tempfile
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Settings for the scheduling core, sync coordinator and tool server."""

    model_config = SettingsConfigDict(
        env_prefix="VACATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_max_allowed: int = Field(
        default=3, ge=0, description="Cap applied when no limit record exists"
    )
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.5, ge=0.0, description="Seconds")
    retry_max_delay: float = Field(default=4.0, ge=0.0, description="Seconds")
    settle_delay: float = Field(
        default=1.0, ge=0.0, description="Seconds between the two post-mutation refreshes"
    )
    log_level: str = "INFO"
    log_format: Literal["standard", "json"] = "standard"
    output_dir: str = Field(default_factory=tempfile.gettempdir)


@lru_cache
def get_settings() -> SchedulerSettings:
    return SchedulerSettings()
