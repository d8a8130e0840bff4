from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_MAX_STEPS_PER_EXECUTION,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_JITTER,
)


class EngineConfig(BaseModel):
    """Execution controller tuning."""

    max_steps_per_execution: int = Field(default=DEFAULT_MAX_STEPS_PER_EXECUTION, gt=0)
    retry_backoff_multiplier: float = Field(
        default=DEFAULT_RETRY_BACKOFF_MULTIPLIER, ge=1.0
    )
    retry_jitter: float = Field(default=DEFAULT_RETRY_JITTER, ge=0)
    max_delay_seconds: Optional[float] = Field(
        default=None,
        description="Upper bound applied to delay steps and retry waits",
    )


class HrflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    engine: EngineConfig = EngineConfig()
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def load_config(path: Optional[str] = None) -> HrflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to HRFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("HRFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = HrflowConfig(**data)
    else:
        config = HrflowConfig()

    env_db_url = os.getenv("HRFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
