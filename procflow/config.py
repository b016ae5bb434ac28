from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BASE_X,
    DEFAULT_BASE_Y,
    DEFAULT_DUE_DATE_HOURS,
    DEFAULT_GAP_X,
    DEFAULT_GAP_Y,
    NEAR_DUE_HOURS,
    OUTLIER_HOURS,
)


class LayoutConfig(BaseModel):
    """Canvas geometry used by the auto-layout."""

    base_x: float = DEFAULT_BASE_X
    base_y: float = DEFAULT_BASE_Y
    gap_x: float = DEFAULT_GAP_X
    gap_y: float = DEFAULT_GAP_Y


class AnalyticsConfig(BaseModel):
    """Thresholds for duration and SLA reporting."""

    outlier_hours: float = OUTLIER_HOURS
    near_due_hours: float = Field(default=NEAR_DUE_HOURS, ge=0)


class ProcflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    default_due_hours: int = Field(default=DEFAULT_DUE_DATE_HOURS, gt=0)
    layout: LayoutConfig = LayoutConfig()
    analytics: AnalyticsConfig = AnalyticsConfig()


def load_config(path: Optional[str] = None) -> ProcflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PROCFLOW_CONFIG env
            variable or 'procflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("PROCFLOW_CONFIG", "procflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ProcflowConfig(**data)
    else:
        config = ProcflowConfig()

    env_db_url = os.getenv("PROCFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
