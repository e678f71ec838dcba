# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Settings for the solution tree engine.

Values come from keyword arguments or from ``SOLUTION_TREE_*`` environment
variables (nested logging settings use ``SOLUTION_TREE_LOGGING__LEVEL`` and
so on).

Example:
    >>> settings = TreeSettings(batch_size=5, restore_delay_seconds=0)
    >>> settings.max_depth
    10
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: Literal["json", "console"] = Field(default="console")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of {valid_levels}")
        return v


class TreeSettings(BaseSettings):
    """Tuning of tree building, expansion restore and active-item tracking."""

    batch_size: int = Field(
        default=20, ge=1, description="Nodes expanded concurrently per restore batch"
    )
    max_depth: int = Field(
        default=10, ge=1, description="Deepest level a restore session descends to"
    )
    indicator_min_seconds: float = Field(
        default=0.5, ge=0, description="Minimum time the working indicator stays up"
    )
    restore_delay_seconds: float = Field(
        default=0.5, ge=0, description="Pause between a build and its restore session"
    )
    reveal_delay_seconds: float = Field(
        default=0.3, ge=0, description="Pause before revealing the last focused node"
    )
    yield_seconds: float = Field(
        default=0.0, ge=0, description="Sleep between restore batches"
    )
    track_active_item: bool = Field(
        default=True, description="Select the active editor's file in the tree"
    )
    show_mode: Literal["activityBar", "explorer", "none"] = Field(default="explorer")

    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="SOLUTION_TREE_", env_nested_delimiter="__"
    )


@lru_cache
def get_settings() -> TreeSettings:
    """Return the process-wide settings, read from the environment once."""
    return TreeSettings()
