"""Runtime settings and retrieval budgets loaded from the environment."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "REPO_SCRAPER_"
JAILED_FILE_SIZE_LIMIT = 128 * 1024
FREED_FILE_SIZE_LIMIT = 64 * 1024


@dataclass(frozen=True, slots=True)
class RetrievalBudget:
    max_bytes: int | None = None
    max_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_bytes is not None and self.max_bytes < 0:
            object.__setattr__(self, "max_bytes", None)
        if self.max_seconds is not None and self.max_seconds < 0:
            object.__setattr__(self, "max_seconds", None)

    @property
    def unlimited(self) -> bool:
        return self.max_bytes is None and self.max_seconds is None


class ScraperSettings(BaseModel):
    basedir: Path | None = None
    max_bytes: int | None = None
    max_seconds: float | None = None
    poll_interval_seconds: float = 1.0
    kill_grace_seconds: float = 5.0
    simple_command_timeout_seconds: float = 60.0
    output_max_line_count: int = 10
    output_max_line_length: int = 128
    jailed_file_size_limit: int = JAILED_FILE_SIZE_LIMIT
    freed_file_size_limit: int = FREED_FILE_SIZE_LIMIT
    jailed_size_limit_bytes: int | None = 64 * 1024 * 1024
    metadata_generation_timeout_seconds: float = 120.0
    metadata_command: list[str] = Field(default_factory=list)
    validate_urls: bool = False
    allow_branch_self_heal: bool = True

    @field_validator("max_bytes", "max_seconds", "jailed_size_limit_bytes")
    @classmethod
    def _negative_means_unlimited(cls, value: Any) -> Any:
        if value is not None and value < 0:
            return None
        return value

    @field_validator("poll_interval_seconds")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("poll interval must be positive")
        return value

    def budget(self) -> RetrievalBudget:
        """Return the retrieval budget configured by these settings."""
        return RetrievalBudget(max_bytes=self.max_bytes, max_seconds=self.max_seconds)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(environ: Mapping[str, str] | None = None) -> ScraperSettings:
    """Load scraper settings from `.env` and `REPO_SCRAPER_*` environment variables."""
    if environ is None:
        load_dotenv()
        environ = os.environ

    values: dict[str, Any] = {}
    for name, field in ScraperSettings.model_fields.items():
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is None or raw.strip() == "":
            continue
        if name == "metadata_command":
            values[name] = shlex.split(raw)
        elif field.annotation is bool:
            values[name] = _parse_bool(raw)
        else:
            values[name] = raw.strip()
    return ScraperSettings(**values)
