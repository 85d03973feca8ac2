"""
Service configuration, read from ``SILL_*`` environment variables.

Either ``SILL_DATA_DIR`` (local JSON directory, for development) or
``SILL_DATA_REPO_URL`` + ``SILL_GITHUB_TOKEN`` (GitHub data repository) must
be set.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sill.services.compile_trigger import DEFAULT_BUILD_REPOSITORY, DEFAULT_INTERVAL_SECONDS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SILL_",
        env_ignore_empty=True,
        extra="ignore",
    )

    data_repo_url: Optional[str] = Field(
        default=None,
        description="GitHub URL of the data repository, e.g. https://github.com/etalab/sill-data.",
    )
    github_token: str = Field(
        default="",
        description="Personal access token used for git operations and dispatch events.",
    )
    data_dir: Optional[Path] = Field(
        default=None,
        description="Local directory holding the JSON files. Takes precedence over data_repo_url.",
    )
    periodic_compile: bool = Field(
        default=False,
        description="If True, periodically request a full compilation from the external build.",
    )
    compile_interval_seconds: int = Field(
        default=DEFAULT_INTERVAL_SECONDS,
        ge=60,
        description="Interval between two periodic compilation requests. Minimum: 60 seconds.",
    )
    build_repository: str = Field(
        default=DEFAULT_BUILD_REPOSITORY,
        description="Repository (owner/repo) whose workflow compiles the data.",
    )
