"""Run configuration loaded from the environment."""

from __future__ import annotations

import os
import re
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default MetaCPAN API root
DEFAULT_INDEX_URL = "https://fastapi.metacpan.org/v1"

# Value of `index` selecting the MetaCPAN client
METACPAN_INDEX = "metacpan"


class RunSettings(BaseSettings):
    """Settings for one run, read from DEPENDENTS_TESTER_* variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEPENDENTS_TESTER_",
        case_sensitive=False,
        extra="ignore",
    )

    processes: int = Field(default=1, ge=1, description="Worker processes (>1 runs in parallel)")
    log_dir: Path | None = Field(default=None, description="Directory for run logs")
    index_verbose: bool = Field(default=False, description="Show upstream tool output")
    exclude: str | None = Field(default=None, description="Regex of distributions to skip")
    keep_install_root: bool = Field(
        default=False, description="Leave installed prerequisites behind after the run"
    )
    index: str = Field(
        default=METACPAN_INDEX, description="'metacpan' or path to a static YAML index"
    )
    index_url: str = Field(default=DEFAULT_INDEX_URL, description="MetaCPAN API root")
    work_dir: Path | None = Field(default=None, description="Where sources are unpacked")
    run_id: str = Field(default_factory=lambda: str(os.getpid()))

    @field_validator("log_dir")
    @classmethod
    def _log_dir_exists(cls, value: Path | None) -> Path | None:
        if value is not None and not value.is_dir():
            raise ValueError(f"log directory does not exist: {value}")
        return value

    @field_validator("exclude")
    @classmethod
    def _exclude_compiles(cls, value: str | None) -> str | None:
        if value:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid exclude pattern {value!r}: {e}") from e
        return value or None

    @property
    def parallel(self) -> bool:
        """True when more than one worker process is requested."""
        return self.processes > 1
