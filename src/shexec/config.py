"""Environment-driven settings for the job table."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    value = int(raw)
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    max_jobs: int = 64
    job_text_max: int = 255

    @classmethod
    def from_env(cls) -> Settings:
        """Read SHEXEC_* variables, falling back to the defaults."""
        return cls(
            max_jobs=_positive_int("SHEXEC_MAX_JOBS", cls.max_jobs),
            job_text_max=_positive_int("SHEXEC_JOB_TEXT_MAX", cls.job_text_max),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
