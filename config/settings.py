"""
Application settings loaded from environment variables.

All tunables of the streaming engine are centralized here.
Uses pydantic-settings for type-safe .env loading.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration — loaded from .env / environment variables."""

    # ── Reading ──────────────────────────────────────────────────────────
    READ_BUFFER_SIZE: int = Field(
        default=65536,
        gt=0,
        description="Bytes requested from the OS per read call.",
    )
    PIPE_READ_TIMEOUT: float = Field(
        default=0.1,
        gt=0.0,
        description="Read deadline for named pipes; expiry means the writer is idle.",
    )
    IO_THREADS: int = Field(
        default=8,
        gt=0,
        description="Worker threads shared by all streams for blocking syscalls.",
    )

    # ── Scheduling ───────────────────────────────────────────────────────
    WAKE_INTERVAL: float = Field(default=0.25, gt=0.0)
    START_AT_END: bool = True  # supervisor default for newly tailed files

    # ── Line sink ────────────────────────────────────────────────────────
    LINE_QUEUE_MAX_SIZE: int = Field(default=10000, gt=0)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
