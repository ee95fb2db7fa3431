"""Configuration management for the timekeep CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import click
from dotenv import load_dotenv

from .idle import DEFAULT_IDLE_THRESHOLD_MS
from .manager import DEFAULT_COUNTER_COUNT, MIN_COUNTERS
from .store import MAX_COUNTERS

DEFAULT_DB_PATH = Path.home() / ".timekeep" / "timekeep.db"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise click.ClickException(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    """Runtime settings for the CLI."""

    db_path: Path = DEFAULT_DB_PATH
    idle_threshold_ms: int = DEFAULT_IDLE_THRESHOLD_MS
    initial_timers: int = DEFAULT_COUNTER_COUNT
    verbose: bool = False

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        # Real environment variables win over the .env file.
        load_dotenv(env_file)
        return cls(
            db_path=Path(os.environ.get("TIMEKEEP_DB", str(DEFAULT_DB_PATH))).expanduser(),
            idle_threshold_ms=_env_int("TIMEKEEP_IDLE_THRESHOLD_MS", DEFAULT_IDLE_THRESHOLD_MS),
            initial_timers=_env_int("TIMEKEEP_INITIAL_TIMERS", DEFAULT_COUNTER_COUNT),
            verbose=os.environ.get("TIMEKEEP_VERBOSE", "false").lower() == "true",
        )

    def validate(self) -> None:
        if self.idle_threshold_ms < 0:
            raise click.ClickException(
                f"Idle threshold must be non-negative, got {self.idle_threshold_ms}"
            )
        if not MIN_COUNTERS <= self.initial_timers <= MAX_COUNTERS:
            raise click.ClickException(
                f"Initial timer count must be between {MIN_COUNTERS} and {MAX_COUNTERS}, "
                f"got {self.initial_timers}"
            )


def get_settings(env_file: Path | None = None) -> Settings:
    settings = Settings.from_env(env_file)
    settings.validate()
    return settings


def db_option(f):
    """Decorator to add the database path option to commands."""
    return click.option(
        "--db",
        "db_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="SQLite file holding timer state (default: $TIMEKEEP_DB)",
    )(f)


def verbose_option(f):
    """Decorator to add verbose option to commands."""
    return click.option(
        "--verbose", "-v",
        is_flag=True,
        help="Enable verbose output",
    )(f)
