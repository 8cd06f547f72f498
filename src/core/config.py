"""Runtime configuration, read from TASKBOARD_* environment variables."""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Self

ENV_PREFIX = "TASKBOARD_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, str(default)).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./taskboard.db"
    echo_sql: bool = False
    log_level: str = "INFO"

    # ordering
    base_position: float = 65536.0
    min_delta: float = 0.01
    max_position_retries: int = 10
    retry_jitter_seconds: float = 0.005

    # real-time
    echo_suppressed_events: frozenset[str] = field(
        default_factory=lambda: frozenset({"item-moved"})
    )

    @classmethod
    def from_env(cls) -> Self:
        """Every field can be overridden by its upper-cased name, e.g. TASKBOARD_MIN_DELTA=0.001"""
        suppressed = _env("ECHO_SUPPRESSED_EVENTS", "item-moved")
        return cls(
            database_url=_env("DATABASE_URL", cls.database_url),
            echo_sql=_env_bool("ECHO_SQL", cls.echo_sql),
            log_level=_env("LOG_LEVEL", cls.log_level).upper(),
            base_position=float(_env("BASE_POSITION", str(cls.base_position))),
            min_delta=float(_env("MIN_DELTA", str(cls.min_delta))),
            max_position_retries=int(
                _env("MAX_POSITION_RETRIES", str(cls.max_position_retries))
            ),
            retry_jitter_seconds=float(
                _env("RETRY_JITTER_SECONDS", str(cls.retry_jitter_seconds))
            ),
            echo_suppressed_events=frozenset(
                kind.strip() for kind in suppressed.split(",") if kind.strip()
            ),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
