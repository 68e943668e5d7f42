from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_LOG_PATH = Path("/data/logs/latest.log")
DEFAULT_OUTPUT_DIR = Path("/data/timelog/")
DEFAULT_ROLLOVER_CHECK_SECONDS = 30


@dataclass(frozen=True, slots=True)
class Config:
    log_path: Path
    output_dir: Path
    rollover_check_seconds: int
    log_level: int

    def with_overrides(self, *, log_path: Path | None = None, output_dir: Path | None = None) -> Config:
        return replace(
            self,
            log_path=log_path or self.log_path,
            output_dir=output_dir or self.output_dir,
        )


def _path_env(name: str, default: Path) -> Path:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    return Path(value).expanduser()


def _positive_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _log_level_env(name: str) -> int:
    level_name = os.getenv(name, "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level in {name}: {level_name}")
    return level


def load_config() -> Config:
    return Config(
        log_path=_path_env("MINECRAFT_LOG_PATH", DEFAULT_LOG_PATH),
        output_dir=_path_env("PLAYTIME_OUTPUT_DIR", DEFAULT_OUTPUT_DIR),
        rollover_check_seconds=_positive_int_env("ROLLOVER_CHECK_SECONDS", DEFAULT_ROLLOVER_CHECK_SECONDS),
        log_level=_log_level_env("LOG_LEVEL"),
    )
