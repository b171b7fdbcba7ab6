from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _default_data_dir() -> Path:
    override = os.getenv("WORKTIMER_DATA_DIR", "").strip()
    if override:
        return Path(override)

    system = platform.system().lower()
    if system == "windows":
        appdata = os.getenv("APPDATA", "").strip()
        if appdata:
            return Path(appdata) / "worktimer"
    return Path.home() / ".worktimer"


@dataclass(frozen=True)
class WorktimerConfig:
    data_dir: Path
    tick_ms: int
    log_level: str
    log_console: bool
    fsync_writes: bool

    @property
    def tick_seconds(self) -> float:
        return self.tick_ms / 1000

    @property
    def sessions_path(self) -> Path:
        return self.data_dir / "sessions.json"

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @classmethod
    def from_env(cls) -> "WorktimerConfig":
        log_level = os.getenv("WORKTIMER_LOG_LEVEL", "INFO").strip().upper() or "INFO"
        return cls(
            data_dir=_default_data_dir(),
            tick_ms=max(50, _env_int("WORKTIMER_TICK_MS", 500)),
            log_level=log_level,
            log_console=_env_flag("WORKTIMER_LOG_CONSOLE", False),
            fsync_writes=_env_flag("WORKTIMER_FSYNC", True),
        )
