"""
Runtime configuration read from environment variables.

EngineSettings carries the behaviour knobs the parser, cache and updater
consult; ServerConfig carries process-level options for server.main.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Set

DEFAULT_EXCLUDE_DIRS = ".git,.obsidian,node_modules,.trash"
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_API_PORT = 9400


def parse_list(raw: Optional[str]) -> List[str]:
    """Parse a comma-separated list, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def _parse_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class EngineSettings:
    metadata_delimiter: str = "|"
    custom_stages: List[str] = field(default_factory=list)
    excluded_folders: List[str] = field(default_factory=list)
    excluded_patterns: List[str] = field(default_factory=list)
    document_extension: str = ".md"
    first_day_of_week: int = 0
    recurring_auto_create: bool = True
    max_undo_entries: int = 50
    daily_note_folder: str = ""
    daily_note_date_format: str = "YYYY-MM-DD"
    daily_note_tasks_heading: str = "## Tasks"

    def __post_init__(self) -> None:
        if not self.metadata_delimiter:
            raise ValueError("metadata_delimiter cannot be empty")
        if not 0 <= self.first_day_of_week <= 6:
            raise ValueError("first_day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        if self.max_undo_entries < 1:
            raise ValueError("max_undo_entries must be at least 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            metadata_delimiter=env.get("METADATA_DELIMITER", "").strip() or defaults.metadata_delimiter,
            custom_stages=parse_list(env.get("CUSTOM_STAGES")),
            excluded_folders=parse_list(env.get("EXCLUDED_FOLDERS")),
            excluded_patterns=parse_list(env.get("EXCLUDED_PATTERNS")),
            first_day_of_week=_parse_int(env, "FIRST_DAY_OF_WEEK", defaults.first_day_of_week),
            recurring_auto_create=parse_bool(env.get("RECURRING_AUTO_CREATE"), True),
            max_undo_entries=_parse_int(env, "MAX_UNDO_ENTRIES", defaults.max_undo_entries),
            daily_note_folder=env.get("DAILY_NOTE_FOLDER", "").strip().strip("/"),
            daily_note_date_format=env.get("DAILY_NOTE_DATE_FORMAT", "").strip()
            or defaults.daily_note_date_format,
            daily_note_tasks_heading=env.get("DAILY_NOTE_TASKS_HEADING", "").strip()
            or defaults.daily_note_tasks_heading,
        )


@dataclass
class ServerConfig:
    vault_root: Path
    skip_dirs: Set[str] = field(default_factory=lambda: set(parse_list(DEFAULT_EXCLUDE_DIRS)))
    poll_interval: float = DEFAULT_POLL_INTERVAL
    api_enabled: bool = True
    api_port: int = DEFAULT_API_PORT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
        """
        Build the server config. Raises ValueError when VAULT_ROOT is unset or
        a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        root = env.get("VAULT_ROOT", "").strip()
        if not root:
            raise ValueError("VAULT_ROOT environment variable is not set")

        raw_interval = env.get("POLL_INTERVAL", "").strip()
        try:
            poll_interval = float(raw_interval) if raw_interval else DEFAULT_POLL_INTERVAL
        except ValueError:
            raise ValueError(f"POLL_INTERVAL must be a number, got {raw_interval!r}") from None
        if poll_interval <= 0:
            raise ValueError("POLL_INTERVAL must be positive")

        return cls(
            vault_root=Path(root),
            skip_dirs=set(parse_list(env.get("EXCLUDE_DIRS", DEFAULT_EXCLUDE_DIRS))),
            poll_interval=poll_interval,
            api_enabled=parse_bool(env.get("API_ENABLED"), True),
            api_port=_parse_int(env, "API_PORT", DEFAULT_API_PORT),
            log_level=(env.get("LOG_LEVEL", "").strip() or "INFO").upper(),
        )
