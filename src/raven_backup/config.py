from __future__ import annotations

import fnmatch
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from croniter import CroniterBadCronError, croniter
from pydantic import BaseModel, Field, field_validator

from .ravendb.smuggler import DEFAULT_EXECUTABLE
from .storage import database_name_from_dump

BACKUP_DIR_ENV = "RAVEN_BACKUP_DIR"


class ConfigurationError(Exception):
    """Raised when the backup configuration is invalid."""


class ServerConfig(BaseModel):
    url: str
    timeout_seconds: float = 30

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Server url must not be empty.")
        return value.rstrip("/")


class SmugglerConfig(BaseModel):
    executable: str = DEFAULT_EXECUTABLE
    pacing_seconds: float = Field(default=5.0, ge=0, description="Pause after every Smuggler run.")
    export_arguments: List[str] = Field(default_factory=list)
    import_arguments: List[str] = Field(default_factory=list)


class DatabaseFilter(BaseModel):
    include: List[str] = Field(default_factory=list, description="Glob patterns of database names to keep.")
    exclude: List[str] = Field(default_factory=list, description="Glob patterns of database names to drop.")

    @property
    def is_empty(self) -> bool:
        return not self.include and not self.exclude

    def matches(self, name: str) -> bool:
        if self.include and not any(fnmatch.fnmatchcase(name, pattern) for pattern in self.include):
            return False
        return not any(fnmatch.fnmatchcase(name, pattern) for pattern in self.exclude)

    def name_predicate(self) -> Optional[Callable[[str], bool]]:
        if self.is_empty:
            return None
        return self.matches

    def path_predicate(self) -> Optional[Callable[[Path], bool]]:
        if self.is_empty:
            return None
        return lambda path: self.matches(database_name_from_dump(path))


class ExportConfig(DatabaseFilter):
    match_all_without_filter: bool = True


class ImportConfig(DatabaseFilter):
    additional_bundles: List[str] = Field(default_factory=list)
    on_failure: Literal["continue", "abort"] = "continue"


class SchedulerConfig(BaseModel):
    cron: str
    timezone: str = "UTC"
    run_on_startup: bool = False

    @field_validator("cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        try:
            croniter(value, datetime.utcnow())
        except (CroniterBadCronError, ValueError) as exc:  # pragma: no cover - library errors
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc
        return value

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except ZoneInfoNotFoundError as exc:  # pragma: no cover - library errors
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value


class BackupConfig(BaseModel):
    backup_dir: Path
    server: ServerConfig
    smuggler: SmugglerConfig = Field(default_factory=SmugglerConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    import_: ImportConfig = Field(default_factory=ImportConfig, alias="import")
    scheduler: Optional[SchedulerConfig] = None

    model_config = {"populate_by_name": True}

    @field_validator("backup_dir")
    @classmethod
    def _expand_backup_dir(cls, value: Path) -> Path:
        return value.expanduser()


def load_config(path: Path) -> BackupConfig:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {path}")

    backup_dir_override = os.getenv(BACKUP_DIR_ENV)
    if backup_dir_override:
        raw["backup_dir"] = backup_dir_override

    try:
        return BackupConfig.model_validate(raw)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(str(exc)) from exc
