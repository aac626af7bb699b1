from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

LOG = logging.getLogger(__name__)

DUMP_EXTENSION = ".ravendump"

PathLike = Union[str, Path]


def resolve_dump_path(database_name: str, backup_dir: PathLike) -> Path:
    """Map a database name to its dump file under ``backup_dir``.

    Names that already carry the dump extension are used as is.
    """
    if not database_name.endswith(DUMP_EXTENSION):
        database_name = f"{database_name}{DUMP_EXTENSION}"
    return Path(backup_dir).absolute() / database_name


def database_name_from_dump(path: PathLike) -> str:
    name = Path(path).name
    if name.endswith(DUMP_EXTENSION):
        return name[: -len(DUMP_EXTENSION)]
    return Path(name).stem


@dataclass
class BackupDirectory:
    """Filesystem location holding one dump file per database."""

    path: Path

    def ensure(self) -> Path:
        if not self.path.exists():
            LOG.info("Creating backup directory %s", self.path)
        self.path.mkdir(parents=True, exist_ok=True)
        return self.path

    def dump_path(self, database_name: str) -> Path:
        return resolve_dump_path(database_name, self.path)

    def list_dumps(self, predicate: Optional[Callable[[Path], bool]] = None) -> List[Path]:
        if not self.path.exists():
            LOG.warning("Backup directory %s does not exist", self.path)
            return []
        dumps = [child for child in self.path.glob(f"*{DUMP_EXTENSION}") if child.is_file()]
        if predicate is not None:
            dumps = [child for child in dumps if predicate(child)]
        return dumps


def build_backup_directory(path: PathLike) -> BackupDirectory:
    return BackupDirectory(path=Path(path).expanduser())
