from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .ravendb.api import DATABASE_DOCUMENT_PREFIX, DEFAULT_PAGE_SIZE, AdminClient
from .ravendb.lifecycle import DatabaseLifecycleManager
from .ravendb.smuggler import DISABLE_VERSIONING_FLAG, SmugglerFatalError, SmugglerWrapper
from .storage import database_name_from_dump

LOG = logging.getLogger(__name__)

NamePredicate = Callable[[str], bool]
PathPredicate = Callable[[Path], bool]


@dataclass
class DatabaseResult:
    database: str
    action: str
    status: str
    started_at: datetime
    completed_at: datetime
    attempts: int = 1
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "success"


class ExportOrchestrator:
    """Dumps every eligible database on the server, one at a time."""

    def __init__(
        self,
        client: AdminClient,
        smuggler: SmugglerWrapper,
        extra_arguments: Sequence[str] = (),
        match_all_without_predicate: bool = True,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._client = client
        self._smuggler = smuggler
        self._extra_arguments = tuple(extra_arguments)
        self._match_all_without_predicate = match_all_without_predicate
        self._page_size = page_size

    def collect_database_names(self, predicate: Optional[NamePredicate] = None) -> List[str]:
        if predicate is None and not self._match_all_without_predicate:
            LOG.warning("No database filter supplied and match-all is disabled; nothing will be exported")

        names: List[str] = []
        start = 0
        page = self._client.list_database_names(self._page_size, start)
        while page:
            for name in page:
                if not self._accepts(name, predicate):
                    continue
                if self._is_disabled(name):
                    LOG.info("Skipping disabled database %s", name)
                    continue
                names.append(name)
            start += len(page)
            page = self._client.list_database_names(self._page_size, start)
        return names

    def export_all(self, predicate: Optional[NamePredicate] = None) -> List[DatabaseResult]:
        names = self.collect_database_names(predicate)
        LOG.info("Total databases to backup = %s", len(names))
        return [self._export(name) for name in names]

    def export_one(self, database_name: str) -> Optional[DatabaseResult]:
        if not database_name or not database_name.strip():
            LOG.warning("Database name incorrectly specified: %r", database_name)
            return None
        return self._export(database_name)

    def _export(self, database_name: str) -> DatabaseResult:
        started_at = datetime.utcnow()
        result = self._smuggler.export_database(database_name, *self._extra_arguments)
        errors: List[str] = []
        if result is None:
            errors.append("Smuggler process did not complete")
        elif not result.success:
            errors.append(f"Smuggler exited with code {result.exit_code}")
        return DatabaseResult(
            database=database_name,
            action="export",
            status="failed" if errors else "success",
            started_at=started_at,
            completed_at=datetime.utcnow(),
            errors=errors,
        )

    def _accepts(self, name: str, predicate: Optional[NamePredicate]) -> bool:
        if predicate is None:
            return self._match_all_without_predicate
        return predicate(name)

    def _is_disabled(self, name: str) -> bool:
        document = self._client.get_document(f"{DATABASE_DOCUMENT_PREFIX}{name}")
        if document is None:
            LOG.warning("Database document for %s not found; skipping", name)
            return True
        return bool(document.get("Disabled", False))


class ImportOrchestrator:
    """Recreates databases from the dump files found in the backup directory.

    All targets are deleted before any is recreated. Names are processed in
    sorted order so repeated runs behave the same way.
    """

    def __init__(
        self,
        lifecycle: DatabaseLifecycleManager,
        smuggler: SmugglerWrapper,
        extra_arguments: Sequence[str] = (),
        additional_bundles: Iterable[str] = (),
        abort_on_failure: bool = False,
    ) -> None:
        self._lifecycle = lifecycle
        self._smuggler = smuggler
        arguments = [DISABLE_VERSIONING_FLAG]
        arguments.extend(arg for arg in extra_arguments if arg != DISABLE_VERSIONING_FLAG)
        self._extra_arguments = tuple(arguments)
        self._additional_bundles = tuple(additional_bundles)
        self._abort_on_failure = abort_on_failure

    def discover_database_names(self, predicate: Optional[PathPredicate] = None) -> List[str]:
        dumps = self._smuggler.backup_dir.list_dumps(predicate)
        return sorted(database_name_from_dump(path) for path in dumps)

    def import_all(
        self,
        predicate: Optional[PathPredicate] = None,
        results: Optional[List[DatabaseResult]] = None,
    ) -> List[DatabaseResult]:
        """Import every matching dump.

        Results are appended to ``results`` when given, so a caller still holds
        the completed entries if the batch is aborted by an exception.
        """
        names = self.discover_database_names(predicate)

        for name in names:
            self._lifecycle.delete_database(name)
        LOG.info("Done deleting %s databases", len(names))

        if results is None:
            results = []
        for name in names:
            LOG.info("The database to restore = %s", name)
            started_at = datetime.utcnow()
            try:
                results.append(self._restore(name, started_at))
            except SmugglerFatalError as exc:
                if self._abort_on_failure:
                    LOG.error("Aborting import batch after %s failed", name)
                    raise
                LOG.error("An error occurred while trying to import %s: %s", name, exc)
                results.append(
                    DatabaseResult(
                        database=name,
                        action="import",
                        status="failed",
                        started_at=started_at,
                        completed_at=datetime.utcnow(),
                        attempts=2,
                        errors=[str(exc)],
                    )
                )
        return results

    def import_one(self, database_name: str) -> Optional[DatabaseResult]:
        if not database_name or not database_name.strip():
            LOG.warning("Database name incorrectly specified: %r", database_name)
            return None

        started_at = datetime.utcnow()
        self._lifecycle.delete_database(database_name)
        return self._restore(database_name, started_at)

    def _restore(self, database_name: str, started_at: datetime) -> DatabaseResult:
        self._lifecycle.create_database(database_name, self._additional_bundles)
        outcome = self._smuggler.import_database(database_name, *self._extra_arguments)
        return DatabaseResult(
            database=database_name,
            action="import",
            status="success",
            started_at=started_at,
            completed_at=datetime.utcnow(),
            attempts=outcome.attempts,
        )
