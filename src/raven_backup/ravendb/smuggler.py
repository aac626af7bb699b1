from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence

from ..retry import RetryOutcome, RetryPolicy, RetryResult, Sleeper
from ..runner import CommandRunner, ProcessResult, format_command
from ..storage import BackupDirectory

LOG = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "Raven.Smuggler.exe"
ENCRYPTION_VERIFICATION_DOC_ID = "Raven/Encryption/Verification"
DISABLE_VERSIONING_FLAG = "--disable-versioning-during-import"


class SmugglerFatalError(Exception):
    """Raised when an import still fails after its retry."""

    def __init__(self, executable: str, arguments: Sequence[str], detail: Optional[str] = None) -> None:
        message = f"Process {executable} didn't work with arguments {' '.join(arguments)}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.executable = executable
        self.arguments = list(arguments)


def export_arguments(server_url: str, dump_path: str, database_name: str, extra: Sequence[str] = ()) -> List[str]:
    return ["out", server_url, dump_path, f"--database={database_name}", *extra]


def import_arguments(server_url: str, dump_path: str, database_name: str, extra: Sequence[str] = ()) -> List[str]:
    return [
        "in",
        server_url,
        dump_path,
        f"--database={database_name}",
        f"--negative-metadata-filter:@id={ENCRYPTION_VERIFICATION_DOC_ID}",
        *extra,
    ]


class SmugglerWrapper:
    """Drives the Smuggler executable for a single database at a time."""

    def __init__(
        self,
        server_url: str,
        backup_dir: BackupDirectory,
        runner: CommandRunner,
        executable: str = DEFAULT_EXECUTABLE,
        retry_policy: Optional[RetryPolicy] = None,
        pacing_seconds: float = 5.0,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._server_url = server_url
        self._backup_dir = backup_dir
        self._runner = runner
        self._executable = executable
        self._pacing_seconds = pacing_seconds
        self._sleep = sleep
        self._retry_policy = retry_policy or RetryPolicy(delay=pacing_seconds, sleep=sleep)

    @property
    def backup_dir(self) -> BackupDirectory:
        return self._backup_dir

    def export_database(self, database_name: str, *extra_arguments: str) -> Optional[ProcessResult]:
        """Dump one database; failures are logged and reported as ``None`` or a non-zero result."""
        LOG.info("Export database %s with process", database_name)
        self._backup_dir.ensure()
        dump_path = self._backup_dir.dump_path(database_name)
        arguments = export_arguments(self._server_url, str(dump_path), database_name, extra_arguments)

        result: Optional[ProcessResult] = None
        try:
            result = self._runner.run(self._executable, arguments)
        except Exception as exc:  # noqa: BLE001
            LOG.error("An error occurred while trying to export %s: %s", database_name, exc)
        else:
            if not result.success:
                LOG.error(
                    "Export of %s failed with exit code %s: %s",
                    database_name,
                    result.exit_code,
                    result.output,
                )

        self._sleep(self._pacing_seconds)
        return result

    def import_database(self, database_name: str, *extra_arguments: str) -> RetryResult:
        LOG.info("Import database %s with process", database_name)
        self._backup_dir.ensure()
        dump_path = self._backup_dir.dump_path(database_name)
        arguments = import_arguments(self._server_url, str(dump_path), database_name, extra_arguments)

        outcome = self._retry_policy.execute(lambda: self._runner.run(self._executable, arguments))
        if outcome.outcome is RetryOutcome.FATAL:
            LOG.error("Import of %s failed twice: %s", database_name, format_command(self._executable, arguments))
            raise SmugglerFatalError(self._executable, arguments, outcome.error)
        if outcome.outcome is RetryOutcome.RETRIED:
            LOG.info("Succeeded the second time for %s", database_name)
        return outcome
