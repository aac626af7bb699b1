from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol, Sequence

LOG = logging.getLogger(__name__)


class CommandStartError(Exception):
    """Raised when the external tool cannot be launched."""


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    output: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class CommandRunner(Protocol):
    def run(self, executable: str, arguments: Sequence[str]) -> ProcessResult:
        ...


def format_command(executable: str, arguments: Sequence[str]) -> str:
    return " ".join([executable, *arguments])


class SubprocessRunner:
    """Runs a command to completion and captures its combined output."""

    def run(self, executable: str, arguments: Sequence[str]) -> ProcessResult:
        cmd = [executable, *arguments]
        LOG.info("Smuggler Path = %s", executable)
        LOG.info("Smuggler Args = %s", " ".join(arguments))
        try:
            completed = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as exc:
            LOG.error("Unable to start %s: %s", executable, exc)
            raise CommandStartError(f"Failed to start {executable}: {exc}") from exc

        output = completed.stdout.decode("utf-8", "ignore") if completed.stdout else ""
        result = ProcessResult(exit_code=completed.returncode, output=output)
        if result.success:
            LOG.info("Smuggler process output = %s", output)
        else:
            LOG.warning("Process %s exited with code %s", format_command(executable, arguments), result.exit_code)
            LOG.warning("Smuggler process output = %s", output)
        return result
