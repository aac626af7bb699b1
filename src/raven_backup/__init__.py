"""RavenDB export/restore orchestration package."""

from __future__ import annotations

from .config import load_config, BackupConfig  # noqa: F401
from .orchestrator import ExportOrchestrator, ImportOrchestrator  # noqa: F401
