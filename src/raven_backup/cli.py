from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

import requests
from croniter import croniter

from .config import BackupConfig, ConfigurationError, SchedulerConfig, load_config
from .logger import configure_logging
from .orchestrator import DatabaseResult, ExportOrchestrator, ImportOrchestrator
from .ravendb import DatabaseLifecycleManager, RavenAdminAPI, SmugglerFatalError, SmugglerWrapper
from .runner import CommandRunner, SubprocessRunner
from .storage import build_backup_directory

DEFAULT_CONFIG_PATH = "/opt/raven-backup/config/raven-backup.yaml"

LOG = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export and restore RavenDB databases with the Smuggler.")
    parser.add_argument(
        "--config",
        default=os.getenv("RAVEN_BACKUP_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to configuration YAML file.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Log level (default INFO).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    export_cmd = commands.add_parser("export", help="Dump databases into the backup directory.")
    export_cmd.add_argument("--database", help="Export only this database.")
    export_cmd.add_argument(
        "--once",
        action="store_true",
        help="Run a single export even when a scheduler is configured.",
    )

    import_cmd = commands.add_parser("import", help="Recreate databases from dump files.")
    import_cmd.add_argument("--database", help="Import only this database.")

    commands.add_parser("list-databases", help="List databases eligible for export and exit.")
    commands.add_parser("list-dumps", help="List databases found in the backup directory and exit.")
    return parser.parse_args(argv)


def build_smuggler(config: BackupConfig, client: RavenAdminAPI, runner: Optional[CommandRunner] = None) -> SmugglerWrapper:
    return SmugglerWrapper(
        server_url=client.url,
        backup_dir=build_backup_directory(config.backup_dir),
        runner=runner or SubprocessRunner(),
        executable=config.smuggler.executable,
        pacing_seconds=config.smuggler.pacing_seconds,
    )


def build_export_orchestrator(config: BackupConfig, runner: Optional[CommandRunner] = None) -> ExportOrchestrator:
    client = RavenAdminAPI(config.server.url, timeout=config.server.timeout_seconds)
    return ExportOrchestrator(
        client=client,
        smuggler=build_smuggler(config, client, runner),
        extra_arguments=config.smuggler.export_arguments,
        match_all_without_predicate=config.export.match_all_without_filter,
    )


def build_import_orchestrator(config: BackupConfig, runner: Optional[CommandRunner] = None) -> ImportOrchestrator:
    client = RavenAdminAPI(config.server.url, timeout=config.server.timeout_seconds)
    return ImportOrchestrator(
        lifecycle=DatabaseLifecycleManager(client),
        smuggler=build_smuggler(config, client, runner),
        extra_arguments=config.smuggler.import_arguments,
        additional_bundles=config.import_.additional_bundles,
        abort_on_failure=config.import_.on_failure == "abort",
    )


def summarize(results: List[DatabaseResult]) -> int:
    success = True
    for result in results:
        if result.success:
            LOG.info(
                "%s of %s succeeded in %.2fs",
                result.action.capitalize(),
                result.database,
                (result.completed_at - result.started_at).total_seconds(),
            )
        else:
            success = False
            LOG.error("%s of %s failed: %s", result.action.capitalize(), result.database, "; ".join(result.errors))

    LOG.info("Processed %s database(s)", len(results))
    return 0 if success else 1


def run_export(config: BackupConfig, database: Optional[str] = None) -> int:
    orchestrator = build_export_orchestrator(config)
    try:
        if database is not None:
            result = orchestrator.export_one(database)
            results = [result] if result else []
        else:
            results = orchestrator.export_all(config.export.name_predicate())
    except requests.RequestException as exc:
        LOG.error("RavenDB server request failed: %s", exc)
        return 1
    return summarize(results)


def run_import(config: BackupConfig, database: Optional[str] = None) -> int:
    orchestrator = build_import_orchestrator(config)
    results: List[DatabaseResult] = []
    try:
        if database is not None:
            result = orchestrator.import_one(database)
            if result:
                results.append(result)
        else:
            orchestrator.import_all(config.import_.path_predicate(), results)
    except SmugglerFatalError as exc:
        LOG.error("Import aborted: %s", exc)
        summarize(results)
        return 1
    except requests.RequestException as exc:
        LOG.error("RavenDB server request failed: %s", exc)
        summarize(results)
        return 1
    return summarize(results)


def list_databases(config: BackupConfig) -> int:
    orchestrator = build_export_orchestrator(config)
    try:
        names = orchestrator.collect_database_names(config.export.name_predicate())
    except requests.RequestException as exc:
        LOG.error("RavenDB server request failed: %s", exc)
        return 1
    for name in names:
        print(name)
    return 0


def list_dumps(config: BackupConfig) -> int:
    orchestrator = build_import_orchestrator(config)
    try:
        names = orchestrator.discover_database_names(config.import_.path_predicate())
    except OSError as exc:
        LOG.error("Unable to read backup directory: %s", exc)
        return 1
    for name in names:
        print(name)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    config_path = Path(args.config).expanduser()
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return 2

    if args.command == "list-databases":
        return list_databases(config)
    if args.command == "list-dumps":
        return list_dumps(config)
    if args.command == "import":
        return run_import(config, args.database)

    if config.scheduler and args.database is None and not args.once:
        return run_with_scheduler(config_path=config_path, initial_config=config)
    return run_export(config, args.database)


def run_with_scheduler(config_path: Path, initial_config: BackupConfig) -> int:
    stop_event = threading.Event()

    def _handle_signal(signum: int, _frame: Optional[object]) -> None:
        LOG.info("Received signal %s; stopping scheduler", signum)
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    config = initial_config
    scheduler = _require_scheduler(config.scheduler)
    timezone = ZoneInfo(scheduler.timezone)
    next_run = datetime.now(timezone) if scheduler.run_on_startup else _next_run(scheduler.cron, datetime.now(timezone))

    if scheduler.run_on_startup:
        LOG.info("Executing initial export immediately")
    else:
        LOG.info("Next export scheduled for %s", next_run.isoformat())

    while not stop_event.is_set():
        now = datetime.now(timezone)
        if now >= next_run:
            try:
                config = load_config(config_path)
            except ConfigurationError as exc:
                LOG.error("Failed to reload configuration: %s; continuing with previous settings", exc)
            else:
                if not config.scheduler:
                    LOG.info("Scheduler removed from configuration; exiting loop")
                    break
                scheduler = _require_scheduler(config.scheduler)
                timezone = ZoneInfo(scheduler.timezone)

            exit_code = run_export(config)
            if exit_code != 0:
                LOG.warning("Scheduled export completed with errors (exit code %s)", exit_code)

            next_run = _next_run(scheduler.cron, datetime.now(timezone))
            LOG.info("Next export scheduled for %s", next_run.isoformat())
            continue

        sleep_for = max((next_run - now).total_seconds(), 0)
        stop_event.wait(min(sleep_for, 60))

    LOG.info("Scheduler stopped")
    return 0


def _require_scheduler(scheduler: Optional[SchedulerConfig]) -> SchedulerConfig:
    if not scheduler:
        raise ValueError("Scheduler configuration is required")
    return scheduler


def _next_run(cron_expression: str, reference: datetime) -> datetime:
    return croniter(cron_expression, reference).get_next(datetime)


if __name__ == "__main__":
    sys.exit(main())
