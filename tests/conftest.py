from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from raven_backup.ravendb.api import DATABASE_DOCUMENT_PREFIX
from raven_backup.runner import ProcessResult

Event = Tuple[str, ...]


class FakeAdminClient:
    """In-memory stand-in for the RavenDB admin API."""

    def __init__(
        self,
        databases: Optional[Dict[str, bool]] = None,
        events: Optional[List[Event]] = None,
        url: str = "http://x",
    ) -> None:
        # name -> disabled flag, in listing order
        self.databases: Dict[str, bool] = dict(databases or {})
        self.events: List[Event] = events if events is not None else []
        self.created: List[Dict[str, Any]] = []
        self.deleted: List[Tuple[str, bool]] = []
        self.list_calls: List[Tuple[int, int]] = []
        # every call, in order
        self.calls: List[Event] = []
        self._url = url

    @property
    def url(self) -> str:
        return self._url

    def list_database_names(self, page_size: int, start: int) -> List[str]:
        self.calls.append(("list", str(page_size), str(start)))
        self.list_calls.append((page_size, start))
        return list(self.databases)[start : start + page_size]

    def get_document(self, key: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("get", key))
        name = key[len(DATABASE_DOCUMENT_PREFIX) :]
        if name not in self.databases:
            return None
        return {"Id": name, "Disabled": self.databases[name]}

    def database_exists(self, name: str) -> bool:
        self.calls.append(("exists", name))
        return name in self.databases

    def create_database(self, document: Dict[str, Any]) -> None:
        self.calls.append(("create", document["Id"]))
        self.events.append(("create", document["Id"]))
        self.created.append(document)
        self.databases[document["Id"]] = bool(document.get("Disabled", False))

    def delete_database(self, name: str, hard_delete: bool = True) -> None:
        self.calls.append(("delete", name))
        self.events.append(("delete", name))
        self.deleted.append((name, hard_delete))
        self.databases.pop(name, None)


class StubRunner:
    """Replays scripted exit codes; an exception instance is raised instead."""

    def __init__(
        self,
        outcomes: Sequence[Union[int, Exception]] = (),
        default: int = 0,
        events: Optional[List[Event]] = None,
    ) -> None:
        self._outcomes = list(outcomes)
        self._default = default
        self.events: List[Event] = events if events is not None else []
        self.calls: List[Tuple[str, List[str]]] = []

    def run(self, executable: str, arguments: Sequence[str]) -> ProcessResult:
        self.calls.append((executable, list(arguments)))
        action, database = arguments[0], _database_argument(arguments)
        self.events.append((action, database))
        outcome = self._outcomes.pop(0) if self._outcomes else self._default
        if isinstance(outcome, Exception):
            raise outcome
        return ProcessResult(exit_code=outcome, output=f"exit {outcome}")


def _database_argument(arguments: Sequence[str]) -> str:
    for argument in arguments:
        if argument.startswith("--database="):
            return argument.split("=", 1)[1]
    return ""


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def events() -> List[Event]:
    return []


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def backup_root(tmp_path):
    root = tmp_path / "backups"
    root.mkdir()
    return root
