from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import requests

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_PAGE_SIZE = 100
DATABASE_DOCUMENT_PREFIX = "Raven/Databases/"


class AdminClient(Protocol):
    """Remote management surface used by the backup workflows."""

    @property
    def url(self) -> str:
        ...

    def list_database_names(self, page_size: int, start: int) -> List[str]:
        ...

    def get_document(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def database_exists(self, name: str) -> bool:
        ...

    def create_database(self, document: Dict[str, Any]) -> None:
        ...

    def delete_database(self, name: str, hard_delete: bool = True) -> None:
        ...


class RavenAdminAPI:
    """Thin client for the RavenDB server's system database and admin endpoints."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url:
            raise ValueError("RavenDB server url must be provided")
        self._url = url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": "raven-backup",
            }
        )
        self._log = logging.getLogger(self.__class__.__name__)

    @property
    def url(self) -> str:
        return self._url

    def list_database_names(self, page_size: int = DEFAULT_PAGE_SIZE, start: int = 0) -> List[str]:
        response = self._request("GET", "databases", params={"pageSize": page_size, "start": start})
        return list(response.json() or [])

    def get_document(self, key: str) -> Optional[Dict[str, Any]]:
        response = self._request("GET", "docs", params={"id": key}, allow_missing=True)
        if response is None:
            return None
        return response.json()

    def database_exists(self, name: str) -> bool:
        return self.get_document(f"{DATABASE_DOCUMENT_PREFIX}{name}") is not None

    def create_database(self, document: Dict[str, Any]) -> None:
        name = document.get("Id")
        if not name:
            raise ValueError("Database document must carry an Id")
        self._request("PUT", f"admin/databases/{name}", json=document)

    def delete_database(self, name: str, hard_delete: bool = True) -> None:
        params = {"hard-delete": "true"} if hard_delete else None
        self._request("DELETE", f"admin/databases/{name}", params=params)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Optional[requests.Response]:
        url = f"{self._url}/{path.lstrip('/')}"
        response = self._session.request(method, url, params=params, json=json, timeout=self._timeout)
        if allow_missing and response.status_code == 404:
            return None
        if response.status_code >= 400:
            self._log.error("RavenDB request failed: %s %s %s %s", method, url, response.status_code, response.text)
            response.raise_for_status()
        return response
