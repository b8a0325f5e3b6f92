"""
store.py — Persistence collaborators for student profiles.

Two implementations share one small interface:

- InMemoryResultStore: dict-backed, the default for local runs and tests.
- RestResultStore: the hosted backend's REST interface (PostgREST dialect),
  reached with httpx.

Writes are last-writer-wins per profile row. There is no version check, so
two sessions saving the same term overwrite each other wholesale.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

import httpx

from core.config import Settings
from core.errors import PersistenceError, StudentNotFoundError
from core.profile import profile_from_row, select_columns


logger = logging.getLogger(__name__)


class ResultStore(ABC):
    """Rows in, decoded profiles out."""

    @abstractmethod
    def get_profile(self, student_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def list_students(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def update_profile(self, student_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        ...


# ── In-memory ───────────────────────────────────────────────────────

class InMemoryResultStore(ResultStore):

    def __init__(self, rows: Optional[List[Mapping[str, Any]]] = None):
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._failures: List[str] = []
        self.write_count = 0
        for row in rows or []:
            self.add_row(row)

    def add_row(self, row: Mapping[str, Any]):
        row = copy.deepcopy(dict(row))
        row.setdefault("role", "student")
        with self._lock:
            self._rows[str(row["id"])] = row

    def fail_next_write(self, message: str = "Backend unavailable"):
        """Make the next update_profile() fail; used to exercise rollback paths."""
        self._failures.append(message)

    def raw_row(self, student_id: str) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._rows[student_id])

    def get_profile(self, student_id: str) -> Dict[str, Any]:
        with self._lock:
            row = self._rows.get(str(student_id))
            if row is None:
                raise StudentNotFoundError(f"Student '{student_id}' not found.", field="student_id")
            return profile_from_row(copy.deepcopy(row))

    def list_students(self) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._rows.values() if r.get("role") == "student"]
        return [profile_from_row(r) for r in rows]

    def update_profile(self, student_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if self._failures:
                message = self._failures.pop(0)
                logger.error("In-memory write for %s failed: %s", student_id, message)
                raise PersistenceError(f"Failed to save data: {message}")
            row = self._rows.get(str(student_id))
            if row is None:
                raise StudentNotFoundError(f"Student '{student_id}' not found.", field="student_id")
            row.update(copy.deepcopy(dict(payload)))
            self.write_count += 1
            return profile_from_row(copy.deepcopy(row))


# ── REST backend ────────────────────────────────────────────────────

class RestResultStore(ResultStore):
    """
    Profiles table over the backend's REST endpoint:

        GET   {url}/rest/v1/{table}?id=eq.{id}&select=...
        GET   {url}/rest/v1/{table}?role=eq.student&select=...
        PATCH {url}/rest/v1/{table}?id=eq.{id}   (Prefer: return=representation)
    """

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self.base_url = f"{settings.backend_url}/rest/v1/{settings.profiles_table}"
        self._client = client or httpx.Client(timeout=settings.http_timeout_seconds)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.settings.backend_key:
            headers["apikey"] = self.settings.backend_key
            headers["Authorization"] = f"Bearer {self.settings.backend_key}"
        return headers

    def _request(
        self,
        method: str,
        params: Dict[str, str],
        headers: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> List[Dict[str, Any]]:
        try:
            res = self._client.request(
                method, self.base_url, params=params,
                headers={**self._headers(), **(headers or {})}, **kwargs,
            )
            res.raise_for_status()
            data = res.json() if res.content else []
        except httpx.HTTPStatusError as exc:
            logger.error("Backend %s %s returned %s", method, self.base_url, exc.response.status_code, exc_info=True)
            raise PersistenceError(f"Backend error ({exc.response.status_code}): {exc.response.text[:200]}")
        except httpx.HTTPError as exc:
            logger.error("Backend %s %s failed", method, self.base_url, exc_info=True)
            raise PersistenceError(f"Could not reach backend: {exc}")
        except ValueError as exc:
            raise PersistenceError(f"Backend returned invalid JSON: {exc}")
        if isinstance(data, dict):
            data = [data]
        return data

    def get_profile(self, student_id: str) -> Dict[str, Any]:
        rows = self._request("GET", {"id": f"eq.{student_id}", "select": ",".join(select_columns())})
        if not rows:
            raise StudentNotFoundError(f"Student '{student_id}' not found.", field="student_id")
        return profile_from_row(rows[0])

    def list_students(self) -> List[Dict[str, Any]]:
        rows = self._request("GET", {"role": "eq.student", "select": ",".join(select_columns())})
        return [profile_from_row(r) for r in rows]

    def update_profile(self, student_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        rows = self._request(
            "PATCH",
            {"id": f"eq.{student_id}"},
            headers={"Prefer": "return=representation"},
            json=dict(payload),
        )
        if not rows:
            raise StudentNotFoundError(f"Student '{student_id}' not found.", field="student_id")
        return profile_from_row(rows[0])

    def close(self):
        self._client.close()


def build_store(settings: Settings) -> ResultStore:
    if settings.store_backend == "rest":
        return RestResultStore(settings)
    return InMemoryResultStore()
