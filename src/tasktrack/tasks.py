"""
Tasks REST API — the `todos` table through PostgREST.

Row ownership is checked by the store's row-level security. A write that
comes back with no rows means the task is missing or belongs to someone
else; both read as ConflictError so callers cannot tell which.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import ValidationError

from tasktrack.errors import ConflictError, GatewayError
from tasktrack.models.task import Task, TaskCreate, TaskUpdate
from tasktrack.transport.http import HttpClient

TABLE_PATH = "/rest/v1/todos"
RETURN_ROW = {"Prefer": "return=representation"}


class TasksAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def list(self, owner_id: str, token: Optional[str] = None) -> list[Task]:
        """All tasks of one owner, newest first."""
        rows = await self._http.get(
            TABLE_PATH,
            params={"select": "*", "user_id": f"eq.{owner_id}", "order": "created_at.desc"},
            token=token,
        )
        return [_parse(row) for row in rows or []]

    async def create(self, owner_id: str, data: TaskCreate, token: Optional[str] = None) -> Task:
        rows = await self._http.post(TABLE_PATH, data.to_row(owner_id), headers=RETURN_ROW, token=token)
        return _parse(self._single(rows))

    async def update(self, task_id: str, data: TaskUpdate, token: Optional[str] = None) -> Task:
        rows = await self._http.patch(
            TABLE_PATH, data.changes(),
            params={"id": f"eq.{task_id}"}, headers=RETURN_ROW, token=token,
        )
        return _parse(self._single(rows))

    async def delete(self, task_id: str, token: Optional[str] = None) -> None:
        rows = await self._http.delete(
            TABLE_PATH, params={"id": f"eq.{task_id}"}, headers=RETURN_ROW, token=token,
        )
        self._single(rows)

    @staticmethod
    def _single(rows: Any) -> dict[str, Any]:
        if isinstance(rows, dict):
            return rows
        if not rows:
            raise ConflictError()
        return rows[0]


def _parse(row: Any) -> Task:
    try:
        return Task.model_validate(row)
    except ValidationError as e:
        raise GatewayError(f"Malformed task row: {e.error_count()} error(s)") from e
