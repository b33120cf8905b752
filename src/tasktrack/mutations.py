"""
Mutation coordinator — create / update / toggle / delete with optimistic cache edits.

Every kind goes through `_with_optimistic_apply`:

1. wait for any mutation already pending on the same task
2. snapshot the cached list, apply the optimistic edit
3. call the gateway once (writes are never retried)
4. success: reconcile with the row the server returned
   failure: put the snapshot back exactly
5. either way: mark the query stale so the next read resyncs

Create is confirm-then-insert: nothing is added to the cache until the
server hands back the row with its real id.

Gateway failures come back as `MutationResult.error`; telling the user is
the caller's job.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

from pydantic import ValidationError

from tasktrack.cache import QueryCache, QueryKey, tasks_key
from tasktrack.errors import ConflictError, GatewayError, TaskTrackError, UnauthenticatedError, ValidationFailure
from tasktrack.gateway import DataGateway
from tasktrack.models.task import Task, TaskCreate, TaskUpdate
from tasktrack.session_store import SessionStore

logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"
DELETE = "delete"

TaskId = Union[str, UUID]
Apply = Callable[[list[Task]], list[Task]]
Reconcile = Callable[[list[Task], Any], list[Task]]


class PendingMutation:
    __slots__ = ("target", "kind", "payload", "snapshot")

    def __init__(self, kind: str, target: Optional[str] = None, payload: Any = None):
        self.target = target
        self.kind = kind
        self.payload = payload
        self.snapshot: Optional[list[Task]] = None

    def __repr__(self) -> str:
        return f"PendingMutation(kind={self.kind!r}, target={self.target!r})"


class MutationResult:
    __slots__ = ("ok", "kind", "task", "error")

    def __init__(self, ok: bool, kind: str, task: Optional[Task] = None, error: Optional[TaskTrackError] = None):
        self.ok = ok
        self.kind = kind
        self.task = task
        self.error = error

    def __repr__(self) -> str:
        if self.ok:
            return f"MutationResult(ok=True, kind={self.kind!r})"
        return f"MutationResult(ok=False, kind={self.kind!r}, error={self.error!r})"


def _replace(tasks: list[Task], row: Task) -> list[Task]:
    return [row if t.id == row.id else t for t in tasks]


def _without(tasks: list[Task], task_id: str) -> list[Task]:
    return [t for t in tasks if str(t.id) != task_id]


def _find(tasks: Optional[list[Task]], task_id: str) -> Optional[Task]:
    for t in tasks or []:
        if str(t.id) == task_id:
            return t
    return None


class MutationCoordinator:
    def __init__(self, cache: QueryCache, gateway: DataGateway, session: SessionStore):
        self._cache = cache
        self._gateway = gateway
        self._session = session
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._pending: dict[str, PendingMutation] = {}

    def is_pending(self, task_id: TaskId) -> bool:
        """True while a mutation on this task is running or queued."""
        return str(task_id) in self._lock_users

    def pending_mutation(self, task_id: TaskId) -> Optional[PendingMutation]:
        return self._pending.get(str(task_id))

    async def create(self, data: Union[TaskCreate, dict[str, Any]]) -> MutationResult:
        owner = self._session.get_identity()
        if owner is None:
            return MutationResult(False, CREATE, error=UnauthenticatedError())
        try:
            payload = data if isinstance(data, TaskCreate) else TaskCreate.model_validate(data)
        except ValidationError as e:
            return MutationResult(False, CREATE, error=_validation_failure(e))

        def reconcile(tasks: list[Task], row: Task) -> list[Task]:
            if any(t.id == row.id for t in tasks):
                return _replace(tasks, row)
            return [row] + tasks

        return await self._with_optimistic_apply(
            tasks_key(owner),
            PendingMutation(CREATE, payload=payload),
            apply=None,
            remote=lambda: self._gateway.create_task(owner, payload),
            reconcile=reconcile,
        )

    async def update(self, task_id: TaskId, changes: Union[TaskUpdate, dict[str, Any]]) -> MutationResult:
        owner = self._session.get_identity()
        if owner is None:
            return MutationResult(False, UPDATE, error=UnauthenticatedError())
        try:
            payload = changes if isinstance(changes, TaskUpdate) else TaskUpdate.model_validate(changes)
        except ValidationError as e:
            return MutationResult(False, UPDATE, error=_validation_failure(e))
        if not payload.model_fields_set:
            return MutationResult(False, UPDATE, error=ValidationFailure("Nothing to update"))
        return await self._run_update(owner, str(task_id), payload)

    async def set_completed(self, task_id: TaskId, completed: bool) -> MutationResult:
        return await self.update(task_id, TaskUpdate(completed=completed))

    async def toggle_completed(self, task_id: TaskId) -> MutationResult:
        """Flip `completed` as displayed once earlier mutations on the task have settled."""
        owner = self._session.get_identity()
        if owner is None:
            return MutationResult(False, UPDATE, error=UnauthenticatedError())
        target = str(task_id)
        async with self._task_lock(target):
            current = _find(self._cache.get_data(tasks_key(owner)), target)
            if current is None:
                return MutationResult(False, UPDATE, error=ConflictError())
            payload = TaskUpdate(completed=not current.completed)
            return await self._run_update(owner, target, payload, locked=True)

    async def _run_update(self, owner: str, target: str, payload: TaskUpdate, locked: bool = False) -> MutationResult:
        def apply(tasks: list[Task]) -> list[Task]:
            return [payload.apply_to(t) if str(t.id) == target else t for t in tasks]

        return await self._with_optimistic_apply(
            tasks_key(owner),
            PendingMutation(UPDATE, target=target, payload=payload),
            apply=apply,
            remote=lambda: self._gateway.update_task(target, payload),
            reconcile=_replace,
            locked=locked,
        )

    async def delete(self, task_id: TaskId) -> MutationResult:
        owner = self._session.get_identity()
        if owner is None:
            return MutationResult(False, DELETE, error=UnauthenticatedError())
        target = str(task_id)

        return await self._with_optimistic_apply(
            tasks_key(owner),
            PendingMutation(DELETE, target=target),
            apply=lambda tasks: _without(tasks, target),
            remote=lambda: self._gateway.delete_task(target),
            reconcile=lambda tasks, _: _without(tasks, target),
        )

    async def _with_optimistic_apply(
        self,
        key: QueryKey,
        pending: PendingMutation,
        apply: Optional[Apply],
        remote: Callable[[], Awaitable[Any]],
        reconcile: Reconcile,
        locked: bool = False,
    ) -> MutationResult:
        """Run one mutation. `locked` means the caller already holds the task lock."""
        async with AsyncExitStack() as stack:
            if pending.target is not None:
                if not locked:
                    await stack.enter_async_context(self._task_lock(pending.target))
                self._pending[pending.target] = pending

            pending.snapshot = self._cache.snapshot(key)
            applied = False
            if apply is not None and pending.snapshot is not None:
                applied = self._cache.set_data(key, apply(pending.snapshot))
                if applied:
                    self._cache.hold(key)

            confirmed = False
            try:
                row = await remote()
            except Exception as e:
                error = e if isinstance(e, TaskTrackError) else GatewayError(f"Unexpected failure: {e}")
                logger.warning("%s of %s failed, rolled back: %s", pending.kind, pending.target or "new task", e)
                return MutationResult(False, pending.kind, error=error)
            else:
                confirmed = True
                current = self._cache.get_data(key)
                if current is not None:
                    self._cache.set_data(key, reconcile(current, row))
                return MutationResult(True, pending.kind, task=row if isinstance(row, Task) else None)
            finally:
                if applied:
                    if not confirmed:
                        # Failed or cancelled before the server answered.
                        self._cache.restore(key, pending.snapshot)
                    self._cache.release(key)
                self._cache.invalidate(key)
                if pending.target is not None:
                    self._pending.pop(pending.target, None)

    def _task_lock(self, target: str) -> "_TaskLock":
        return _TaskLock(self, target)


class _TaskLock:
    """Per-task FIFO lock; dropped from the coordinator once nobody holds or waits on it."""

    def __init__(self, owner: MutationCoordinator, target: str):
        self._owner = owner
        self._target = target

    async def __aenter__(self) -> None:
        owner = self._owner
        lock = owner._locks.setdefault(self._target, asyncio.Lock())
        owner._lock_users[self._target] = owner._lock_users.get(self._target, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._drop()
            raise

    async def __aexit__(self, *exc: Any) -> None:
        self._owner._locks[self._target].release()
        self._drop()

    def _drop(self) -> None:
        owner = self._owner
        users = owner._lock_users[self._target] - 1
        if users:
            owner._lock_users[self._target] = users
        else:
            del owner._lock_users[self._target]
            del owner._locks[self._target]


def _validation_failure(error: ValidationError) -> ValidationFailure:
    first = error.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ()))
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return ValidationFailure(message, details={"errors": error.errors(include_url=False, include_context=False)})
