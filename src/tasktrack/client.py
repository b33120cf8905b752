"""
AsyncTaskTrack — the SDK client.

Wires one session store, query cache and mutation coordinator to a gateway.
Each client owns its own instances; nothing is module-global.
"""

import logging
from typing import Any, Callable, Optional, Union

from tasktrack.cache import CacheEntry, QueryCache, tasks_key
from tasktrack.config import MemoryChannel, Settings
from tasktrack.errors import AuthError, TaskTrackError, UnauthenticatedError
from tasktrack.gate import CredentialChannel, GateRequest, RequestGate
from tasktrack.gateway import DataGateway, HttpGateway
from tasktrack.models.session import Credential, Session
from tasktrack.models.task import Task, TaskCreate, TaskUpdate
from tasktrack.mutations import MutationCoordinator, MutationResult, TaskId
from tasktrack.session_store import SessionStore
from tasktrack.transport.http import HttpClient

logger = logging.getLogger(__name__)


class AsyncTaskTrack:
    """Async task tracker client."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        channel: Optional[CredentialChannel] = None,
        gateway: Optional[DataGateway] = None,
        http: Optional[HttpClient] = None,
    ):
        self.settings = settings or Settings()
        self.channel: CredentialChannel = channel or MemoryChannel()
        self.http = http or HttpClient(base_url=self.settings.base_url, anon_key=self.settings.anon_key)
        self.gateway: DataGateway = gateway or HttpGateway(self.http)
        self.session = SessionStore()
        self.cache = QueryCache(
            stale_time=self.settings.stale_time,
            gc_time=self.settings.gc_time,
            retry=self.settings.read_retry,
        )
        self.mutations = MutationCoordinator(self.cache, self.gateway, self.session)
        self.gate = RequestGate(self.gateway, self.settings.gate)

    # ---- session ----

    async def restore_session(self, path: Optional[str] = None) -> Session:
        """Re-validate the stored credential, the same way the web gate does."""
        self.session.set_loading(True)
        decision = await self.gate.authorize(GateRequest(path or self.gate.config.home_path, self.channel))
        self._adopt(decision.session.identity)
        return decision.session

    async def sign_in(self, email: str, password: str) -> Session:
        auth = self._http_gateway().auth
        result = await auth.sign_in_with_password(email, password)
        self.channel.write(Credential.from_token_response(result).encode())
        self._adopt(result["user"]["id"])
        return Session(identity=result["user"]["id"])

    async def sign_up(self, email: str, password: str, name: Optional[str] = None) -> dict[str, Any]:
        auth = self._http_gateway().auth
        result = await auth.sign_up(email, password, name)
        if result.get("access_token"):
            self.channel.write(Credential.from_token_response(result).encode())
            self._adopt(result["user"]["id"])
        return result

    async def sign_out(self) -> None:
        credential = Credential.decode(self.channel.read())
        try:
            if credential is not None and isinstance(self.gateway, HttpGateway):
                await self.gateway.auth.sign_out(credential.access_token)
        except TaskTrackError as e:
            logger.warning("Server sign-out failed, clearing local session anyway: %s", e)
        finally:
            self.channel.write(None)
            self._adopt(None)

    def _adopt(self, identity: Optional[str]) -> None:
        if identity != self.session.get_identity():
            # Different user (or none): never show the previous user's rows.
            self.cache.clear()
        credential = Credential.decode(self.channel.read())
        if isinstance(self.gateway, HttpGateway):
            self.http.set_token(credential.access_token if credential and identity else None)
        self.session.set_identity(identity)

    def _http_gateway(self) -> HttpGateway:
        if not isinstance(self.gateway, HttpGateway):
            raise AuthError("Password auth needs the HTTP gateway")
        return self.gateway

    # ---- reads ----

    def _owner(self) -> str:
        owner = self.session.get_identity()
        if owner is None:
            raise UnauthenticatedError()
        return owner

    def _fetcher(self, owner: str) -> Callable[[], Any]:
        return lambda: self.gateway.list_tasks(owner)

    async def list_tasks(self, *, refresh: bool = False) -> CacheEntry:
        """Current user's tasks through the cache. Check `entry.error` for failures."""
        owner = self._owner()
        return await self.cache.fetch(tasks_key(owner), self._fetcher(owner), force=refresh)

    def subscribe_tasks(self, listener: Callable[[CacheEntry], None]) -> Callable[[], None]:
        owner = self._owner()
        return self.cache.subscribe(tasks_key(owner), listener, self._fetcher(owner))

    def cached_tasks(self) -> Optional[list[Task]]:
        owner = self.session.get_identity()
        return None if owner is None else self.cache.get_data(tasks_key(owner))

    # ---- writes ----

    async def create_task(self, data: Union[TaskCreate, dict[str, Any]]) -> MutationResult:
        return await self.mutations.create(data)

    async def update_task(self, task_id: TaskId, changes: Union[TaskUpdate, dict[str, Any]]) -> MutationResult:
        return await self.mutations.update(task_id, changes)

    async def toggle_task(self, task_id: TaskId) -> MutationResult:
        return await self.mutations.toggle_completed(task_id)

    async def set_completed(self, task_id: TaskId, completed: bool) -> MutationResult:
        return await self.mutations.set_completed(task_id, completed)

    async def delete_task(self, task_id: TaskId) -> MutationResult:
        return await self.mutations.delete(task_id)

    async def close(self) -> None:
        await self.cache.close()
        await self.http.close()

    async def __aenter__(self) -> "AsyncTaskTrack":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
