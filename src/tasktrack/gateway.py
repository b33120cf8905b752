"""
Remote data gateway — the one path to auth state and task rows.

`DataGateway` is what the gate, cache and mutation coordinator depend on.
`HttpGateway` implements it over the hosted store's REST endpoints.
"""

import logging
import time
from typing import Optional, Protocol

from tasktrack.auth import Auth
from tasktrack.errors import TaskTrackError, UnauthenticatedError, ValidationFailure
from tasktrack.models.session import Credential, SessionValidation
from tasktrack.models.task import Task, TaskCreate, TaskUpdate
from tasktrack.tasks import TasksAPI
from tasktrack.transport.http import HttpClient

logger = logging.getLogger(__name__)

# Refresh ahead of expiry so a request never goes out on a dying token.
REFRESH_MARGIN_S = 60


class DataGateway(Protocol):
    async def validate_session(self, credential: Optional[Credential]) -> SessionValidation: ...

    async def list_tasks(self, owner_id: str) -> list[Task]: ...

    async def create_task(self, owner_id: str, data: TaskCreate) -> Task: ...

    async def update_task(self, task_id: str, data: TaskUpdate) -> Task: ...

    async def delete_task(self, task_id: str) -> None: ...


class HttpGateway:
    def __init__(self, http: HttpClient, token: Optional[str] = None):
        self._http = http
        self._token = token
        self.auth = Auth(http)
        self.tasks = TasksAPI(http)

    def with_token(self, token: Optional[str]) -> "HttpGateway":
        """Gateway whose task calls run as the holder of `token` (per-request use)."""
        return HttpGateway(self._http, token=token)

    async def validate_session(self, credential: Optional[Credential]) -> SessionValidation:
        """Validate against the server, refreshing when expired or close to it.

        Transport failures propagate; the caller decides how to fail.
        """
        if credential is None:
            return SessionValidation()

        if not self._expiring(credential):
            try:
                user = await self.auth.get_user(credential.access_token)
                return SessionValidation(identity=user["id"])
            except UnauthenticatedError:
                logger.debug("Access token rejected, trying refresh")

        if not credential.refresh_token:
            return SessionValidation()
        try:
            result = await self.auth.refresh(credential.refresh_token)
        except (UnauthenticatedError, ValidationFailure):
            logger.info("Refresh token rejected; session is gone")
            return SessionValidation()
        refreshed = Credential.from_token_response(result)

        # From here on the old refresh token is spent: always hand back the new pair.
        identity = (result.get("user") or {}).get("id")
        if identity is None:
            try:
                identity = (await self.auth.get_user(refreshed.access_token))["id"]
            except TaskTrackError as e:
                logger.warning("Refreshed session but could not load its user: %s", e)
        return SessionValidation(identity=identity, refreshed_credential=refreshed)

    @staticmethod
    def _expiring(credential: Credential) -> bool:
        if credential.expires_at is None or not credential.refresh_token:
            return False
        return credential.expires_at - time.time() < REFRESH_MARGIN_S

    async def list_tasks(self, owner_id: str) -> list[Task]:
        return await self.tasks.list(owner_id, token=self._token)

    async def create_task(self, owner_id: str, data: TaskCreate) -> Task:
        return await self.tasks.create(owner_id, data, token=self._token)

    async def update_task(self, task_id: str, data: TaskUpdate) -> Task:
        return await self.tasks.update(task_id, data, token=self._token)

    async def delete_task(self, task_id: str) -> None:
        await self.tasks.delete(task_id, token=self._token)

    async def close(self) -> None:
        await self._http.close()
