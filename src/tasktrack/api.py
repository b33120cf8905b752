"""
JSON API for tasks, mounted behind SessionGateMiddleware.

    GET    /api/todos   list the caller's tasks
    POST   /api/todos   create (201)
    PATCH  /api/todos   update; `id` in the body, plus any changed fields
    DELETE /api/todos   delete; `id` in the body

Ownership is enforced by the store. Missing and foreign rows both come back
as 404 with the same message.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tasktrack.config import Settings
from tasktrack.errors import TaskTrackError
from tasktrack.gate import RequestGate
from tasktrack.gateway import DataGateway, HttpGateway
from tasktrack.middleware import COOKIE_NAME, SessionGateMiddleware
from tasktrack.models.session import Credential
from tasktrack.models.task import Task, TaskCreate, TaskUpdate
from tasktrack.transport.http import HttpClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/todos")

STATUS_BY_CODE = {
    "validation_failure": 400,
    "unauthenticated": 401,
    "unauthorized": 404,
    "conflict_or_not_found": 404,
    "network_error": 503,
}
PUBLIC_MESSAGE = {
    "unauthenticated": "Unauthorized",
    "unauthorized": "Todo not found",
    "conflict_or_not_found": "Todo not found",
    "network_error": "Service temporarily unavailable",
}


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


def _row(task: Task) -> dict[str, Any]:
    return task.model_dump(mode="json", by_alias=True)


def require_identity(request: Request) -> str:
    session = getattr(request.state, "session", None)
    if session is None or session.identity is None:
        raise ApiError(401, "Unauthorized")
    return session.identity


def request_gateway(request: Request) -> DataGateway:
    """The app gateway, acting as whoever holds this request's credential."""
    gateway = request.app.state.gateway
    if isinstance(gateway, HttpGateway):
        credential = Credential.decode(getattr(request.state, "credential", None))
        return gateway.with_token(credential.access_token if credential else None)
    return gateway


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ApiError(400, "Invalid JSON body")
    if not isinstance(body, dict):
        raise ApiError(400, "Invalid JSON body")
    return body


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ()))
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))


@router.get("")
async def list_todos(
    identity: str = Depends(require_identity),
    gateway: DataGateway = Depends(request_gateway),
) -> list[dict[str, Any]]:
    return [_row(t) for t in await gateway.list_tasks(identity)]


@router.post("", status_code=201)
async def create_todo(
    request: Request,
    identity: str = Depends(require_identity),
    gateway: DataGateway = Depends(request_gateway),
) -> dict[str, Any]:
    body = await _json_body(request)
    if not body.get("title"):
        raise ApiError(400, "Title is required")
    try:
        data = TaskCreate.model_validate(body)
    except ValidationError as e:
        raise ApiError(400, _validation_message(e))
    return _row(await gateway.create_task(identity, data))


@router.patch("")
async def update_todo(
    request: Request,
    identity: str = Depends(require_identity),
    gateway: DataGateway = Depends(request_gateway),
) -> dict[str, Any]:
    body = await _json_body(request)
    task_id = body.pop("id", None)
    if not task_id:
        raise ApiError(400, "ID is required")
    fields = {k: v for k, v in body.items() if k in TaskUpdate.model_fields}
    try:
        data = TaskUpdate.model_validate(fields)
    except ValidationError as e:
        raise ApiError(400, _validation_message(e))
    return _row(await gateway.update_task(str(task_id), data))


@router.delete("")
async def delete_todo(
    request: Request,
    identity: str = Depends(require_identity),
    gateway: DataGateway = Depends(request_gateway),
) -> dict[str, str]:
    body = await _json_body(request)
    task_id = body.get("id")
    if not task_id:
        raise ApiError(400, "ID is required")
    await gateway.delete_task(str(task_id))
    return {"message": "Todo deleted successfully"}


async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=exc.status)


async def _gateway_error(_request: Request, exc: TaskTrackError) -> JSONResponse:
    status = STATUS_BY_CODE.get(exc.code, 500)
    if status >= 500:
        logger.error("Gateway call failed: %s", exc)
    return JSONResponse({"error": PUBLIC_MESSAGE.get(exc.code, str(exc))}, status_code=status)


def create_app(
    gateway: Optional[DataGateway] = None,
    settings: Optional[Settings] = None,
    *,
    cookie_name: str = COOKIE_NAME,
    secure_cookies: bool = True,
) -> FastAPI:
    """Build the web app: gate middleware, task API and a health probe."""
    settings = settings or Settings.load()
    if gateway is None:
        gateway = HttpGateway(HttpClient(base_url=settings.base_url, anon_key=settings.anon_key))

    app = FastAPI(title="tasktrack")
    app.state.gateway = gateway
    app.add_middleware(
        SessionGateMiddleware,
        gate=RequestGate(gateway, settings.gate),
        cookie_name=cookie_name,
        secure_cookies=secure_cookies,
    )
    app.add_exception_handler(ApiError, _api_error)  # type: ignore[arg-type]
    app.add_exception_handler(TaskTrackError, _gateway_error)  # type: ignore[arg-type]
    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
