"""
Starlette middleware that puts the request gate in front of every route.

The credential lives in one httpOnly cookie. Whatever the gate writes to
the channel (a refreshed credential, or a removal) is copied onto the
response that goes out, redirects included.
"""

import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.types import ASGIApp

from tasktrack.gate import DENY, REDIRECT, GateRequest, RequestGate

logger = logging.getLogger(__name__)

COOKIE_NAME = "tasktrack-auth-token"
COOKIE_MAX_AGE_S = 60 * 60 * 24 * 7


class CookieChannel:
    def __init__(self, request: Request, cookie_name: str = COOKIE_NAME):
        self._name = cookie_name
        self._value: Optional[str] = request.cookies.get(cookie_name)
        self.dirty = False

    def read(self) -> Optional[str]:
        return self._value

    def write(self, value: Optional[str]) -> None:
        self._value = value
        self.dirty = True

    def apply(self, response: Response, secure: bool = True) -> None:
        if not self.dirty:
            return
        if self._value is None:
            response.delete_cookie(self._name, path="/")
        else:
            response.set_cookie(
                self._name, self._value,
                max_age=COOKIE_MAX_AGE_S, path="/",
                httponly=True, secure=secure, samesite="lax",
            )


class SessionGateMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        gate: RequestGate,
        cookie_name: str = COOKIE_NAME,
        secure_cookies: bool = True,
    ):
        super().__init__(app)
        self._gate = gate
        self._cookie_name = cookie_name
        self._secure = secure_cookies

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if self._gate.config.is_exempt(path):
            return await call_next(request)

        channel = CookieChannel(request, self._cookie_name)
        decision = await self._gate.authorize(GateRequest(path, channel))
        request.state.session = decision.session
        request.state.credential = channel.read()

        response: Response
        if decision.kind == REDIRECT:
            response = RedirectResponse(decision.location, status_code=307)  # type: ignore[arg-type]
        elif decision.kind == DENY:
            response = JSONResponse({"error": "Unauthorized"}, status_code=401)
        else:
            response = await call_next(request)
        channel.apply(response, secure=self._secure)
        return response
