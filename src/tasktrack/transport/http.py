"""
REST HTTP client for the hosted store: GoTrue under /auth/v1, PostgREST under /rest/v1.
"""

import logging
from typing import Any, Optional

import httpx

from tasktrack.errors import (
    ConflictError,
    GatewayError,
    TransientNetworkError,
    UnauthenticatedError,
    UnauthorizedError,
    ValidationFailure,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:54321"
USER_AGENT = "tasktrack/0.1.0"

TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}


class HttpClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        anon_key: str = "",
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json", "apikey": anon_key},
            timeout=timeout,
            transport=transport,
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def _headers(self, authenticated: bool, token: Optional[str], extra: Optional[dict[str, str]]) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        bearer = token or (self._token if authenticated else None) or self._anon_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        status = resp.status_code
        if status < 400:
            return
        detail = resp.text[:200]
        if status in (400, 422):
            raise ValidationFailure(f"HTTP {status}: {detail}")
        if status == 401:
            raise UnauthenticatedError(f"HTTP {status}: {detail}")
        if status == 403:
            raise UnauthorizedError()
        if status in (404, 406, 409):
            raise ConflictError()
        if status in TRANSIENT_STATUSES:
            raise TransientNetworkError(f"HTTP {status}: {detail}")
        raise GatewayError(f"HTTP {status}: {detail}", details={"status": status})

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Optional[Any] = None,
        params: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
        authenticated: bool = True,
        token: Optional[str] = None,
    ) -> Any:
        try:
            resp = await self._client.request(
                method, path,
                json=body,
                params=params,
                headers=self._headers(authenticated, token, headers),
            )
        except httpx.TransportError as e:
            logger.debug("%s %s failed: %s", method, path, e)
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e
        self._raise_for_status(resp)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(f"{method} {path} returned a non-JSON body", details={"status": resp.status_code}) from e

    async def get(self, path: str, params: Optional[dict[str, str]] = None, **kwargs: Any) -> Any:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, body: Optional[Any] = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, body=body, **kwargs)

    async def patch(self, path: str, body: Optional[Any] = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, body=body, **kwargs)

    async def delete(self, path: str, params: Optional[dict[str, str]] = None, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, params=params, **kwargs)

    async def close(self) -> None:
        await self._client.aclose()
