"""
Auth module — password sign-in, sign-up and token refresh against /auth/v1.
"""

from typing import Any, Optional

from tasktrack.errors import AuthError, TaskTrackError
from tasktrack.transport.http import HttpClient

AUTH_PREFIX = "/auth/v1"


class Auth:
    def __init__(self, http: HttpClient):
        self._http = http

    async def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        """Exchange email + password for a token pair. Stores the access token."""
        try:
            result = await self._http.post(
                f"{AUTH_PREFIX}/token",
                {"email": email.strip().lower(), "password": password},
                params={"grant_type": "password"},
                authenticated=False,
            )
        except TaskTrackError as e:
            raise AuthError(f"Failed to sign in: {e}")
        self._http.set_token(result["access_token"])
        return result

    async def sign_up(self, email: str, password: str, name: Optional[str] = None) -> dict[str, Any]:
        """Register an account. May return a session or only a user awaiting confirmation."""
        body: dict[str, Any] = {"email": email.strip().lower(), "password": password}
        if name:
            body["data"] = {"name": name.strip()}
        try:
            result = await self._http.post(f"{AUTH_PREFIX}/signup", body, authenticated=False)
        except TaskTrackError as e:
            raise AuthError(f"Failed to sign up: {e}")
        if isinstance(result, dict) and result.get("access_token"):
            self._http.set_token(result["access_token"])
        return result

    async def get_user(self, access_token: str) -> dict[str, Any]:
        """Ask the server who owns this access token. Raises UnauthenticatedError if nobody."""
        return await self._http.get(f"{AUTH_PREFIX}/user", token=access_token)

    async def refresh(self, refresh_token: str) -> dict[str, Any]:
        """Trade a refresh token for a new pair. The old refresh token is spent either way."""
        return await self._http.post(
            f"{AUTH_PREFIX}/token",
            {"refresh_token": refresh_token},
            params={"grant_type": "refresh_token"},
            authenticated=False,
        )

    async def sign_out(self, access_token: Optional[str] = None) -> None:
        token = access_token or self._http.token
        if token:
            await self._http.post(f"{AUTH_PREFIX}/logout", token=token)
        self._http.set_token(None)
