"""
Request gate — runs in front of every page and API call.

For each request it re-validates the session credential with the gateway,
writes any refreshed credential back through the request's channel and
decides Allow / Redirect / Deny. It never raises: a gateway that cannot be
reached makes the request anonymous (fail closed).
"""

import logging
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from tasktrack.gateway import DataGateway
from tasktrack.models.session import Credential, Session

logger = logging.getLogger(__name__)

ALLOW = "allow"
REDIRECT = "redirect"
DENY = "deny"

STATIC_PREFIXES = ("/static/", "/_next/static/", "/_next/image", "/favicon.ico")
STATIC_EXTENSIONS = (".svg", ".png", ".jpg", ".jpeg", ".gif", ".webp")


class CredentialChannel(Protocol):
    """Where a transport keeps the session credential (cookie, config file, ...)."""

    def read(self) -> Optional[str]: ...

    def write(self, value: Optional[str]) -> None: ...


class GateConfig(BaseModel):
    login_path: str = "/login"
    home_path: str = "/todos"
    protected: list[str] = Field(default_factory=lambda: ["/todos"])
    public_only: list[str] = Field(default_factory=lambda: ["/login", "/register"])
    protected_api: list[str] = Field(default_factory=lambda: ["/api/todos"])
    allow_list: list[str] = Field(default_factory=lambda: ["/health"])

    def is_exempt(self, path: str) -> bool:
        """Static assets and allow-listed paths skip the gate entirely."""
        if path.startswith(STATIC_PREFIXES):
            return True
        if path.lower().endswith(STATIC_EXTENSIONS):
            return True
        return _matches(path, self.allow_list)


def _matches(path: str, prefixes: list[str]) -> bool:
    for prefix in prefixes:
        prefix = prefix.rstrip("/") or "/"
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


class Decision:
    __slots__ = ("kind", "location", "session")

    def __init__(self, kind: str, location: Optional[str] = None, session: Optional[Session] = None):
        self.kind = kind
        self.location = location
        self.session = session or Session()

    @classmethod
    def allow(cls, session: Session) -> "Decision":
        return cls(ALLOW, session=session)

    @classmethod
    def redirect(cls, location: str, session: Session) -> "Decision":
        return cls(REDIRECT, location=location, session=session)

    @classmethod
    def deny(cls, session: Session) -> "Decision":
        return cls(DENY, session=session)

    @property
    def allowed(self) -> bool:
        return self.kind == ALLOW

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Decision):
            return NotImplemented
        return (self.kind, self.location, self.session.identity) == (
            other.kind, other.location, other.session.identity,
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.location, self.session.identity))

    def __repr__(self) -> str:
        return f"Decision(kind={self.kind!r}, location={self.location!r}, identity={self.session.identity!r})"


class GateRequest:
    __slots__ = ("path", "channel")

    def __init__(self, path: str, channel: CredentialChannel):
        self.path = path
        self.channel = channel


class RequestGate:
    def __init__(self, gateway: DataGateway, config: Optional[GateConfig] = None):
        self._gateway = gateway
        self.config = config or GateConfig()

    async def authorize(self, request: GateRequest) -> Decision:
        session = await self._resolve_session(request.channel)
        path = request.path
        cfg = self.config

        if not session.authenticated:
            if _matches(path, cfg.protected):
                logger.info("Anonymous request to %s, redirecting to %s", path, cfg.login_path)
                return Decision.redirect(cfg.login_path, session)
            if _matches(path, cfg.protected_api):
                return Decision.deny(session)
            return Decision.allow(session)

        if _matches(path, cfg.public_only):
            return Decision.redirect(cfg.home_path, session)
        return Decision.allow(session)

    async def _resolve_session(self, channel: CredentialChannel) -> Session:
        raw = channel.read()
        credential = Credential.decode(raw)
        try:
            result = await self._gateway.validate_session(credential)
        except Exception as e:
            logger.warning("Session validation failed, treating request as anonymous: %s", e)
            return Session()

        if result.refreshed_credential is not None:
            channel.write(result.refreshed_credential.encode())
        elif raw and result.identity is None:
            # Dead or unreadable credential; drop it so the next request starts clean.
            channel.write(None)
        return Session(identity=result.identity)
