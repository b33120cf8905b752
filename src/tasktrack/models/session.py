"""
Session models — the transport credential and what validating it yields.
"""

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Credential(BaseModel):
    """Access/refresh token pair carried in one cookie or config field."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    def encode(self) -> str:
        raw = json.dumps(self.model_dump(exclude_none=True), separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")

    @classmethod
    def decode(cls, value: Optional[str]) -> Optional["Credential"]:
        """Decode an encoded credential; anything unreadable is no credential."""
        if not value:
            return None
        padded = value + "=" * (-len(value) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(padded.encode()))
            return cls.model_validate(data)
        except (binascii.Error, ValueError, ValidationError, UnicodeDecodeError):
            return None

    @classmethod
    def from_token_response(cls, data: dict[str, Any]) -> "Credential":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=data.get("expires_at"),
        )


class SessionValidation(BaseModel):
    """Result of asking the gateway about a credential."""

    identity: Optional[str] = None
    refreshed_credential: Optional[Credential] = None


class Session(BaseModel):
    identity: Optional[str] = None
    validated_at: datetime = Field(default_factory=_utcnow)

    @property
    def authenticated(self) -> bool:
        return self.identity is not None
