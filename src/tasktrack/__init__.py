"""
tasktrack — personal task tracker SDK.

Request gating with session refresh, a TTL query cache and optimistic
mutations over a hosted relational store.
"""

from tasktrack.cache import QueryCache, tasks_key
from tasktrack.client import AsyncTaskTrack
from tasktrack.config import Settings
from tasktrack.errors import (
    AuthError,
    ConflictError,
    GatewayError,
    TaskTrackError,
    TransientNetworkError,
    UnauthenticatedError,
    UnauthorizedError,
    ValidationFailure,
)
from tasktrack.gate import Decision, GateConfig, GateRequest, RequestGate
from tasktrack.gateway import DataGateway, HttpGateway
from tasktrack.mutations import MutationCoordinator, MutationResult
from tasktrack.session_store import SessionStore

__version__ = "0.1.0"
__all__ = [
    "AsyncTaskTrack",
    "Settings",
    "QueryCache",
    "tasks_key",
    "MutationCoordinator",
    "MutationResult",
    "SessionStore",
    "RequestGate",
    "GateConfig",
    "GateRequest",
    "Decision",
    "DataGateway",
    "HttpGateway",
    "TaskTrackError",
    "AuthError",
    "UnauthenticatedError",
    "UnauthorizedError",
    "ValidationFailure",
    "TransientNetworkError",
    "ConflictError",
    "GatewayError",
]
