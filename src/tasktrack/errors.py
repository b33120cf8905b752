"""
tasktrack error types.

Gateway failures are raised as these; the gate and the mutation coordinator
turn them into decisions and result values instead of letting them escape.
"""

from typing import Any, Optional


class TaskTrackError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class AuthError(TaskTrackError):
    def __init__(self, message: str, code: str = "auth_error"):
        super().__init__(code, message)


class UnauthenticatedError(AuthError):
    """No valid session. Becomes a redirect, never a visible error."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, code="unauthenticated")


class UnauthorizedError(TaskTrackError):
    """Session is valid but the store refused the row. Message stays generic."""

    def __init__(self, message: str = "Request could not be completed"):
        super().__init__("unauthorized", message)


class ValidationFailure(TaskTrackError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("validation_failure", message, details)


class TransientNetworkError(TaskTrackError):
    def __init__(self, message: str):
        super().__init__("network_error", message)


class ConflictError(TaskTrackError):
    """Target task is missing, not ours, or changed underneath us."""

    def __init__(self, message: str = "Task not found or was modified", details: Optional[dict[str, Any]] = None):
        super().__init__("conflict_or_not_found", message, details)


class GatewayError(TaskTrackError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("http_error", message, details)
