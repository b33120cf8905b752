"""
Session store — who the last authorization check said we are.

In-memory only. `loading` starts True ("not checked yet") and drops the
first time an identity, or the lack of one, is recorded.
"""

from typing import Callable, Optional

Listener = Callable[["SessionStore"], None]


class SessionStore:
    def __init__(self) -> None:
        self._identity: Optional[str] = None
        self._loading = True
        self._listeners: list[Listener] = []

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    def get_identity(self) -> Optional[str]:
        return self._identity

    def set_identity(self, identity: Optional[str]) -> None:
        self._identity = identity
        self._loading = False
        self._notify()

    def set_loading(self, loading: bool) -> None:
        self._loading = loading
        self._notify()

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a cleanup function."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
