"""
UI preferences — view state that is safe to keep on disk, plus list filtering.

Only `sidebar_open` and `filter_completed` are persisted; the search box
starts empty every time.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from tasktrack.config import CONFIG_DIR, load_config, save_config
from tasktrack.models.task import Priority, Task

PREFERENCES_FILE = CONFIG_DIR / "ui.json"
PERSISTED_FIELDS = {"sidebar_open", "filter_completed"}

PRIORITY_RANK = {Priority.LOW.value: 0, Priority.MEDIUM.value: 1, Priority.HIGH.value: 2}

SORT_KEYS = {
    "date": lambda t: t.created_at,
    "priority": lambda t: PRIORITY_RANK[Priority(t.priority).value],
    "title": lambda t: t.title.lower(),
}


class StatusFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


class UIPreferences(BaseModel):
    sidebar_open: bool = True
    filter_completed: StatusFilter = StatusFilter.ALL
    search_query: str = ""


class PreferenceStore:
    def __init__(self, path: Path = PREFERENCES_FILE):
        self._path = path
        stored = {k: v for k, v in load_config(path).items() if k in PERSISTED_FIELDS}
        self.prefs = UIPreferences.model_validate(stored)

    def set_sidebar_open(self, open: bool) -> None:
        self.prefs.sidebar_open = open
        self._save()

    def toggle_sidebar(self) -> None:
        self.set_sidebar_open(not self.prefs.sidebar_open)

    def set_filter_completed(self, value: StatusFilter) -> None:
        self.prefs.filter_completed = StatusFilter(value)
        self._save()

    def set_search_query(self, query: str) -> None:
        self.prefs.search_query = query

    def _save(self) -> None:
        save_config(self.prefs.model_dump(mode="json", include=PERSISTED_FIELDS), self._path)


def filter_tasks(
    tasks: list[Task],
    status: StatusFilter = StatusFilter.ALL,
    priority: Optional[Priority] = None,
    search: str = "",
    sort_by: str = "date",
    sort_order: str = "desc",
) -> list[Task]:
    """Filter and sort a task list for display. Never touches the cache."""
    status = StatusFilter(status)
    out = list(tasks)
    if status == StatusFilter.ACTIVE:
        out = [t for t in out if not t.completed]
    elif status == StatusFilter.COMPLETED:
        out = [t for t in out if t.completed]
    if priority is not None:
        wanted = Priority(priority).value
        out = [t for t in out if t.priority == wanted]
    needle = search.strip().lower()
    if needle:
        out = [t for t in out if needle in t.title.lower() or needle in (t.description or "").lower()]

    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort field: {sort_by}")
    return sorted(out, key=SORT_KEYS[sort_by], reverse=(sort_order == "desc"))
