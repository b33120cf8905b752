"""
Task models — rows of the `todos` table and the payloads that write them.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

TITLE_MAX = 100
DESCRIPTION_MAX = 500


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _check_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("title must not be empty")
    if len(value) > TITLE_MAX:
        raise ValueError(f"title must be at most {TITLE_MAX} characters")
    return value


def _check_description(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if len(value) > DESCRIPTION_MAX:
        raise ValueError(f"description must be at most {DESCRIPTION_MAX} characters")
    return value


Title = Annotated[str, AfterValidator(_check_title)]
Description = Annotated[Optional[str], AfterValidator(_check_description)]


class Task(BaseModel):
    """A single task row. `owner_id` travels as `user_id` on the wire."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: UUID
    owner_id: str = Field(alias="user_id")
    title: str
    description: Optional[str] = None
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TaskCreate(BaseModel):
    """Create payload. Title required, everything else defaulted."""

    model_config = ConfigDict(use_enum_values=True)

    title: Title
    description: Description = None
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None

    def to_row(self, owner_id: str) -> dict[str, Any]:
        row = self.model_dump(mode="json")
        row["user_id"] = owner_id
        return row


class TaskUpdate(BaseModel):
    """Partial update. Only fields explicitly set are sent or applied."""

    model_config = ConfigDict(use_enum_values=True)

    title: Optional[Title] = None
    description: Description = None
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _no_null_required(self) -> "TaskUpdate":
        for name in ("title", "completed", "priority"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)

    def apply_to(self, task: Task) -> Task:
        return task.model_copy(update=self.model_dump(exclude_unset=True))
