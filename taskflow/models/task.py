"""Task data model for TaskFlow."""

from datetime import date, datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator

from taskflow.models.constants import TITLE_MAX_LENGTH, DESCRIPTION_MAX_LENGTH


class TaskStatus(str, Enum):
    """Task status enumeration (kanban columns)."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Task priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskFilter(str, Enum):
    """List view filter."""
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


class TaskSort(str, Enum):
    """List view sort order."""
    NEWEST = "newest"
    OLDEST = "oldest"
    PRIORITY = "priority"
    DUE_DATE = "due_date"


def blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Task(BaseModel):
    """Canonical Task model."""

    id: str = Field(..., description="Unique task identifier (UUID v4, or temp-* while pending)")
    user_id: str = Field(..., description="User ID who owns this task")
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH, description="Task title")
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH, description="Task description")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    status: TaskStatus = Field(TaskStatus.TODO, description="Task status")
    is_completed: bool = Field(False, description="Mirror of status == completed")
    due_date: Optional[date] = Field(None, description="Due date (calendar date, no time of day)")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class TaskCreate(BaseModel):
    """Fields a caller supplies when creating a task.

    Owner, id and timestamps are assigned by the store.
    """

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    priority: TaskPriority = Field(TaskPriority.MEDIUM)
    due_date: Optional[date] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @field_validator("description", "due_date", mode="before")
    @classmethod
    def _empty_is_absent(cls, value):
        return blank_to_none(value)


class TaskUpdate(BaseModel):
    """Partial update. Only fields explicitly set are applied.

    `status` and `is_completed` are kept consistent: supplying one derives the
    other, supplying both with different meanings is rejected.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    is_completed: Optional[bool] = None
    due_date: Optional[date] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @field_validator("description", "due_date", mode="before")
    @classmethod
    def _empty_is_absent(cls, value):
        return blank_to_none(value)

    @model_validator(mode="after")
    def _sync_completion(self):
        has_status = "status" in self.model_fields_set and self.status is not None
        has_flag = "is_completed" in self.model_fields_set and self.is_completed is not None
        if has_status and has_flag:
            if (self.status == TaskStatus.COMPLETED.value) != self.is_completed:
                raise ValueError("status and is_completed disagree")
        elif has_status:
            self.is_completed = self.status == TaskStatus.COMPLETED.value
            self.model_fields_set.add("is_completed")
        elif has_flag:
            self.status = TaskStatus.COMPLETED.value if self.is_completed else TaskStatus.TODO.value
            self.model_fields_set.add("status")
        return self

    def changes(self) -> dict:
        """Return only the fields the caller set.

        Explicit nulls are kept for nullable columns (clearing a description or
        due date) and dropped for the rest.
        """
        data = self.model_dump(exclude_unset=True)
        return {
            key: value for key, value in data.items()
            if value is not None or key in NULLABLE_FIELDS
        }


NULLABLE_FIELDS = frozenset({"description", "due_date"})
