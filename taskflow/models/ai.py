"""AI result models for TaskFlow.

These are ephemeral: produced by the AI gateway (or the fallback generator) and
never persisted.
"""

from datetime import date
from typing import Any, Dict, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator

from taskflow.models.task import TaskPriority, blank_to_none
from taskflow.models.constants import TITLE_MAX_LENGTH, DESCRIPTION_MAX_LENGTH


class SuggestionType(str, Enum):
    """Suggestion kind."""
    PRIORITY = "priority"
    CATEGORY = "category"
    BREAKDOWN = "breakdown"
    INSIGHT = "insight"


class Suggestion(BaseModel):
    """A single productivity suggestion."""

    id: str = Field(..., description="Identifier, unique within one response batch")
    type: SuggestionType = Field(..., description="Suggestion kind")
    title: str = Field(..., min_length=1)
    description: str = Field(...)
    action_label: Optional[str] = Field(None, description="Optional call-to-action label")
    data: Optional[Dict[str, Any]] = Field(None, description="Optional action payload")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        # Models sometimes return numeric ids
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value):
        return value.lower() if isinstance(value, str) else value


class _AITaskFields(BaseModel):
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = Field("", max_length=DESCRIPTION_MAX_LENGTH)
    priority: TaskPriority = Field(TaskPriority.MEDIUM)
    due_date: Optional[date] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("description", mode="before")
    @classmethod
    def _null_description(cls, value):
        return "" if value is None else value

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, value):
        if value is None:
            return TaskPriority.MEDIUM.value
        return value.lower() if isinstance(value, str) else value

    @field_validator("due_date", mode="before")
    @classmethod
    def _empty_due_date(cls, value):
        return blank_to_none(value)


class TaskEnhancement(_AITaskFields):
    """AI-improved version of a bare task title."""


class ParsedTask(_AITaskFields):
    """One task extracted from natural-language input."""
