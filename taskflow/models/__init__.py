"""Data models for TaskFlow."""

from taskflow.models.task import Task, TaskCreate, TaskUpdate, TaskStatus, TaskPriority, TaskFilter, TaskSort
from taskflow.models.ai import Suggestion, SuggestionType, TaskEnhancement, ParsedTask
from taskflow.models.user import User

__all__ = [
    "Task",
    "TaskCreate",
    "TaskUpdate",
    "TaskStatus",
    "TaskPriority",
    "TaskFilter",
    "TaskSort",
    "Suggestion",
    "SuggestionType",
    "TaskEnhancement",
    "ParsedTask",
    "User",
]
