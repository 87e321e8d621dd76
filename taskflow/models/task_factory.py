"""Task creation factory for TaskFlow.

This module centralizes task construction so that the repository (persisted
tasks) and the mutation engine (optimistic placeholder tasks) apply the same
defaults.
"""

import uuid
from datetime import datetime
from typing import Dict, Any

from taskflow.models.task import Task, TaskCreate, TaskStatus, TaskPriority
from taskflow.models.constants import TEMP_ID_PREFIX


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary."""
    return {
        "description": None,
        "priority": TaskPriority.MEDIUM,
        "status": TaskStatus.TODO,
        "is_completed": False,
        "due_date": None,
    }


def create_task_base(user_id: str, data: TaskCreate, task_id: str = None, now: datetime = None) -> Task:
    """Create a persisted-shape task from creation data.

    Args:
        user_id: User ID who owns this task
        data: Caller-supplied fields
        task_id: Explicit id (a fresh UUID v4 when omitted)
        now: Creation timestamp (defaults to utcnow)

    Returns:
        Task with status `todo` and defaults applied
    """
    now = now or datetime.utcnow()
    defaults = create_task_defaults()
    return Task(
        id=task_id or str(uuid.uuid4()),
        user_id=user_id,
        title=data.title,
        description=data.description if data.description is not None else defaults["description"],
        priority=data.priority if data.priority is not None else defaults["priority"],
        status=defaults["status"],
        is_completed=defaults["is_completed"],
        due_date=data.due_date if data.due_date is not None else defaults["due_date"],
        created_at=now,
        updated_at=now,
    )


def new_temp_id() -> str:
    """Generate a temporary id for an optimistic entry."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(task_id: str) -> bool:
    """Whether an id belongs to an unconfirmed optimistic entry."""
    return bool(task_id) and task_id.startswith(TEMP_ID_PREFIX)


def create_optimistic_task(user_id: str, data: TaskCreate) -> Task:
    """Build the placeholder shown while a create for user_id is in flight."""
    return create_task_base(user_id, data, task_id=new_temp_id())


def apply_changes(task: Task, changes: Dict[str, Any], now: datetime = None) -> Task:
    """Merge partial changes into a task, refreshing updated_at.

    Returns a new Task; the input is left untouched so cache snapshots stay valid.
    """
    return task.model_copy(update={**changes, "updated_at": now or datetime.utcnow()})
