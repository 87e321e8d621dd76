"""Cache keys for task and AI views.

Keys are tuples; invalidation and snapshots address every key that starts with
a given prefix, so `TASKS_ALL` covers all task views of all users.
"""

from typing import Optional, Tuple

from taskflow.models.task import Task, TaskFilter, TaskSort, TaskStatus

CacheKey = Tuple

TASKS_ALL: CacheKey = ("tasks",)
TASK_LISTS: CacheKey = ("tasks", "list")

AI_ALL: CacheKey = ("ai",)
AI_SUGGESTIONS: CacheKey = ("ai", "suggestions")


def _value(member) -> str:
    return getattr(member, "value", member)


def task_list_key(task_filter: TaskFilter, sort: TaskSort, user_id: str) -> CacheKey:
    """Key of one list view: filter, sort and owner."""
    return TASK_LISTS + (_value(task_filter), _value(sort), user_id)


def suggestions_key(task_count: int) -> CacheKey:
    return AI_SUGGESTIONS + (task_count,)


def key_matches(key: CacheKey, prefix: CacheKey) -> bool:
    return tuple(key[:len(prefix)]) == tuple(prefix)


def view_filter(key: CacheKey) -> Optional[TaskFilter]:
    """Filter of a list view key, or None for keys that are not list views."""
    if not key_matches(key, TASK_LISTS) or len(key) < len(TASK_LISTS) + 1:
        return None
    try:
        return TaskFilter(key[len(TASK_LISTS)])
    except ValueError:
        return None


def matches_view(key: CacheKey, task: Task) -> bool:
    """Whether a task belongs in the list view identified by key."""
    task_filter = view_filter(key)
    if task_filter is None:
        return False
    completed = _value(task.status) == TaskStatus.COMPLETED.value
    if task_filter == TaskFilter.ACTIVE:
        return not completed
    if task_filter == TaskFilter.COMPLETED:
        return completed
    return True
