"""Date helpers for task display and statistics."""

import math
from datetime import date, datetime
from typing import Iterable, Optional, Union

from taskflow.models.constants import RELATIVE_DATE_WINDOW_DAYS
from taskflow.models.task import Task, TaskStatus

MONTH_ABBREVIATIONS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

DateLike = Union[date, datetime, str]

SECONDS_PER_DAY = 24 * 60 * 60


def _coerce(value: DateLike) -> Union[date, datetime]:
    if isinstance(value, str):
        return datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
    return value


def day_difference(value: DateLike, now: Optional[datetime] = None) -> int:
    """Signed number of days from now to value.

    Datetimes use the ceiling of the exact difference; plain dates count whole
    calendar days.
    """
    value = _coerce(value)
    now = now or datetime.now()
    if isinstance(value, datetime):
        if value.tzinfo is not None and now.tzinfo is None:
            now = now.astimezone()
        return math.ceil((value - now).total_seconds() / SECONDS_PER_DAY)
    return (value - now.date()).days if isinstance(now, datetime) else (value - now).days


def format_date(value: DateLike, now: Optional[datetime] = None) -> str:
    """Human-friendly relative label for a due date."""
    value = _coerce(value)
    now = now or datetime.now()
    days = day_difference(value, now)

    if days == 0:
        return "Today"
    if days == 1:
        return "Tomorrow"
    if days == -1:
        return "Yesterday"
    if 0 < days <= RELATIVE_DATE_WINDOW_DAYS:
        return f"In {days} days"
    if -RELATIVE_DATE_WINDOW_DAYS <= days < 0:
        return f"{abs(days)} days ago"

    label = f"{MONTH_ABBREVIATIONS[value.month - 1]} {value.day}"
    if value.year != now.year:
        label += f", {value.year}"
    return label


def is_overdue(due_date: Optional[DateLike], today: Optional[date] = None) -> bool:
    """Whether a due date lies on a calendar day before today."""
    if not due_date:
        return False
    due_date = _coerce(due_date)
    if isinstance(due_date, datetime):
        due_date = due_date.date()
    return due_date < (today or date.today())


def completion_rate(tasks: Iterable[Task]) -> int:
    """Percentage of completed tasks, rounded half up (0 for no tasks)."""
    tasks = list(tasks)
    total = len(tasks)
    if total == 0:
        return 0
    completed = sum(1 for task in tasks if task.status == TaskStatus.COMPLETED.value)
    # Integer arithmetic: round(x) on floats rounds half to even
    return (200 * completed + total) // (2 * total)
