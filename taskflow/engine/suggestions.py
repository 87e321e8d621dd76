"""Deterministic suggestions used when the AI is unavailable.

Rules run in a fixed order and each contributes at most one suggestion:

1. completion-rate insight (whenever there are tasks)
2. active high-priority tasks
3. active overdue tasks
4. a getting-started tip when none of the above fired
"""

from datetime import date
from typing import List, Optional

from taskflow.engine.dates import completion_rate, is_overdue
from taskflow.models.ai import Suggestion, SuggestionType
from taskflow.models.constants import MAX_SUGGESTIONS, POSITIVE_COMPLETION_RATE
from taskflow.models.task import Task, TaskPriority, TaskStatus


def _is_active(task: Task) -> bool:
    return task.status != TaskStatus.COMPLETED.value


def _plural(count: int, singular: str, plural: str) -> str:
    return plural if count > 1 else singular


def fallback_suggestions(tasks: List[Task], today: Optional[date] = None) -> List[Suggestion]:
    """Build rule-based suggestions for a task list."""
    today = today or date.today()
    active = [task for task in tasks if _is_active(task)]
    suggestions: List[Suggestion] = []

    if tasks:
        rate = completion_rate(tasks)
        if rate >= POSITIVE_COMPLETION_RATE:
            description = f"Great work! {rate}% tasks completed. Keep it up!"
        else:
            description = f"{rate}% completion rate. Try tackling quick wins first."
        suggestions.append(Suggestion(
            id="insight-1",
            type=SuggestionType.INSIGHT,
            title="Productivity Insight",
            description=description,
        ))

    high_priority = [task for task in active if task.priority == TaskPriority.HIGH.value]
    if high_priority:
        count = len(high_priority)
        suggestions.append(Suggestion(
            id="priority-1",
            type=SuggestionType.PRIORITY,
            title="High Priority Pending",
            description=(
                f"{count} high-priority {_plural(count, 'task', 'tasks')} need attention. "
                f"Focus on \"{high_priority[0].title}\" first."
            ),
        ))

    overdue = [task for task in active if is_overdue(task.due_date, today)]
    if overdue:
        count = len(overdue)
        suggestions.append(Suggestion(
            id="overdue-1",
            type=SuggestionType.CATEGORY,
            title="Overdue Tasks",
            description=f"{count} {_plural(count, 'task is', 'tasks are')} past due. Consider rescheduling.",
        ))

    if not suggestions:
        suggestions.append(Suggestion(
            id="tip-1",
            type=SuggestionType.INSIGHT,
            title="Getting Started",
            description="Add tasks to get AI-powered productivity suggestions!",
        ))

    return suggestions[:MAX_SUGGESTIONS]
