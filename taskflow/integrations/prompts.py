"""Chat prompts for the AI actions.

Both the direct provider client and the server-side proxy build their messages
here, so the model sees the same instructions whichever path a request takes.
"""

import json
from datetime import date
from typing import Any, Dict, List, Optional

SUGGESTIONS = "suggestions"
ENHANCE = "enhance"
PARSE = "parse"

AI_ACTIONS = (SUGGESTIONS, ENHANCE, PARSE)

# Payload field each action reads
PAYLOAD_FIELDS = {
    SUGGESTIONS: "tasks",
    ENHANCE: "title",
    PARSE: "input",
}

SUGGESTIONS_PROMPT_TEMPLATE = """You are a productivity assistant. Review the user's task list and give practical suggestions.

Respond with a JSON object of the form {{"suggestions": [...]}} holding 2 to 4 suggestions. Each suggestion has:
- "id": a unique string
- "type": one of "priority", "category", "breakdown", "insight"
- "title": a short title (at most 6 words)
- "description": concrete advice in 1-2 sentences (at most 120 characters)

Look at overdue tasks, how priorities are balanced, work habits and tasks that should be split up.
Today's date: {today}.
Respond only with the JSON object, no other text."""

ENHANCE_PROMPT_TEMPLATE = """You are a task planning assistant. Improve the task the user gives you.

Respond with a JSON object with these keys:
- "title": a clearer, actionable title (keep it short)
- "description": 2-3 sentences with actionable steps
- "priority": "low", "medium" or "high"
- "due_date": a date as YYYY-MM-DD, or null when none can be inferred

Today's date: {today}.
Respond only with the JSON object, no other text."""

PARSE_PROMPT_TEMPLATE = """You are a task parser. Turn the user's natural language input into one or more structured tasks.

Respond with a JSON object of the form {{"tasks": [...]}}. Each task has:
- "title": a clear task title without the date or priority wording
- "description": details mentioned or implied by the input
- "priority": "low", "medium" or "high", inferred from urgency
- "due_date": a date as YYYY-MM-DD, or null

The input may describe several tasks ("do A, then B"); when one depends on another, order their due dates accordingly.
Today's date: {today}. Resolve relative dates (tomorrow, next week, friday) against it.
Respond only with the JSON object, no other text."""


def _payload_value(action: str, payload: Dict[str, Any]) -> Any:
    field = PAYLOAD_FIELDS[action]
    if not isinstance(payload, dict) or payload.get(field) is None:
        raise ValueError(f"Payload for '{action}' requires '{field}'")
    return payload[field]


def build_messages(action: str, payload: Dict[str, Any], today: Optional[date] = None) -> List[Dict[str, str]]:
    """Build the chat messages for one AI action.

    Args:
        action: One of AI_ACTIONS
        payload: Action input (`tasks`, `title` or `input`, optionally `today`)
        today: Reference date for relative dates (defaults to the payload's
            `today`, then date.today())

    Raises:
        ValueError: If the action is unknown, the payload lacks its field or
            `today` is not an ISO date
    """
    if action not in AI_ACTIONS:
        raise ValueError(f"Unknown action: {action}")

    value = _payload_value(action, payload)
    if today is None and payload.get("today"):
        # Callers may pin the reference date through the payload
        today = date.fromisoformat(str(payload["today"]))
    today_str = (today or date.today()).isoformat()

    if action == SUGGESTIONS:
        system = SUGGESTIONS_PROMPT_TEMPLATE.format(today=today_str)
        user = f"My tasks: {json.dumps(value, default=str)}"
    elif action == ENHANCE:
        system = ENHANCE_PROMPT_TEMPLATE.format(today=today_str)
        user = f'Enhance this task: "{value}"'
    else:
        system = PARSE_PROMPT_TEMPLATE.format(today=today_str)
        user = str(value)

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]
