"""AI engine for TaskFlow."""

from taskflow.engine.dates import format_date, is_overdue, completion_rate
from taskflow.engine.normalization import normalize_list, normalize_object, Normalized, ResponseShape
from taskflow.engine.suggestions import fallback_suggestions
from taskflow.engine.gateway import AIGateway

__all__ = [
    "format_date",
    "is_overdue",
    "completion_rate",
    "normalize_list",
    "normalize_object",
    "Normalized",
    "ResponseShape",
    "fallback_suggestions",
    "AIGateway",
]
