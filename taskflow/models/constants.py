"""Constants for TaskFlow.

This module centralizes all magic numbers and default values used throughout the application.
"""

# Task field bounds
TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000

# Optimistic entries carry this id prefix until the store confirms them
TEMP_ID_PREFIX = "temp-"

# Sort rank for priority ordering (lower sorts first)
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

# AI suggestions
MAX_SUGGESTIONS = 4
POSITIVE_COMPLETION_RATE = 70  # percent, inclusive
SUGGESTIONS_STALE_SECONDS = 60

# AI transport
DEFAULT_AI_MODEL = "llama-3.3-70b-versatile"
DEFAULT_AI_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_AI_TIMEOUT_SEC = 30.0
AI_MAX_TOKENS = 1000
AI_TEMPERATURE = 0.5

# Relative date formatting window (days)
RELATIVE_DATE_WINDOW_DAYS = 7

# Access tokens
TOKEN_ISSUER = "taskflow"
TOKEN_AUDIENCE = "taskflow-api"
DEFAULT_TOKEN_TTL_HOURS = 24
