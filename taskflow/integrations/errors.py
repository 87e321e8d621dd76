"""Exceptions raised by the AI integrations.

Each error carries a short `user_message` that can be shown as-is; the
exception text itself may hold provider details meant for logs only.
"""


class AIServiceError(Exception):
    """Base class for AI provider failures."""

    user_message = "The AI service failed. Please try again."

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        if user_message:
            self.user_message = user_message


class AITransportError(AIServiceError):
    """Network, proxy or provider failure."""

    user_message = "Could not reach the AI service. Please try again."


class AIUnavailableError(AIServiceError):
    """No AI credential is configured. Retrying will not help."""

    user_message = "AI features are not configured."


class AIResponseError(AIServiceError):
    """The provider answered, but not with the JSON shape we expected."""

    user_message = "The AI returned an unexpected response. Please try again."
