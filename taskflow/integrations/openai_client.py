"""Direct AI provider integration for TaskFlow.

Talks to any OpenAI-compatible chat completions endpoint through the `openai`
SDK. Groq is the default endpoint; `AI_BASE_URL` and `AI_MODEL` point it
elsewhere.
"""

import os
import logging
from typing import Any, Dict, Optional
from openai import OpenAI, APIError
from dotenv import load_dotenv

from taskflow.integrations.errors import AITransportError, AIUnavailableError
from taskflow.integrations.prompts import build_messages
from taskflow.models.constants import (
    AI_MAX_TOKENS,
    AI_TEMPERATURE,
    DEFAULT_AI_BASE_URL,
    DEFAULT_AI_MODEL,
    DEFAULT_AI_TIMEOUT_SEC,
)

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def ai_timeout_from_env() -> float:
    """Request timeout in seconds from AI_REQUEST_TIMEOUT_SEC."""
    raw = os.getenv("AI_REQUEST_TIMEOUT_SEC")
    if not raw:
        return DEFAULT_AI_TIMEOUT_SEC
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid AI_REQUEST_TIMEOUT_SEC={raw!r}. Using {DEFAULT_AI_TIMEOUT_SEC}.")
        return DEFAULT_AI_TIMEOUT_SEC


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code fence (``` or ```json)."""
    content = (content or "").strip()
    if content.startswith("```json"):
        content = content[7:]
    if content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


class OpenAIClient:
    """Client for an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Provider key. If None, reads AI_API_KEY, then GROQ_API_KEY.
            base_url: Endpoint base URL. If None, reads AI_BASE_URL.
            model: Model name. If None, reads AI_MODEL.
            timeout: Request timeout in seconds. If None, reads AI_REQUEST_TIMEOUT_SEC.

        Note:
            Without a key the client still initializes, but every call raises
            AIUnavailableError.
        """
        self.api_key = api_key or os.getenv("AI_API_KEY") or os.getenv("GROQ_API_KEY")
        self.base_url = base_url or os.getenv("AI_BASE_URL", DEFAULT_AI_BASE_URL)
        self.model = model or os.getenv("AI_MODEL", DEFAULT_AI_MODEL)
        self.timeout = timeout if timeout is not None else ai_timeout_from_env()
        self.client = None

        if self.api_key:
            # Retries are the caller's decision
            self.client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        else:
            logger.debug("No AI API key configured. Direct AI calls are unavailable.")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def complete(self, action: str, payload: Dict[str, Any]) -> str:
        """Run one AI action and return the raw JSON text of the reply.

        Raises:
            ValueError: If the action or payload is invalid
            AIUnavailableError: If no API key is configured
            AITransportError: If the request fails or the reply is empty
        """
        if not self.client:
            raise AIUnavailableError("No AI API key configured")

        messages = build_messages(action, payload)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=AI_MAX_TOKENS,
                temperature=AI_TEMPERATURE,
                response_format={"type": "json_object"},
            )
        except APIError as e:
            # Provider bodies can echo the prompt; log the type and status only
            status_code = getattr(e, "status_code", None)
            logger.error(f"AI provider error for '{action}': {type(e).__name__} (status {status_code})")
            raise AITransportError(f"AI provider error: {type(e).__name__}") from e

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        content = strip_code_fences(content)
        if not content:
            raise AITransportError(f"Empty AI response for '{action}'")
        return content
