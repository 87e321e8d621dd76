"""Client for the server-side AI proxy.

The proxy holds the provider credential. It accepts `{action, payload}` and
answers `{"content": "<json text>"}` or `{"error": "<message>"}`.
"""

import os
import logging
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

from taskflow.integrations.errors import AITransportError
from taskflow.integrations.openai_client import ai_timeout_from_env, strip_code_fences

load_dotenv()

logger = logging.getLogger(__name__)


class AIProxyClient:
    """POSTs AI actions to the proxy endpoint."""

    def __init__(self, url: Optional[str] = None, token: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize the proxy client.

        Args:
            url: Proxy endpoint. If None, reads AI_PROXY_URL.
            token: Bearer token of the signed-in user, sent with every call
            timeout: Request timeout in seconds. If None, reads AI_REQUEST_TIMEOUT_SEC.
        """
        self.url = url or os.getenv("AI_PROXY_URL")
        self.token = token
        self.timeout = timeout if timeout is not None else ai_timeout_from_env()

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def complete(self, action: str, payload: Dict[str, Any]) -> str:
        """Run one AI action through the proxy and return the raw JSON text.

        Raises:
            AITransportError: On network errors, non-2xx status, an `error`
                body or empty content
        """
        if not self.url:
            raise AITransportError("AI proxy URL is not configured")

        try:
            response = requests.post(
                self.url,
                json={"action": action, "payload": payload},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AITransportError(f"AI proxy request failed: {type(e).__name__}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            message = body.get("error") if isinstance(body, dict) else None
            raise AITransportError(f"AI proxy returned {response.status_code}: {message or response.reason}")
        if not isinstance(body, dict):
            raise AITransportError("AI proxy returned a non-JSON body")
        if body.get("error"):
            raise AITransportError(f"AI proxy error: {body['error']}")

        content = body.get("content")
        content = strip_code_fences(content) if isinstance(content, str) else ""
        if not content:
            raise AITransportError(f"AI proxy returned empty content for '{action}'")
        logger.debug(f"AI proxy answered '{action}' ({len(content)} chars)")
        return content
