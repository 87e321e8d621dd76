"""AI gateway for TaskFlow.

Routes AI actions through the trusted proxy first and, when the proxy fails,
directly to the provider (if a direct credential is configured and the direct
path is enabled). Replies are normalized into validated models.

Suggestions never fail: any AI problem degrades to the rule-based fallback.
Enhance and parse report their errors to the caller.
"""

import os
import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from taskflow.engine.normalization import normalize_list, normalize_object
from taskflow.engine.suggestions import fallback_suggestions
from taskflow.integrations.ai_proxy import AIProxyClient
from taskflow.integrations.errors import AIServiceError, AIUnavailableError
from taskflow.integrations.openai_client import OpenAIClient
from taskflow.integrations.prompts import ENHANCE, PARSE, SUGGESTIONS
from taskflow.models.ai import ParsedTask, Suggestion, TaskEnhancement
from taskflow.models.constants import MAX_SUGGESTIONS, SUGGESTIONS_STALE_SECONDS
from taskflow.models.task import Task, TaskCreate, TaskStatus
from taskflow.sync.cache import QueryCache
from taskflow.sync.keys import suggestions_key

load_dotenv()

logger = logging.getLogger(__name__)


def direct_fallback_from_env() -> bool:
    """AI_DIRECT_FALLBACK_ENABLED, true unless set to a false-like value."""
    return os.getenv("AI_DIRECT_FALLBACK_ENABLED", "true").strip().lower() not in ("0", "false", "no", "off")


def _task_context(task: Task) -> Dict[str, Any]:
    return {
        "title": task.title,
        "description": task.description,
        "priority": task.priority,
        "completed": task.status == TaskStatus.COMPLETED.value,
        "due_date": task.due_date.isoformat() if task.due_date else None,
    }


def _unique_ids(suggestions: List[Suggestion]) -> List[Suggestion]:
    seen = set()
    result = []
    for index, suggestion in enumerate(suggestions):
        if suggestion.id in seen:
            suggestion = suggestion.model_copy(update={"id": f"{suggestion.id}-{index + 1}"})
        seen.add(suggestion.id)
        result.append(suggestion)
    return result


class AIGateway:
    """Proxy-first AI access with direct fallback and reply normalization."""

    def __init__(
        self,
        proxy: Optional[AIProxyClient] = None,
        direct: Optional[OpenAIClient] = None,
        direct_fallback_enabled: bool = True,
    ):
        self.proxy = proxy
        self.direct = direct
        self.direct_fallback_enabled = direct_fallback_enabled

    @classmethod
    def from_env(cls, token: Optional[str] = None) -> "AIGateway":
        """Build a gateway from AI_PROXY_URL, the AI key variables and AI_DIRECT_FALLBACK_ENABLED."""
        proxy = AIProxyClient(token=token)
        return cls(
            proxy=proxy if proxy.is_configured else None,
            direct=OpenAIClient(),
            direct_fallback_enabled=direct_fallback_from_env(),
        )

    async def _call(self, action: str, payload: Dict[str, Any]) -> str:
        """Run an action and return the raw reply text.

        Raises:
            AIUnavailableError: If the proxy is absent or failed and no direct path is usable
            AITransportError: If the direct call fails
        """
        if self.proxy is not None and self.proxy.is_configured:
            try:
                return await asyncio.to_thread(self.proxy.complete, action, payload)
            except AIServiceError as e:
                logger.warning(f"AI proxy failed for '{action}', trying direct provider: {type(e).__name__}: {str(e)}")

        if not self.direct_fallback_enabled:
            raise AIUnavailableError("AI proxy unavailable and direct provider calls are disabled")
        if self.direct is None or not self.direct.is_configured:
            raise AIUnavailableError("AI proxy unavailable and no direct AI API key configured")

        logger.info(f"Calling AI provider directly for '{action}'")
        return await asyncio.to_thread(self.direct.complete, action, payload)

    async def get_suggestions(self, tasks: List[Task], today: Optional[date] = None) -> List[Suggestion]:
        """Productivity suggestions for a task list.

        An empty list gets the fallback without any network call. AI errors
        and empty replies also fall back; this method does not raise them.
        """
        today = today or date.today()
        if not tasks:
            return fallback_suggestions(tasks, today)

        payload = {"tasks": [_task_context(task) for task in tasks], "today": today.isoformat()}
        try:
            raw = await self._call(SUGGESTIONS, payload)
            items = normalize_list(raw, Suggestion, wrapper_key="suggestions").items
        except AIServiceError as e:
            logger.warning(f"AI suggestions failed, using fallback: {type(e).__name__}: {str(e)}")
            return fallback_suggestions(tasks, today)

        if not items:
            logger.warning("AI returned no suggestions, using fallback")
            return fallback_suggestions(tasks, today)
        return _unique_ids(items[:MAX_SUGGESTIONS])

    async def cached_suggestions(self, tasks: List[Task], cache: QueryCache, today: Optional[date] = None) -> List[Suggestion]:
        """Suggestions read through the cache, keyed by task count."""
        if not tasks:
            return fallback_suggestions(tasks, today)

        async def fetcher() -> List[Suggestion]:
            return await self.get_suggestions(tasks, today)

        return await cache.fetch(suggestions_key(len(tasks)), fetcher, stale_time=SUGGESTIONS_STALE_SECONDS)

    async def enhance_task(self, title: str, today: Optional[date] = None) -> TaskEnhancement:
        """Ask the AI for a better title, description, priority and due date.

        Raises:
            ValueError: If the title is blank
            AIServiceError: If the AI call or its reply fails
        """
        if not title or not title.strip():
            raise ValueError("Title is required")
        today = today or date.today()
        raw = await self._call(ENHANCE, {"title": title.strip(), "today": today.isoformat()})
        return normalize_object(raw, TaskEnhancement)

    async def parse_tasks(self, text: str, today: Optional[date] = None) -> List[ParsedTask]:
        """Extract one or more tasks from natural-language input.

        Raises:
            ValueError: If the text is blank
            AIServiceError: If the AI call fails or yields no valid task
        """
        if not text or not text.strip():
            raise ValueError("Input is required")
        today = today or date.today()
        raw = await self._call(PARSE, {"input": text.strip(), "today": today.isoformat()})
        return normalize_list(raw, ParsedTask, wrapper_key="tasks", promote_single=True, min_items=1).items

    async def smart_add(self, text: str, mutations, today: Optional[date] = None) -> List[Task]:
        """Parse input and create every resulting task, one after another.

        Creation stops at the first failure; tasks created before it are kept
        and the TaskMutationError propagates.
        """
        parsed = await self.parse_tasks(text, today)
        created = []
        for item in parsed:
            data = TaskCreate(
                title=item.title,
                description=item.description or None,
                priority=item.priority,
                due_date=item.due_date,
            )
            created.append(await mutations.create(data))
        logger.debug(f"Smart add created {len(created)} task(s)")
        return created
