"""FastAPI web application for TaskFlow."""

import logging
from typing import Any, Dict, List, Optional
from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from taskflow.auth.dependencies import get_current_user
from taskflow.database.database import get_db
from taskflow.database.repository import TaskRepository
from taskflow.integrations.errors import AIServiceError, AIUnavailableError
from taskflow.integrations.openai_client import OpenAIClient
from taskflow.integrations.prompts import AI_ACTIONS
from taskflow.models.task import Task, TaskCreate, TaskFilter, TaskSort, TaskUpdate
from taskflow.models.task_factory import create_task_base
from taskflow.models.user import User
from taskflow.sync.store import ChangeEvent, ChangeFeed, ChangeType, get_change_feed

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="TaskFlow API",
    description="Task management with optimistic sync and AI assistance",
    version="0.1.0"
)


# Response models
class TaskResponse(BaseModel):
    """Response for a single task."""
    task: Task


class TaskListResponse(BaseModel):
    """Response for a task list view."""
    tasks: List[Task]
    count: int


class AIProxyRequest(BaseModel):
    """Body of an AI proxy call."""
    action: str = Field(..., description="One of: suggestions, enhance, parse")
    payload: Dict[str, Any] = Field(default_factory=dict)


# AI provider client (server-side credential), created on first use
_ai_client: Optional[OpenAIClient] = None


def get_ai_client() -> OpenAIClient:
    """Get or create the provider client used by the proxy."""
    global _ai_client
    if _ai_client is None:
        _ai_client = OpenAIClient()
    return _ai_client


def _publish(feed: ChangeFeed, event_type: ChangeType, user_id: str, task_id: str) -> None:
    """Tell live-update subscribers of the owner that a task changed."""
    feed.publish(ChangeEvent(event_type=event_type, user_id=user_id, task_id=task_id))


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    task_filter: TaskFilter = Query(TaskFilter.ALL, alias="filter"),
    sort: TaskSort = Query(TaskSort.NEWEST),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the current user's tasks for one view."""
    tasks = TaskRepository(db).list_tasks(current_user.id, task_filter, sort)
    return TaskListResponse(tasks=tasks, count=len(tasks))


@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    data: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Create a task for the current user."""
    task = create_task_base(current_user.id, data)
    try:
        created = TaskRepository(db).create(task)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create task: {str(e)}")
    _publish(feed, ChangeType.INSERT, current_user.id, created.id)
    return TaskResponse(task=created)


@app.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get one task by ID."""
    task = TaskRepository(db).get(current_user.id, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return TaskResponse(task=task)


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    changes: TaskUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Apply a partial update to a task."""
    repo = TaskRepository(db)
    if repo.get(current_user.id, task_id) is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    try:
        updated = repo.update(current_user.id, task_id, changes.changes())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update task: {str(e)}")
    _publish(feed, ChangeType.UPDATE, current_user.id, task_id)
    return TaskResponse(task=updated)


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Delete a task."""
    if not TaskRepository(db).delete(current_user.id, task_id):
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    _publish(feed, ChangeType.DELETE, current_user.id, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/ai-proxy")
def ai_proxy(
    request: AIProxyRequest,
    current_user: User = Depends(get_current_user),
    ai_client: OpenAIClient = Depends(get_ai_client),
):
    """Run an AI action with the server's provider credential.

    Answers {"content": "<json text>"} on success and {"error": "<message>"} otherwise.
    """
    if request.action not in AI_ACTIONS:
        return JSONResponse(status_code=400, content={"error": f"Unknown action: {request.action}"})

    try:
        content = ai_client.complete(request.action, request.payload)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except AIUnavailableError:
        return JSONResponse(status_code=500, content={"error": "AI API key not configured on server"})
    except AIServiceError as e:
        logger.warning(f"AI proxy call '{request.action}' for user {current_user.id} failed: {type(e).__name__}")
        return JSONResponse(status_code=502, content={"error": e.user_message})

    return {"content": content}
