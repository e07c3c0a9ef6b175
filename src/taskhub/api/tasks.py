"""Task API routes — all ownership-scoped.

Learn: _task_svc builds a TaskService for the authenticated user, so no
handler can even express a query on another user's tasks. Ids come from
the path as plain strings; a malformed id is a 404 like any other id the
caller doesn't own.

Key patterns:
- POST for creation, PATCH for partial updates
- Query params for filtering, sorting and paging
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import CurrentSession, get_current_session
from taskhub.db.engine import get_db
from taskhub.schemas.task import TaskCreate, TaskRead, TaskUpdate
from taskhub.services.task_service import TaskService

router = APIRouter(prefix="/tasks")


def _task_svc(
    current: CurrentSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> TaskService:
    return TaskService(db, owner_id=current.user_id)


@router.post("", response_model=TaskRead, status_code=201)
async def create_task(body: TaskCreate, svc: TaskService = Depends(_task_svc)):
    """Create a task owned by the caller."""
    return await svc.create_task(description=body.description, completed=body.completed)


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    completed: Optional[bool] = Query(None, description="Only completed / only open tasks"),
    sort_by: Optional[str] = Query(None, description="<field>:<asc|desc>, e.g. created_at:desc"),
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    svc: TaskService = Depends(_task_svc),
):
    """List the caller's tasks."""
    return await svc.list_tasks(completed=completed, sort_by=sort_by, limit=limit, skip=skip)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(task_id: str, svc: TaskService = Depends(_task_svc)):
    return await svc.get_task(task_id)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: str,
    body: TaskUpdate,
    svc: TaskService = Depends(_task_svc),
):
    """Partially update a task (description, completed)."""
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    return await svc.update_task(task_id, changes)


@router.delete("/{task_id}", response_model=TaskRead)
async def delete_task(task_id: str, svc: TaskService = Depends(_task_svc)):
    """Delete one of the caller's tasks. Someone else's task is a 404."""
    return await svc.delete_task(task_id)
