"""Task service — every read and write scoped to the task's owner.

Learn: TaskService is constructed *for* one owner (the authenticated
user) and every statement it runs carries both predicates:

    WHERE tasks.id = :task_id AND tasks.owner_id = :owner_id

It never loads a task by id alone and checks ownership afterwards. A task
that doesn't exist and a task that belongs to someone else are the same
thing to the caller: NotFoundError (404), never 403, so ids can't be
tried to learn what other users own.
"""

import uuid
from typing import Any, Optional, Union

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from taskhub.db.models import Task
from taskhub.errors import (
    InvalidInputError,
    InvalidUpdateFieldsError,
    NotFoundError,
    PersistenceError,
)

logger = structlog.get_logger()

SORTABLE_FIELDS = {
    "created_at": Task.created_at,
    "updated_at": Task.updated_at,
    "description": Task.description,
    "completed": Task.completed,
}

UPDATABLE_FIELDS = {"description", "completed"}


def parse_task_id(raw: str) -> uuid.UUID:
    """A malformed id can't name an owned task, so it is simply not found."""
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise NotFoundError("Task not found")


def parse_sort(sort_by: Optional[str]) -> list:
    """Turn "field:asc|desc" into ORDER BY clauses (default: oldest first)."""
    if not sort_by:
        return [Task.created_at.asc(), Task.id.asc()]

    field, _, direction = sort_by.partition(":")
    column = SORTABLE_FIELDS.get(field)
    direction = (direction or "asc").lower()
    if column is None or direction not in ("asc", "desc"):
        raise InvalidInputError(
            f"Invalid sort_by {sort_by!r}; use <field>:<asc|desc> with field in "
            f"{', '.join(sorted(SORTABLE_FIELDS))}"
        )
    order = column.desc() if direction == "desc" else column.asc()
    return [order, Task.id.asc()]


class TaskService:
    """Business logic for one user's tasks."""

    def __init__(self, db: AsyncSession, owner_id: uuid.UUID):
        self.db = db
        self.owner_id = owner_id

    def _owned(self, task_id: uuid.UUID) -> Select:
        return select(Task).where(Task.id == task_id, Task.owner_id == self.owner_id)

    async def _get_owned(self, task_id: Union[str, uuid.UUID]) -> Task:
        tid = task_id if isinstance(task_id, uuid.UUID) else parse_task_id(task_id)
        result = await self.db.execute(self._owned(tid))
        task = result.scalars().first()
        if not task:
            raise NotFoundError("Task not found")
        return task

    # ─── Create ──────────────────────────────────────────

    async def create_task(self, description: str, completed: bool = False) -> Task:
        task = Task(description=description, completed=completed, owner_id=self.owner_id)
        self.db.add(task)
        await self._commit("create")
        logger.info("taskhub.task_created", task_id=str(task.id), owner_id=str(self.owner_id))
        return task

    # ─── Read ────────────────────────────────────────────

    async def get_task(self, task_id: Union[str, uuid.UUID]) -> Task:
        return await self._get_owned(task_id)

    async def list_tasks(
        self,
        completed: Optional[bool] = None,
        sort_by: Optional[str] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> list[Task]:
        """List the owner's tasks with optional filter, sort and paging.

        Learn: Query filters are applied conditionally — only when the
        caller provides them.
        """
        query = select(Task).where(Task.owner_id == self.owner_id)
        if completed is not None:
            query = query.where(Task.completed.is_(completed))
        query = query.order_by(*parse_sort(sort_by)).limit(limit).offset(skip)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_tasks(self) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Task).where(Task.owner_id == self.owner_id)
        )
        return result.scalar_one()

    # ─── Update ──────────────────────────────────────────

    async def update_task(self, task_id: Union[str, uuid.UUID], changes: dict[str, Any]) -> Task:
        """Apply allow-listed changes. Anything else is rejected, nothing applied."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidUpdateFieldsError(f"Invalid updates: {', '.join(sorted(unknown))}")

        task = await self._get_owned(task_id)
        for field, value in changes.items():
            setattr(task, field, value)
        await self._commit("update")
        logger.info("taskhub.task_updated", task_id=str(task.id), fields=sorted(changes))
        return task

    # ─── Delete ──────────────────────────────────────────

    async def delete_task(self, task_id: Union[str, uuid.UUID]) -> Task:
        task = await self._get_owned(task_id)
        await self.db.delete(task)
        await self._commit("delete")
        logger.info("taskhub.task_deleted", task_id=str(task.id), owner_id=str(self.owner_id))
        return task

    async def _commit(self, op: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("taskhub.task_store_failed", op=op, error=str(e))
            raise PersistenceError() from e
