# storage/task_store.py
# ============================================================================
# TASK INTAKE ASSISTANT — TASK STORE
# ============================================================================
# Purpose: Persist submitted task requests
#
# IMPLEMENTATIONS:
# - PostgresTaskStore: asyncpg pool from database.py
# - InMemoryTaskStore: process-local append-only list, lost on restart
# - FallbackTaskStore: Postgres first, in-memory list for any call the
#   database cannot serve mid-run
#
# SELECTION:
# - init_task_store() picks Postgres (wrapped in FallbackTaskStore) when
#   DATABASE_URL is set and reachable, otherwise logs a warning and uses memory
# ============================================================================

import asyncio
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from typing import Dict, Any, Optional, List, Tuple

import asyncpg
import structlog

import database
from schemas.task_definitions import (
    TaskRequest,
    TaskStatus,
    normalize_category,
)
from storage.exceptions import TaskNotFoundError, StorageUnavailableError

logger = structlog.get_logger().bind(component="task_store")


def _category_filter(task_type: Optional[str]) -> List[str]:
    """Category codes matched by a taskType filter value (code or label)."""
    category = normalize_category(task_type)
    return [category.value] if category else []


# =============================================================================
# INTERFACE
# =============================================================================

class TaskStore(ABC):
    """Task request storage interface"""

    name: str = "abstract"

    @abstractmethod
    async def create(self, task: TaskRequest) -> TaskRequest:
        pass

    @abstractmethod
    async def get(self, task_id: str) -> Optional[TaskRequest]:
        pass

    @abstractmethod
    async def list(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[TaskStatus] = None,
        task_type: Optional[str] = None,
    ) -> Tuple[List[TaskRequest], int]:
        """One page, newest first, and the total matching the filters."""
        pass

    @abstractmethod
    async def update_status(self, task_id: str, status: TaskStatus) -> TaskRequest:
        """Raises TaskNotFoundError for an unknown id."""
        pass

    async def close(self) -> None:
        pass


# =============================================================================
# IN-MEMORY IMPLEMENTATION
# =============================================================================

class InMemoryTaskStore(TaskStore):
    """Append-only list; status updates replace the record in place"""

    name = "memory"

    def __init__(self):
        self._tasks: List[TaskRequest] = []
        self._positions: Dict[str, int] = {}  # task_id -> index in _tasks
        self._lock = asyncio.Lock()

    async def create(self, task: TaskRequest) -> TaskRequest:
        async with self._lock:
            self._positions[task.id] = len(self._tasks)
            self._tasks.append(task)
            return task

    async def get(self, task_id: str) -> Optional[TaskRequest]:
        async with self._lock:
            position = self._positions.get(task_id)
            return self._tasks[position] if position is not None else None

    async def list(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[TaskStatus] = None,
        task_type: Optional[str] = None,
    ) -> Tuple[List[TaskRequest], int]:
        categories = _category_filter(task_type)

        async with self._lock:
            matches = [
                task for task in reversed(self._tasks)
                if (status is None or task.status == status)
                and (
                    not task_type
                    or task.task_type.value == task_type
                    or task.task_category.value in categories
                )
            ]

        start = (page - 1) * limit
        return matches[start:start + limit], len(matches)

    async def update_status(self, task_id: str, status: TaskStatus) -> TaskRequest:
        async with self._lock:
            position = self._positions.get(task_id)
            if position is None:
                raise TaskNotFoundError(task_id)
            updated = self._tasks[position].with_status(status)
            self._tasks[position] = updated
            return updated

    def __len__(self) -> int:
        return len(self._tasks)


# =============================================================================
# POSTGRES IMPLEMENTATION
# =============================================================================

def _to_row(task: TaskRequest) -> Dict[str, Any]:
    row = task.model_dump()
    return {key: value.value if isinstance(value, Enum) else value for key, value in row.items()}


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


# Raised by asyncpg (or the socket underneath) when the database cannot serve a call
DATABASE_ERRORS = (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError)


@asynccontextmanager
async def _database_call(operation: str):
    """Translate driver and connection errors into StorageUnavailableError."""
    try:
        yield
    except DATABASE_ERRORS as e:
        logger.error("database_call_failed", operation=operation, error=str(e), error_type=type(e).__name__)
        raise StorageUnavailableError(str(e)) from e


class PostgresTaskStore(TaskStore):
    """Task requests in the task_requests table"""

    name = "postgres"

    async def create(self, task: TaskRequest) -> TaskRequest:
        async with _database_call("create"):
            await database.insert_task(_to_row(task))
        return task

    async def get(self, task_id: str) -> Optional[TaskRequest]:
        if not _is_uuid(task_id):
            return None
        async with _database_call("get"):
            row = await database.fetch_task(task_id)
        return TaskRequest.model_validate(row) if row else None

    async def list(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[TaskStatus] = None,
        task_type: Optional[str] = None,
    ) -> Tuple[List[TaskRequest], int]:
        async with _database_call("list"):
            rows, total = await database.fetch_tasks(
                offset=(page - 1) * limit,
                limit=limit,
                status=status.value if status else None,
                task_type=task_type,
                categories=_category_filter(task_type),
            )
        return [TaskRequest.model_validate(row) for row in rows], total

    async def update_status(self, task_id: str, status: TaskStatus) -> TaskRequest:
        row = None
        if _is_uuid(task_id):
            async with _database_call("update_status"):
                row = await database.update_task_status(task_id, status.value)
        if row is None:
            raise TaskNotFoundError(task_id)
        return TaskRequest.model_validate(row)

    async def close(self) -> None:
        await database.close_database()


# =============================================================================
# FALLBACK COMPOSITE
# =============================================================================

class FallbackTaskStore(TaskStore):
    """
    Primary store with an in-memory list behind it.

    Any call the primary cannot serve (StorageUnavailableError) is logged
    and answered by the fallback, so a database outage mid-run never fails
    the request. Records written during an outage stay readable by id once
    the primary is back; listings come from the primary while it is up.
    """

    def __init__(self, primary: TaskStore, fallback: Optional[InMemoryTaskStore] = None):
        self.primary = primary
        self.fallback = fallback or InMemoryTaskStore()

    @property
    def name(self) -> str:
        return self.primary.name

    def _degraded(self, operation: str, error: Exception) -> None:
        logger.warning(
            "database_unavailable",
            operation=operation,
            error=str(error),
            fallback="in_memory",
        )

    async def create(self, task: TaskRequest) -> TaskRequest:
        try:
            return await self.primary.create(task)
        except StorageUnavailableError as e:
            self._degraded("create", e)
            return await self.fallback.create(task)

    async def get(self, task_id: str) -> Optional[TaskRequest]:
        try:
            task = await self.primary.get(task_id)
        except StorageUnavailableError as e:
            self._degraded("get", e)
            task = None
        if task is None:
            task = await self.fallback.get(task_id)
        return task

    async def list(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[TaskStatus] = None,
        task_type: Optional[str] = None,
    ) -> Tuple[List[TaskRequest], int]:
        try:
            return await self.primary.list(page=page, limit=limit, status=status, task_type=task_type)
        except StorageUnavailableError as e:
            self._degraded("list", e)
            return await self.fallback.list(page=page, limit=limit, status=status, task_type=task_type)

    async def update_status(self, task_id: str, status: TaskStatus) -> TaskRequest:
        try:
            return await self.primary.update_status(task_id, status)
        except TaskNotFoundError:
            # May have been written to the fallback during an outage
            return await self.fallback.update_status(task_id, status)
        except StorageUnavailableError as e:
            self._degraded("update_status", e)
            return await self.fallback.update_status(task_id, status)

    async def close(self) -> None:
        await self.primary.close()


# =============================================================================
# SELECTION & SINGLETON
# =============================================================================

_store: Optional[TaskStore] = None


async def init_task_store(dsn: Optional[str] = None) -> TaskStore:
    """Connect to Postgres when configured, otherwise fall back to memory."""
    global _store

    dsn = dsn if dsn is not None else database.config.DATABASE_URL
    if not dsn:
        logger.warning("database_url_missing", fallback="in_memory")
        _store = InMemoryTaskStore()
        return _store

    try:
        await database.init_database(dsn)
        _store = FallbackTaskStore(PostgresTaskStore())
        logger.info("task_store_ready", backend="postgres")
    except Exception as e:
        logger.warning("database_unavailable", error=str(e), fallback="in_memory")
        _store = InMemoryTaskStore()

    return _store


def get_task_store() -> TaskStore:
    """Current store; FastAPI dependency for the task routes."""
    global _store
    if _store is None:
        _store = InMemoryTaskStore()
    return _store


async def close_task_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None


__all__ = [
    "TaskStore",
    "InMemoryTaskStore",
    "PostgresTaskStore",
    "FallbackTaskStore",
    "init_task_store",
    "get_task_store",
    "close_task_store",
]
