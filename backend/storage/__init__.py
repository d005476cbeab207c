# storage/__init__.py
# ============================================================================
# TASK INTAKE ASSISTANT — STORAGE MODULE
# ============================================================================
# Task request persistence (Postgres with in-memory fallback)
# ============================================================================

from storage.exceptions import (
    StorageError,
    TaskNotFoundError,
    StorageUnavailableError,
)

from storage.task_store import (
    TaskStore,
    InMemoryTaskStore,
    PostgresTaskStore,
    FallbackTaskStore,
    init_task_store,
    get_task_store,
    close_task_store,
)

__all__ = [
    # Exceptions
    "StorageError",
    "TaskNotFoundError",
    "StorageUnavailableError",
    # Stores
    "TaskStore",
    "InMemoryTaskStore",
    "PostgresTaskStore",
    "FallbackTaskStore",
    "init_task_store",
    "get_task_store",
    "close_task_store",
]
