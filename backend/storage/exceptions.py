# storage/exceptions.py
# ============================================================================
# TASK INTAKE ASSISTANT — STORAGE EXCEPTIONS
# ============================================================================


class StorageError(Exception):
    """Base class for task store errors."""


class TaskNotFoundError(StorageError):
    """No task request with the given id."""

    def __init__(self, task_id: str):
        super().__init__(f"Task request not found: {task_id}")
        self.task_id = task_id


class StorageUnavailableError(StorageError):
    """The backing database could not be reached mid-request."""


__all__ = [
    "StorageError",
    "TaskNotFoundError",
    "StorageUnavailableError",
]
