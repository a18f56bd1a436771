"""Error taxonomy for the task engine.

Every error carries a short ``code`` that the outer surfaces (REST routes,
MCP tools) use to pick a status code or an error payload.
"""


class TaskBoardError(Exception):
    """Base class for all engine errors."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class DependencyError(TaskBoardError):
    """Raised when a dependency edge operation is rejected."""


class SelfDependencyError(DependencyError):
    code = "invalid_input"


class CycleDetectedError(DependencyError):
    code = "invalid_input"


class DuplicateDependencyError(DependencyError):
    code = "conflict"


class DependencyNotFoundError(DependencyError):
    code = "not_found"


class StateError(TaskBoardError):
    """Raised when a status transition cannot be applied."""


class TaskNotFoundError(StateError):
    code = "not_found"


class InvalidStatusError(StateError):
    code = "invalid_status"


class ParentNotFoundError(TaskBoardError):
    code = "not_found"


class InvalidRecurrenceError(TaskBoardError):
    code = "invalid_input"
