"""Exception types raised across the cost allocator."""
from typing import Optional


class CostAllocatorError(Exception):
    """Base class for errors the API translates into HTTP responses."""
    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ParameterValidationError(CostAllocatorError):
    """A required parameter is missing or malformed. Raised before any lookup."""
    status_code = 400


class SnapshotLoadError(CostAllocatorError):
    """The query layer could not produce a snapshot (database unreachable, bad schema)."""
    status_code = 500
