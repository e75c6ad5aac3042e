"""
Service Errors

Missing rows in a follow-up fetch are not errors; callers get empty results.
"""

from typing import Optional


class HealthCheckNotFound(LookupError):
    """Health check does not exist or is outside the organization."""

    def __init__(self, health_check_id: str):
        super().__init__(f"Health check {health_check_id} not found")
        self.health_check_id = health_check_id


class StorageError(RuntimeError):
    """Storage fetch failed. Safe for the caller to retry."""

    retryable = True

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        message = f"Storage operation '{operation}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.operation = operation
        self.cause = cause
