"""Error taxonomy for KitchenShare.

Every failure aborts the whole unit of work. HTTP mapping lives in main.py:
- NotFoundError -> 404
- SubscriptionError -> 400
- PermissionDeniedError -> 403
- ConstraintViolationError -> 409
- PoolExhaustionError -> 503
- RollbackError, LineageError -> 500
"""

from typing import Optional


class KitchenShareError(Exception):
    """Base class for all domain errors."""


class NotFoundError(KitchenShareError):
    def __init__(self, resource_type: str, resource_id: int):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type.capitalize()} with ID {resource_id} not found")


class SubscriptionError(KitchenShareError):
    """Subscribe rejected by a business rule (own or private collection)."""


class PermissionDeniedError(KitchenShareError):
    pass


class LineageError(KitchenShareError):
    """A fork would chain off a copy created earlier in the same operation."""


class ConstraintViolationError(KitchenShareError):
    """Foreign-key/unique failure reported by the store, after rollback."""

    def __init__(self, message: str, orig: Optional[BaseException] = None):
        self.orig = orig
        super().__init__(message)


class PoolExhaustionError(KitchenShareError):
    """No connection became available; no transaction was started."""


class RollbackError(KitchenShareError):
    """Rollback failed after an earlier failure.

    The store may be inconsistent, so this error wins over the original one,
    which is kept on `original`.
    """

    def __init__(self, message: str, original: Optional[BaseException] = None):
        self.original = original
        super().__init__(message)
