# utilities/errors.py
"""
Errors raised by the lifecycle engine and its helpers.

Every error carries the HTTP status the JSON views answer with, so a view only
needs a single ``except LifecycleError`` branch.
"""


class LifecycleError(Exception):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class LifecycleValidationError(LifecycleError):
    """Missing or malformed input; no store call was made."""
    status_code = 400


class AssetNotFoundError(LifecycleError):
    status_code = 404


class EmployeeNotFoundError(LifecycleError):
    status_code = 404


class CategoryNotFoundError(LifecycleError):
    status_code = 404


class InvalidTransitionError(LifecycleError):
    """The asset's current status does not allow the requested operation."""


class EmployeeUnavailableError(LifecycleError):
    """Assets can only be issued to active employees."""


class ConcurrentModificationError(LifecycleError):
    """The asset changed between read and conditional write."""


class OpenAssignmentMissingError(LifecycleError):
    """An assigned asset has no open assignment row."""


class DuplicateOpenAssignmentError(OpenAssignmentMissingError):
    """More than one open assignment exists for the same asset."""


class CategoryInUseError(LifecycleError):
    """Category still referenced by non-scrapped assets."""


class CodeGenerationError(LifecycleError):
    status_code = 500
