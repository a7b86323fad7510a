"""Exception taxonomy for record construction, profile loading and validation.

Constraint failures are never raised; they are reported as issues. These
exceptions cover the cases where validation cannot produce a meaningful
report at all.
"""

from __future__ import annotations


class ValidationError(Exception):
    """Base class for all validation-layer errors."""


class MalformedRecordError(ValidationError):
    """Raw input disagrees with the shape its resource schema declares."""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class ProfileParseError(ValidationError):
    """A profile definition could not be loaded into a constraint set."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or [message]
        super().__init__(message)


class InvalidPathError(ValidationError):
    """A path references a field that the resource schema does not define."""

    def __init__(self, path: str, segment: str, type_name: str):
        self.path = path
        self.segment = segment
        self.type_name = type_name
        super().__init__(
            f"Path '{path}' is invalid: '{segment}' is not an element of {type_name}"
        )


class ProfileSchemaMismatchError(ValidationError):
    """A constraint path does not exist for this resource type; aborts validation."""

    def __init__(self, constraint_id: str, cause: InvalidPathError):
        self.constraint_id = constraint_id
        self.cause = cause
        super().__init__(
            f"Profile does not apply to this resource: constraint '{constraint_id}' – {cause}"
        )


class ProfileNotFoundError(ValidationError):
    """No registered profile matches the requested URL/version."""

    def __init__(self, url: str, version: str | None = None):
        self.url = url
        self.version = version
        label = f"{url}|{version}" if version else url
        super().__init__(f"Unknown profile: {label}")


class RemoteValidationError(ValidationError):
    """The remote $validate call did not return a usable OperationOutcome."""
