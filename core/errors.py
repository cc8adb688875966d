# core/errors.py
from __future__ import annotations
from typing import Any, Optional, Sequence, Tuple

from core.results import Issue, render_issues


class AccessorError(Exception):
    """Base class for every failure an accessor reports to its caller."""


class ArgumentValidationFailed(AccessorError):
    """
    Arguments did not match the declared shape. Raised before any transport
    call is issued. `index` is set for bulk operations.
    """

    def __init__(self, issues: Sequence[Issue], index: Optional[int] = None) -> None:
        self.issues: Tuple[Issue, ...] = tuple(issues)
        self.index = index
        where = f" at index {index}" if index is not None else ""
        super().__init__(f"Validation failed{where}: {render_issues(self.issues)}")


class ResponseValidationFailed(AccessorError):
    """The transport succeeded but returned data that does not match the return shape."""

    def __init__(self, issues: Sequence[Issue]) -> None:
        self.issues: Tuple[Issue, ...] = tuple(issues)
        super().__init__(f"Response validation failed: {render_issues(self.issues)}")


class NotFound(AccessorError):
    def __init__(self, resource: str, key: Any) -> None:
        self.resource = resource
        self.key = key
        super().__init__(f"{resource} not found: {key!r}")


class TransportError(AccessorError):
    """Opaque backend failure. Never retried by the accessor."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)
