"""
Pipeline error types.

Only two kinds of failure exist: a data invariant that does not hold
(ValidationFailure) and a file that cannot be read or written (IOFailure).
Both are fatal to the run.
"""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class ValidationFailure(PipelineError):
    """Raised when a declared invariant about a table does not hold."""

    def __init__(
        self,
        check: str,
        message: str,
        observed: Any = None,
        expected: Any = None
    ):
        self.check = check
        self.message = message
        self.observed = observed
        self.expected = expected
        super().__init__(
            f"[{check}] {message} (observed={observed!r}, expected={expected!r})"
        )


class UnseenLevelError(ValidationFailure):
    """Raised when a categorical level was not present when the model was fit."""

    def __init__(self, column: str, levels: list, known_levels: list):
        self.column = column
        self.levels = levels
        self.known_levels = known_levels
        super().__init__(
            check='unseen_level',
            message=f"Column '{column}' has levels not seen during fitting",
            observed=levels,
            expected=known_levels
        )


class IOFailure(PipelineError):
    """Raised when a required file is missing, unreadable or undeserializable."""

    def __init__(self, path, reason: Optional[str] = None):
        self.path = path
        self.reason = reason or 'unreadable'
        super().__init__(f"{path}: {self.reason}")
