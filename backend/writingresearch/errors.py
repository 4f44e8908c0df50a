from __future__ import annotations


class WritingError(Exception):
    """Base class for workflow errors surfaced verbatim to callers."""

    code = "writing_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WritingError):
    code = "validation_error"


class NotFoundError(WritingError):
    code = "not_found"


class PreconditionError(WritingError):
    """A stage transition guard failed; `missing` names the absent prerequisite."""

    code = "precondition_failed"

    def __init__(self, message: str, *, missing: str) -> None:
        super().__init__(message)
        self.missing = missing


class ConflictError(WritingError):
    code = "conflict"
