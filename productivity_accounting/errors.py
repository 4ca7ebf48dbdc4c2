"""Error kinds surfaced by the engine and its handlers."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for expected, caller-recoverable failures."""

    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(EngineError):
    """Missing or malformed input; carries one message per offending field."""

    status = 400

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.errors:
            payload["errors"] = self.errors
        return payload


class RangeError(ValidationError):
    """A time range whose end is not after its start."""


class ConflictError(EngineError):
    status = 409


class OverlapError(ConflictError):
    """A time log that intersects another log of the same owner and day."""

    # Existing clients expect 400 for overlaps.
    status = 400

    def __init__(
        self,
        message: str = "Time log overlaps with existing entry",
        conflicting_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.conflicting_id = conflicting_id


class NotFoundError(EngineError):
    status = 404
