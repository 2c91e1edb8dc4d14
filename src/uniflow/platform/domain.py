"""Shared domain base classes for the Uniflow platform.

Holds the root exception every engine error derives from and the pydantic
base models used for read snapshots and request payloads.
"""

from typing import Any

from pydantic import BaseModel as PydanticBaseModel, ConfigDict


class UniflowError(Exception):
    """
    Base error with enhanced context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
    """

    default_code = "UNIFLOW_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


class AppBaseModel(PydanticBaseModel):
    """Base model for request payloads and mutable domain objects."""

    model_config = ConfigDict(from_attributes=True, validate_assignment=True)


class SnapshotModel(PydanticBaseModel):
    """Immutable read snapshot; consumers never see a partially written record."""

    model_config = ConfigDict(from_attributes=True, frozen=True)
