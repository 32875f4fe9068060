"""Exception taxonomy and diagnostics for the generation pipeline.

Every error raised by the core derives from :class:`CrudforgeError` and can be
turned into a :class:`Diagnostic`, the serialisable record the session hands
back to callers.  Errors are grouped by the stage that raises them:

* ``load``     -- :class:`SchemaError`, :class:`UnknownTargetError`
* ``map``      -- :class:`UnsupportedTypeError`, :class:`UnsupportedConstraintError`
* ``validate`` -- :class:`ContractMismatch`
* ``cancel``   -- :class:`Cancelled`
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorStage(str, Enum):
    """Pipeline stage an error belongs to."""
    LOAD = "load"
    MAP = "map"
    VALIDATE = "validate"
    CANCEL = "cancel"
    INTERNAL = "internal"


class Diagnostic(BaseModel):
    """A single reportable problem with enough identifiers to act on it."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Error class name, e.g. 'SchemaError'")
    stage: ErrorStage
    message: str
    resource: Optional[str] = None
    target: Optional[str] = None
    field: Optional[str] = None

    def __str__(self) -> str:
        where = "/".join(p for p in (self.target, self.resource, self.field) if p)
        return f"[{self.code}] {where + ': ' if where else ''}{self.message}"


class CrudforgeError(Exception):
    """Base class for every error raised by the generator core."""

    stage: ErrorStage = ErrorStage.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        resource: str | None = None,
        target: str | None = None,
        field: str | None = None,
    ) -> None:
        self.message = message
        self.resource = resource
        self.target = target
        self.field = field
        super().__init__(message)

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(
            code=type(self).__name__,
            stage=self.stage,
            message=self.message,
            resource=self.resource,
            target=self.target,
            field=self.field,
        )


# ---------------------------------------------------------------------------
# Load-time
# ---------------------------------------------------------------------------


class SchemaError(CrudforgeError):
    """A raw resource description does not form a valid ResourceSpec.

    ``path`` points at the offending element, e.g.
    ``Task.fields[0].constraints.pattern``.
    """

    stage = ErrorStage.LOAD

    def __init__(self, resource: str | None, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}", resource=resource, field=path)


class UnknownTargetError(CrudforgeError):
    """A requested target id has no registered profile."""

    stage = ErrorStage.LOAD

    def __init__(self, target_id: str, known: list[str] | None = None) -> None:
        self.known = sorted(known or [])
        hint = f" (known targets: {', '.join(self.known)})" if self.known else ""
        super().__init__(f"Unknown target {target_id!r}{hint}", target=target_id)


class RegistryError(CrudforgeError):
    """The profile registry was misused (duplicate id, write after freeze, bad data)."""

    stage = ErrorStage.LOAD


# ---------------------------------------------------------------------------
# Map-time
# ---------------------------------------------------------------------------


class UnsupportedTypeError(CrudforgeError):
    """A profile's type map has no entry for a logical type in use."""

    stage = ErrorStage.MAP

    def __init__(
        self,
        logical_type: str,
        target: str,
        *,
        resource: str | None = None,
        field: str | None = None,
    ) -> None:
        self.logical_type = logical_type
        super().__init__(
            f"Target {target!r} has no native type for logical type {logical_type!r}",
            resource=resource,
            target=target,
            field=field,
        )


class UnsupportedConstraintError(CrudforgeError):
    """A constraint cannot be expressed in a target's validation vocabulary."""

    stage = ErrorStage.MAP

    def __init__(
        self,
        constraint: str,
        target: str,
        *,
        resource: str | None = None,
        field: str | None = None,
    ) -> None:
        self.constraint = constraint
        super().__init__(
            f"Target {target!r} cannot express constraint {constraint!r}",
            resource=resource,
            target=target,
            field=field,
        )


# ---------------------------------------------------------------------------
# Validate-time
# ---------------------------------------------------------------------------


class ContractMismatch(CrudforgeError):
    """Two targets expose different contracts for the same resource endpoint."""

    stage = ErrorStage.VALIDATE

    def __init__(
        self,
        resource: str,
        endpoint: str,
        attribute: str,
        left_target: str,
        left_value: object,
        right_target: str,
        right_value: object,
    ) -> None:
        self.endpoint = endpoint
        self.attribute = attribute
        self.left_target = left_target
        self.right_target = right_target
        self.left_value = left_value
        self.right_value = right_value
        super().__init__(
            f"{endpoint}: {attribute} differs between {left_target!r} "
            f"({left_value!r}) and {right_target!r} ({right_value!r})",
            resource=resource,
            target=f"{left_target},{right_target}",
            field=attribute,
        )


# ---------------------------------------------------------------------------
# Cancellation / session misuse
# ---------------------------------------------------------------------------


class Cancelled(CrudforgeError):
    """The session observed a cancellation request between two transitions."""

    stage = ErrorStage.CANCEL


class SessionError(CrudforgeError):
    """A session was driven incorrectly (e.g. run twice)."""
