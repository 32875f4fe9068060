"""Pydantic v2 models for the resource intermediate representation (IR).

A :class:`ResourceSpec` is the target-independent description of one CRUD
resource: its fields, their logical types and constraints, and its relations
to other resources in the same generation batch.  Instances are immutable;
they are built once by :mod:`crudforge.resource.loader` and shared read-only
by every emission worker.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from crudforge.utils import pluralize, to_camel, to_kebab, to_snake


IDENTITY_FIELD = "id"
CREATION_TIME_FIELDS = ("created_at", "createdAt", "created")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class LogicalType(str, Enum):
    """Target-independent field types."""
    STRING = "String"
    INTEGER = "Integer"
    FLOAT = "Float"
    BOOLEAN = "Boolean"
    DATETIME = "DateTime"
    ENUM = "Enum"
    REFERENCE = "Reference"


class ConstraintKind(str, Enum):
    """Field constraints a target must be able to express."""
    MIN_LENGTH = "MinLength"
    MAX_LENGTH = "MaxLength"
    MIN = "Min"
    MAX = "Max"
    PATTERN = "Pattern"
    UNIQUE = "Unique"


class RelationKind(str, Enum):
    """Cardinality of a relation between two resources."""
    ONE_TO_ONE = "OneToOne"
    ONE_TO_MANY = "OneToMany"
    MANY_TO_ONE = "ManyToOne"
    MANY_TO_MANY = "ManyToMany"

    @property
    def is_to_many(self) -> bool:
        return self in (RelationKind.ONE_TO_MANY, RelationKind.MANY_TO_MANY)


class ForeignKeyOwner(str, Enum):
    """Which side of a relation stores the reference."""
    SELF = "self"
    OTHER = "other"


# Constraint kinds each logical type accepts.
ALLOWED_CONSTRAINTS: dict[LogicalType, frozenset[ConstraintKind]] = {
    LogicalType.STRING: frozenset({
        ConstraintKind.MIN_LENGTH,
        ConstraintKind.MAX_LENGTH,
        ConstraintKind.PATTERN,
        ConstraintKind.UNIQUE,
    }),
    LogicalType.INTEGER: frozenset({ConstraintKind.MIN, ConstraintKind.MAX, ConstraintKind.UNIQUE}),
    LogicalType.FLOAT: frozenset({ConstraintKind.MIN, ConstraintKind.MAX}),
    LogicalType.BOOLEAN: frozenset(),
    LogicalType.DATETIME: frozenset({ConstraintKind.UNIQUE}),
    LogicalType.ENUM: frozenset(),
    LogicalType.REFERENCE: frozenset({ConstraintKind.UNIQUE}),
}


# ---------------------------------------------------------------------------
# Field & relation models
# ---------------------------------------------------------------------------

class Constraint(BaseModel):
    """A single constraint with its (optional) argument."""

    model_config = ConfigDict(frozen=True)

    kind: ConstraintKind
    value: Optional[Union[bool, int, float, str]] = Field(
        default=None, description="Bound, pattern or flag; None for Unique"
    )


class FieldSpec(BaseModel):
    """One declared field of a resource."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Field name as declared")
    logical_type: LogicalType
    required: bool = Field(default=False)
    constraints: tuple[Constraint, ...] = Field(default=())
    enum_values: tuple[str, ...] = Field(
        default=(), description="Allowed literals, in declared order (Enum only)"
    )
    reference: Optional[str] = Field(
        default=None, description="Target resource name (Reference only)"
    )
    description: str = Field(default="")

    def constraint(self, kind: ConstraintKind) -> Constraint | None:
        """Return the constraint of *kind*, if declared."""
        for constraint in self.constraints:
            if constraint.kind == kind:
                return constraint
        return None

    @property
    def is_unique(self) -> bool:
        return self.constraint(ConstraintKind.UNIQUE) is not None


class RelationSpec(BaseModel):
    """A relation from the owning resource to another resource."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Relation attribute name on the owning resource")
    kind: RelationKind
    target: str = Field(..., description="Name of the related ResourceSpec")
    foreign_key_owner: ForeignKeyOwner = Field(default=ForeignKeyOwner.SELF)
    required: bool = Field(default=False)
    through: Optional[str] = Field(
        default=None, description="Explicit join construct name (ManyToMany only)"
    )
    from_field: bool = Field(
        default=False, description="True when declared as a Reference field"
    )


# ---------------------------------------------------------------------------
# Resource model
# ---------------------------------------------------------------------------

class ResourceSpec(BaseModel):
    """Immutable description of one generated resource."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="PascalCase singular resource name")
    fields: tuple[FieldSpec, ...] = Field(default=())
    relations: tuple[RelationSpec, ...] = Field(default=())
    description: str = Field(default="")

    # -- Naming ----------------------------------------------------------

    @property
    def snake_name(self) -> str:
        return to_snake(self.name)

    @property
    def camel_name(self) -> str:
        return to_camel(self.name)

    @property
    def plural(self) -> str:
        """Snake-case plural, e.g. ``blog_posts``."""
        return to_snake(pluralize(self.name))

    @property
    def path_segment(self) -> str:
        """Kebab-case plural used in URLs, e.g. ``blog-posts``."""
        return to_kebab(pluralize(self.name))

    # -- Lookups ---------------------------------------------------------

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    @property
    def creation_time_field(self) -> FieldSpec | None:
        """The declared creation timestamp, used as the default sort key."""
        for name in CREATION_TIME_FIELDS:
            spec = self.field(name)
            if spec is not None and spec.logical_type == LogicalType.DATETIME:
                return spec
        return None

    @property
    def default_sort_key(self) -> str:
        created = self.creation_time_field
        return created.name if created is not None else IDENTITY_FIELD
