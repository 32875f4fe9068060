"""Resource intermediate representation (IR).

Usage::

    from crudforge.resource import parse_resources

    resources, _ = parse_resources([
        {"name": "Task", "fields": [{"name": "title", "type": "String", "required": True}]},
    ])
"""

from crudforge.resource.loader import load_descriptions, parse_resource, parse_resources
from crudforge.resource.models import (
    IDENTITY_FIELD,
    Constraint,
    ConstraintKind,
    FieldSpec,
    ForeignKeyOwner,
    LogicalType,
    RelationKind,
    RelationSpec,
    ResourceSpec,
)

__all__ = [
    "IDENTITY_FIELD",
    "Constraint",
    "ConstraintKind",
    "FieldSpec",
    "ForeignKeyOwner",
    "LogicalType",
    "RelationKind",
    "RelationSpec",
    "ResourceSpec",
    "load_descriptions",
    "parse_resource",
    "parse_resources",
]
