"""Raw resource description parser.

Turns plain mappings (deserialised from JSON, YAML or built in code) into
immutable :class:`ResourceSpec` instances.  Parsing is all-or-nothing per
resource: any problem raises :class:`SchemaError` carrying the path of the
offending element, and no partially built spec is ever returned.

Batches are parsed in two passes: the first collects every resource name, the
second builds each resource and checks that every relation (and every
``Reference`` field) points at a name collected in the first pass.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from crudforge.errors import SchemaError
from crudforge.utils import load_document, pluralize, to_camel, to_pascal, to_snake

from .models import (
    ALLOWED_CONSTRAINTS,
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

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RESOURCE_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_\- ]*$")

_TYPE_ALIASES: dict[str, LogicalType] = {
    "string": LogicalType.STRING,
    "str": LogicalType.STRING,
    "text": LogicalType.STRING,
    "integer": LogicalType.INTEGER,
    "int": LogicalType.INTEGER,
    "float": LogicalType.FLOAT,
    "number": LogicalType.FLOAT,
    "decimal": LogicalType.FLOAT,
    "boolean": LogicalType.BOOLEAN,
    "bool": LogicalType.BOOLEAN,
    "datetime": LogicalType.DATETIME,
    "date": LogicalType.DATETIME,
    "timestamp": LogicalType.DATETIME,
    "enum": LogicalType.ENUM,
    "reference": LogicalType.REFERENCE,
    "ref": LogicalType.REFERENCE,
}

_CONSTRAINT_ALIASES: dict[str, ConstraintKind] = {
    "minlength": ConstraintKind.MIN_LENGTH,
    "maxlength": ConstraintKind.MAX_LENGTH,
    "min": ConstraintKind.MIN,
    "max": ConstraintKind.MAX,
    "pattern": ConstraintKind.PATTERN,
    "regex": ConstraintKind.PATTERN,
    "unique": ConstraintKind.UNIQUE,
}

_RELATION_ALIASES: dict[str, RelationKind] = {
    "onetoone": RelationKind.ONE_TO_ONE,
    "onetomany": RelationKind.ONE_TO_MANY,
    "manytoone": RelationKind.MANY_TO_ONE,
    "manytomany": RelationKind.MANY_TO_MANY,
}

_FIELD_KEYS = {
    "name", "type", "logicalType", "logical_type", "required", "constraints",
    "values", "enum", "enum_values", "reference", "ref", "target", "description",
}
_RELATION_KEYS = {
    "name", "kind", "target", "targetResource", "target_resource",
    "foreignKeyOwner", "foreign_key_owner", "required", "through", "description",
}
_RESOURCE_KEYS = {"name", "fields", "relations", "description"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _normalise_key(value: str) -> str:
    return re.sub(r"[\s_\-]", "", value).lower()


def _first(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return default


def _raw_name(raw: Any) -> str | None:
    if isinstance(raw, Mapping) and isinstance(raw.get("name"), str):
        return to_pascal(raw["name"]) or None
    return None


def _check_keys(raw: Mapping[str, Any], allowed: set[str], resource: str, path: str) -> None:
    unknown = sorted(str(k) for k in raw if k not in allowed)
    if unknown:
        raise SchemaError(resource, path, f"unknown key(s): {', '.join(unknown)}")


def _parse_logical_type(value: Any, resource: str, path: str) -> LogicalType:
    if isinstance(value, LogicalType):
        return value
    if not isinstance(value, str) or not value.strip():
        raise SchemaError(resource, path, "a field type is required")
    try:
        return _TYPE_ALIASES[_normalise_key(value)]
    except KeyError:
        allowed = ", ".join(t.value for t in LogicalType)
        raise SchemaError(resource, path, f"unknown type {value!r} (expected one of {allowed})") from None


def _iter_constraints(raw: Any, resource: str, path: str) -> Iterable[tuple[str, Any, str]]:
    """Yield ``(key, value, path)`` from either the mapping or the list form."""
    if raw is None:
        return
    if isinstance(raw, Mapping):
        for key, value in raw.items():
            yield str(key), value, f"{path}.{key}"
        return
    if isinstance(raw, list):
        for i, item in enumerate(raw):
            item_path = f"{path}[{i}]"
            if isinstance(item, str):
                yield item, True, item_path
            elif isinstance(item, Mapping) and "kind" in item:
                yield str(item["kind"]), item.get("value", True), item_path
            else:
                raise SchemaError(resource, item_path, "constraint must be a name or {kind, value}")
        return
    raise SchemaError(resource, path, "constraints must be a mapping or a list")


def _parse_constraint(
    key: str, value: Any, logical_type: LogicalType, resource: str, path: str
) -> Constraint | None:
    kind = _CONSTRAINT_ALIASES.get(_normalise_key(key))
    if kind is None:
        raise SchemaError(resource, path, f"unknown constraint {key!r}")
    if kind not in ALLOWED_CONSTRAINTS[logical_type]:
        raise SchemaError(
            resource, path, f"{kind.value} is not valid on a {logical_type.value} field"
        )

    if kind == ConstraintKind.UNIQUE:
        if not isinstance(value, bool):
            raise SchemaError(resource, path, "Unique takes a boolean")
        return Constraint(kind=kind) if value else None

    if kind == ConstraintKind.PATTERN:
        if not isinstance(value, str) or not value:
            raise SchemaError(resource, path, "Pattern takes a non-empty regular expression")
        try:
            re.compile(value)
        except re.error as exc:
            raise SchemaError(resource, path, f"invalid regular expression: {exc}") from exc
        return Constraint(kind=kind, value=value)

    if kind in (ConstraintKind.MIN_LENGTH, ConstraintKind.MAX_LENGTH):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise SchemaError(resource, path, f"{kind.value} takes a non-negative integer")
        return Constraint(kind=kind, value=value)

    # Min / Max
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(resource, path, f"{kind.value} takes a number")
    if logical_type == LogicalType.INTEGER and isinstance(value, float) and not value.is_integer():
        raise SchemaError(resource, path, f"{kind.value} on an Integer field must be whole")
    return Constraint(kind=kind, value=value)


def _check_bounds(
    constraints: list[Constraint], low: ConstraintKind, high: ConstraintKind, resource: str, path: str
) -> None:
    values = {c.kind: c.value for c in constraints}
    if low in values and high in values and values[low] > values[high]:  # type: ignore[operator]
        raise SchemaError(
            resource, path, f"{low.value} ({values[low]}) is greater than {high.value} ({values[high]})"
        )


# ---------------------------------------------------------------------------
# Field / relation parsing
# ---------------------------------------------------------------------------

def _parse_field(raw: Any, resource: str, path: str) -> FieldSpec:
    if not isinstance(raw, Mapping):
        raise SchemaError(resource, path, "field description must be a mapping")
    _check_keys(raw, _FIELD_KEYS, resource, path)

    name = raw.get("name")
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise SchemaError(resource, f"{path}.name", f"invalid field name {name!r}")
    if name == IDENTITY_FIELD:
        raise SchemaError(
            resource, f"{path}.name", f"{IDENTITY_FIELD!r} is the implicit identity field and is reserved"
        )

    logical_type = _parse_logical_type(
        _first(raw, "type", "logicalType", "logical_type"), resource, f"{path}.type"
    )

    required = raw.get("required", False)
    if not isinstance(required, bool):
        raise SchemaError(resource, f"{path}.required", "required must be a boolean")

    constraints: list[Constraint] = []
    seen_kinds: set[ConstraintKind] = set()
    for key, value, c_path in _iter_constraints(raw.get("constraints"), resource, f"{path}.constraints"):
        constraint = _parse_constraint(key, value, logical_type, resource, c_path)
        kind = _CONSTRAINT_ALIASES[_normalise_key(key)]
        if kind in seen_kinds:
            raise SchemaError(resource, c_path, f"{kind.value} declared more than once")
        seen_kinds.add(kind)
        if constraint is not None:
            constraints.append(constraint)
    _check_bounds(constraints, ConstraintKind.MIN_LENGTH, ConstraintKind.MAX_LENGTH, resource, f"{path}.constraints")
    _check_bounds(constraints, ConstraintKind.MIN, ConstraintKind.MAX, resource, f"{path}.constraints")

    raw_values = _first(raw, "values", "enum", "enum_values")
    enum_values: tuple[str, ...] = ()
    if logical_type == LogicalType.ENUM:
        if not isinstance(raw_values, list) or not raw_values:
            raise SchemaError(resource, f"{path}.values", "Enum fields need a non-empty list of values")
        if not all(isinstance(v, str) and v for v in raw_values):
            raise SchemaError(resource, f"{path}.values", "Enum values must be non-empty strings")
        duplicates = sorted({v for v in raw_values if raw_values.count(v) > 1})
        if duplicates:
            raise SchemaError(resource, f"{path}.values", f"duplicate Enum value(s): {', '.join(duplicates)}")
        enum_values = tuple(raw_values)
    elif raw_values is not None:
        raise SchemaError(resource, f"{path}.values", "values are only valid on Enum fields")

    reference = _first(raw, "reference", "ref", "target")
    if logical_type == LogicalType.REFERENCE:
        if not isinstance(reference, str) or not reference.strip():
            raise SchemaError(resource, f"{path}.reference", "Reference fields must name a target resource")
        reference = to_pascal(reference)
    elif reference is not None:
        raise SchemaError(resource, f"{path}.reference", "reference is only valid on Reference fields")

    return FieldSpec(
        name=name,
        logical_type=logical_type,
        required=required,
        constraints=tuple(constraints),
        enum_values=enum_values,
        reference=reference,
        description=str(raw.get("description", "")),
    )


def _parse_relation(raw: Any, resource: str, path: str) -> RelationSpec:
    if not isinstance(raw, Mapping):
        raise SchemaError(resource, path, "relation description must be a mapping")
    _check_keys(raw, _RELATION_KEYS, resource, path)

    raw_kind = raw.get("kind")
    kind = _RELATION_ALIASES.get(_normalise_key(raw_kind)) if isinstance(raw_kind, str) else None
    if kind is None:
        allowed = ", ".join(k.value for k in RelationKind)
        raise SchemaError(resource, f"{path}.kind", f"unknown relation kind {raw_kind!r} (expected one of {allowed})")

    target = _first(raw, "target", "targetResource", "target_resource")
    if not isinstance(target, str) or not target.strip():
        raise SchemaError(resource, f"{path}.target", "relations must name a target resource")
    target = to_pascal(target)

    raw_owner = _first(raw, "foreignKeyOwner", "foreign_key_owner", default="self")
    try:
        owner = ForeignKeyOwner(str(raw_owner).lower())
    except ValueError:
        raise SchemaError(resource, f"{path}.foreignKeyOwner", f"must be 'self' or 'other', got {raw_owner!r}") from None
    if kind == RelationKind.MANY_TO_ONE and owner == ForeignKeyOwner.OTHER:
        raise SchemaError(
            resource, f"{path}.foreignKeyOwner", "ManyToOne relations store the reference on the declaring side"
        )

    name = raw.get("name")
    if name is None:
        name = to_camel(pluralize(target)) if kind.is_to_many else to_camel(target)
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise SchemaError(resource, f"{path}.name", f"invalid relation name {name!r}")

    through = raw.get("through")
    if through is not None:
        if kind != RelationKind.MANY_TO_MANY:
            raise SchemaError(resource, f"{path}.through", "through is only valid on ManyToMany relations")
        if not isinstance(through, str) or not _IDENTIFIER.match(through):
            raise SchemaError(resource, f"{path}.through", f"invalid join name {through!r}")

    required = raw.get("required", False)
    if not isinstance(required, bool):
        raise SchemaError(resource, f"{path}.required", "required must be a boolean")

    return RelationSpec(
        name=name,
        kind=kind,
        target=target,
        foreign_key_owner=owner,
        required=required,
        through=through,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_resource(raw: Any, known_resources: Iterable[str] | None = None) -> ResourceSpec:
    """Parse one raw description into a :class:`ResourceSpec`.

    Args:
        raw: Mapping with ``name``, ``fields`` and optional ``relations``.
        known_resources: Names that relation targets may resolve to.  When
            omitted only the resource itself is resolvable (self-relations).

    Raises:
        SchemaError: On the first problem found.
    """
    if not isinstance(raw, Mapping):
        raise SchemaError(None, "<resource>", "resource description must be a mapping")

    raw_name = raw.get("name")
    if not isinstance(raw_name, str) or not _RESOURCE_NAME.match(raw_name.strip()):
        raise SchemaError(None, "<resource>.name", f"invalid resource name {raw_name!r}")
    name = to_pascal(raw_name)
    _check_keys(raw, _RESOURCE_KEYS, name, name)

    raw_fields = raw.get("fields", [])
    if not isinstance(raw_fields, list):
        raise SchemaError(name, f"{name}.fields", "fields must be a list")

    fields: list[FieldSpec] = []
    seen: dict[str, str] = {}
    for i, raw_field in enumerate(raw_fields):
        path = f"{name}.fields[{i}]"
        spec = _parse_field(raw_field, name, path)
        # camelCase and snake_case spellings collide once a target applies its case.
        key = to_snake(spec.name)
        if key in seen:
            raise SchemaError(name, f"{path}.name", f"duplicate field name {spec.name!r} (clashes with {seen[key]!r})")
        seen[key] = spec.name
        fields.append(spec)

    if not fields:
        raise SchemaError(name, f"{name}.fields", "a resource needs at least one field besides the identity field")

    raw_relations = raw.get("relations", [])
    if not isinstance(raw_relations, list):
        raise SchemaError(name, f"{name}.relations", "relations must be a list")

    relations: list[RelationSpec] = []
    for spec in fields:
        if spec.logical_type == LogicalType.REFERENCE:
            relations.append(RelationSpec(
                name=spec.name,
                kind=RelationKind.MANY_TO_ONE,
                target=spec.reference,
                foreign_key_owner=ForeignKeyOwner.SELF,
                required=spec.required,
                from_field=True,
            ))
    for i, raw_relation in enumerate(raw_relations):
        path = f"{name}.relations[{i}]"
        relation = _parse_relation(raw_relation, name, path)
        key = to_snake(relation.name)
        if key in seen:
            raise SchemaError(name, f"{path}.name", f"relation name {relation.name!r} clashes with {seen[key]!r}")
        seen[key] = relation.name
        relations.append(relation)

    known = {name} | {to_pascal(n) for n in (known_resources or ())}
    for i, spec in enumerate(fields):
        if spec.logical_type == LogicalType.REFERENCE and spec.reference not in known:
            raise SchemaError(
                name, f"{name}.fields[{i}].reference", f"dangling reference to unknown resource {spec.reference!r}"
            )
    declared = [r for r in relations if not r.from_field]
    for i, relation in enumerate(declared):
        if relation.target not in known:
            raise SchemaError(
                name, f"{name}.relations[{i}].target", f"dangling reference to unknown resource {relation.target!r}"
            )

    return ResourceSpec(
        name=name,
        fields=tuple(fields),
        relations=tuple(relations),
        description=str(raw.get("description", "")),
    )


def parse_resources(
    raws: Iterable[Any], *, strict: bool = True
) -> tuple[list[ResourceSpec], list[SchemaError]]:
    """Parse a batch of raw descriptions with cross-resource reference checks.

    Args:
        raws: Raw resource descriptions, in session order.
        strict: When ``True`` the first :class:`SchemaError` is raised.  When
            ``False`` failing resources are dropped, together with every
            resource that (transitively) relates to a dropped one, and the
            errors are returned alongside the surviving resources.

    Returns:
        ``(resources, errors)``; ``errors`` is always empty in strict mode.
    """
    raw_list = list(raws)

    # Pass 1: collect names.
    names: list[str] = []
    errors: list[SchemaError] = []
    for i, raw in enumerate(raw_list):
        name = _raw_name(raw)
        if name is None:
            continue
        if name in names:
            error = SchemaError(name, f"resources[{i}].name", f"duplicate resource name {name!r}")
            if strict:
                raise error
            errors.append(error)
            continue
        names.append(name)

    # Pass 2: build and resolve.
    parsed: dict[str, ResourceSpec] = {}
    failed: set[str] = set()
    for raw in raw_list:
        try:
            spec = parse_resource(raw, names)
        except SchemaError as exc:
            if strict:
                raise
            errors.append(exc)
            if exc.resource:
                failed.add(exc.resource)
            continue
        if spec.name not in parsed:
            parsed[spec.name] = spec

    if failed:
        # Drop resources that depend on a failed one, until nothing changes.
        changed = True
        while changed:
            changed = False
            for spec in list(parsed.values()):
                broken = [r.target for r in spec.relations if r.target in failed]
                if broken:
                    errors.append(SchemaError(
                        spec.name, f"{spec.name}.relations",
                        f"depends on rejected resource {broken[0]!r}",
                    ))
                    failed.add(spec.name)
                    del parsed[spec.name]
                    changed = True

    for error in errors:
        logger.warning("Rejected resource: %s", error.message)

    resources = [parsed[n] for n in names if n in parsed]
    return resources, errors


def load_descriptions(path: str | Path) -> list[dict[str, Any]]:
    """Read raw resource descriptions from a JSON or YAML file.

    The document is either a list of descriptions or a mapping with a
    ``resources`` list.
    """
    data = load_document(path)
    if isinstance(data, Mapping) and "resources" in data:
        data = data["resources"]
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of resources or a mapping with 'resources'")
    return data
