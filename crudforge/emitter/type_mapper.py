"""Type mapper: resolves IR fields against a target profile.

A field maps to the profile's native type for its logical type plus the
annotations its required-ness, Enum literals and constraints translate into.
A constraint the profile has no rule for is never dropped: it raises
:class:`UnsupportedConstraintError`, because emitting a target with weaker
validation than its siblings would break cross-target equivalence silently.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from crudforge.errors import UnsupportedConstraintError, UnsupportedTypeError
from crudforge.profiles.models import ConstraintRule, PersistenceModel, TargetProfile
from crudforge.resource.models import ConstraintKind, FieldSpec, LogicalType, ResourceSpec
from crudforge.utils import convert_case, pluralize, to_snake

from .models import NativeFieldDescriptor
from .templates import TemplateRenderer

logger = logging.getLogger(__name__)


def reference_column(name: str, profile: TargetProfile) -> str:
    """Name of the stored side of a to-one relation called *name*."""
    if profile.persistence_model == PersistenceModel.RELATIONAL:
        return convert_case(f"{to_snake(name)}_id", profile.naming.field_case)
    return convert_case(name, profile.naming.field_case)


class TypeMapper:
    """Maps :class:`FieldSpec` instances onto a :class:`TargetProfile`."""

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self.renderer = renderer or TemplateRenderer()

    # -- Public API --------------------------------------------------------

    def map(
        self, field: FieldSpec, profile: TargetProfile, *, resource: str | None = None
    ) -> NativeFieldDescriptor:
        """Resolve one field.

        Raises:
            UnsupportedTypeError: The profile has no native type for the field.
            UnsupportedConstraintError: A constraint (or the Enum literal set)
                cannot be expressed by the profile.
        """
        if field.logical_type == LogicalType.REFERENCE:
            return self.map_reference(
                field.name,
                field.reference or "",
                profile,
                required=field.required,
                unique=field.is_unique,
                resource=resource,
            )

        native = profile.type_map.get(field.logical_type)
        if native is None:
            raise UnsupportedTypeError(
                field.logical_type.value, profile.id, resource=resource, field=field.name
            )

        name = convert_case(field.name, profile.naming.field_case)
        context: dict[str, Any] = {
            "field": name,
            "values": list(field.enum_values),
            "resource": to_snake(resource or ""),
            "value": None,
        }
        model_annotations: list[str] = []
        validation_annotations: list[str] = []

        presence = profile.required_rule if field.required else profile.optional_rule
        self._apply(presence, context, model_annotations, validation_annotations)

        if field.logical_type == LogicalType.ENUM:
            if native.enum_rule is None:
                raise UnsupportedConstraintError(
                    "Enum", profile.id, resource=resource, field=field.name
                )
            if native.enum_literal is not None:
                for literal in field.enum_values:
                    if re.fullmatch(native.enum_literal, literal) is None:
                        raise UnsupportedConstraintError(
                            f"Enum literal {literal!r}", profile.id, resource=resource, field=field.name
                        )
            self._apply(native.enum_rule, context, model_annotations, validation_annotations)

        for constraint in field.constraints:
            rule = profile.constraint_rules.get(constraint.kind)
            if rule is None:
                raise UnsupportedConstraintError(
                    constraint.kind.value, profile.id, resource=resource, field=field.name
                )
            self._apply(
                rule, {**context, "value": constraint.value}, model_annotations, validation_annotations
            )

        schema_template = native.schema_type or native.name
        schema_type = self._render(schema_template, context)
        if not field.required and native.optional:
            schema_type = self._render(native.optional, {**context, "type": schema_type})

        return NativeFieldDescriptor(
            source_name=field.name,
            name=name,
            logical_type=field.logical_type,
            native_type=self._render(native.name, context),
            schema_type=schema_type,
            required=field.required,
            unique=field.is_unique,
            model_annotations=tuple(model_annotations),
            validation_annotations=tuple(validation_annotations),
            imports=native.imports,
            enum_values=field.enum_values,
        )

    def map_reference(
        self,
        name: str,
        target: str,
        profile: TargetProfile,
        *,
        required: bool = False,
        unique: bool = False,
        resource: str | None = None,
    ) -> NativeFieldDescriptor:
        """Resolve the stored side of a to-one relation.

        Document profiles store an identifier under the relation name;
        relational profiles store a foreign-key column named ``<name>_id`` in
        the profile's field case.
        """
        native = profile.type_map.get(LogicalType.REFERENCE)
        if native is None:
            raise UnsupportedTypeError(
                LogicalType.REFERENCE.value, profile.id, resource=resource, field=name
            )

        column = reference_column(name, profile)
        context: dict[str, Any] = {
            "field": column,
            "values": [],
            "value": None,
            "target": target,
            "target_table": to_snake(pluralize(target)),
        }
        model_annotations: list[str] = []
        validation_annotations: list[str] = []
        presence = profile.required_rule if required else profile.optional_rule
        self._apply(presence, context, model_annotations, validation_annotations)
        if unique:
            rule = profile.constraint_rules.get(ConstraintKind.UNIQUE)
            if rule is None:
                raise UnsupportedConstraintError(
                    ConstraintKind.UNIQUE.value, profile.id, resource=resource, field=name
                )
            self._apply(rule, context, model_annotations, validation_annotations)

        schema_type = self._render(native.schema_type or native.name, context)
        if not required and native.optional:
            schema_type = self._render(native.optional, {**context, "type": schema_type})

        return NativeFieldDescriptor(
            source_name=name,
            name=column,
            logical_type=LogicalType.REFERENCE,
            native_type=self._render(native.name, context),
            schema_type=schema_type,
            required=required,
            unique=unique,
            model_annotations=tuple(model_annotations),
            validation_annotations=tuple(validation_annotations),
            imports=native.imports,
            reference=target,
        )

    def map_resource(
        self, resource: ResourceSpec, profile: TargetProfile
    ) -> tuple[NativeFieldDescriptor, ...]:
        """Map every declared field of *resource*, in declaration order."""
        mapped = tuple(self.map(f, profile, resource=resource.name) for f in resource.fields)
        logger.debug("Mapped %d field(s) of %s onto %s", len(mapped), resource.name, profile.id)
        return mapped

    def check_coverage(self, resources: Iterable[ResourceSpec], profile: TargetProfile) -> None:
        """Fail if *profile* lacks a type-map entry for any logical type in use."""
        for resource in resources:
            for field in resource.fields:
                if field.logical_type not in profile.type_map:
                    raise UnsupportedTypeError(
                        field.logical_type.value, profile.id, resource=resource.name, field=field.name
                    )
            if resource.relations and LogicalType.REFERENCE not in profile.type_map:
                raise UnsupportedTypeError(
                    LogicalType.REFERENCE.value,
                    profile.id,
                    resource=resource.name,
                    field=resource.relations[0].name,
                )

    # -- Internal helpers --------------------------------------------------

    def _render(self, template: str, context: dict[str, Any]) -> str:
        return self.renderer.render_string(template, context).strip()

    def _apply(
        self,
        rule: ConstraintRule | None,
        context: dict[str, Any],
        model_annotations: list[str],
        validation_annotations: list[str],
    ) -> None:
        if rule is None:
            return
        if rule.model is not None:
            model_annotations.append(self._render(rule.model, context))
        if rule.validation is not None:
            validation_annotations.append(self._render(rule.validation, context))
