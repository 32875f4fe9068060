"""Relation resolution against a persistence model.

Both persistence idioms go through the same function; the
:class:`PersistenceModel` of the profile decides what each relation stores:

============  ==============================  ==================================
relation      Document                        Relational
============  ==============================  ==================================
ManyToOne     id reference on self            foreign-key column on self
OneToOne      id reference on the owner       unique foreign key on the owner
OneToMany     id array on self (owner=self),  foreign key on the other side
              else reference on the other
ManyToMany    id array on the owner side      one join construct, owner side
============  ==============================  ==================================

ManyToMany ownership: when both resources declare the relation, the one
declared first in the session owns it; a one-sided declaration is owned by
the declaring resource, and a self-relation by the resource itself.  Each
ManyToMany relation therefore yields exactly one join construct.
"""

from __future__ import annotations

from collections.abc import Sequence

from crudforge.profiles.models import PersistenceModel, TargetProfile
from crudforge.resource.models import (
    ForeignKeyOwner,
    RelationKind,
    RelationSpec,
    ResourceSpec,
)
from crudforge.utils import convert_case, pluralize, singularize, to_camel, to_pascal, to_snake

from .models import RelationStorage, ResolvedRelation
from .type_mapper import TypeMapper, reference_column


def _stores_reference(relation: RelationSpec) -> bool:
    """True for relations that keep a single id on the declaring side."""
    return relation.kind == RelationKind.MANY_TO_ONE or (
        relation.kind == RelationKind.ONE_TO_ONE
        and relation.foreign_key_owner == ForeignKeyOwner.SELF
    )


def _mirror(resource: ResourceSpec, relation: RelationSpec, catalog: dict[str, ResourceSpec]) -> RelationSpec | None:
    """The ManyToMany the target declares back to *resource*, if any."""
    other = catalog.get(relation.target)
    if other is None or other.name == resource.name:
        return None
    for candidate in other.relations:
        if (
            candidate.kind == RelationKind.MANY_TO_MANY
            and candidate.target == resource.name
            and candidate.through == relation.through
        ):
            return candidate
    return None


def _join_names(
    owner: ResourceSpec, relation: RelationSpec, profile: TargetProfile
) -> tuple[str, str, str, str]:
    """Return ``(join_name, join_table, left_column, right_column)``."""
    self_ref = relation.target == owner.name
    if relation.through:
        join_name = to_pascal(relation.through)
    elif self_ref:
        join_name = f"{owner.name}{to_pascal(relation.name)}"
    else:
        join_name = f"{owner.name}{to_pascal(pluralize(relation.target))}"

    left = f"{owner.snake_name}_id"
    if self_ref:
        right = f"{to_snake(singularize(relation.name))}_id"
        if right == left:
            right = f"related_{left}"
    else:
        right = f"{to_snake(relation.target)}_id"

    case = profile.naming.field_case
    return join_name, to_snake(join_name), convert_case(left, case), convert_case(right, case)


def _inverse_name(resource: ResourceSpec, declaring: ResourceSpec, taken: set[str]) -> str:
    base = "parent" if declaring.name == resource.name else to_camel(declaring.name)
    name, suffix = base, 1
    while to_snake(name) in taken:
        name = f"{base}Ref" if suffix == 1 else f"{base}Ref{suffix}"
        suffix += 1
    return name


def resolve_relations(
    resource: ResourceSpec,
    profile: TargetProfile,
    catalog: Sequence[ResourceSpec],
    mapper: TypeMapper,
) -> tuple[ResolvedRelation, ...]:
    """Resolve the declared relations of *resource* plus the inverse columns
    other resources' relations require on it."""
    by_name = {r.name: r for r in catalog}
    by_name.setdefault(resource.name, resource)
    order = {r.name: i for i, r in enumerate(catalog)}
    relational = profile.persistence_model == PersistenceModel.RELATIONAL

    resolved: list[ResolvedRelation] = []
    for relation in resource.relations:
        self_ref = relation.target == resource.name
        base = {
            "name": relation.name,
            "kind": relation.kind,
            "target": relation.target,
            "target_plural": to_snake(pluralize(relation.target)),
            "self_referential": self_ref,
            "from_field": relation.from_field,
        }

        if _stores_reference(relation):
            column = mapper.map_reference(
                relation.name,
                relation.target,
                profile,
                required=relation.required,
                unique=relation.kind == RelationKind.ONE_TO_ONE,
                resource=resource.name,
            )
            resolved.append(ResolvedRelation(
                storage=RelationStorage.REFERENCE, column=column, foreign_key=column.name, **base
            ))

        elif relation.kind == RelationKind.MANY_TO_MANY:
            mirror = _mirror(resource, relation, by_name)
            owns = (
                self_ref
                or mirror is None
                or order.get(resource.name, 0) <= order.get(relation.target, 0)
            )
            if relational:
                owner, owned = (resource, relation) if owns else (by_name[relation.target], mirror)
                join_name, join_table, left, right = _join_names(owner, owned, profile)
                resolved.append(ResolvedRelation(
                    storage=RelationStorage.JOIN if owns else RelationStorage.NONE,
                    join_name=join_name,
                    join_table=join_table,
                    join_left=left,
                    join_right=right,
                    **base,
                ))
            elif owns:
                column = mapper.map_reference(relation.name, relation.target, profile, resource=resource.name)
                resolved.append(ResolvedRelation(storage=RelationStorage.REFERENCE_LIST, column=column, **base))
            else:
                resolved.append(ResolvedRelation(storage=RelationStorage.NONE, **base))

        elif (
            relation.kind == RelationKind.ONE_TO_MANY
            and not relational
            and relation.foreign_key_owner == ForeignKeyOwner.SELF
        ):
            column = mapper.map_reference(relation.name, relation.target, profile, resource=resource.name)
            resolved.append(ResolvedRelation(storage=RelationStorage.REFERENCE_LIST, column=column, **base))

        else:
            # OneToMany / OneToOne(other): the target holds the foreign key.
            resolved.append(ResolvedRelation(
                storage=RelationStorage.NONE,
                foreign_key=_back_reference(resource, relation, by_name, profile, catalog, mapper),
                **base,
            ))

    resolved.extend(_inverse_relations(resource, profile, catalog, mapper))
    return tuple(resolved)


def _back_reference(
    resource: ResourceSpec,
    relation: RelationSpec,
    by_name: dict[str, ResourceSpec],
    profile: TargetProfile,
    catalog: Sequence[ResourceSpec],
    mapper: TypeMapper,
) -> str | None:
    """Foreign-key column on the target of a OneToMany / OneToOne(other)."""
    child = by_name.get(relation.target)
    if child is None:
        return None
    for candidate in child.relations:
        if candidate.target == resource.name and _stores_reference(candidate):
            return reference_column(candidate.name, profile)
    for inverse in _inverse_relations(child, profile, catalog, mapper):
        if inverse.target == resource.name and inverse.inverse_of == relation.name:
            return inverse.foreign_key
    return None


def _inverse_relations(
    resource: ResourceSpec,
    profile: TargetProfile,
    catalog: Sequence[ResourceSpec],
    mapper: TypeMapper,
) -> list[ResolvedRelation]:
    relational = profile.persistence_model == PersistenceModel.RELATIONAL
    declared_to = {r.target for r in resource.relations if _stores_reference(r)}
    taken = {to_snake(f.name) for f in resource.fields} | {to_snake(r.name) for r in resource.relations}

    inverses: list[ResolvedRelation] = []
    for declaring in catalog:
        for relation in declaring.relations:
            if relation.target != resource.name:
                continue
            needs_column = (
                relation.kind == RelationKind.ONE_TO_MANY
                and (relational or relation.foreign_key_owner == ForeignKeyOwner.OTHER)
            ) or (
                relation.kind == RelationKind.ONE_TO_ONE
                and relation.foreign_key_owner == ForeignKeyOwner.OTHER
            )
            if not needs_column or declaring.name in declared_to:
                continue
            name = _inverse_name(resource, declaring, taken)
            taken.add(to_snake(name))
            column = mapper.map_reference(
                name,
                declaring.name,
                profile,
                unique=relation.kind == RelationKind.ONE_TO_ONE,
                resource=resource.name,
            )
            inverses.append(ResolvedRelation(
                name=name,
                kind=RelationKind.MANY_TO_ONE if relation.kind == RelationKind.ONE_TO_MANY else RelationKind.ONE_TO_ONE,
                target=declaring.name,
                target_plural=to_snake(pluralize(declaring.name)),
                storage=RelationStorage.REFERENCE,
                column=column,
                foreign_key=column.name,
                self_referential=declaring.name == resource.name,
                inverse=True,
                inverse_of=relation.name,
            ))
    return inverses
