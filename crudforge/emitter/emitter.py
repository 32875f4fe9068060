"""Artifact emitter.

Renders the Model, JoinModel, Validation, Controller and Routes artifacts of
one resource for one target profile.  The emitter itself knows nothing about
any particular target: everything target-specific comes from the profile's
type tables and templates, and the endpoint set handed to the templates is
derived once from the resource.

``Emitter.emit`` is pure (no I/O besides template loading) and safe to call
from several worker threads at once.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from types import SimpleNamespace
from typing import Any

from crudforge.config import GeneratorConfig
from crudforge.profiles.models import ArtifactKind, TargetProfile
from crudforge.resource.models import IDENTITY_FIELD, ResourceSpec
from crudforge.utils import convert_case

from .endpoints import derive_endpoints, localize_endpoints
from .models import (
    EndpointDescriptor,
    GeneratedArtifact,
    NativeFieldDescriptor,
    RelationStorage,
    ResolvedRelation,
)
from .relations import resolve_relations
from .templates import TemplateRenderer
from .type_mapper import TypeMapper

logger = logging.getLogger(__name__)

# Kinds rendered once per resource, in emission order.  Join models are
# inserted after the Model artifact.
_SINGLE_KINDS = (
    ArtifactKind.VALIDATION,
    ArtifactKind.CONTROLLER,
    ArtifactKind.ROUTES,
)


class Emitter:
    """Produces :class:`GeneratedArtifact` tuples for (resource, target) pairs.

    Args:
        renderer: Template renderer whose search path covers every profile's
            templates.
        mapper: Type mapper; defaults to one sharing *renderer*.
        config: Generator configuration (paging contract, API prefix).
    """

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        mapper: TypeMapper | None = None,
        config: GeneratorConfig | None = None,
    ) -> None:
        self.renderer = renderer or TemplateRenderer()
        self.mapper = mapper or TypeMapper(self.renderer)
        self.config = config or GeneratorConfig()

    # -- Public API --------------------------------------------------------

    def endpoints_for(self, resource: ResourceSpec) -> tuple[EndpointDescriptor, ...]:
        """Canonical endpoint set of *resource* under this emitter's config."""
        return derive_endpoints(resource, self.config.paging, self.config.api_prefix)

    def emit(
        self,
        resource: ResourceSpec,
        profile: TargetProfile,
        catalog: Sequence[ResourceSpec] | None = None,
        mapped: tuple[NativeFieldDescriptor, ...] | None = None,
        endpoints: tuple[EndpointDescriptor, ...] | None = None,
    ) -> tuple[GeneratedArtifact, ...]:
        """Render every artifact of *resource* for *profile*.

        Args:
            resource: The resource to emit.
            profile: Target profile.
            catalog: All resources of the session, in declaration order; used
                to resolve relations.  Defaults to ``[resource]``.
            mapped: Pre-mapped fields (the session maps once at Mapped);
                mapped here when omitted.
            endpoints: Canonical endpoints; derived here when omitted.

        Raises:
            UnsupportedTypeError, UnsupportedConstraintError: Mapping failed.
                Nothing is returned for the pair in that case.
        """
        catalog = list(catalog) if catalog is not None else [resource]
        if mapped is None:
            mapped = self.mapper.map_resource(resource, profile)
        if endpoints is None:
            endpoints = self.endpoints_for(resource)
        relations = resolve_relations(resource, profile, catalog, self.mapper)
        local_endpoints = localize_endpoints(endpoints, profile.naming)

        context = self._build_context(resource, profile, mapped, relations, local_endpoints)

        artifacts = [self._render(ArtifactKind.MODEL, resource, profile, resource.name, context)]
        for relation in relations:
            if relation.storage == RelationStorage.JOIN:
                artifacts.append(self._render(
                    ArtifactKind.JOIN_MODEL,
                    resource,
                    profile,
                    relation.join_name or "",
                    {**context, "join": relation},
                ))
        for kind in _SINGLE_KINDS:
            artifacts.append(self._render(
                kind,
                resource,
                profile,
                resource.name,
                context,
                declared=local_endpoints if kind == ArtifactKind.ROUTES else (),
            ))

        logger.debug(
            "Emitted %d artifact(s) for %s on %s", len(artifacts), resource.name, profile.id
        )
        return tuple(artifacts)

    # -- Internal helpers --------------------------------------------------

    def _build_context(
        self,
        resource: ResourceSpec,
        profile: TargetProfile,
        mapped: tuple[NativeFieldDescriptor, ...],
        relations: tuple[ResolvedRelation, ...],
        endpoints: tuple[EndpointDescriptor, ...],
    ) -> dict[str, Any]:
        case = profile.naming.field_case
        references = [
            r for r in relations
            if r.storage == RelationStorage.REFERENCE and r.column is not None and not r.from_field
        ]
        fields = [*mapped, *(r.column for r in references)]
        reference_lists = [r for r in relations if r.storage == RelationStorage.REFERENCE_LIST]

        imports: list[str] = []
        for descriptor in [*fields, *(r.column for r in reference_lists)]:
            for line in descriptor.imports:
                if line not in imports:
                    imports.append(line)

        # Templates read endpoints.<action>; dict keys "get"/"update" would resolve to dict methods.
        by_action = SimpleNamespace(**{ep.action.value: ep for ep in endpoints})
        paging = by_action.list.paging
        sort_key = paging.default_sort if paging else IDENTITY_FIELD

        return {
            "resource": resource,
            "profile": profile,
            "name": resource.name,
            "snake": resource.snake_name,
            "camel": resource.camel_name,
            "plural": resource.plural,
            "path_segment": resource.path_segment,
            "fields": fields,
            "unique_fields": [f for f in fields if f.unique],
            "required_fields": [f for f in fields if f.required],
            "relations": list(relations),
            "references": [r for r in relations if r.storage == RelationStorage.REFERENCE],
            "reference_lists": reference_lists,
            "joins": [r for r in relations if r.storage == RelationStorage.JOIN],
            "imports": sorted(imports),
            "endpoints": by_action,
            "endpoint_list": list(endpoints),
            "paging": paging,
            "sort_key": sort_key if sort_key == IDENTITY_FIELD else convert_case(sort_key, case),
            "id_param": IDENTITY_FIELD,
        }

    def _render(
        self,
        kind: ArtifactKind,
        resource: ResourceSpec,
        profile: TargetProfile,
        name: str,
        context: dict[str, Any],
        declared: tuple[EndpointDescriptor, ...] = (),
    ) -> GeneratedArtifact:
        source = self.renderer.render(profile.template_set[kind], context)
        return GeneratedArtifact(
            kind=kind,
            target_id=profile.id,
            resource_name=resource.name,
            name=name,
            source_text=source,
            declared_endpoints=declared,
        )
