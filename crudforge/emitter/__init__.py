"""Type mapping, relation resolution and artifact emission."""

from .emitter import Emitter
from .endpoints import derive_endpoints, localize_endpoints, normalize_path
from .models import (
    CrudAction,
    EndpointDescriptor,
    EnvelopeShape,
    GeneratedArtifact,
    HTTPMethod,
    NativeFieldDescriptor,
    PagingParams,
    RelationStorage,
    ResolvedRelation,
)
from .relations import resolve_relations
from .templates import TemplateRenderer
from .type_mapper import TypeMapper

__all__ = [
    "CrudAction",
    "Emitter",
    "EndpointDescriptor",
    "EnvelopeShape",
    "GeneratedArtifact",
    "HTTPMethod",
    "NativeFieldDescriptor",
    "PagingParams",
    "RelationStorage",
    "ResolvedRelation",
    "TemplateRenderer",
    "TypeMapper",
    "derive_endpoints",
    "localize_endpoints",
    "normalize_path",
    "resolve_relations",
]
