"""Canonical CRUD endpoint derivation.

The endpoint set of a resource is computed here, once, from the resource
alone.  Templates receive it already built; they never decide a method, a
path, a status code or an envelope themselves.
"""

from __future__ import annotations

import re

from crudforge.config import PagingConfig
from crudforge.profiles.models import NamingConventions
from crudforge.resource.models import IDENTITY_FIELD, ResourceSpec

from .models import CrudAction, EndpointDescriptor, EnvelopeShape, HTTPMethod, PagingParams

CANONICAL_ID = "{" + IDENTITY_FIELD + "}"

# (action, method, has id segment, success status, error statuses, envelope)
_CRUD_TABLE: tuple[tuple[CrudAction, HTTPMethod, bool, int, tuple[int, ...], EnvelopeShape], ...] = (
    (CrudAction.LIST, HTTPMethod.GET, False, 200, (400,), EnvelopeShape.PAGINATED_LIST),
    (CrudAction.GET, HTTPMethod.GET, True, 200, (404,), EnvelopeShape.ITEM),
    (CrudAction.CREATE, HTTPMethod.POST, False, 201, (400,), EnvelopeShape.ITEM),
    (CrudAction.UPDATE, HTTPMethod.PUT, True, 200, (404,), EnvelopeShape.ITEM),
    (CrudAction.DELETE, HTTPMethod.DELETE, True, 200, (404,), EnvelopeShape.DELETION),
)

_PARAM_SYNTAX = re.compile(r"(?::(\w+))|(?:\{(\w+)\})|(?:<(?:\w+:)?(\w+)>)")


def collection_path(resource: ResourceSpec, api_prefix: str = "") -> str:
    return f"{api_prefix}/{resource.path_segment}"


def derive_endpoints(
    resource: ResourceSpec,
    paging: PagingConfig | None = None,
    api_prefix: str = "",
) -> tuple[EndpointDescriptor, ...]:
    """Build the canonical list/get/create/update/delete endpoints.

    Paths use the canonical ``{id}`` placeholder.  The list endpoint carries
    the paging contract; its default sort key is the resource's creation
    timestamp when declared, otherwise the identity field.
    """
    paging = paging or PagingConfig()
    base = collection_path(resource, api_prefix)
    list_paging = PagingParams(
        page_param=paging.page_param,
        limit_param=paging.limit_param,
        sort_param=paging.sort_param,
        default_page=paging.default_page,
        default_limit=paging.default_limit,
        max_limit=paging.max_limit,
        default_sort=resource.default_sort_key,
    )

    endpoints: list[EndpointDescriptor] = []
    for action, method, has_id, success, errors, envelope in _CRUD_TABLE:
        endpoints.append(EndpointDescriptor(
            action=action,
            method=method,
            path_template=f"{base}/{CANONICAL_ID}" if has_id else base,
            success_status=success,
            error_statuses=errors,
            envelope=envelope,
            paging=list_paging if action == CrudAction.LIST else None,
        ))
    return tuple(endpoints)


def localize_endpoints(
    endpoints: tuple[EndpointDescriptor, ...], naming: NamingConventions
) -> tuple[EndpointDescriptor, ...]:
    """Rewrite canonical ``{id}`` placeholders into the target's syntax."""
    target_id = naming.path_param(IDENTITY_FIELD)
    return tuple(
        ep.model_copy(update={"path_template": ep.path_template.replace(CANONICAL_ID, target_id)})
        for ep in endpoints
    )


def normalize_path(path: str) -> str:
    """Strip target-specific parameter syntax down to ``{name}`` placeholders.

    ``/tasks/:id``, ``/tasks/{id}`` and ``/tasks/<int:id>`` all normalise to
    ``/tasks/{id}``; a trailing slash is dropped.
    """
    def _canonical(match: re.Match[str]) -> str:
        name = next(g for g in match.groups() if g)
        return "{" + name + "}"

    normalised = _PARAM_SYNTAX.sub(_canonical, path.strip())
    if len(normalised) > 1:
        normalised = normalised.rstrip("/")
    return normalised or "/"
