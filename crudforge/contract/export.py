"""Canonical contract export.

The exported document is what downstream collaborators (documentation,
client generators) consume: every resource with its endpoints in canonical
``{id}`` path form, plus the response envelope every target honours.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from crudforge.emitter.endpoints import normalize_path
from crudforge.emitter.models import CrudAction, EndpointDescriptor, EnvelopeShape

CONTRACT_VERSION = "1.0"

ENVELOPES: dict[str, dict[str, Any]] = {
    EnvelopeShape.PAGINATED_LIST.value: {
        "success": "boolean",
        "count": "integer",
        "pagination": {
            "page": "integer",
            "limit": "integer",
            "total": "integer",
            "pages": "integer",
        },
        "data": "array",
    },
    EnvelopeShape.ITEM.value: {"success": "boolean", "data": "object"},
    EnvelopeShape.DELETION.value: {"success": "boolean", "data": "object"},
    "error": {"success": "boolean", "error": "string"},
}


def _endpoint_document(endpoint: EndpointDescriptor) -> dict[str, Any]:
    return {
        "action": endpoint.action.value,
        "method": endpoint.method.value,
        "path": normalize_path(endpoint.path_template),
        "success_status": endpoint.success_status,
        "error_statuses": list(endpoint.error_statuses),
        "envelope": endpoint.envelope.value,
        "paging": endpoint.paging.model_dump(mode="json") if endpoint.paging else None,
    }


def export_contract(
    endpoints_by_resource: Mapping[str, Sequence[EndpointDescriptor]],
) -> dict[str, Any]:
    """Build the JSON-serialisable contract document.

    Resources keep the order of *endpoints_by_resource*; each resource's
    ``path`` is the path of its list endpoint.
    """
    resources: list[dict[str, Any]] = []
    for name, endpoints in endpoints_by_resource.items():
        listing = next((ep for ep in endpoints if ep.action == CrudAction.LIST), None)
        resources.append({
            "name": name,
            "path": normalize_path(listing.path_template) if listing else None,
            "endpoints": [_endpoint_document(ep) for ep in endpoints],
        })
    return {
        "version": CONTRACT_VERSION,
        "envelope": ENVELOPES,
        "resources": resources,
    }
