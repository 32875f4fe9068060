"""Cross-target contract validation.

Every target of a session must expose the same API for a resource: the same
endpoints in the same order, with the same success status, error statuses,
response envelope and paging contract.  The validator compares the declared
endpoints of every target's Routes artifact and re-reads the emitted source
to make sure the declaration matches what was actually written: routes with
the profile's ``route_pattern`` and, where the profile has a
``status_check``, the status literals of every action handler.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from crudforge.emitter.endpoints import normalize_path
from crudforge.emitter.models import CrudAction, EndpointDescriptor, GeneratedArtifact
from crudforge.errors import ContractMismatch, Diagnostic
from crudforge.profiles.models import ArtifactKind
from crudforge.profiles.registry import ProfileRegistry

logger = logging.getLogger(__name__)

# Endpoint attributes that must agree across targets.
COMPARED_ATTRIBUTES = ("success_status", "error_statuses", "envelope", "paging")

RouteKey = tuple[str, str]

_ACTIONS = {a.value: a for a in CrudAction}


class ValidationReport(BaseModel):
    """Outcome of one contract validation run."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    targets: tuple[str, ...] = Field(default=())
    mismatches: tuple[ContractMismatch, ...] = Field(default=(), exclude=True)
    endpoints_by_resource: dict[str, tuple[EndpointDescriptor, ...]] = Field(
        default_factory=dict,
        description="Canonical endpoints per resource, paths in '{id}' form",
    )

    @property
    def ok(self) -> bool:
        return not self.mismatches

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return [m.to_diagnostic() for m in self.mismatches]


def _key(endpoint: EndpointDescriptor) -> RouteKey:
    return endpoint.method.value.upper(), normalize_path(endpoint.path_template)


def _label(key: RouteKey) -> str:
    return f"{key[0]} {key[1]}"


def _attribute(endpoint: EndpointDescriptor, name: str) -> Any:
    value = getattr(endpoint, name)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if hasattr(value, "value"):
        return value.value
    return value


class ContractValidator:
    """Checks that every target exposes the same contract per resource."""

    def __init__(self, registry: ProfileRegistry) -> None:
        self.registry = registry

    # -- Public API --------------------------------------------------------

    def validate(
        self, artifacts_by_target: Mapping[str, Sequence[GeneratedArtifact]]
    ) -> ValidationReport:
        """Compare the Routes artifacts of every target.

        Args:
            artifacts_by_target: Emitted artifacts keyed by target id, in
                session target order.  The first target is the reference
                every other target is compared against.
        """
        targets = list(artifacts_by_target)
        routes: dict[str, dict[str, GeneratedArtifact]] = {}
        sources: dict[str, dict[str, GeneratedArtifact]] = {}
        resources: list[str] = []
        for target_id in targets:
            routes[target_id] = {}
            sources[target_id] = {}
            check = self.registry.lookup(target_id).status_check
            for artifact in artifacts_by_target[target_id]:
                if check is not None and artifact.kind == check.artifact:
                    sources[target_id][artifact.resource_name] = artifact
                if artifact.kind != ArtifactKind.ROUTES:
                    continue
                routes[target_id][artifact.resource_name] = artifact
                if artifact.resource_name not in resources:
                    resources.append(artifact.resource_name)

        mismatches: list[ContractMismatch] = []
        for target_id in targets:
            for resource, artifact in routes[target_id].items():
                mismatches.extend(self._check_source(artifact))
                if resource in sources[target_id]:
                    mismatches.extend(self._check_statuses(artifact, sources[target_id][resource]))

        canonical: dict[str, tuple[EndpointDescriptor, ...]] = {}
        for resource in resources:
            present = [t for t in targets if resource in routes[t]]
            for target_id in targets:
                if target_id not in present:
                    mismatches.append(ContractMismatch(
                        resource, "*", "presence", present[0], True, target_id, False
                    ))
            reference = present[0]
            for other in present[1:]:
                mismatches.extend(self._compare(
                    resource,
                    reference,
                    routes[reference][resource].declared_endpoints,
                    other,
                    routes[other][resource].declared_endpoints,
                ))
            canonical[resource] = tuple(
                ep.model_copy(update={"path_template": normalize_path(ep.path_template)})
                for ep in routes[reference][resource].declared_endpoints
            )

        for mismatch in mismatches:
            logger.warning("Contract mismatch: %s", mismatch.message)
        logger.info(
            "Validated %d resource(s) across %d target(s): %d mismatch(es)",
            len(resources), len(targets), len(mismatches),
        )
        return ValidationReport(
            targets=tuple(targets),
            mismatches=tuple(mismatches),
            endpoints_by_resource=canonical,
        )

    def parse_routes(self, artifact: GeneratedArtifact) -> list[RouteKey]:
        """Re-read ``(METHOD, normalised path)`` pairs from a Routes artifact."""
        pattern = self.registry.lookup(artifact.target_id).route_regex
        return [
            (m.group("method").upper(), normalize_path(m.group("path")))
            for m in pattern.finditer(artifact.source_text)
        ]

    def parse_statuses(self, artifact: GeneratedArtifact) -> dict[CrudAction, list[int]]:
        """Re-read the status literals of every action handler in *artifact*.

        Returns an empty mapping when the profile has no ``status_check``.
        """
        check = self.registry.lookup(artifact.target_id).status_check
        if check is None:
            return {}
        text = artifact.source_text
        starts = list(check.handler_regex.finditer(text))
        found: dict[CrudAction, list[int]] = {}
        for i, match in enumerate(starts):
            action = _ACTIONS.get(match.group("action").lower())
            if action is None:
                continue
            end = starts[i + 1].start() if i + 1 < len(starts) else len(text)
            found.setdefault(action, []).extend(
                int(m.group("status")) for m in check.status_regex.finditer(text, match.end(), end)
            )
        return found

    # -- Internal helpers --------------------------------------------------

    def _check_source(self, artifact: GeneratedArtifact) -> list[ContractMismatch]:
        """Declared endpoints must match the routes found in the source text."""
        target = artifact.target_id
        found = self.parse_routes(artifact)
        declared = [_key(ep) for ep in artifact.declared_endpoints]
        problems: list[ContractMismatch] = []
        for key in declared:
            if key not in found:
                problems.append(ContractMismatch(
                    artifact.resource_name, _label(key), "route", target, "declared", target, None
                ))
        for key in found:
            if key not in declared:
                problems.append(ContractMismatch(
                    artifact.resource_name, _label(key), "route", target, None, target, "emitted"
                ))
        return problems

    def _check_statuses(
        self, routes: GeneratedArtifact, source: GeneratedArtifact
    ) -> list[ContractMismatch]:
        """Each handler must emit its declared success status and nothing the
        resource does not declare."""
        target = routes.target_id
        found = self.parse_statuses(source)
        declared = routes.declared_endpoints
        allowed = {s for ep in declared for s in (ep.success_status, *ep.error_statuses)}
        problems: list[ContractMismatch] = []
        for ep in declared:
            emitted = found.get(ep.action, [])
            if ep.success_status not in emitted:
                problems.append(ContractMismatch(
                    routes.resource_name, _label(_key(ep)), "success_status",
                    target, ep.success_status, target, sorted(set(emitted)),
                ))
            stray = sorted({s for s in emitted if s not in allowed})
            if stray:
                problems.append(ContractMismatch(
                    routes.resource_name, _label(_key(ep)), "status",
                    target, sorted(allowed), target, stray,
                ))
        return problems

    def _compare(
        self,
        resource: str,
        left_target: str,
        left: Sequence[EndpointDescriptor],
        right_target: str,
        right: Sequence[EndpointDescriptor],
    ) -> list[ContractMismatch]:
        problems: list[ContractMismatch] = []
        left_by_key = {_key(ep): ep for ep in left}
        right_by_key = {_key(ep): ep for ep in right}

        for key in left_by_key:
            if key not in right_by_key:
                problems.append(ContractMismatch(
                    resource, _label(key), "presence", left_target, True, right_target, False
                ))
        for key in right_by_key:
            if key not in left_by_key:
                problems.append(ContractMismatch(
                    resource, _label(key), "presence", left_target, False, right_target, True
                ))

        common_left = [k for k in left_by_key if k in right_by_key]
        common_right = [k for k in right_by_key if k in left_by_key]
        if common_left != common_right:
            problems.append(ContractMismatch(
                resource,
                "*",
                "order",
                left_target,
                [_label(k) for k in common_left],
                right_target,
                [_label(k) for k in common_right],
            ))

        for key in common_left:
            a, b = left_by_key[key], right_by_key[key]
            for name in COMPARED_ATTRIBUTES:
                left_value, right_value = _attribute(a, name), _attribute(b, name)
                if left_value != right_value:
                    problems.append(ContractMismatch(
                        resource, _label(key), name, left_target, left_value, right_target, right_value
                    ))
        return problems
