"""Generation session orchestrator.

A :class:`GenerationSession` drives one generation run through its states::

    Created -> Loaded -> Mapped -> Emitted -> Validated -> Completed
    (any non-terminal state) -> Failed

* **Loaded**    -- raw descriptions parsed into ResourceSpecs, target ids
  resolved against the registry, type-map coverage checked.
* **Mapped**    -- every field of every resource mapped onto every target.
* **Emitted**   -- one emission task per (resource, target) pair, run in
  worker threads and bounded by ``config.max_workers``.
* **Validated** -- the emitted API surface compared across targets.
* **Completed** -- outputs handed to the sink.

Any error moves the session to ``Failed``; ``failed_state`` records the state
the session was working towards (a dangling reference fails at ``Loaded``).
Nothing is retried.  Outputs are only produced (and the sink only called)
once the contract has validated.

Usage::

    session = GenerationSession(GeneratorConfig())
    result = session.run_sync(descriptions, ["node-document", "go-relational"])
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
import uuid
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from crudforge.config import GeneratorConfig
from crudforge.contract import ContractValidator, ValidationReport, export_contract
from crudforge.emitter import (
    Emitter,
    EndpointDescriptor,
    GeneratedArtifact,
    NativeFieldDescriptor,
    TemplateRenderer,
    TypeMapper,
    resolve_relations,
)
from crudforge.errors import (
    Cancelled,
    CrudforgeError,
    Diagnostic,
    SchemaError,
    SessionError,
)
from crudforge.profiles import ArtifactKind, ProfileRegistry, TargetProfile
from crudforge.profiles.registry import build_registry, default_registry
from crudforge.resource import ResourceSpec, parse_resources

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class SessionState(str, Enum):
    """Lifecycle states of a generation session."""
    CREATED = "Created"
    LOADED = "Loaded"
    MAPPED = "Mapped"
    EMITTED = "Emitted"
    VALIDATED = "Validated"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED)


_NEXT_STATE: dict[SessionState, SessionState] = {
    SessionState.CREATED: SessionState.LOADED,
    SessionState.LOADED: SessionState.MAPPED,
    SessionState.MAPPED: SessionState.EMITTED,
    SessionState.EMITTED: SessionState.VALIDATED,
    SessionState.VALIDATED: SessionState.COMPLETED,
}


class CancellationToken:
    """Thread-safe cooperative cancellation flag.

    The session checks the token between transitions and before each
    emission worker starts; work already running in a thread finishes.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, state: SessionState) -> None:
        if self._event.is_set():
            raise Cancelled(f"Session cancelled in state {state.value}")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class SessionOutput(BaseModel):
    """One source file ready to be written."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    resource_name: str
    kind: ArtifactKind
    name: str
    source_text: str


class ArtifactSink(Protocol):
    """Anything that accepts the ordered outputs of a completed session.

    ``write`` may be a plain or a coroutine function.
    """

    def write(self, outputs: Sequence[SessionOutput]) -> Any:
        ...


class SessionResult(BaseModel):
    """Everything a caller needs to know about a finished session."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    session_id: str
    state: SessionState
    failed_state: Optional[SessionState] = None
    history: tuple[SessionState, ...] = Field(default=())
    targets: tuple[str, ...] = Field(default=())
    resources: tuple[str, ...] = Field(default=())
    outputs: tuple[SessionOutput, ...] = Field(default=())
    report: Optional[ValidationReport] = None
    contract: Optional[dict[str, Any]] = None
    diagnostics: tuple[Diagnostic, ...] = Field(default=())
    timings: dict[str, float] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state == SessionState.COMPLETED


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class GenerationSession:
    """Runs one batch of resources through every requested target.

    Args:
        config: Generator configuration; defaults to ``GeneratorConfig()``.
        registry: Frozen profile registry.  Defaults to the built-in registry,
            extended with ``config.profile_dirs`` when any are configured.
        token: Cancellation token; a fresh one is created when omitted.
        session_id: Identifier stamped on every log record of the session.
    """

    def __init__(
        self,
        config: GeneratorConfig | None = None,
        registry: ProfileRegistry | None = None,
        *,
        token: CancellationToken | None = None,
        session_id: str | None = None,
    ) -> None:
        self.config = config or GeneratorConfig()
        if registry is None:
            registry = (
                build_registry(self.config.profile_dirs)
                if self.config.profile_dirs
                else default_registry()
            )
        self.registry = registry
        self.renderer = TemplateRenderer(self.registry.template_dirs())
        self.mapper = TypeMapper(self.renderer)
        self.emitter = Emitter(self.renderer, self.mapper, self.config)
        self.validator = ContractValidator(self.registry)
        self.token = token or CancellationToken()
        self.session_id = session_id or uuid.uuid4().hex[:8]

        self.state = SessionState.CREATED
        self.history: list[SessionState] = [SessionState.CREATED]
        self.failed_state: SessionState | None = None
        self.diagnostics: list[Diagnostic] = []
        self.timings: dict[str, float] = {}

        self.resources: list[ResourceSpec] = []
        self.profiles: list[TargetProfile] = []
        self.mapped: dict[tuple[str, str], tuple[NativeFieldDescriptor, ...]] = {}
        self.endpoints: dict[str, tuple[EndpointDescriptor, ...]] = {}
        self.artifacts: dict[str, list[GeneratedArtifact]] = {}
        self.report: ValidationReport | None = None
        self.contract: dict[str, Any] | None = None
        self.outputs: tuple[SessionOutput, ...] = ()

        self._started = False
        self._stage: SessionState | None = None
        self._log_context = {"session_id": self.session_id, "state": self.state.value}
        self.log = logging.LoggerAdapter(logger, self._log_context)

    # -- Public API --------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation; honoured at the next checkpoint."""
        self.token.cancel()

    async def run(
        self,
        raw_descriptions: Iterable[Any],
        target_ids: Iterable[str] | None = None,
        sink: ArtifactSink | None = None,
    ) -> SessionResult:
        """Run the session to a terminal state.

        Args:
            raw_descriptions: Raw resource descriptions, in session order.
            target_ids: Requested targets; duplicates are dropped (first seen
                wins).  Defaults to ``config.default_targets``.
            sink: Receives the outputs once the session has validated.

        Returns:
            The :class:`SessionResult`.  Generation errors never raise; they
            end the session in ``Failed`` with a diagnostic.

        Raises:
            SessionError: The session has already been run.
        """
        if self._started:
            raise SessionError("A GenerationSession can only run once; create a new session")
        self._started = True

        try:
            await self._step(self._load, list(raw_descriptions), target_ids)
            await self._step(self._map)
            await self._step(self._emit)
            await self._step(self._validate)
            await self._step(self._complete, sink)
        except CrudforgeError as exc:
            self._fail(exc)
        except BaseException:
            self._fail(None)
            raise
        return self.result()

    def run_sync(
        self,
        raw_descriptions: Iterable[Any],
        target_ids: Iterable[str] | None = None,
        sink: ArtifactSink | None = None,
    ) -> SessionResult:
        """Blocking wrapper around :meth:`run`."""
        return asyncio.run(self.run(raw_descriptions, target_ids, sink))

    def result(self) -> SessionResult:
        completed = self.state == SessionState.COMPLETED
        return SessionResult(
            session_id=self.session_id,
            state=self.state,
            failed_state=self.failed_state,
            history=tuple(self.history),
            targets=tuple(p.id for p in self.profiles),
            resources=tuple(r.name for r in self.resources),
            outputs=self.outputs if completed else (),
            report=self.report,
            contract=self.contract if completed else None,
            diagnostics=tuple(self.diagnostics),
            timings=dict(self.timings),
        )

    # -- State handling ----------------------------------------------------

    async def _step(self, stage: Any, *args: Any) -> None:
        """Run *stage* and move to the next state, checking for cancellation first."""
        target = _NEXT_STATE[self.state]
        self._stage = target
        self.token.raise_if_cancelled(self.state)
        start = time.monotonic()
        outcome = stage(*args)
        if inspect.isawaitable(outcome):
            await outcome
        self.timings[target.value] = time.monotonic() - start
        self._transition(target)

    def _transition(self, new_state: SessionState) -> None:
        if self.state.terminal:
            raise SessionError(f"Session already {self.state.value}; cannot enter {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
        self._log_context["state"] = new_state.value
        self.log.info("Entered %s", new_state.value)

    def _fail(self, exc: CrudforgeError | None) -> None:
        if exc is not None:
            diagnostic = exc.to_diagnostic()
            if diagnostic not in self.diagnostics:
                self.diagnostics.append(diagnostic)
            self.log.error("%s", diagnostic)
        if self.state.terminal:
            return
        self.failed_state = self._stage or self.state
        self._transition(SessionState.FAILED)

    # -- Stages ------------------------------------------------------------

    def _load(self, raw_descriptions: list[Any], target_ids: Iterable[str] | None) -> None:
        requested = list(target_ids) if target_ids is not None else list(self.config.default_targets)
        unique_ids = list(dict.fromkeys(requested))
        if len(unique_ids) != len(requested):
            self.log.info("Dropped duplicate target ids: %s", ", ".join(requested))
        self.profiles = [self.registry.lookup(t) for t in unique_ids]
        if not self.profiles:
            raise SessionError("No target requested")

        resources, errors = parse_resources(raw_descriptions, strict=self.config.strict_schema)
        self.diagnostics.extend(e.to_diagnostic() for e in errors)
        if not resources:
            raise SchemaError(None, "resources", "no valid resource description to generate")
        self.resources = resources

        for profile in self.profiles:
            self.mapper.check_coverage(self.resources, profile)
        self.log.info(
            "Loaded %d resource(s) for target(s) %s",
            len(self.resources), ", ".join(p.id for p in self.profiles),
        )

    def _map(self) -> None:
        for resource in self.resources:
            self.endpoints[resource.name] = self.emitter.endpoints_for(resource)
        for profile in self.profiles:
            for resource in self.resources:
                self.mapped[(profile.id, resource.name)] = self.mapper.map_resource(resource, profile)
                resolve_relations(resource, profile, self.resources, self.mapper)

    async def _emit(self) -> None:
        semaphore = asyncio.Semaphore(self.config.max_workers)
        pairs = [(p, r) for p in self.profiles for r in self.resources]
        tasks = [asyncio.create_task(self._emit_one(semaphore, p, r)) for p, r in pairs]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        self.artifacts = {p.id: [] for p in self.profiles}
        for (profile, _resource), artifacts in zip(pairs, results):
            self.artifacts[profile.id].extend(artifacts)
        self._check_unique_names()
        self.log.info("Emitted %d artifact(s)", sum(len(a) for a in self.artifacts.values()))

    def _check_unique_names(self) -> None:
        """Two artifacts of one target must not share a model (or join model) name."""
        for profile in self.profiles:
            seen: dict[tuple[ArtifactKind, str], GeneratedArtifact] = {}
            for artifact in self.artifacts[profile.id]:
                kind = ArtifactKind.MODEL if artifact.kind == ArtifactKind.JOIN_MODEL else artifact.kind
                first = seen.setdefault((kind, artifact.name), artifact)
                if first is artifact:
                    continue
                error = SchemaError(
                    artifact.resource_name,
                    f"{artifact.resource_name}.relations",
                    f"{artifact.kind.value} {artifact.name!r} collides with the "
                    f"{first.kind.value} emitted for {first.resource_name!r}",
                )
                error.target = profile.id
                raise error

    async def _emit_one(
        self, semaphore: asyncio.Semaphore, profile: TargetProfile, resource: ResourceSpec
    ) -> tuple[GeneratedArtifact, ...]:
        async with semaphore:
            self.token.raise_if_cancelled(self.state)
            return await asyncio.to_thread(
                self.emitter.emit,
                resource,
                profile,
                self.resources,
                self.mapped[(profile.id, resource.name)],
                self.endpoints[resource.name],
            )

    def _validate(self) -> None:
        report = self.validator.validate(self.artifacts)
        self.report = report
        if not report.ok:
            self.diagnostics.extend(report.diagnostics)
            raise report.mismatches[0]
        self.contract = export_contract(report.endpoints_by_resource)

    async def _complete(self, sink: ArtifactSink | None) -> None:
        self.outputs = tuple(
            SessionOutput(
                target_id=artifact.target_id,
                resource_name=artifact.resource_name,
                kind=artifact.kind,
                name=artifact.name,
                source_text=artifact.source_text,
            )
            for profile in self.profiles
            for artifact in self.artifacts[profile.id]
        )
        if sink is not None:
            written = sink.write(self.outputs)
            if inspect.isawaitable(written):
                await written
        self.log.info("Handed %d output(s) to the sink", len(self.outputs))
