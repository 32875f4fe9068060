"""Tests for the generation session (crudforge.session).

Covers:
- Full runs to Completed, state history and timings
- Target de-duplication
- Load, map and validate failures ending in Failed
- Cancellation before and during emission
- Sinks (sync and async) and when they are called
- Lenient schema mode
- Single-use sessions
"""

from __future__ import annotations

from typing import Any

import pytest

from crudforge.config import GeneratorConfig
from crudforge.errors import SessionError
from crudforge.profiles import ArtifactKind
from crudforge.session import (
    CancellationToken,
    GenerationSession,
    SessionOutput,
    SessionState,
)

pytestmark = pytest.mark.unit

HAPPY_PATH = [
    SessionState.CREATED,
    SessionState.LOADED,
    SessionState.MAPPED,
    SessionState.EMITTED,
    SessionState.VALIDATED,
    SessionState.COMPLETED,
]


class RecordingSink:
    def __init__(self) -> None:
        self.calls: list[tuple[SessionOutput, ...]] = []

    def write(self, outputs):
        self.calls.append(tuple(outputs))


class AsyncRecordingSink(RecordingSink):
    async def write(self, outputs):
        self.calls.append(tuple(outputs))


def _session(**config: Any) -> GenerationSession:
    return GenerationSession(GeneratorConfig(**{"max_workers": 2, **config}))


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestCompleted:
    @pytest.mark.asyncio
    async def test_task_on_two_targets(self, task_description):
        sink = RecordingSink()
        result = await _session().run([task_description], ["node-document", "go-relational"], sink)

        assert result.ok
        assert result.state == SessionState.COMPLETED
        assert result.history == tuple(HAPPY_PATH)
        assert result.failed_state is None
        assert result.targets == ("node-document", "go-relational")
        assert result.resources == ("Task",)
        assert [(o.target_id, o.kind) for o in result.outputs] == [
            ("node-document", ArtifactKind.MODEL),
            ("node-document", ArtifactKind.VALIDATION),
            ("node-document", ArtifactKind.CONTROLLER),
            ("node-document", ArtifactKind.ROUTES),
            ("go-relational", ArtifactKind.MODEL),
            ("go-relational", ArtifactKind.VALIDATION),
            ("go-relational", ArtifactKind.CONTROLLER),
            ("go-relational", ArtifactKind.ROUTES),
        ]
        assert sink.calls == [result.outputs]
        assert result.report is not None and result.report.ok
        assert [e["path"] for e in result.contract["resources"][0]["endpoints"]] == [
            "/tasks", "/tasks/{id}", "/tasks", "/tasks/{id}", "/tasks/{id}",
        ]
        assert set(result.timings) == {s.value for s in HAPPY_PATH[1:]}
        assert result.diagnostics == ()

    @pytest.mark.asyncio
    async def test_duplicate_targets_deduplicated(self, task_description):
        result = await _session().run(
            [task_description], ["node-document", "go-relational", "node-document"]
        )
        assert result.ok
        assert result.targets == ("node-document", "go-relational")
        assert len(result.outputs) == 8

    @pytest.mark.asyncio
    async def test_default_targets(self, task_description):
        result = await _session(default_targets=["python-document"]).run([task_description])
        assert result.targets == ("python-document",)

    @pytest.mark.asyncio
    async def test_outputs_in_target_then_resource_order(self, blog_descriptions):
        result = await _session().run(blog_descriptions, ["go-relational", "node-document"])
        assert result.ok
        order = []
        for output in result.outputs:
            key = (output.target_id, output.resource_name)
            if key not in order:
                order.append(key)
        assert order == [
            ("go-relational", "User"),
            ("go-relational", "Post"),
            ("go-relational", "Tag"),
            ("node-document", "User"),
            ("node-document", "Post"),
            ("node-document", "Tag"),
        ]
        joins = [o.name for o in result.outputs if o.kind == ArtifactKind.JOIN_MODEL]
        assert joins == ["PostTags"]

    @pytest.mark.asyncio
    async def test_async_sink_awaited(self, task_description):
        sink = AsyncRecordingSink()
        result = await _session().run([task_description], ["node-document"], sink)
        assert sink.calls == [result.outputs]

    @pytest.mark.asyncio
    async def test_byte_identical_reruns(self, blog_descriptions):
        targets = ["node-relational", "go-document", "python-relational"]
        first = await _session().run(blog_descriptions, targets)
        second = await _session(max_workers=1).run(blog_descriptions, targets)
        assert [o.source_text for o in first.outputs] == [o.source_text for o in second.outputs]
        assert first.contract == second.contract

    def test_run_sync(self, task_description):
        result = _session().run_sync([task_description], ["python-relational"])
        assert result.ok
        assert len(result.outputs) == 4


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailed:
    @pytest.mark.asyncio
    async def test_dangling_reference_fails_at_loaded(self):
        sink = RecordingSink()
        raw = {"name": "Task", "fields": [{"name": "owner", "type": "Reference", "reference": "Ghost"}]}
        result = await _session().run([raw], ["node-document"], sink)

        assert result.state == SessionState.FAILED
        assert result.failed_state == SessionState.LOADED
        assert result.history == (SessionState.CREATED, SessionState.FAILED)
        dangling, nothing_left = result.diagnostics
        assert dangling.code == "SchemaError"
        assert "Ghost" in dangling.message
        assert nothing_left.code == "SchemaError"
        assert "no valid resource" in nothing_left.message
        assert result.outputs == ()
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_unknown_target(self, task_description):
        result = await _session().run([task_description], ["node-document", "cobol-db2"])
        assert result.failed_state == SessionState.LOADED
        assert result.diagnostics[0].code == "UnknownTargetError"
        assert result.diagnostics[0].target == "cobol-db2"

    @pytest.mark.asyncio
    async def test_empty_target_list(self, task_description):
        result = await _session().run([task_description], [])
        assert result.state == SessionState.FAILED
        assert result.diagnostics[0].code == "SessionError"

    @pytest.mark.asyncio
    async def test_pattern_on_go_fails_at_mapped(self):
        raw = {
            "name": "Coupon",
            "fields": [{"name": "code", "type": "String", "constraints": {"pattern": "^[A-Z]{6}$"}}],
        }
        result = await _session().run([raw], ["node-document", "go-relational"])
        assert result.failed_state == SessionState.MAPPED
        (diagnostic,) = result.diagnostics
        assert diagnostic.code == "UnsupportedConstraintError"
        assert diagnostic.target == "go-relational"
        assert diagnostic.resource == "Coupon"
        assert diagnostic.field == "code"
        assert result.outputs == ()

    @pytest.mark.asyncio
    async def test_contract_mismatch_fails_at_validated(self, task_description):
        session = _session()
        original = session.emitter.emit

        def skewed_emit(resource, profile, *args, **kwargs):
            artifacts = original(resource, profile, *args, **kwargs)
            if profile.id != "go-relational":
                return artifacts
            routes = artifacts[-1]
            declared = list(routes.declared_endpoints)
            declared[2] = declared[2].model_copy(update={"success_status": 200})
            return (*artifacts[:-1], routes.model_copy(update={"declared_endpoints": tuple(declared)}))

        session.emitter.emit = skewed_emit
        sink = RecordingSink()
        result = await session.run([task_description], ["node-document", "go-relational"], sink)

        assert result.failed_state == SessionState.VALIDATED
        assert {d.code for d in result.diagnostics} == {"ContractMismatch"}
        assert [d.field for d in result.diagnostics] == ["success_status", "status", "success_status"]
        assert result.report is not None and not result.report.ok
        assert result.contract is None
        assert result.outputs == ()
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, task_description):
        session = _session()

        def broken_emit(*args, **kwargs):
            raise RuntimeError("template exploded")

        session.emitter.emit = broken_emit
        with pytest.raises(RuntimeError, match="template exploded"):
            await session.run([task_description], ["node-document"])
        assert session.state == SessionState.FAILED
        assert session.failed_state == SessionState.EMITTED

    @pytest.mark.asyncio
    async def test_shared_join_name_fails_at_emitted(self):
        descriptions = [
            {
                "name": "Post",
                "fields": [{"name": "title", "type": "String"}],
                "relations": [{"kind": "ManyToMany", "target": "Tag", "through": "Links"}],
            },
            {"name": "Tag", "fields": [{"name": "label", "type": "String"}]},
            {
                "name": "User",
                "fields": [{"name": "handle", "type": "String"}],
                "relations": [{"kind": "ManyToMany", "target": "Role", "through": "Links"}],
            },
            {"name": "Role", "fields": [{"name": "label", "type": "String"}]},
        ]
        sink = RecordingSink()
        result = await _session().run(descriptions, ["node-document", "node-relational"], sink)

        assert result.failed_state == SessionState.EMITTED
        (diagnostic,) = result.diagnostics
        assert diagnostic.code == "SchemaError"
        assert diagnostic.resource == "User"
        assert diagnostic.target == "node-relational"
        assert "'Links'" in diagnostic.message
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_invalid_resource_dropped_by_default(self, task_description):
        note = {"name": "Note", "fields": [{"name": "body", "type": "Bogus"}]}
        result = await _session().run([task_description, note], ["node-document"])
        assert result.state == SessionState.COMPLETED
        assert result.resources == ("Task",)
        (diagnostic,) = result.diagnostics
        assert diagnostic.code == "SchemaError"
        assert diagnostic.resource == "Note"
        assert {o.resource_name for o in result.outputs} == {"Task"}

    @pytest.mark.asyncio
    async def test_strict_mode_fails_on_invalid_resource(self, task_description):
        note = {"name": "Note", "fields": [{"name": "body", "type": "Bogus"}]}
        result = await _session(strict_schema=True).run([task_description, note], ["node-document"])
        assert result.failed_state == SessionState.LOADED
        (diagnostic,) = result.diagnostics
        assert diagnostic.resource == "Note"
        assert result.outputs == ()

    @pytest.mark.asyncio
    async def test_nothing_left_after_dropping(self):
        broken = {"name": "Broken", "fields": [{"name": "value", "type": "Money"}]}
        result = await _session().run([broken], ["node-document"])
        assert result.failed_state == SessionState.LOADED
        assert [d.code for d in result.diagnostics] == ["SchemaError", "SchemaError"]


# ---------------------------------------------------------------------------
# Cancellation and single use
# ---------------------------------------------------------------------------


class TestCancellation:
    def test_token(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled(SessionState.CREATED)
        token.cancel()
        assert token.cancelled

    @pytest.mark.asyncio
    async def test_cancelled_before_run(self, task_description):
        token = CancellationToken()
        token.cancel()
        sink = RecordingSink()
        session = GenerationSession(GeneratorConfig(), token=token)
        result = await session.run([task_description], ["node-document"], sink)

        assert result.state == SessionState.FAILED
        assert result.failed_state == SessionState.LOADED
        assert result.diagnostics[0].code == "Cancelled"
        assert result.diagnostics[0].stage.value == "cancel"
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_during_emission(self, blog_descriptions):
        session = _session(max_workers=1)
        original = session.emitter.emit
        calls: list[str] = []

        def cancelling_emit(resource, profile, *args, **kwargs):
            calls.append(resource.name)
            session.cancel()
            return original(resource, profile, *args, **kwargs)

        session.emitter.emit = cancelling_emit
        result = await session.run(blog_descriptions, ["node-document"])

        assert result.failed_state == SessionState.EMITTED
        assert result.diagnostics[0].code == "Cancelled"
        assert calls == ["User"]
        assert result.outputs == ()


class TestSingleUse:
    @pytest.mark.asyncio
    async def test_second_run_raises(self, task_description):
        session = _session()
        await session.run([task_description], ["node-document"])
        with pytest.raises(SessionError, match="only run once"):
            await session.run([task_description], ["node-document"])

    @pytest.mark.asyncio
    async def test_second_run_after_failure_raises(self):
        session = _session()
        result = await session.run([{"name": "Bad"}], ["node-document"])
        assert result.state == SessionState.FAILED
        with pytest.raises(SessionError):
            await session.run([{"name": "Bad"}], ["node-document"])

    def test_session_id(self):
        assert GenerationSession(session_id="abc").session_id == "abc"
        assert len(GenerationSession().session_id) == 8

    def test_profile_dirs_build_registry(self, tmp_path):
        session = GenerationSession(GeneratorConfig(profile_dirs=[tmp_path]))
        assert "node-document" in session.registry
