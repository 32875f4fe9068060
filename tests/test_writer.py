"""Tests for the filesystem sink (crudforge.writer)."""

from __future__ import annotations

from pathlib import Path

import pytest

from crudforge.errors import SessionError
from crudforge.profiles import ArtifactKind, default_registry
from crudforge.session import SessionOutput
from crudforge.writer import FileWriter

pytestmark = pytest.mark.unit


def _output(target_id: str, kind: ArtifactKind, name: str = "Task", resource: str = "Task") -> SessionOutput:
    return SessionOutput(
        target_id=target_id,
        resource_name=resource,
        kind=kind,
        name=name,
        source_text=f"// {kind.value} for {name}\n",
    )


class _SingleProfileRegistry:
    """Registry stand-in serving one profile with a replaced output layout."""

    def __init__(self, target_id: str, layout: dict) -> None:
        base = default_registry()
        self._profile = base.lookup(target_id).model_copy(update={"output_layout": layout})
        self._dirs = base.template_dirs()

    def lookup(self, target_id):
        return self._profile

    def template_dirs(self):
        return self._dirs


class TestPathFor:
    @pytest.mark.parametrize(
        "target_id, kind, name, expected",
        [
            ("node-document", ArtifactKind.MODEL, "Task", "node-document/src/models/task.model.js"),
            ("node-document", ArtifactKind.ROUTES, "Task", "node-document/src/routes/task.routes.js"),
            ("python-relational", ArtifactKind.ROUTES, "Task", "python-relational/app/api/routes/tasks.py"),
            ("python-relational", ArtifactKind.JOIN_MODEL, "PostTags", "python-relational/app/models/post_tags.py"),
            ("go-relational", ArtifactKind.CONTROLLER, "Task", "go-relational/internal/handlers/task_handler.go"),
        ],
    )
    def test_layout(self, tmp_path, target_id, kind, name, expected):
        writer = FileWriter(tmp_path)
        assert writer.path_for(_output(target_id, kind, name)) == Path(expected)

    def test_fallback_without_layout(self, tmp_path):
        writer = FileWriter(tmp_path, _SingleProfileRegistry("node-document", {}))
        assert writer.path_for(_output("node-document", ArtifactKind.MODEL)) == Path(
            "node-document/model/task.js"
        )

    @pytest.mark.parametrize("layout", ["../../escape/{{ name }}.js", "/etc/{{ name }}.js"])
    def test_escape_rejected(self, tmp_path, layout):
        registry = _SingleProfileRegistry("node-document", {ArtifactKind.MODEL: layout})
        writer = FileWriter(tmp_path, registry)
        with pytest.raises(SessionError, match="escapes"):
            writer.path_for(_output("node-document", ArtifactKind.MODEL))


class TestWrite:
    def test_writes_every_output(self, tmp_path):
        outputs = [
            _output("node-document", ArtifactKind.MODEL),
            _output("node-document", ArtifactKind.VALIDATION),
            _output("python-relational", ArtifactKind.ROUTES),
        ]
        written = FileWriter(tmp_path).write(outputs)

        assert written == [
            tmp_path / "node-document/src/models/task.model.js",
            tmp_path / "node-document/src/validators/task.validator.js",
            tmp_path / "python-relational/app/api/routes/tasks.py",
        ]
        assert written[0].read_text(encoding="utf-8") == "// Model for Task\n"

    def test_overwrites_existing_file(self, tmp_path):
        writer = FileWriter(tmp_path)
        output = _output("node-document", ArtifactKind.MODEL)
        writer.write([output])
        (path,) = writer.write([output.model_copy(update={"source_text": "second\n"})])
        assert path.read_text(encoding="utf-8") == "second\n"

    def test_nothing_to_write(self, tmp_path):
        assert FileWriter(tmp_path / "out").write([]) == []
        assert not (tmp_path / "out").exists()

    def test_same_path_twice_rejected(self, tmp_path):
        outputs = [
            _output("node-relational", ArtifactKind.JOIN_MODEL, name="Links", resource="Post"),
            _output("node-relational", ArtifactKind.JOIN_MODEL, name="Links", resource="User"),
        ]
        with pytest.raises(SessionError, match="both map to") as exc_info:
            FileWriter(tmp_path / "out").write(outputs)
        assert exc_info.value.resource == "User"
        assert exc_info.value.target == "node-relational"
        assert not (tmp_path / "out").exists()

    def test_join_model_named_like_a_resource_rejected(self, tmp_path):
        outputs = [
            _output("node-relational", ArtifactKind.MODEL, name="Tag", resource="Tag"),
            _output("node-relational", ArtifactKind.JOIN_MODEL, name="Tag", resource="Post"),
        ]
        with pytest.raises(SessionError, match="src/models/tag.model.js"):
            FileWriter(tmp_path).write(outputs)
