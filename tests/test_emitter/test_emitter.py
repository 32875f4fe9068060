"""Tests for artifact emission (crudforge.emitter.emitter).

Covers:
- Artifact kinds and order per persistence model
- Declared endpoints on the Routes artifact only
- Constraint annotations reaching the rendered source
- Join models for ManyToMany relations
- Determinism of the rendered text
- Failure without partial output
"""

from __future__ import annotations

import pytest

from crudforge.config import GeneratorConfig
from crudforge.emitter import Emitter
from crudforge.errors import UnsupportedConstraintError
from crudforge.profiles import ArtifactKind, default_registry
from crudforge.resource import parse_resource, parse_resources

pytestmark = pytest.mark.unit

ALL_TARGETS = [
    "node-document",
    "node-relational",
    "go-document",
    "go-relational",
    "python-document",
    "python-relational",
]


def _profile(target_id: str):
    return default_registry().lookup(target_id)


@pytest.fixture
def task(task_description):
    return parse_resource(task_description)


class TestArtifacts:
    @pytest.mark.parametrize("target_id", ALL_TARGETS)
    def test_task_kinds(self, emitter, task, target_id):
        artifacts = emitter.emit(task, _profile(target_id))
        assert [a.kind for a in artifacts] == [
            ArtifactKind.MODEL,
            ArtifactKind.VALIDATION,
            ArtifactKind.CONTROLLER,
            ArtifactKind.ROUTES,
        ]
        assert all(a.target_id == target_id and a.resource_name == "Task" for a in artifacts)
        assert all(a.source_text.strip() for a in artifacts)

    @pytest.mark.parametrize("target_id", ALL_TARGETS)
    def test_only_routes_declare_endpoints(self, emitter, task, target_id):
        artifacts = emitter.emit(task, _profile(target_id))
        declared = {a.kind: len(a.declared_endpoints) for a in artifacts}
        assert declared[ArtifactKind.ROUTES] == 5
        assert sum(declared.values()) == 5

    def test_routes_in_target_syntax(self, emitter, task):
        routes = emitter.emit(task, _profile("node-document"))[-1]
        assert [ep.path_template for ep in routes.declared_endpoints] == [
            "/tasks", "/tasks/:id", "/tasks", "/tasks/:id", "/tasks/:id",
        ]
        assert "router.get('/tasks/:id'" in routes.source_text
        assert "router.post('/tasks'" in routes.source_text

    def test_go_routes_source(self, emitter, task):
        routes = emitter.emit(task, _profile("go-relational"))[-1]
        assert 'r.GET("/tasks", h.List)' in routes.source_text
        assert 'r.DELETE("/tasks/:id", h.Delete)' in routes.source_text

    def test_python_routes_source(self, emitter, task):
        routes = emitter.emit(task, _profile("python-relational"))[-1]
        assert '@router.get("/tasks/{id}"' in routes.source_text

    @pytest.mark.parametrize(
        "target_id, expected",
        [
            ("node-document", ["res.status(201)", "notFound(res, 404)", "res.status(200)"]),
            ("node-relational", ["res.status(201)", "notFound(res, 404)"]),
            ("go-document", ["c.JSON(201,", "taskNotFound(c, 404)", "c.JSON(400,"]),
            ("go-relational", ["c.JSON(201,", "h.find(c, 404)", "c.JSON(200,"]),
        ],
    )
    def test_controller_statuses_rendered(self, emitter, task, target_id, expected):
        artifacts = {a.kind: a for a in emitter.emit(task, _profile(target_id))}
        controller = artifacts[ArtifactKind.CONTROLLER].source_text
        for snippet in expected:
            assert snippet in controller, snippet

    @pytest.mark.parametrize("target_id", ["go-document", "go-relational"])
    def test_go_enum_literals_quoted_in_struct_tag(self, emitter, target_id):
        resource = parse_resource({
            "name": "Ticket",
            "fields": [{"name": "state", "type": "Enum", "values": ["in progress", "done"]}],
        })
        artifacts = {a.kind: a for a in emitter.emit(resource, _profile(target_id))}
        assert "oneof='in progress' 'done'\"`" in artifacts[ArtifactKind.VALIDATION].source_text

    def test_max_length_reaches_model_and_validation(self, emitter, task):
        artifacts = {a.kind: a for a in emitter.emit(task, _profile("node-document"))}
        assert "maxlength: 120" in artifacts[ArtifactKind.MODEL].source_text
        assert ".max(120)" in artifacts[ArtifactKind.VALIDATION].source_text

    def test_api_prefix(self, renderer, mapper, task):
        emitter = Emitter(renderer, mapper, GeneratorConfig(api_prefix="/api/v1"))
        routes = emitter.emit(task, _profile("python-document"))[-1]
        assert routes.declared_endpoints[0].path_template == "/api/v1/tasks"
        assert '"/api/v1/tasks"' in routes.source_text


class TestRelations:
    @pytest.mark.parametrize("target_id", ["node-relational", "go-relational", "python-relational"])
    def test_join_model_after_model(self, emitter, blog_resources, target_id):
        post = blog_resources[1]
        artifacts = emitter.emit(post, _profile(target_id), blog_resources)
        assert [a.kind for a in artifacts][:2] == [ArtifactKind.MODEL, ArtifactKind.JOIN_MODEL]
        assert artifacts[1].name == "PostTags"
        assert "post_tags" in artifacts[1].source_text

    @pytest.mark.parametrize("target_id", ["node-relational", "go-relational", "python-relational"])
    def test_non_owner_has_no_join(self, emitter, blog_resources, target_id):
        tag = blog_resources[2]
        kinds = [a.kind for a in emitter.emit(tag, _profile(target_id), blog_resources)]
        assert ArtifactKind.JOIN_MODEL not in kinds

    @pytest.mark.parametrize("target_id", ["node-document", "go-document", "python-document"])
    def test_document_targets_never_join(self, emitter, blog_resources, target_id):
        for resource in blog_resources:
            kinds = [a.kind for a in emitter.emit(resource, _profile(target_id), blog_resources)]
            assert ArtifactKind.JOIN_MODEL not in kinds

    def test_self_many_to_many_single_join(self, emitter, self_m2m_description):
        resources, _ = parse_resources([self_m2m_description])
        artifacts = emitter.emit(resources[0], _profile("go-relational"), resources)
        joins = [a for a in artifacts if a.kind == ArtifactKind.JOIN_MODEL]
        assert [j.name for j in joins] == ["UserFriends"]
        assert 'return "user_friends"' in joins[0].source_text

    def test_foreign_key_column_in_model(self, emitter, blog_resources):
        post = blog_resources[1]
        model = emitter.emit(post, _profile("node-relational"), blog_resources)[0]
        assert "authorId" in model.source_text


class TestDeterminism:
    @pytest.mark.parametrize("target_id", ALL_TARGETS)
    def test_byte_identical_reruns(self, renderer, mapper, config, blog_resources, target_id):
        first = [
            a.source_text
            for r in blog_resources
            for a in Emitter(renderer, mapper, config).emit(r, _profile(target_id), blog_resources)
        ]
        second = [
            a.source_text
            for r in blog_resources
            for a in Emitter(renderer, mapper, config).emit(r, _profile(target_id), blog_resources)
        ]
        assert first == second


class TestFailures:
    def test_pattern_on_go_produces_nothing(self, emitter):
        coupon = parse_resource({
            "name": "Coupon",
            "fields": [{"name": "code", "type": "String", "constraints": {"pattern": "^[A-Z]{6}$"}}],
        })
        with pytest.raises(UnsupportedConstraintError):
            emitter.emit(coupon, _profile("go-relational"))

    def test_endpoints_for_uses_config(self, renderer, mapper, task):
        emitter = Emitter(renderer, mapper, GeneratorConfig(api_prefix="v2"))
        assert emitter.endpoints_for(task)[0].path_template == "/v2/tasks"
