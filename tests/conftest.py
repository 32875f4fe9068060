"""Shared pytest fixtures for the crudforge test suite.

Provides reusable fixtures for:
- Raw resource descriptions (single resource and related batches)
- The built-in profile registry and a shared template renderer
- Type mapper / emitter instances wired to that renderer
- A configuration with a small worker pool
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from crudforge.config import GeneratorConfig
from crudforge.emitter import Emitter, TemplateRenderer, TypeMapper
from crudforge.profiles import ProfileRegistry, default_registry
from crudforge.resource import parse_resources


# ---------------------------------------------------------------------------
# Raw descriptions
# ---------------------------------------------------------------------------

TASK: dict[str, Any] = {
    "name": "Task",
    "fields": [
        {
            "name": "title",
            "type": "String",
            "required": True,
            "constraints": {"MaxLength": 120},
        },
    ],
}

BLOG: list[dict[str, Any]] = [
    {
        "name": "User",
        "fields": [
            {"name": "email", "type": "String", "required": True, "constraints": {"unique": True}},
            {"name": "displayName", "type": "String", "constraints": {"minLength": 2, "maxLength": 64}},
            {"name": "role", "type": "Enum", "values": ["admin", "author", "reader"], "required": True},
            {"name": "createdAt", "type": "DateTime"},
        ],
        "relations": [
            {"kind": "OneToMany", "target": "Post", "name": "posts"},
        ],
    },
    {
        "name": "Post",
        "fields": [
            {"name": "title", "type": "String", "required": True, "constraints": {"maxLength": 200}},
            {"name": "views", "type": "Integer", "constraints": {"min": 0}},
            {"name": "rating", "type": "Float", "constraints": {"min": 0, "max": 5}},
            {"name": "published", "type": "Boolean"},
            {"name": "author", "type": "Reference", "reference": "User", "required": True},
        ],
        "relations": [
            {"kind": "ManyToMany", "target": "Tag", "name": "tags"},
        ],
    },
    {
        "name": "Tag",
        "fields": [
            {"name": "label", "type": "String", "required": True, "constraints": {"unique": True}},
        ],
        "relations": [
            {"kind": "ManyToMany", "target": "Post", "name": "posts"},
        ],
    },
]

SELF_M2M: dict[str, Any] = {
    "name": "User",
    "fields": [{"name": "handle", "type": "String", "required": True}],
    "relations": [{"kind": "ManyToMany", "target": "User", "name": "friends"}],
}


@pytest.fixture
def task_description() -> dict[str, Any]:
    """Single Task resource with one required, length-bounded title."""
    return copy.deepcopy(TASK)


@pytest.fixture
def blog_descriptions() -> list[dict[str, Any]]:
    """User / Post / Tag batch covering every logical type but Pattern."""
    return copy.deepcopy(BLOG)


@pytest.fixture
def self_m2m_description() -> dict[str, Any]:
    """User with a ManyToMany self-relation (friends)."""
    return copy.deepcopy(SELF_M2M)


@pytest.fixture
def blog_resources(blog_descriptions):
    resources, _ = parse_resources(blog_descriptions)
    return resources


# ---------------------------------------------------------------------------
# Core collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def registry() -> ProfileRegistry:
    return default_registry()


@pytest.fixture(scope="session")
def renderer() -> TemplateRenderer:
    return TemplateRenderer(default_registry().template_dirs())


@pytest.fixture
def mapper(renderer) -> TypeMapper:
    return TypeMapper(renderer)


@pytest.fixture
def config() -> GeneratorConfig:
    return GeneratorConfig(max_workers=2)


@pytest.fixture
def emitter(renderer, mapper, config) -> Emitter:
    return Emitter(renderer, mapper, config)


@pytest.fixture
def description_file(tmp_path: Path, blog_descriptions) -> Path:
    """The blog batch written to a YAML file under ``resources``."""
    import yaml

    path = tmp_path / "resources.yaml"
    path.write_text(yaml.safe_dump({"resources": blog_descriptions}, sort_keys=False), encoding="utf-8")
    return path
