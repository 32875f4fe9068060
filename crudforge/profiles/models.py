"""Pydantic v2 models describing a target backend stack.

A :class:`TargetProfile` is pure data: type tables, constraint-annotation
rules, naming conventions and references to Jinja2 templates.  Nothing in a
profile is executable Python, so adding a backend means registering a new
profile document rather than touching the emitter.

Every string marked "template" below is a Jinja2 template rendered by the
type mapper or the writer.  Rule templates see ``value`` (the constraint
argument), ``values`` (Enum literals) and ``field`` (the mapped field name).
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from crudforge.resource.models import ConstraintKind, LogicalType


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class PersistenceModel(str, Enum):
    """Storage idiom of a target."""
    DOCUMENT = "Document"
    RELATIONAL = "Relational"


class ArtifactKind(str, Enum):
    """Kinds of source artifact emitted per (resource, target) pair."""
    MODEL = "Model"
    JOIN_MODEL = "JoinModel"
    VALIDATION = "Validation"
    CONTROLLER = "Controller"
    ROUTES = "Routes"


REQUIRED_ARTIFACTS = (
    ArtifactKind.MODEL,
    ArtifactKind.VALIDATION,
    ArtifactKind.CONTROLLER,
    ArtifactKind.ROUTES,
)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

class NativeType(BaseModel):
    """How one logical type is spelled in a target.

    ``name`` is the persistence-layer type (template), ``schema`` the type used
    by the validation layer (defaults to ``name``), ``optional`` the spelling
    used for non-required fields in the validation layer (defaults to
    ``schema``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    schema_type: Optional[str] = Field(default=None, alias="schema")
    optional: Optional[str] = None
    imports: tuple[str, ...] = Field(default=())
    enum_rule: Optional["ConstraintRule"] = Field(
        default=None, description="Annotation listing the allowed literals (Enum only)"
    )
    enum_literal: Optional[str] = Field(
        default=None,
        description="Regular expression every Enum literal must fully match (Enum only)",
    )


class ConstraintRule(BaseModel):
    """Annotation templates a constraint turns into, per layer.

    ``index`` marks a rule the model template expresses as a collection
    index (Unique on drivers without schema-level uniqueness).
    """

    model_config = ConfigDict(frozen=True)

    model: Optional[str] = None
    validation: Optional[str] = None
    index: bool = False

    @model_validator(mode="after")
    def _at_least_one_layer(self) -> "ConstraintRule":
        if self.model is None and self.validation is None and not self.index:
            raise ValueError("a constraint rule needs a 'model', 'validation' or 'index' entry")
        return self


class NamingConventions(BaseModel):
    """Identifier conventions of a target language."""

    model_config = ConfigDict(frozen=True)

    field_case: Literal["camel", "snake", "pascal"] = "camel"
    file_case: Literal["camel", "snake", "kebab", "pascal"] = "camel"
    path_param_prefix: str = ":"
    path_param_suffix: str = ""

    def path_param(self, name: str) -> str:
        return f"{self.path_param_prefix}{name}{self.path_param_suffix}"


def _compile_with_groups(value: str, groups: set[str], what: str) -> str:
    try:
        compiled = re.compile(value)
    except re.error as exc:
        raise ValueError(f"{what} is not a valid regex: {exc}") from exc
    missing = groups - set(compiled.groupindex)
    if missing:
        raise ValueError(f"{what} lacks group(s): {', '.join(sorted(missing))}")
    return value


class StatusCheck(BaseModel):
    """Where the emitted status literals of each action can be re-read.

    ``handler_pattern`` matches the start of one action handler in the
    ``artifact`` source (group ``action``, case-insensitive CRUD action);
    a handler runs until the next match.  ``status_pattern`` matches one
    status literal (group ``status``) inside a handler.
    """

    model_config = ConfigDict(frozen=True)

    artifact: ArtifactKind = ArtifactKind.CONTROLLER
    handler_pattern: str
    status_pattern: str

    @field_validator("handler_pattern")
    @classmethod
    def _handler_groups(cls, value: str) -> str:
        return _compile_with_groups(value, {"action"}, "handler_pattern")

    @field_validator("status_pattern")
    @classmethod
    def _status_groups(cls, value: str) -> str:
        return _compile_with_groups(value, {"status"}, "status_pattern")

    @property
    def handler_regex(self) -> re.Pattern[str]:
        return re.compile(self.handler_pattern)

    @property
    def status_regex(self) -> re.Pattern[str]:
        return re.compile(self.status_pattern)


NativeType.model_rebuild()


# ---------------------------------------------------------------------------
# Target profile
# ---------------------------------------------------------------------------

class TargetProfile(BaseModel):
    """Declarative description of one backend stack."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., pattern=r"^[a-z0-9][a-z0-9\-]*$")
    label: str = Field(default="")
    language: str
    framework: str
    persistence_model: PersistenceModel
    type_map: dict[LogicalType, NativeType]
    constraint_rules: dict[ConstraintKind, ConstraintRule] = Field(default_factory=dict)
    required_rule: Optional[ConstraintRule] = None
    optional_rule: Optional[ConstraintRule] = None
    template_set: dict[ArtifactKind, str]
    output_layout: dict[ArtifactKind, str] = Field(default_factory=dict)
    naming: NamingConventions = Field(default_factory=NamingConventions)
    route_pattern: str = Field(
        ..., description="Regex with 'method' and 'path' groups matching one route declaration"
    )
    status_check: Optional[StatusCheck] = Field(
        default=None, description="How to re-read per-action status literals from emitted source"
    )
    template_dir: Optional[Path] = Field(
        default=None, description="Extra template search path for this profile"
    )

    @field_validator("route_pattern")
    @classmethod
    def _route_pattern_groups(cls, value: str) -> str:
        return _compile_with_groups(value, {"method", "path"}, "route_pattern")

    @model_validator(mode="after")
    def _complete_template_set(self) -> "TargetProfile":
        missing = [k.value for k in REQUIRED_ARTIFACTS if k not in self.template_set]
        if self.persistence_model == PersistenceModel.RELATIONAL and ArtifactKind.JOIN_MODEL not in self.template_set:
            missing.append(ArtifactKind.JOIN_MODEL.value)
        if missing:
            raise ValueError(f"profile {self.id!r} has no template for: {', '.join(missing)}")
        return self

    # -- Convenience -----------------------------------------------------

    @property
    def supported_types(self) -> frozenset[LogicalType]:
        return frozenset(self.type_map)

    @property
    def supported_constraints(self) -> frozenset[ConstraintKind]:
        return frozenset(self.constraint_rules)

    @property
    def route_regex(self) -> re.Pattern[str]:
        return re.compile(self.route_pattern)
