"""crudforge configuration.

Centralised, typed configuration for generation sessions. All settings use
Pydantic v2 models so they can be validated at construction time and
serialised to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator


class PagingConfig(BaseModel):
    """Pagination contract shared by every target's list endpoint."""

    page_param: str = Field(default="page", min_length=1)
    limit_param: str = Field(default="limit", min_length=1)
    sort_param: str = Field(default="sort", min_length=1)
    default_page: int = Field(default=1, ge=1)
    default_limit: int = Field(default=10, ge=1)
    max_limit: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def _limit_within_max(self) -> "PagingConfig":
        if self.default_limit > self.max_limit:
            raise ValueError(
                f"default_limit ({self.default_limit}) exceeds max_limit ({self.max_limit})"
            )
        return self


class GeneratorConfig(BaseModel):
    """Global generator configuration.

    Instances are typically created once by the CLI entry point (or by an
    embedding application) and handed to every :class:`GenerationSession`.
    """

    api_prefix: str = Field(
        default="",
        description="Path prefix for every generated route, e.g. '/api/v1'",
    )
    paging: PagingConfig = Field(default_factory=PagingConfig)
    max_workers: int = Field(
        default=4, ge=1, description="Maximum concurrent (resource, target) emissions"
    )
    strict_schema: bool = Field(
        default=False,
        description="Fail the whole session on any SchemaError instead of dropping the failing resource",
    )
    default_targets: list[str] = Field(
        default_factory=lambda: ["node-document", "node-relational"],
    )
    output_dir: Path = Field(default=Path("./generated"))
    profile_dirs: list[Path] = Field(
        default_factory=list,
        description="Extra directories of YAML target profiles to register",
    )

    @model_validator(mode="after")
    def _normalise_prefix(self) -> "GeneratorConfig":
        prefix = self.api_prefix.strip()
        if prefix:
            prefix = "/" + prefix.strip("/")
        self.api_prefix = prefix
        return self

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "GeneratorConfig":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "GeneratorConfig":
        """Build a ``GeneratorConfig`` from environment variables.

        Recognised variables (all optional):
            CRUDFORGE_API_PREFIX, CRUDFORGE_MAX_WORKERS, CRUDFORGE_STRICT_SCHEMA,
            CRUDFORGE_TARGETS, CRUDFORGE_OUTPUT_DIR, CRUDFORGE_PROFILE_DIRS,
            CRUDFORGE_DEFAULT_LIMIT, CRUDFORGE_MAX_LIMIT.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("CRUDFORGE_API_PREFIX"):
            kwargs["api_prefix"] = os.environ["CRUDFORGE_API_PREFIX"]
        if os.environ.get("CRUDFORGE_MAX_WORKERS"):
            kwargs["max_workers"] = int(os.environ["CRUDFORGE_MAX_WORKERS"])
        if os.environ.get("CRUDFORGE_STRICT_SCHEMA"):
            kwargs["strict_schema"] = os.environ["CRUDFORGE_STRICT_SCHEMA"].lower() in (
                "1", "true", "yes", "on",
            )
        if os.environ.get("CRUDFORGE_TARGETS"):
            kwargs["default_targets"] = [
                t.strip() for t in os.environ["CRUDFORGE_TARGETS"].split(",") if t.strip()
            ]
        if os.environ.get("CRUDFORGE_OUTPUT_DIR"):
            kwargs["output_dir"] = Path(os.environ["CRUDFORGE_OUTPUT_DIR"])
        if os.environ.get("CRUDFORGE_PROFILE_DIRS"):
            kwargs["profile_dirs"] = [
                Path(p) for p in os.environ["CRUDFORGE_PROFILE_DIRS"].split(os.pathsep) if p
            ]

        paging_kwargs: dict[str, Any] = {}
        if os.environ.get("CRUDFORGE_DEFAULT_LIMIT"):
            paging_kwargs["default_limit"] = int(os.environ["CRUDFORGE_DEFAULT_LIMIT"])
        if os.environ.get("CRUDFORGE_MAX_LIMIT"):
            paging_kwargs["max_limit"] = int(os.environ["CRUDFORGE_MAX_LIMIT"])

        return cls(paging=PagingConfig(**paging_kwargs), **kwargs)
