"""Target profile registry.

Built-in profiles live in ``crudforge/profiles/data/*.yaml`` with their
Jinja2 templates under ``crudforge/profiles/templates/<target-id>/``.
"""

from crudforge.profiles.models import (
    ArtifactKind,
    ConstraintRule,
    NamingConventions,
    NativeType,
    PersistenceModel,
    StatusCheck,
    TargetProfile,
)
from crudforge.profiles.registry import ProfileRegistry, build_registry, default_registry

__all__ = [
    "ArtifactKind",
    "ConstraintRule",
    "NamingConventions",
    "NativeType",
    "PersistenceModel",
    "ProfileRegistry",
    "StatusCheck",
    "TargetProfile",
    "build_registry",
    "default_registry",
]
