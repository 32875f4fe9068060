"""Target profile registry.

The registry is the one piece of process-wide state in crudforge: it is
filled at start-up (built-in profiles plus any extra profile directories),
frozen, and then only read.  Profiles are stored as YAML documents; each
document deserialises into exactly one :class:`TargetProfile`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from crudforge.errors import RegistryError, UnknownTargetError

from .models import TargetProfile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Built-in data discovery
# ---------------------------------------------------------------------------

BUILTIN_PROFILE_DIR = Path(__file__).parent / "data"
BUILTIN_TEMPLATE_DIR = Path(__file__).parent / "templates"


# ---------------------------------------------------------------------------
# ProfileRegistry
# ---------------------------------------------------------------------------


class ProfileRegistry:
    """Lookup table of target profiles keyed by id.

    ``register`` is only allowed until :meth:`freeze` is called; afterwards
    the registry is read-only and safe to share between emission workers.
    """

    def __init__(self, profiles: Iterable[TargetProfile] = ()) -> None:
        self._profiles: dict[str, TargetProfile] = {}
        self._frozen = False
        for profile in profiles:
            self.register(profile)

    # -- Mutation (start-up only) -----------------------------------------

    def register(self, profile: TargetProfile) -> TargetProfile:
        """Add *profile*; duplicate ids and late registrations are errors."""
        if self._frozen:
            raise RegistryError(f"Registry is frozen; cannot register {profile.id!r}", target=profile.id)
        if profile.id in self._profiles:
            raise RegistryError(f"Target {profile.id!r} is already registered", target=profile.id)
        self._profiles[profile.id] = profile
        logger.debug("Registered target profile %s (%s)", profile.id, profile.persistence_model.value)
        return profile

    def load_file(self, path: str | Path) -> TargetProfile:
        """Parse and register one YAML profile document.

        A relative ``template_dir`` in the document is resolved against the
        document's own directory.
        """
        file_path = Path(path)
        try:
            data: Any = yaml.safe_load(file_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise RegistryError(f"Invalid YAML in profile {file_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise RegistryError(f"Profile {file_path} must be a mapping")

        template_dir = data.get("template_dir")
        if template_dir is not None and not Path(template_dir).is_absolute():
            data["template_dir"] = str((file_path.parent / template_dir).resolve())

        try:
            profile = TargetProfile.model_validate(data)
        except ValidationError as exc:
            raise RegistryError(f"Invalid profile {file_path}: {exc}") from exc
        return self.register(profile)

    def load_directory(self, directory: str | Path) -> list[TargetProfile]:
        """Register every ``*.yaml`` / ``*.yml`` profile under *directory*."""
        base = Path(directory)
        if not base.is_dir():
            raise RegistryError(f"Profile directory not found: {base}")
        paths = sorted([*base.glob("*.yaml"), *base.glob("*.yml")])
        return [self.load_file(p) for p in paths]

    def freeze(self) -> "ProfileRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- Read access ------------------------------------------------------

    def lookup(self, target_id: str) -> TargetProfile:
        """Return the profile for *target_id* or raise :class:`UnknownTargetError`."""
        try:
            return self._profiles[target_id]
        except KeyError:
            raise UnknownTargetError(target_id, list(self._profiles)) from None

    def ids(self) -> list[str]:
        return sorted(self._profiles)

    def template_dirs(self) -> list[Path]:
        """Template search path: profile-specific directories first, then built-ins."""
        dirs: list[Path] = []
        for profile in self._profiles.values():
            if profile.template_dir is not None and profile.template_dir not in dirs:
                dirs.append(profile.template_dir)
        dirs.append(BUILTIN_TEMPLATE_DIR)
        return dirs

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._profiles

    def __iter__(self) -> Iterator[TargetProfile]:
        return iter(self._profiles[k] for k in sorted(self._profiles))

    def __len__(self) -> int:
        return len(self._profiles)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def build_registry(extra_dirs: Iterable[str | Path] = ()) -> ProfileRegistry:
    """Create a frozen registry with the built-in profiles plus *extra_dirs*."""
    registry = ProfileRegistry()
    registry.load_directory(BUILTIN_PROFILE_DIR)
    for directory in extra_dirs:
        registry.load_directory(directory)
    return registry.freeze()


@lru_cache(maxsize=1)
def default_registry() -> ProfileRegistry:
    """The process-wide registry of built-in profiles (built once, frozen)."""
    return build_registry()
