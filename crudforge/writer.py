"""Filesystem sink for completed sessions.

Each output lands at ``<root>/<target_id>/<layout path>``, where the layout
path comes from the profile's ``output_layout`` template for the artifact
kind (rendered with ``name`` and ``resource``).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from crudforge.emitter.templates import TemplateRenderer
from crudforge.errors import SessionError
from crudforge.profiles.models import TargetProfile
from crudforge.profiles.registry import ProfileRegistry, default_registry
from crudforge.utils import to_snake

if TYPE_CHECKING:
    from crudforge.session import SessionOutput

logger = logging.getLogger(__name__)


class FileWriter:
    """Writes session outputs below *root*, one directory per target."""

    def __init__(self, root: str | Path, registry: ProfileRegistry | None = None) -> None:
        self.root = Path(root)
        self.registry = registry or default_registry()
        self.renderer = TemplateRenderer(self.registry.template_dirs())

    def path_for(self, output: SessionOutput) -> Path:
        """Destination of *output*, relative to the writer root."""
        profile = self.registry.lookup(output.target_id)
        relative = self._layout(profile, output)
        if relative.is_absolute() or ".." in relative.parts:
            raise SessionError(
                f"Output layout escapes the target directory: {relative}",
                resource=output.resource_name,
                target=output.target_id,
            )
        return Path(output.target_id, *relative.parts)

    def write(self, outputs: Sequence[SessionOutput]) -> list[Path]:
        """Write every output and return the absolute paths, in output order.

        Nothing is written when two outputs map to the same path.
        """
        destinations: dict[Path, SessionOutput] = {}
        for output in outputs:
            relative = self.path_for(output)
            first = destinations.setdefault(relative, output)
            if first is not output:
                raise SessionError(
                    f"{output.kind.value} {output.name!r} and {first.kind.value} {first.name!r} "
                    f"both map to {relative}",
                    resource=output.resource_name,
                    target=output.target_id,
                )

        written: list[Path] = []
        for relative, output in destinations.items():
            destination = self.root / relative
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text(output.source_text, encoding="utf-8")
            written.append(destination)
        logger.info("Wrote %d file(s) under %s", len(written), self.root)
        return written

    def _layout(self, profile: TargetProfile, output: SessionOutput) -> PurePosixPath:
        layout = profile.output_layout.get(output.kind)
        if layout is None:
            # e.g. "node-document/model.js.j2" -> "model/task.js"
            template = PurePosixPath(profile.template_set[output.kind]).name
            suffix = PurePosixPath(template.removesuffix(".j2")).suffix
            return PurePosixPath(output.kind.value.lower(), f"{to_snake(output.name)}{suffix}")
        rendered = self.renderer.render_string(
            layout, {"name": output.name, "resource": output.resource_name}
        )
        return PurePosixPath(rendered.strip())
