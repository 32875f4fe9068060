"""Jinja2 template rendering for artifact emission.

Provides the TemplateRenderer class which loads Jinja2 templates from the
profile template directories and renders them with a per-artifact context.
Supports file-based rendering (artifact templates) and string-based rendering
(the small inline templates that profiles use for type names and constraint
annotations).
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template

from crudforge.profiles.registry import BUILTIN_TEMPLATE_DIR
from crudforge.utils import pluralize, to_camel, to_kebab, to_pascal, to_snake


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for every target profile.

    Templates are addressed relative to one of the search directories (e.g.
    ``"node-document/model.js.j2"``).  Undefined variables raise instead of
    rendering as empty strings, so a template referring to a context key the
    emitter does not provide fails loudly.
    """

    def __init__(self, search_paths: Iterable[str | Path] | None = None) -> None:
        paths = [Path(p) for p in (search_paths or [BUILTIN_TEMPLATE_DIR])]
        self.search_paths = paths
        self.env = Environment(
            loader=FileSystemLoader([str(p) for p in paths]),
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        # Register custom filters
        self.env.filters["pascal_case"] = to_pascal
        self.env.filters["snake_case"] = to_snake
        self.env.filters["camel_case"] = to_camel
        self.env.filters["kebab_case"] = to_kebab
        self.env.filters["plural"] = pluralize
        self._string_cache: dict[str, Template] = {}
        self._lock = threading.Lock()

    # -- Single template rendering -----------------------------------------

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a single template file with the provided context."""
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context.

        Compiled templates are cached per source string; profile rules are
        rendered once per field per target.
        """
        with self._lock:
            template = self._string_cache.get(template_string)
            if template is None:
                template = self.env.from_string(template_string)
                self._string_cache[template_string] = template
        return template.render(**context)

    # -- Utility -----------------------------------------------------------

    def has_template(self, template_path: str) -> bool:
        return template_path in self.list_templates()

    def list_templates(self, prefix: str = "") -> list[str]:
        """Return a sorted list of all ``.j2`` template paths under *prefix*."""
        found: set[str] = set()
        for base in self.search_paths:
            search_dir = base / prefix if prefix else base
            if not search_dir.is_dir():
                continue
            found.update(
                p.relative_to(base).as_posix() for p in search_dir.rglob("*.j2")
            )
        return sorted(found)
