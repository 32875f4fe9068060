"""Shared utility functions for crudforge.

Provides naming helpers used by the IR, the profiles and the templates,
JSON/YAML document loading for the command surface, duration formatting and
Rich-based console reporting.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.rule import Rule
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------

_WORD_BOUNDARY = re.compile(r"[-_\s]+")


def split_words(name: str) -> list[str]:
    """Split ``BlogPost``, ``blog_post`` or ``blog-post`` into lowercase words."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1 \2", name.strip())
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", s1)
    return [w.lower() for w in _WORD_BOUNDARY.split(s2) if w]


def to_pascal(name: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    return "".join(word.capitalize() for word in split_words(name))


def to_camel(name: str) -> str:
    """Convert ``some-thing`` or ``SomeThing`` to ``someThing``."""
    pascal = to_pascal(name)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""


def to_snake(name: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    return "_".join(split_words(name))


def to_kebab(name: str) -> str:
    """Convert ``SomeThing`` or ``some_thing`` to ``some-thing``."""
    return "-".join(split_words(name))


def pluralize(word: str) -> str:
    """Simple English pluralization of the last word of an identifier."""
    if not word:
        return word
    lower = word.lower()
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        return word[:-1] + "ies"
    if lower.endswith(("s", "sh", "ch", "x", "z")):
        return word + "es"
    return word + "s"


def singularize(word: str) -> str:
    """Simple English singularization."""
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith(("ses", "xes", "zes", "shes", "ches")):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


CASE_CONVERTERS = {
    "camel": to_camel,
    "pascal": to_pascal,
    "snake": to_snake,
    "kebab": to_kebab,
}


def convert_case(name: str, case: str) -> str:
    """Apply one of the ``camel``/``pascal``/``snake``/``kebab`` conventions."""
    try:
        return CASE_CONVERTERS[case](name)
    except KeyError:
        raise ValueError(f"Unknown naming convention: {case!r}") from None


# ---------------------------------------------------------------------------
# Document I/O
# ---------------------------------------------------------------------------


def load_document(path: str | Path) -> Any:
    """Load a JSON or YAML document, choosing the parser by file suffix.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the content cannot be parsed.
    """
    file_path = Path(path)
    raw = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() in (".yaml", ".yml"):
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {file_path}: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {file_path}: {exc}") from exc


def dump_json(data: Any, path: str | Path) -> Path:
    """Write *data* as pretty-printed JSON, creating parent directories."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(
        json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )
    return file_path


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(0.0042) -> "4ms"
        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
    """
    if seconds < 0:
        return "0ms"
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    minutes = int(seconds // 60)
    if minutes:
        return f"{minutes}m {int(seconds % 60)}s"
    return f"{seconds:.1f}s"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------

STATE_COLORS: dict[str, str] = {
    "loaded": "bright_cyan",
    "mapped": "bright_green",
    "emitted": "bright_yellow",
    "validated": "bright_magenta",
    "completed": "bright_blue",
    "failed": "bright_red",
}


def print_stage(name: str) -> None:
    """Print a full-width rule announcing a session state."""
    color = STATE_COLORS.get(name.lower(), "white")
    console.print(Rule(f"[bold {color}] {name.upper()} [/bold {color}]", style=color))


def print_summary_table(data: dict[str, Any], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
