"""Command-line surface: ``crudforge`` / ``python -m crudforge``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from crudforge.config import GeneratorConfig
from crudforge.errors import CrudforgeError
from crudforge.log import configure_logging
from crudforge.profiles.registry import build_registry, default_registry
from crudforge.resource import load_descriptions
from crudforge.session import GenerationSession, SessionResult
from crudforge.utils import (
    console,
    dump_json,
    format_duration,
    print_error,
    print_stage,
    print_success,
    print_summary_table,
    print_warning,
)
from crudforge.writer import FileWriter

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crudforge",
        description="crudforge -- generate equivalent CRUD backends for several stacks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  crudforge resources.yaml -t node-document -t go-relational\n"
            "  crudforge resources.json -o ./generated --contract contract.json\n"
            "  crudforge --list-targets\n"
        ),
    )
    parser.add_argument(
        "description",
        nargs="?",
        help="JSON or YAML file with the resource descriptions",
    )
    parser.add_argument(
        "--target", "-t",
        action="append",
        dest="targets",
        default=None,
        help="Target id to generate (repeatable; default: configured targets)",
    )
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Output directory (default: ./generated)",
    )
    parser.add_argument(
        "--contract",
        default=None,
        help="Write the canonical API contract as JSON to this path",
    )
    parser.add_argument(
        "--api-prefix",
        default=None,
        help="Path prefix for every generated route, e.g. /api/v1",
    )
    parser.add_argument(
        "--profile-dir",
        action="append",
        dest="profile_dirs",
        default=None,
        help="Extra directory of YAML target profiles (repeatable)",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Maximum concurrent emissions",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail the session on any invalid resource instead of dropping it",
    )
    parser.add_argument(
        "--list-targets",
        action="store_true",
        help="List the registered target profiles and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the session but do not write any file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _config_from_args(args: argparse.Namespace) -> GeneratorConfig:
    config = GeneratorConfig.from_env()
    updates: dict[str, object] = {}
    if args.output:
        updates["output_dir"] = Path(args.output)
    if args.api_prefix is not None:
        updates["api_prefix"] = args.api_prefix
    if args.profile_dirs:
        updates["profile_dirs"] = [*config.profile_dirs, *(Path(p) for p in args.profile_dirs)]
    if args.max_workers is not None:
        updates["max_workers"] = args.max_workers
    if args.strict:
        updates["strict_schema"] = True
    return GeneratorConfig.model_validate({**config.model_dump(), **updates})


def _list_targets(config: GeneratorConfig) -> int:
    registry = build_registry(config.profile_dirs) if config.profile_dirs else default_registry()
    print_summary_table(
        {p.id: f"{p.framework} ({p.persistence_model.value})" for p in registry},
        title="Registered targets",
    )
    return EXIT_OK


def _report(result: SessionResult) -> None:
    for state in result.history[1:]:
        print_stage(state.value)
    for diagnostic in result.diagnostics:
        if result.ok:
            print_warning(str(diagnostic))
        else:
            print_error(str(diagnostic))
    print_summary_table(
        {
            "Session": result.session_id,
            "State": result.state.value,
            "Targets": ", ".join(result.targets) or "-",
            "Resources": ", ".join(result.resources) or "-",
            "Artifacts": len(result.outputs),
            "Elapsed": format_duration(sum(result.timings.values())),
        },
        title="Generation",
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING, console)

    try:
        config = _config_from_args(args)
    except ValueError as exc:
        print_error(f"Error: invalid configuration: {exc}")
        return EXIT_USAGE

    try:
        if args.list_targets:
            return _list_targets(config)
    except CrudforgeError as exc:
        print_error(f"Error: {exc.message}")
        return EXIT_USAGE

    if not args.description:
        parser.print_usage(sys.stderr)
        print_error("Error: a resource description file is required")
        return EXIT_USAGE

    path = Path(args.description)
    if not path.exists():
        print_error(f"Error: description file not found: {path}")
        return EXIT_USAGE
    try:
        descriptions = load_descriptions(path)
    except ValueError as exc:
        print_error(f"Error: {exc}")
        return EXIT_USAGE

    try:
        session = GenerationSession(config)
    except CrudforgeError as exc:
        print_error(f"Error: {exc.message}")
        return EXIT_USAGE

    sink = None if args.dry_run else FileWriter(config.output_dir, session.registry)
    result = session.run_sync(descriptions, args.targets, sink)
    _report(result)

    if not result.ok:
        failed = result.failed_state.value if result.failed_state else "?"
        print_error(f"Generation failed in state {failed}.")
        return EXIT_FAILED

    if args.contract and result.contract is not None:
        dump_json(result.contract, args.contract)
    if args.dry_run:
        print_success(f"Dry run complete: {len(result.outputs)} artifact(s) generated, nothing written.")
    else:
        print_success(f"Generated {len(result.outputs)} file(s) under {config.output_dir}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
