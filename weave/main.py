#!/usr/bin/env python3
"""weave/main.py — CLI entry-point for the weave template compiler.

Usage examples
--------------
    # Compile a template to an ES module
    python -m weave compile app.svelte -o app.js

    # Compile to CommonJS on stdout
    python -m weave compile app.svelte -o - --format cjs

    # Dump the markup AST as JSON (debugging aid)
    python -m weave parse app.svelte

    # Dump the dependency analysis as JSON
    python -m weave analyze app.svelte

    # Show version and exit
    python -m weave --version

Exit codes
----------
    0   Success.
    1   The template failed to compile (diagnostic on stderr).
    2   Infrastructure failure (missing file, unreadable input, bad options).

The module doubles as ``python -m weave`` via the companion
``weave/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO, Tuple

from weave import __version__
from weave.compiler import compile_template
from weave.config import MODULE_FORMATS, CompileOptions
from weave.errors import CompileError
from weave.parser import parse

_log = logging.getLogger("weave")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2

_cli_handler: Optional[logging.Handler] = None


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``weave`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    global _cli_handler

    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("weave")
    if _cli_handler is not None:
        root.removeHandler(_cli_handler)
    root.setLevel(level)
    root.addHandler(handler)
    _cli_handler = handler


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.is_file():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _read_template(raw: str) -> Tuple[Path, str]:
    path = _resolve_path(raw, "template")
    try:
        return path, path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        _log.error("cannot read %s: %s", path, exc)
        raise SystemExit(EXIT_INFRA)


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _write(dest: Optional[str], text: str) -> None:
    out = _open_output(dest)
    try:
        out.write(text)
    finally:
        if out is not sys.stdout:
            out.close()


def _dump_json(dest: Optional[str], data: Any) -> None:
    _write(dest, json.dumps(data, indent=2) + "\n")


def _report(exc: CompileError) -> int:
    print(exc.to_gcc_format(), file=sys.stderr)
    return EXIT_ERROR


# ===========================================================================
# Sub-commands
# ===========================================================================

def cmd_compile(args: argparse.Namespace) -> int:
    """Compile a template to a JavaScript module (stdout without ``-o``)."""
    path, source = _read_template(args.template)
    options = CompileOptions(filename=str(path)).with_overrides(
        format=args.format,
        event_prefix=args.event_prefix,
    )

    _log.info("Compiling %s", path)
    try:
        result = compile_template(source, options)
    except CompileError as exc:
        return _report(exc)
    except ValueError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    dest = args.output
    try:
        _write(dest, result.js)
    except OSError as exc:
        _log.error("cannot write %s: %s", dest, exc)
        return EXIT_INFRA
    if dest not in (None, "-"):
        _log.info("Wrote %s (%d bindings, %d variables)", dest, len(result.bindings), len(result.variables))
    return EXIT_OK


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse a template and print its markup AST as JSON."""
    path, source = _read_template(args.template)
    try:
        document = parse(source, filename=str(path))
    except CompileError as exc:
        return _report(exc)
    _dump_json(args.output, document.to_dict())
    return EXIT_OK


def cmd_analyze(args: argparse.Namespace) -> int:
    """Analyse a template and print its dependency analysis as JSON.

    Reactive declarations are listed in execution order.
    """
    path, source = _read_template(args.template)
    try:
        result = compile_template(source, CompileOptions(filename=str(path)))
    except CompileError as exc:
        return _report(exc)
    script = result.document.script
    _dump_json(args.output, result.analysis.to_dict(script.program if script else None))
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    parser = argparse.ArgumentParser(
        prog="weave",
        description=(
            "weave — compile markup+script templates into reactive\n"
            "JavaScript modules with a create/update/destroy lifecycle."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              weave compile app.svelte -o app.js
              weave compile app.svelte --format cjs
              weave analyze app.svelte
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_common_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("template", metavar="TEMPLATE", help="Template file to read.")
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" for stdout).',
        )

    # --- compile --------------------------------------------------------------
    p_compile = subparsers.add_parser(
        "compile",
        help="Compile a template to a JavaScript module.",
    )
    _add_common_args(p_compile)
    p_compile.add_argument(
        "-f", "--format",
        choices=MODULE_FORMATS,
        default=None,
        help="Module format (default: esm).",
    )
    p_compile.add_argument(
        "--event-prefix",
        default=None,
        metavar="PREFIX",
        help='Attribute prefix marking event handlers (default: "on:").',
    )
    p_compile.set_defaults(func=cmd_compile)

    # --- parse ----------------------------------------------------------------
    p_parse = subparsers.add_parser(
        "parse",
        help="Dump the markup AST as JSON.",
    )
    _add_common_args(p_parse)
    p_parse.set_defaults(func=cmd_parse)

    # --- analyze --------------------------------------------------------------
    p_analyze = subparsers.add_parser(
        "analyze",
        help="Dump the dependency analysis as JSON.",
    )
    _add_common_args(p_analyze)
    p_analyze.set_defaults(func=cmd_analyze)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the weave CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
