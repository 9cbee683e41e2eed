"""weave — a minimal reactive template compiler.

This package compiles a markup+script template (HTML-like markup, one
``<script>`` block and ``{...}`` interpolations) into a JavaScript module
whose factory returns a ``create`` / ``update`` / ``destroy`` lifecycle.

Submodules
----------
script
    tree-sitter JavaScript front-end: ``parse_program``,
    ``parse_expression_at`` and name-extraction helpers.

parser
    Recursive-descent markup parser producing the ``Document`` AST.

scope
    Lexical scope tree over the script.

analyzer
    ``willChange`` / ``willUseInTemplate`` and reactive declarations.

codegen
    Instrumentation, reactive ordering and module assembly.

compiler
    ``compile_template`` facade over the whole pipeline.

errors
    ``CompileError`` hierarchy with ``WEAVE-XXXX`` codes.

main
    CLI entry-point with subcommands: ``compile``, ``parse``, ``analyze``.

Usage
-----
Command-line::

    python -m weave compile app.svelte -o app.js

Programmatic::

    from weave import CompileOptions, compile_template

    result = compile_template(text, CompileOptions(filename="app.svelte"))
    print(result.js)
"""

from __future__ import annotations

__version__: str = "0.1.0"

from weave.compiler import CompileResult, compile_template  # noqa: E402
from weave.config import CompileOptions  # noqa: E402
from weave.errors import CircularDependencyError, CompileError, ParseError  # noqa: E402

__all__: list[str] = [
    "__version__",
    "CompileOptions",
    "CompileResult",
    "compile_template",
    "CompileError",
    "ParseError",
    "CircularDependencyError",
]
