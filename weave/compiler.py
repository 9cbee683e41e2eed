"""weave/compiler.py – one-call facade over parse → analyse → generate.

Usage::

    from weave.compiler import compile_template

    result = compile_template(text, CompileOptions(filename="app.svelte"))
    result.write_to_file("app.js")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from weave.analyzer import AnalysisResult, Analyzer
from weave.ast_nodes import Document
from weave.codegen import CodeGenerator
from weave.config import CompileOptions
from weave.parser import parse

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    """Generated module plus the intermediate artefacts that produced it."""

    js: str
    document: Document
    analysis: AnalysisResult
    bindings: Dict[str, int] = field(default_factory=dict)
    variables: List[str] = field(default_factory=list)

    def write_to_file(self, path: str) -> None:
        """Write the generated module to *path*."""
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.js)


def compile_template(source: str, options: Optional[CompileOptions] = None) -> CompileResult:
    """Compile template *source* to a JavaScript module.

    Raises:
        ValueError: if *options* does not validate.
        ParseError: on any grammar violation in the template.
        CircularDependencyError: if reactive declarations form a cycle.
    """
    options = options or CompileOptions()
    problems = options.validate()
    if problems:
        raise ValueError("Invalid compile options: " + "; ".join(problems))

    logger.debug("parsing %s (%d chars)", options.filename, len(source))
    document = parse(source, filename=options.filename)

    logger.debug("analysing %s", options.filename)
    analysis = Analyzer(options).analyze(document)

    logger.debug("generating %s module for %s", options.format, options.filename)
    code = CodeGenerator(options).generate(document, analysis)

    return CompileResult(
        js=code.js,
        document=document,
        analysis=analysis,
        bindings=code.bindings,
        variables=code.variables,
    )


__all__ = ["CompileResult", "compile_template"]
