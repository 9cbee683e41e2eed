#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
weave/codegen.py
================

Code generator for weave templates.

This module turns an analysed document into a JavaScript module exporting
one parameterless factory.  The factory returns the lifecycle object
``{create(target), update(changed), destroy()}``.  The generated module:

1. Declares one binding per DOM node, hoisted handler and reactive assignee
2. Declares the change-notification dispatcher ``$$invalidate``
3. Embeds the instrumented script body
4. Runs one dispatcher pass seeded with every reactive binding
5. Defines ``update_reactive_declarations`` in dependency order
6. Builds the lifecycle object

Architecture
------------
The generator runs in four passes:

1. **Markup traversal** — create/update/destroy statements per fragment
2. **Instrumentation** — mutations of tracked module bindings are wrapped in
   ``$$invalidate([indices], <mutation>)``
3. **Reactive ordering** — Kahn's algorithm over assignee → dependent edges
4. **Assembly** — module text through :class:`CodeEmitter`

Change sets
-----------
Every reactive binding gets a compile-time index (sorted name order).  At
run time a change set is a ``Uint32Array`` with one bit per binding, and a
guard is a mask test per 32-bit word::

    if (changed[0] & 5 /* a, c */) { ... }
"""

from __future__ import annotations

import heapq
import json
import keyword
import logging
import re
from dataclasses import dataclass, field
from io import StringIO
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

from weave.analyzer import AnalysisResult, ReactiveDeclaration, extract_template_names
from weave.ast_nodes import Attribute, Document, Element, Expression, Script, Text
from weave.config import CompileOptions
from weave.errors import CircularDependencyError, SourceSpan
from weave.scope import Scope, ScopeTree
from weave.script import (
    MUTATION_TYPES,
    ScriptExpression,
    ScriptSource,
    SourcePatch,
    mutation_target,
    node_name,
    target_names,
)
from weave.visitor import FragmentVisitor

__all__ = [
    "generate",
    "CodeGenerator",
    "CodeEmitter",
    "NameCounter",
    "GuardedBlock",
    "GeneratedCode",
    "change_condition",
    "as_operand",
    "instrument",
    "order_reactive_declarations",
]

logger = logging.getLogger(__name__)

_WORD_BITS = 32

# JavaScript reserved words that may not name a generated variable.
_JS_RESERVED = frozenset("""
    break case catch class const continue debugger default delete do else enum
    export extends false finally for function if implements import in
    instanceof interface let new null package private protected public return
    static super switch this throw true try typeof var void while with yield
    await
""".split())


# ═══════════════════════════════════════════════════════════════════════════
# CODE EMITTER
# ═══════════════════════════════════════════════════════════════════════════

class CodeEmitter:
    """Low-level code emission with indentation management.

    Provides a structured way to emit JavaScript with:
    - Automatic indentation tracking
    - Brace-block context managers
    - String literal escaping
    """

    def __init__(self, indent_str: str = "    ") -> None:
        self._buffer = StringIO()
        self._indent_str = indent_str
        self._indent_level = 0

    def emit(self, code: str) -> None:
        """Emit a line of code at the current indentation.

        Only the first line of a multi-line *code* is indented; the rest is
        written verbatim so template literals keep their content.
        """
        if code.strip():
            self._buffer.write(self._indent_str * self._indent_level)
            self._buffer.write(code)
        self._buffer.write("\n")

    def emit_all(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.emit(line)

    def emit_blank(self, count: int = 1) -> None:
        """Emit blank lines."""
        self._buffer.write("\n" * count)

    def indent(self) -> None:
        """Increase indentation level."""
        self._indent_level += 1

    def dedent(self) -> None:
        """Decrease indentation level."""
        self._indent_level = max(0, self._indent_level - 1)

    def block(self, header: str, close: str = "}") -> "CodeEmitter._BlockContext":
        """Context manager for a ``header {`` ... ``}`` block."""
        return self._BlockContext(self, header, close)

    class _BlockContext:
        """Context manager for code blocks."""

        def __init__(self, emitter: "CodeEmitter", header: str, close: str) -> None:
            self._emitter = emitter
            self._header = header
            self._close = close

        def __enter__(self) -> "CodeEmitter":
            self._emitter.emit(self._header)
            self._emitter.indent()
            return self._emitter

        def __exit__(self, *args: Any) -> None:
            self._emitter.dedent()
            self._emitter.emit(self._close)

    def get_code(self) -> str:
        """Get the generated code."""
        return self._buffer.getvalue()

    @staticmethod
    def escape_string(s: str) -> str:
        """Escape a string as a JavaScript string literal."""
        return json.dumps(s, ensure_ascii=False)

    @staticmethod
    def make_identifier(name: str) -> str:
        """Convert a name to a valid JavaScript identifier."""
        # Replace hyphens and other separators with underscores
        result = re.sub(r"[-:.]", "_", name)
        # Remove invalid characters
        result = re.sub(r"[^a-zA-Z0-9_$]", "", result)
        # Ensure doesn't start with digit
        if result and result[0].isdigit():
            result = "_" + result
        if result in _JS_RESERVED or keyword.iskeyword(result):
            result = result + "_"
        return result or "_unnamed"


# ═══════════════════════════════════════════════════════════════════════════
# GENERATED CODE CONTAINERS
# ═══════════════════════════════════════════════════════════════════════════

class NameCounter:
    """Source of generated names; one instance per generation pass."""

    def __init__(self, start: int = 1) -> None:
        self._next = start

    def fresh(self, prefix: str) -> str:
        name = f"{prefix}_{self._next}"
        self._next += 1
        return name


@dataclass
class GuardedBlock:
    """Statements that run when any of ``names`` is in the change set.

    An empty ``names`` list means the block runs unconditionally.
    """
    names: List[str]
    statements: List[str]


@dataclass
class GeneratedCode:
    """Everything the generator produced for one document."""
    variables: List[str] = field(default_factory=list)
    create: List[str] = field(default_factory=list)
    update: List[GuardedBlock] = field(default_factory=list)
    destroy: List[str] = field(default_factory=list)
    reactive_declarations: List[GuardedBlock] = field(default_factory=list)
    bindings: Dict[str, int] = field(default_factory=dict)
    js: str = ""


def change_condition(names: Iterable[str], bindings: Dict[str, int], dirty: str) -> str:
    """Bit test that is true when any of *names* is set in *dirty*."""
    words: Dict[int, int] = {}
    for name in names:
        index = bindings[name]
        words[index // _WORD_BITS] = words.get(index // _WORD_BITS, 0) | (1 << (index % _WORD_BITS))
    tests = [f"{dirty}[{word}] & {mask}" for word, mask in sorted(words.items())]
    if len(tests) > 1:
        tests = [f"({test})" for test in tests]
    label = ", ".join(sorted(set(names), key=bindings.__getitem__))
    return f"{' || '.join(tests)} /* {label} */"


def as_operand(expression: ScriptExpression, text: str) -> str:
    """*text* made safe as an argument or assignment value.

    Only a comma sequence needs it: ``f(a, b)`` would pass two arguments.
    """
    if expression.node.type == "sequence_expression":
        return f"({text})"
    return text


# ═══════════════════════════════════════════════════════════════════════════
# INSTRUMENTATION
# ═══════════════════════════════════════════════════════════════════════════

def instrument(
    node: Any,
    source: ScriptSource,
    scopes: ScopeTree,
    module_scope: Scope,
    tracked: Set[str],
    bindings: Dict[str, int],
    patch: SourcePatch,
) -> int:
    """Wrap tracked module-level mutations under *node* in ``$$invalidate``.

    Returns the number of rewritten expressions.
    """
    rewritten = 0
    stack = [(node, scopes.root)]
    while stack:
        current, scope = stack.pop()
        scope = scopes.scope_at(current, scope)
        if current.type in MUTATION_TYPES:
            names = [
                name for name in target_names(mutation_target(current), source)
                if name in tracked and name in bindings and scope.find_owner(name) is module_scope
            ]
            if names:
                indices = ", ".join(str(i) for i in sorted({bindings[n] for n in names}))
                patch.wrap(current, f"$$invalidate([{indices}], ", ")")
                rewritten += 1
                continue
        stack.extend((child, scope) for child in reversed(current.children))
    return rewritten


# ═══════════════════════════════════════════════════════════════════════════
# REACTIVE ORDERING
# ═══════════════════════════════════════════════════════════════════════════

def order_reactive_declarations(
    declarations: Sequence[ReactiveDeclaration],
    locate: Optional[Callable[[ReactiveDeclaration], SourceSpan]] = None,
) -> List[ReactiveDeclaration]:
    """Topologically order *declarations*.

    A declaration runs after every declaration whose assignee it reads.
    Among independent declarations the original source order wins.  A
    cycle raises :class:`CircularDependencyError`.
    """
    producers: Dict[str, List[int]] = {}
    for pos, decl in enumerate(declarations):
        for assignee in decl.assignees:
            producers.setdefault(assignee, []).append(pos)

    successors: Dict[int, Set[int]] = {pos: set() for pos in range(len(declarations))}
    indegree = [0] * len(declarations)
    for pos, decl in enumerate(declarations):
        for dependency in decl.dependencies:
            for producer in producers.get(dependency, ()):
                if producer != pos and pos not in successors[producer]:
                    successors[producer].add(pos)
                    indegree[pos] += 1

    ready = [(decl.index, pos) for pos, decl in enumerate(declarations) if indegree[pos] == 0]
    heapq.heapify(ready)
    order: List[int] = []
    while ready:
        _, pos = heapq.heappop(ready)
        order.append(pos)
        for succ in successors[pos]:
            indegree[succ] -= 1
            if indegree[succ] == 0:
                heapq.heappush(ready, (declarations[succ].index, succ))

    if len(order) < len(declarations):
        cycle = _find_cycle(successors, set(range(len(declarations))) - set(order))
        names = [declarations[pos].assignees[0] if declarations[pos].assignees else "?" for pos in cycle]
        first = declarations[cycle[0]]
        raise CircularDependencyError(names + names[:1], span=locate(first) if locate else None)

    return [declarations[pos] for pos in order]


def _find_cycle(successors: Dict[int, Set[int]], remaining: Set[int]) -> List[int]:
    """One cycle among *remaining*, in dependency order."""
    predecessors: Dict[int, List[int]] = {pos: [] for pos in remaining}
    for pos in remaining:
        for succ in successors[pos]:
            if succ in remaining:
                predecessors[succ].append(pos)

    # Every unordered declaration has an unordered predecessor, so walking
    # backwards must revisit a node.
    path: List[int] = []
    seen: Dict[int, int] = {}
    current = min(remaining)
    while current not in seen:
        seen[current] = len(path)
        path.append(current)
        current = min(predecessors[current])
    cycle = path[seen[current]:]
    cycle.reverse()
    return cycle


# ═══════════════════════════════════════════════════════════════════════════
# MARKUP TRAVERSAL
# ═══════════════════════════════════════════════════════════════════════════

class _MarkupGenerator(FragmentVisitor):
    """Emits create/update/destroy statements for the markup.

    Every ``visit_X`` receives the parent's DOM variable and the
    :class:`NameCounter` of the pass.
    """

    def __init__(
        self,
        code: GeneratedCode,
        analysis: AnalysisResult,
        program: Optional[ScriptSource],
        options: CompileOptions,
    ) -> None:
        self._code = code
        self._analysis = analysis
        self._program = program
        self._options = options
        self._top = "$$target"

    def _changing(self, expression: ScriptExpression) -> List[str]:
        names = extract_template_names(expression.node, expression, self._program)
        return [name for name in names if name in self._analysis.will_change]

    def visit_element(self, node: Element, parent: str, names: NameCounter) -> None:
        var = names.fresh(CodeEmitter.make_identifier(node.name))
        self._code.variables.append(var)
        self._code.create.append(f"{var} = document.createElement({CodeEmitter.escape_string(node.name)});")
        for attribute in node.attributes:
            self.visit(attribute, var, names)
        for child in node.children:
            self.visit(child, var, names)
        self._code.create.append(f"{parent}.appendChild({var});")
        self._code.destroy.append(f"{parent}.removeChild({var});")

    def visit_text(self, node: Text, parent: str, names: NameCounter) -> None:
        var = names.fresh("txt")
        self._code.variables.append(var)
        self._code.create.append(f"{var} = document.createTextNode({CodeEmitter.escape_string(node.value)});")
        self._code.create.append(f"{parent}.appendChild({var});")
        if parent == self._top:
            self._code.destroy.append(f"{parent}.removeChild({var});")

    def visit_expression(self, node: Expression, parent: str, names: NameCounter) -> None:
        var = names.fresh("txt")
        source = as_operand(node.expression, node.expression.text)
        self._code.variables.append(var)
        self._code.create.append(f"{var} = document.createTextNode({source});")
        self._code.create.append(f"{parent}.appendChild({var});")
        if parent == self._top:
            self._code.destroy.append(f"{parent}.removeChild({var});")

        changing = self._changing(node.expression)
        if changing:
            self._code.update.append(GuardedBlock(changing, [f"{var}.data = {source};"]))

    def visit_attribute(self, node: Attribute, parent: str, names: NameCounter) -> None:
        prefix = self._options.event_prefix
        if node.name.startswith(prefix) and node.is_expression:
            self._event_listener(node, node.name[len(prefix):], parent, names)
            return

        if node.is_expression:
            value = as_operand(node.value, node.value.text)
            changing = self._changing(node.value)
        else:
            value = CodeEmitter.escape_string(node.value)
            changing = []
        statement = f"{parent}.setAttribute({CodeEmitter.escape_string(node.name)}, {value});"
        self._code.create.append(statement)
        if changing:
            self._code.update.append(GuardedBlock(changing, [statement]))

    def _event_listener(self, node: Attribute, event: str, parent: str, names: NameCounter) -> None:
        expression: ScriptExpression = node.value
        handler = node_name(expression.node, expression)
        if handler is None:
            handler = names.fresh(f"{CodeEmitter.make_identifier(event)}_handler")
            self._code.variables.append(handler)
            value = as_operand(expression, self._instrumented(expression))
            self._code.create.append(f"{handler} = {value};")

        event_literal = CodeEmitter.escape_string(event)
        self._code.create.append(f"{parent}.addEventListener({event_literal}, {handler});")
        self._code.destroy.append(f"{parent}.removeEventListener({event_literal}, {handler});")

    def _instrumented(self, expression: ScriptExpression) -> str:
        scopes = self._analysis.handler_scopes.get(expression.node.id)
        if scopes is None:
            return expression.text
        patch = SourcePatch()
        instrument(
            expression.node,
            expression,
            scopes,
            self._analysis.scopes.root,
            self._analysis.tracked,
            self._analysis.bindings,
            patch,
        )
        return expression.slice(expression.node, patch)


# ═══════════════════════════════════════════════════════════════════════════
# CODE GENERATOR
# ═══════════════════════════════════════════════════════════════════════════

class CodeGenerator:
    """Generates the JavaScript module for an analysed document."""

    def __init__(self, options: Optional[CompileOptions] = None) -> None:
        self._options = options or CompileOptions()

    def generate(self, document: Document, analysis: AnalysisResult) -> GeneratedCode:
        script = document.script
        program = script.program if script is not None else None
        bindings = analysis.bindings
        code = GeneratedCode(bindings=bindings)

        # Pass 1: markup
        markup = _MarkupGenerator(code, analysis, program, self._options)
        names = NameCounter()
        for fragment in document.html:
            markup.visit(fragment, "$$target", names)
        for block in code.update:
            block.names = sorted(set(block.names), key=bindings.__getitem__)

        # Pass 2: instrumentation
        if script is not None:
            script.patch = SourcePatch()
            rewritten = 0
            for statement in script.body:
                rewritten += instrument(
                    statement, program, analysis.scopes, analysis.scopes.root,
                    analysis.tracked, bindings, script.patch,
                )
            logger.debug("instrumented %d mutation(s)", rewritten)

        # Pass 3: reactive ordering
        def locate(decl: ReactiveDeclaration) -> SourceSpan:
            return SourceSpan.from_offset(
                document.source, program.char_offset(decl.node.start_byte), document.filename,
            )

        analysis.reactive_declarations = order_reactive_declarations(
            analysis.reactive_declarations, locate if program is not None else None,
        )
        for decl in analysis.reactive_declarations:
            statements = [f"{program.slice(decl.node)};"]
            dependencies = [d for d in decl.dependencies if d in bindings]
            if dependencies:
                indices = ", ".join(str(bindings[a]) for a in decl.assignees)
                statements.append(f"$$invalidate([{indices}]);")
            code.reactive_declarations.append(GuardedBlock(dependencies, statements))
            for assignee in decl.assignees:
                if assignee not in analysis.variables and assignee not in code.variables:
                    code.variables.append(assignee)

        # Pass 4: assembly
        code.js = self._assemble(script, code)
        logger.debug(
            "generated %d variable(s), %d update block(s), %d reactive block(s)",
            len(code.variables), len(code.update), len(code.reactive_declarations),
        )
        return code

    def _assemble(self, script: Optional[Script], code: GeneratedCode) -> str:
        e = CodeEmitter(self._options.indent)
        bindings = code.bindings
        words = max(1, -(-len(bindings) // _WORD_BITS))
        esm = self._options.format == "esm"

        imports: List[str] = []
        body: List[str] = []
        if script is not None:
            for statement in script.body:
                text = script.program.slice(statement, script.patch)
                (imports if statement.type == "import_statement" else body).append(text)
        if imports:
            e.emit_all(imports)
            e.emit_blank()

        with e.block("export default function() {" if esm else "module.exports = function() {",
                     "}" if esm else "};"):
            e.emit_all(f"let {v};" for v in code.variables)
            e.emit("let $$target = null;")
            e.emit("let $$lifecycle = null;")
            pairs = ", ".join(f"[{CodeEmitter.escape_string(n)}, {i}]" for n, i in bindings.items())
            e.emit(f"const $$bindings = new Map([{pairs}]);")
            e.emit(f"const $$dirty = new Uint32Array({words});")
            e.emit("let $$flushing = true;")
            e.emit_blank()
            self._emit_runtime(e, words)

            if body:
                e.emit_blank()
                e.emit_all(body)

            e.emit_blank()
            for block in code.reactive_declarations:
                if not block.names:
                    e.emit_all(block.statements)
            e.emit("$$flushing = false;")
            e.emit(f"$$invalidate([{', '.join(str(i) for i in bindings.values())}]);")

            e.emit_blank()
            with e.block("function update_reactive_declarations(dirty) {"):
                for block in code.reactive_declarations:
                    if block.names:
                        with e.block(f"if ({change_condition(block.names, bindings, 'dirty')}) {{"):
                            e.emit_all(block.statements)

            e.emit_blank()
            with e.block("$$lifecycle = {", "};"):
                with e.block("create(target) {", "},"):
                    e.emit("$$target = target;")
                    e.emit_all(code.create)
                with e.block("update(changed) {", "},"):
                    e.emit("changed = $$mark(changed);")
                    for block in code.update:
                        with e.block(f"if ({change_condition(block.names, bindings, 'changed')}) {{"):
                            e.emit_all(block.statements)
                with e.block("destroy() {", "},"):
                    e.emit_all(code.destroy)
            e.emit("return $$lifecycle;")
        return e.get_code()

    @staticmethod
    def _emit_runtime(e: CodeEmitter, words: int) -> None:
        with e.block("function $$mark(changed) {"):
            e.emit("if (changed instanceof Uint32Array) return changed;")
            e.emit(f"const dirty = new Uint32Array({words});")
            with e.block("for (const name of changed) {"):
                e.emit("const i = $$bindings.get(name);")
                e.emit("if (i !== undefined) dirty[i >> 5] |= 1 << (i & 31);")
            e.emit("return dirty;")
        e.emit_blank()
        with e.block("function $$invalidate(indices, value) {"):
            e.emit("for (const i of indices) $$dirty[i >> 5] |= 1 << (i & 31);")
            e.emit("if ($$flushing) return value;")
            e.emit("$$flushing = true;")
            with e.block("try {"):
                e.emit("update_reactive_declarations($$dirty);")
                e.emit("if ($$lifecycle !== null) $$lifecycle.update($$dirty);")
            with e.block("finally {"):
                e.emit("$$dirty.fill(0);")
                e.emit("$$flushing = false;")
            e.emit("return value;")


def generate(
    document: Document,
    analysis: AnalysisResult,
    options: Optional[CompileOptions] = None,
) -> str:
    """Generate the module text for an analysed document."""
    return CodeGenerator(options).generate(document, analysis).js
