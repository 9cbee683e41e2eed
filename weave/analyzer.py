"""
Weave Scope & Dependency Analyzer

Decides which module-level bindings are reactive and which the markup reads:

1. Scope tree - builds the lexical scope tree of the ``<script>`` program
2. Reactive declarations - extracts ``$: x = ...`` statements from the body
3. willChange - every mutation whose target lives at module scope (or is global)
4. willUseInTemplate - every name the markup reads

Analysis is total: any document the parser accepts analyses without error.
The only side effect is on ``document.script.body``, from which reactive
declarations are removed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set

from weave.ast_nodes import Attribute, Document, Expression, Script
from weave.config import CompileOptions
from weave.scope import Scope, ScopeTree, analyze_scopes
from weave.script import (
    ASSIGNMENT_TYPES,
    FUNCTION_DECLARATION_TYPES,
    MUTATION_TYPES,
    ScriptExpression,
    ScriptSource,
    identifier_references,
    mutation_target,
    named_children,
    node_name,
    root_identifier,
    target_names,
    walk,
)
from weave.visitor import DepthFirstVisitor

if TYPE_CHECKING:
    from tree_sitter import Node

logger = logging.getLogger(__name__)


# ============================================================================
# RESULT MODEL
# ============================================================================


@dataclass
class ReactiveDeclaration:
    """One ``$: target = expression`` statement lifted out of the script."""
    assignees: List[str]
    dependencies: List[str]
    node: "Node"
    index: int

    def to_dict(self, source: ScriptSource) -> Dict[str, Any]:
        return {
            "index": self.index,
            "assignees": list(self.assignees),
            "dependencies": list(self.dependencies),
            "source": source.slice(self.node),
        }


@dataclass
class AnalysisResult:
    scopes: ScopeTree
    variables: Set[str] = field(default_factory=set)
    will_change: Set[str] = field(default_factory=set)
    will_use_in_template: Set[str] = field(default_factory=set)
    reactive_declarations: List[ReactiveDeclaration] = field(default_factory=list)
    handler_scopes: Dict[int, ScopeTree] = field(default_factory=dict)

    @property
    def reactive_dependencies(self) -> Set[str]:
        """Every name read by some reactive declaration."""
        names: Set[str] = set()
        for decl in self.reactive_declarations:
            names.update(decl.dependencies)
        return names

    @property
    def tracked(self) -> Set[str]:
        """Names whose mutation must notify the dispatcher."""
        return self.will_use_in_template | self.reactive_dependencies

    @property
    def bindings(self) -> Dict[str, int]:
        """Change-set bit index of every reactive binding, in name order."""
        names = sorted(self.will_change | self.reactive_dependencies)
        return {name: index for index, name in enumerate(names)}

    def to_dict(self, source: Optional[ScriptSource] = None) -> Dict[str, Any]:
        return {
            "variables": sorted(self.variables),
            "willChange": sorted(self.will_change),
            "willUseInTemplate": sorted(self.will_use_in_template),
            "globals": sorted(self.scopes.globals),
            "bindings": self.bindings,
            "reactiveDeclarations": [
                d.to_dict(source) if source is not None else {
                    "index": d.index,
                    "assignees": d.assignees,
                    "dependencies": d.dependencies,
                }
                for d in self.reactive_declarations
            ],
        }


# ============================================================================
# NAME EXTRACTION
# ============================================================================


def _add_unique(names: List[str], name: str) -> None:
    if name not in names:
        names.append(name)


def extract_template_names(
    node: "Node",
    source: ScriptSource,
    program: Optional[ScriptSource] = None,
) -> List[str]:
    """Every name an interpolated expression may read.

    A call ``f(...)`` to a function declared in *program* (as a function
    declaration or a variable declarator) also yields every identifier of
    that declaration.  This over-approximates what the call reads.
    """
    names: List[str] = []
    for ref in identifier_references(node):
        _add_unique(names, source.slice(ref))

    if program is None:
        return names

    callees = {
        name for name in (
            node_name(call.child_by_field_name("function"), source)
            for call in walk(node) if call.type == "call_expression"
        ) if name
    }
    for declaration in _declarations_named(program, callees):
        for ref in identifier_references(declaration):
            _add_unique(names, program.slice(ref))
    return names


def _declarations_named(program: ScriptSource, names: Set[str]) -> Iterable["Node"]:
    if not names:
        return
    for node in walk(program.root):
        if node.type in FUNCTION_DECLARATION_TYPES or node.type == "variable_declarator":
            if node_name(node.child_by_field_name("name"), program) in names:
                yield node


def collect_mutations(
    node: "Node",
    source: ScriptSource,
    scopes: ScopeTree,
    module_scope: Scope,
    will_change: Set[str],
) -> None:
    """Add every module-level or global name assigned under *node*."""
    stack = [(node, scopes.root)]
    while stack:
        current, scope = stack.pop()
        scope = scopes.scope_at(current, scope)
        if current.type in MUTATION_TYPES:
            for name in target_names(mutation_target(current), source):
                owner = scope.find_owner(name)
                if owner is None or owner is module_scope:
                    will_change.add(name)
        stack.extend((child, scope) for child in reversed(current.children))


# ============================================================================
# ANALYZER
# ============================================================================


class _TemplateNames(DepthFirstVisitor):
    """Collects willUseInTemplate and analyses inline event handlers."""

    def __init__(self, result: AnalysisResult, program: Optional[ScriptSource], options: CompileOptions) -> None:
        self._result = result
        self._program = program
        self._options = options

    def visit_attribute(self, node: Attribute) -> None:
        if not node.is_expression:
            return
        expression: ScriptExpression = node.value
        if not node.name.startswith(self._options.event_prefix):
            self._result.will_use_in_template.update(
                extract_template_names(expression.node, expression, self._program)
            )
            return

        name = root_identifier(expression.node, expression)
        if name is not None:
            self._result.will_use_in_template.add(name)

        module_scope = self._result.scopes.root
        handler = analyze_scopes(expression.node, expression, parent=module_scope)
        self._result.handler_scopes[expression.node.id] = handler
        collect_mutations(expression.node, expression, handler, module_scope, self._result.will_change)

    def visit_expression(self, node: Expression) -> None:
        self._result.will_use_in_template.update(
            extract_template_names(node.expression.node, node.expression, self._program)
        )


class Analyzer:
    """
    Dependency analyzer for weave documents.

    Runs in three phases over one document:
    1. scopes + reactive declarations (script only)
    2. mutations (script and inline handlers)
    3. template names
    """

    def __init__(self, options: Optional[CompileOptions] = None) -> None:
        self._options = options or CompileOptions()

    def analyze(self, document: Document) -> AnalysisResult:
        script = document.script
        program = script.program if script is not None else None

        if program is None:
            scopes = ScopeTree(root=Scope("module", kind="module"))
        else:
            scopes = analyze_scopes(program.root, program)
        result = AnalysisResult(scopes=scopes, variables=set(scopes.root.declarations))

        if script is not None:
            result.reactive_declarations = self._extract_reactive_declarations(script)
            for decl in result.reactive_declarations:
                result.will_change.update(decl.assignees)
            for statement in script.body:
                collect_mutations(statement, program, scopes, scopes.root, result.will_change)

        _TemplateNames(result, program, self._options).visit_all(document.html)

        logger.debug(
            "analysis: %d variable(s), willChange=%s, willUseInTemplate=%s, %d reactive declaration(s)",
            len(result.variables),
            sorted(result.will_change),
            sorted(result.will_use_in_template),
            len(result.reactive_declarations),
        )
        return result

    def _extract_reactive_declarations(self, script: Script) -> List[ReactiveDeclaration]:
        program = script.program
        declarations: List[ReactiveDeclaration] = []
        kept: List["Node"] = []
        for index, statement in enumerate(script.body):
            assignment = self._reactive_assignment(statement, program)
            if assignment is None:
                kept.append(statement)
                continue

            dependencies: List[str] = []
            for ref in identifier_references(assignment.child_by_field_name("right")):
                _add_unique(dependencies, program.slice(ref))
            declarations.append(ReactiveDeclaration(
                assignees=target_names(assignment.child_by_field_name("left"), program),
                dependencies=dependencies,
                node=assignment,
                index=index,
            ))
        script.body = kept
        return declarations

    def _reactive_assignment(self, statement: "Node", program: ScriptSource) -> Optional["Node"]:
        """The assignment of a ``$: x = ...`` statement, else ``None``."""
        if statement.type != "labeled_statement":
            return None
        label = statement.child_by_field_name("label")
        if label is None or program.slice(label) != self._options.reactive_label:
            return None
        body = statement.child_by_field_name("body")
        if body is None or body.type != "expression_statement":
            return None
        inner = named_children(body)
        if len(inner) != 1:
            return None
        expression = inner[0]
        while expression.type == "parenthesized_expression" and len(named_children(expression)) == 1:
            expression = named_children(expression)[0]
        return expression if expression.type in ASSIGNMENT_TYPES else None


def analyse(document: Document, options: Optional[CompileOptions] = None) -> AnalysisResult:
    """Analyse *document*; removes reactive declarations from its script body."""
    return Analyzer(options).analyze(document)


__all__ = [
    "ReactiveDeclaration",
    "AnalysisResult",
    "Analyzer",
    "analyse",
    "extract_template_names",
    "collect_mutations",
]
