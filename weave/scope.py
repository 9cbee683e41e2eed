"""weave/scope.py – lexical scopes over a tree-sitter JavaScript tree.

Builds the scope tree the analyzer and the instrumenter walk with.  Every
scope-introducing node (functions, blocks, ``for`` loops, ``catch`` clauses)
maps, by tree-sitter node id, to the :class:`Scope` it opens; any other node
is in the scope of its nearest mapped ancestor.

Declaration rules
-----------------
* ``let`` / ``const`` / ``class``  →  current scope
* ``var``                         →  nearest function (or root) scope
* ``function f() {}``              →  enclosing scope; parameters → the function
* ``catch (e)``                    →  the catch clause
* ``import``                       →  root

A function body block shares the function's scope, as does a catch body.
Identifiers in declaring position are not references; a reference that no
scope in its chain declares is a *global*.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set, Tuple

from weave.script import (
    FUNCTION_DECLARATION_TYPES,
    REFERENCE_TYPES,
    ScriptSource,
    binding_identifiers,
    named_children,
)

if TYPE_CHECKING:
    from tree_sitter import Node

logger = logging.getLogger(__name__)

_FUNCTION_EXPRESSION_TYPES = frozenset({"function_expression", "function", "generator_function"})
_LOOP_TYPES = frozenset({"for_statement", "for_in_statement"})


class Scope:
    """
    A lexical scope holding the names declared directly in it.
    Lookups walk the parent chain.
    """

    def __init__(
        self,
        name: str,
        parent: Optional[Scope] = None,
        kind: str = "block",
    ) -> None:
        self.name = name
        self.parent = parent
        self.kind = kind  # "module", "function", "block"
        self.declarations: Dict[str, Optional[Node]] = {}
        self._children: List[Scope] = []

        if parent is not None:
            parent._children.append(self)

    def __repr__(self) -> str:
        return f"Scope({self.name!r}, kind={self.kind!r}, names={sorted(self.declarations)})"

    @property
    def children(self) -> List[Scope]:
        return list(self._children)

    def declare(self, name: str, node: Optional[Node] = None) -> None:
        self.declarations.setdefault(name, node)

    def has(self, name: str) -> bool:
        """True if *name* is declared in this scope only."""
        return name in self.declarations

    def find_owner(self, name: str) -> Optional[Scope]:
        """The nearest scope declaring *name*, or ``None`` if it is global."""
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.declarations:
                return scope
            scope = scope.parent
        return None

    def closest_function(self) -> Scope:
        """The scope a ``var`` declaration hoists to."""
        scope = self
        while scope.kind == "block" and scope.parent is not None:
            scope = scope.parent
        return scope


@dataclass
class ScopeTree:
    """Result of :func:`analyze_scopes`."""
    root: Scope
    map: Dict[int, Scope] = field(default_factory=dict)
    globals: Set[str] = field(default_factory=set)
    references: List[Tuple["Node", Scope]] = field(default_factory=list)

    def scope_at(self, node: "Node", current: Scope) -> Scope:
        """Scope opened by *node*, or *current* if *node* opens none."""
        return self.map.get(node.id, current)


class _ScopeBuilder:
    """Single recursive pass that opens scopes and collects references."""

    def __init__(self, source: ScriptSource, tree: ScopeTree) -> None:
        self._source = source
        self._tree = tree
        self._declaring: Set[int] = set()
        self._counter = 0

    def _open(self, node: Node, parent: Scope, kind: str) -> Scope:
        self._counter += 1
        scope = Scope(f"{node.type}#{self._counter}", parent=parent, kind=kind)
        self._tree.map[node.id] = scope
        return scope

    def _declare(self, pattern: Optional[Node], scope: Scope) -> None:
        for ident in binding_identifiers(pattern):
            self._declaring.add(ident.id)
            scope.declare(self._source.slice(ident), ident)

    def _visit_all(self, nodes: Iterable[Node], scope: Scope) -> None:
        for child in nodes:
            self.visit(child, scope)

    def _visit_function(self, node: Node, scope: Scope) -> None:
        fn_scope = self._open(node, scope, "function")
        name = node.child_by_field_name("name")
        if node.type in FUNCTION_DECLARATION_TYPES:
            self._declare(name, scope)
        elif node.type in _FUNCTION_EXPRESSION_TYPES:
            self._declare(name, fn_scope)
        # method names are property identifiers and never references

        single = node.child_by_field_name("parameter")
        if single is not None:
            self._declare(single, fn_scope)
        params = node.child_by_field_name("parameters")
        if params is not None:
            self._declare(params, fn_scope)
            self.visit(params, fn_scope)

        body = node.child_by_field_name("body")
        if body is None:
            return
        if body.type == "statement_block":
            self._visit_all(body.children, fn_scope)
        else:
            self.visit(body, fn_scope)

    def visit(self, node: Node, scope: Scope) -> None:
        kind = node.type

        if kind in FUNCTION_DECLARATION_TYPES or kind in _FUNCTION_EXPRESSION_TYPES \
                or kind in ("arrow_function", "method_definition"):
            self._visit_function(node, scope)
            return

        if kind in ("lexical_declaration", "variable_declaration"):
            target = scope if kind == "lexical_declaration" else scope.closest_function()
            for declarator in named_children(node):
                self._declare(declarator.child_by_field_name("name"), target)
            self._visit_all(node.children, scope)
            return

        if kind in ("class_declaration", "class"):
            name = node.child_by_field_name("name")
            if kind == "class_declaration":
                self._declare(name, scope)
            elif name is not None:
                self._declaring.add(name.id)
            self._visit_all(node.children, scope)
            return

        if kind == "import_statement":
            root = self._tree.root
            for current in named_children(node):
                if current.type == "import_clause":
                    self._declare_import_clause(current, root)
            return

        if kind == "statement_block":
            self._visit_all(node.children, self._open(node, scope, "block"))
            return

        if kind in _LOOP_TYPES:
            loop_scope = self._open(node, scope, "block")
            declared_kind = node.child_by_field_name("kind")
            if declared_kind is not None:
                target = loop_scope if declared_kind.type != "var" else scope.closest_function()
                self._declare(node.child_by_field_name("left"), target)
            self._visit_all(node.children, loop_scope)
            return

        if kind == "catch_clause":
            catch_scope = self._open(node, scope, "block")
            self._declare(node.child_by_field_name("parameter"), catch_scope)
            for child in node.children:
                if child.type == "statement_block":
                    self._visit_all(child.children, catch_scope)
                else:
                    self.visit(child, catch_scope)
            return

        if kind in REFERENCE_TYPES:
            if node.id not in self._declaring:
                self._tree.references.append((node, scope))
            return

        self._visit_all(node.children, scope)

    def _declare_import_clause(self, clause: Node, root: Scope) -> None:
        for part in named_children(clause):
            if part.type == "identifier":
                self._declare(part, root)
            elif part.type == "namespace_import":
                for ident in named_children(part):
                    self._declare(ident, root)
            elif part.type == "named_imports":
                for spec in named_children(part):
                    local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                    if local is not None and local.type == "identifier":
                        self._declare(local, root)


def analyze_scopes(
    node: Node,
    source: ScriptSource,
    parent: Optional[Scope] = None,
) -> ScopeTree:
    """Build the scope tree rooted at *node*.

    With *parent* given (inline event handlers), the new root scope nests
    under it so names resolve into the script's module scope.
    """
    if parent is None:
        root = Scope("module", kind="module")
    else:
        root = Scope("expression", parent=parent, kind="function")
    tree = ScopeTree(root=root)
    tree.map[node.id] = root

    _ScopeBuilder(source, tree).visit(node, root)

    for ref, scope in tree.references:
        name = source.slice(ref)
        if scope.find_owner(name) is None:
            tree.globals.add(name)

    logger.debug(
        "scopes: %d mapped, %d root names, %d globals",
        len(tree.map), len(root.declarations), len(tree.globals),
    )
    return tree


__all__ = ["Scope", "ScopeTree", "analyze_scopes"]
