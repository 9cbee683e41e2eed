#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
weave/visitor.py
================

Visitor infrastructure for the weave markup AST.

Provides:
- ``FragmentVisitor`` — base with one ``visit_X`` per node kind
- ``DepthFirstVisitor`` — visits every attribute and child of an element

Extra positional arguments given to ``visit`` are passed through to the
``visit_X`` method, so a traversal can carry context (the parent's DOM
variable, for instance) without storing it on the visitor.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from weave.ast_nodes import Attribute, Element, Expression, Text

__all__ = [
    "FragmentVisitor",
    "DepthFirstVisitor",
]

_DISPATCH: Dict[type, str] = {
    Element: "visit_element",
    Attribute: "visit_attribute",
    Text: "visit_text",
    Expression: "visit_expression",
}


class FragmentVisitor:
    """Base class for markup visitors.

    The default ``visit_X`` implementations call ``generic_visit``, which
    does nothing.  Subclasses override the methods they care about.
    """

    def visit(self, node: Any, *args: Any) -> Any:
        """Dispatch to the appropriate visit method."""
        method_name = _DISPATCH.get(type(node))
        if method_name is None:
            raise TypeError(f"Unknown fragment node type: {type(node).__name__}")
        return getattr(self, method_name)(node, *args)

    def visit_all(self, nodes: Iterable[Any], *args: Any) -> None:
        for node in nodes:
            self.visit(node, *args)

    def generic_visit(self, node: Any, *args: Any) -> Any:
        return None

    def visit_element(self, node: Element, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_attribute(self, node: Attribute, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_text(self, node: Text, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_expression(self, node: Expression, *args: Any) -> Any:
        return self.generic_visit(node, *args)


class DepthFirstVisitor(FragmentVisitor):
    """Visitor that walks attributes, then children, of every element."""

    def generic_visit(self, node: Any, *args: Any) -> Any:
        if isinstance(node, Element):
            self.visit_all(node.attributes, *args)
            self.visit_all(node.children, *args)
        return None
