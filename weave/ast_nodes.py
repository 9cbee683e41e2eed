# weave/ast_nodes.py
"""
Weave markup AST node definitions.

The markup grammar has three fragment kinds (``Element``, ``Text``,
``Expression``) plus the single optional ``Script`` block.  Embedded script
is not modelled here: ``Expression`` and ``Attribute`` values hold a
:class:`~weave.script.ScriptExpression`, and ``Script`` holds the parsed
program.  Every node records the template offset where it starts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from weave.script import ScriptExpression, ScriptSource, SourcePatch

if TYPE_CHECKING:
    from tree_sitter import Node


# ── Markup fragments ─────────────────────────────────────────────

@dataclass
class Attribute:
    name: str
    value: Union[str, ScriptExpression]
    start: int = 0

    @property
    def is_expression(self) -> bool:
        return isinstance(self.value, ScriptExpression)

    def to_dict(self) -> Dict[str, Any]:
        if self.is_expression:
            value: Any = {"type": "Expression", "source": self.value.text}
        else:
            value = self.value
        return {"type": "Attribute", "name": self.name, "value": value, "start": self.start}


@dataclass
class Element:
    name: str
    attributes: List[Attribute] = field(default_factory=list)
    children: List["Fragment"] = field(default_factory=list)
    start: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "Element",
            "name": self.name,
            "attributes": [a.to_dict() for a in self.attributes],
            "children": [c.to_dict() for c in self.children],
            "start": self.start,
        }


@dataclass
class Text:
    value: str
    start: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "Text", "value": self.value, "start": self.start}


@dataclass
class Expression:
    expression: ScriptExpression
    start: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "Expression", "source": self.expression.text, "start": self.start}


Fragment = Union[Element, Text, Expression]


# ── Script block ─────────────────────────────────────────────────

@dataclass
class Script:
    """The ``<script>`` block.

    ``body`` starts as the program's top-level statements.  Later stages
    remove statements from it and record rewrites in ``patch``; the program
    tree itself is never edited.
    """
    program: ScriptSource
    body: List["Node"] = field(default_factory=list)
    patch: SourcePatch = field(default_factory=SourcePatch)
    start: int = 0

    def __post_init__(self) -> None:
        if not self.body:
            self.body = [n for n in self.program.root.named_children if n.type != "comment"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "Script",
            "statements": [self.program.slice(node) for node in self.body],
            "start": self.start,
        }


# ── Document ─────────────────────────────────────────────────────

@dataclass
class Document:
    html: List[Fragment] = field(default_factory=list)
    script: Optional[Script] = None
    filename: str = "<template>"
    source: str = field(default="", repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "Document",
            "filename": self.filename,
            "html": [f.to_dict() for f in self.html],
            "script": self.script.to_dict() if self.script else None,
        }


__all__ = [
    "Attribute",
    "Element",
    "Text",
    "Expression",
    "Fragment",
    "Script",
    "Document",
]
