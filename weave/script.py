"""weave/script.py – JavaScript front-end built on tree-sitter.

Every piece of script in a template (the ``<script>`` block and each
``{...}`` expression) is parsed with the tree-sitter JavaScript grammar.  The
markup parser never needs to understand script syntax: it asks
:func:`parse_expression_at` for exactly one expression starting at its cursor
and continues after the returned end position.

Design principles
-----------------
* **Trees are immutable** – tree-sitter trees are never edited.  Rewrites are
  recorded in a :class:`SourcePatch` as insertions keyed on node byte offsets
  and applied when the script is rendered back to text.
* **Byte offsets internally, character offsets at the edge** – tree-sitter
  reports UTF-8 byte offsets; :class:`ScriptSource` maps them back to
  template character offsets for diagnostics.
* **Fail-fast with location** – any ``ERROR`` or missing node is reported as
  a :class:`~weave.errors.ParseError` positioned in the template.

Public API
----------
``parse_program(content, start, end, filename) -> ScriptSource``
    Parse the body of a ``<script>`` block.

``parse_expression_at(content, pos, filename) -> (ScriptExpression, end)``
    Parse one expression beginning at ``pos``; ``end`` is the index of the
    ``}`` that closes it.

``binding_identifiers`` / ``target_names`` / ``identifier_references`` / ``root_identifier``
    Name extraction helpers shared by the analyzer and the generator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Iterator, List, Optional, Tuple

# ---------------------------------------------------------------------------
# tree-sitter import
# ---------------------------------------------------------------------------
try:
    import tree_sitter_javascript
    from tree_sitter import Language, Node, Parser, Tree
except ImportError:  # pragma: no cover – allow static analysis w/o dep
    raise ImportError(
        "The 'tree-sitter' and 'tree-sitter-javascript' packages are required "
        "for script parsing. Install them with:  "
        "pip install tree-sitter tree-sitter-javascript"
    )

from weave.errors import ParseError, SourceSpan, WeaveErrorCodes


JS_LANGUAGE: Final = Language(tree_sitter_javascript.language())
_PARSER: Final = Parser(JS_LANGUAGE)

# Identifier-like nodes that read a binding.
REFERENCE_TYPES: Final = frozenset({"identifier", "shorthand_property_identifier"})

ASSIGNMENT_TYPES: Final = frozenset({"assignment_expression", "augmented_assignment_expression"})
MUTATION_TYPES: Final = ASSIGNMENT_TYPES | {"update_expression"}

# Declarations that may hold a function body, keyed on their name field.
FUNCTION_DECLARATION_TYPES: Final = frozenset({
    "function_declaration",
    "generator_function_declaration",
})
FUNCTION_TYPES: Final = FUNCTION_DECLARATION_TYPES | {
    "function_expression",
    "function",  # tree-sitter-javascript < 0.21
    "generator_function",
    "arrow_function",
    "method_definition",
}

_ACCESS_TYPES: Final = frozenset({"member_expression", "subscript_expression"})


# ═══════════════════════════════════════════════════════════════════════
#  Source containers
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ScriptSource:
    """A parsed piece of JavaScript.

    ``offset`` is the character offset of the first script character in the
    template; ``lead`` counts wrapper bytes prepended before parsing.
    """

    source: bytes
    tree: Tree
    offset: int = 0
    lead: int = 0

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def slice(self, node: Node, patch: Optional["SourcePatch"] = None) -> str:
        """Source text of *node*, with *patch* applied when given."""
        if patch is None:
            return self.source[node.start_byte:node.end_byte].decode("utf-8")
        return patch.apply(self.source, node.start_byte, node.end_byte)

    def char_offset(self, byte_offset: int) -> int:
        """Map a byte offset in ``source`` to a template character offset."""
        byte_offset = max(self.lead, min(byte_offset, len(self.source)))
        prefix = self.source[self.lead:byte_offset].decode("utf-8", errors="replace")
        return self.offset + len(prefix)


@dataclass
class ScriptExpression(ScriptSource):
    """One expression embedded in markup (``{...}`` or an attribute value)."""

    node: Optional[Node] = None

    @property
    def text(self) -> str:
        return self.slice(self.node)

    @property
    def type(self) -> str:
        return self.node.type


# ═══════════════════════════════════════════════════════════════════════
#  Source patching
# ═══════════════════════════════════════════════════════════════════════

class SourcePatch:
    """Text insertions keyed on byte offsets of one source buffer.

    At equal offsets, text closing an earlier node is emitted before text
    opening a later one.  A rendered slice keeps only the insertions that
    belong to nodes inside it: text opening a node at the slice end, or
    closing one at the slice start, belongs to a neighbour.
    """

    _AFTER = 0
    _BEFORE = 1

    def __init__(self) -> None:
        self._inserts: List[Tuple[int, int, int, bytes]] = []

    def __len__(self) -> int:
        return len(self._inserts)

    def wrap(self, node: Node, before: str, after: str) -> None:
        """Surround *node* with *before* and *after*."""
        self._add(node.start_byte, self._BEFORE, before)
        self._add(node.end_byte, self._AFTER, after)

    def _add(self, offset: int, side: int, text: str) -> None:
        self._inserts.append((offset, side, len(self._inserts), text.encode("utf-8")))

    def apply(self, source: bytes, start: int = 0, end: Optional[int] = None) -> str:
        """Render ``source[start:end]`` with every insertion that falls inside."""
        end = len(source) if end is None else end
        out: List[bytes] = []
        cursor = start
        for offset, side, _seq, text in sorted(self._inserts):
            if offset < start or offset > end:
                continue
            if (offset == end and side == self._BEFORE) or (offset == start and side == self._AFTER):
                continue
            out.append(source[cursor:offset])
            out.append(text)
            cursor = offset
        out.append(source[cursor:end])
        return b"".join(out).decode("utf-8")


# ═══════════════════════════════════════════════════════════════════════
#  Tree helpers
# ═══════════════════════════════════════════════════════════════════════

def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of *node* and all its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def named_children(node: Node) -> List[Node]:
    """Named children of *node*, comments excluded."""
    return [child for child in node.named_children if child.type != "comment"]


def first_error(node: Node) -> Optional[Node]:
    """The first ``ERROR`` or missing node under *node*, in source order."""
    if not node.has_error:
        return None
    for current in walk(node):
        if current.type == "ERROR" or current.is_missing:
            return current
    return node


def node_name(node: Optional[Node], source: ScriptSource) -> Optional[str]:
    """The text of *node* if it is a plain identifier."""
    if node is not None and node.type == "identifier":
        return source.slice(node)
    return None


def binding_identifiers(pattern: Optional[Node]) -> List[Node]:
    """Identifier nodes bound by a declaration or destructuring *pattern*."""
    if pattern is None:
        return []
    kind = pattern.type
    if kind in ("identifier", "shorthand_property_identifier_pattern"):
        return [pattern]
    if kind in ("object_pattern", "array_pattern", "formal_parameters", "rest_pattern",
                "parenthesized_expression", "array", "object", "spread_element"):
        found: List[Node] = []
        for child in named_children(pattern):
            found.extend(binding_identifiers(child))
        return found
    if kind in ("pair_pattern", "pair"):
        return binding_identifiers(pattern.child_by_field_name("value"))
    if kind in ("assignment_pattern", "object_assignment_pattern", "assignment_expression"):
        return binding_identifiers(pattern.child_by_field_name("left"))
    # "({a} = obj)" may parse its left side as an object literal.
    if kind == "shorthand_property_identifier":
        return [pattern]
    return []


def root_object(node: Node) -> Node:
    """Strip member and subscript access down to the accessed object."""
    while node.type in _ACCESS_TYPES:
        node = node.child_by_field_name("object")
    return node


def mutation_target(node: Node) -> Optional[Node]:
    """The left-hand side of an assignment or the operand of ``++``/``--``."""
    if node.type in ASSIGNMENT_TYPES:
        return node.child_by_field_name("left")
    if node.type == "update_expression":
        return node.child_by_field_name("argument")
    return None


def target_names(target: Node, source: ScriptSource) -> List[str]:
    """Names written by assigning to *target* (``a.b = 1`` writes ``a``)."""
    if target.type in _ACCESS_TYPES:
        target = root_object(target)
    names: List[str] = []
    for ident in binding_identifiers(target):
        name = source.slice(ident)
        if name not in names:
            names.append(name)
    return names


def identifier_references(node: Node) -> Iterator[Node]:
    """Every identifier-like node anywhere under *node*."""
    for current in walk(node):
        if current.type in REFERENCE_TYPES:
            yield current


def root_identifier(node: Node, source: ScriptSource) -> Optional[str]:
    """Name at the root of a (possibly called or accessed) expression."""
    while True:
        if node.type in _ACCESS_TYPES:
            node = node.child_by_field_name("object")
        elif node.type == "call_expression":
            node = node.child_by_field_name("function")
        elif node.type == "parenthesized_expression":
            inner = named_children(node)
            if len(inner) != 1:
                return None
            node = inner[0]
        else:
            return node_name(node, source)


# ═══════════════════════════════════════════════════════════════════════
#  Parsing entry points
# ═══════════════════════════════════════════════════════════════════════

def parse_program(content: str, start: int, end: int, filename: str = "<template>") -> ScriptSource:
    """Parse ``content[start:end]`` as a JavaScript program."""
    source = content[start:end].encode("utf-8")
    script = ScriptSource(source=source, tree=_PARSER.parse(source), offset=start)
    error = first_error(script.root)
    if error is not None:
        raise _syntax_error(content, script, error, filename, WeaveErrorCodes.INVALID_SCRIPT)
    return script


def parse_expression_at(
    content: str,
    pos: int,
    filename: str = "<template>",
) -> Tuple[ScriptExpression, int]:
    """Parse exactly one expression starting at *pos*.

    Returns the expression and the index of the ``}`` that terminates it.
    Each ``}`` after *pos* is tried in turn and the first one that closes a
    complete expression wins, so braces inside strings, regular expressions
    and nested literals never end the expression early.
    """
    first = content.find("}", pos)
    if first != -1 and not content[pos:first].strip():
        raise ParseError(
            "Expected an expression",
            code=WeaveErrorCodes.INVALID_EXPRESSION,
            span=SourceSpan.from_offset(content, pos, filename),
            expected=["expression"],
            got="}",
        )

    end = first
    while end != -1:
        expression = _parse_candidate(content, pos, end)
        if first_error(expression.root) is None:
            expression.node = _single_expression(expression)
            if expression.node is not None:
                return expression, end
        end = content.find("}", end + 1)

    # Nothing parsed; the lexical scan locates the problem.
    end = _scan_expression_end(content, pos, filename)
    expression = _parse_candidate(content, pos, end)
    error = first_error(expression.root)
    if error is not None:
        raise _syntax_error(content, expression, error, filename, WeaveErrorCodes.INVALID_EXPRESSION)
    raise ParseError(
        f"Expected a single expression, got {content[pos:end].strip()!r}",
        code=WeaveErrorCodes.INVALID_EXPRESSION,
        span=SourceSpan.from_offset(content, pos, filename),
        expected=["expression"],
    )


def _parse_candidate(content: str, pos: int, end: int) -> ScriptExpression:
    # The parentheses force expression context ("{a: 1}" is an object, not
    # a block); the newline keeps a trailing line comment off the ")".
    source = b"(" + content[pos:end].encode("utf-8") + b"\n)"
    return ScriptExpression(source=source, tree=_PARSER.parse(source), offset=pos, lead=1)


def _single_expression(expression: ScriptExpression) -> Optional[Node]:
    """The inner node when the wrapped source is one parenthesized expression."""
    statements = named_children(expression.root)
    if len(statements) != 1 or statements[0].type != "expression_statement":
        return None
    wrapper = named_children(statements[0])
    if (
        len(wrapper) != 1
        or wrapper[0].type != "parenthesized_expression"
        or wrapper[0].start_byte != 0
        or wrapper[0].end_byte != len(expression.source)
    ):
        return None
    inner = named_children(wrapper[0])
    return inner[0] if len(inner) == 1 else None


def _scan_expression_end(content: str, pos: int, filename: str) -> int:
    """Index of the ``}`` closing the expression that starts at *pos*.

    Strings, template literals (with nested substitutions), comments and
    bracket nesting are skipped lexically.  Only used to place the error
    when no candidate ``}`` closes a valid expression.
    """
    closers = {"(": ")", "[": "]", "{": "}"}
    stack: List[str] = []  # expected closers; "`" marks template literal text
    i, n = pos, len(content)
    while i < n:
        ch = content[i]
        if stack and stack[-1] == "`":
            if ch == "\\":
                i += 2
            elif ch == "`":
                stack.pop()
                i += 1
            elif content.startswith("${", i):
                stack.append("}")
                i += 2
            else:
                i += 1
            continue

        if ch in "\"'":
            i = _skip_string(content, i)
        elif ch == "`":
            stack.append("`")
            i += 1
        elif content.startswith("//", i):
            newline = content.find("\n", i)
            i = n if newline == -1 else newline
        elif content.startswith("/*", i):
            close = content.find("*/", i + 2)
            i = n if close == -1 else close + 2
        elif ch in closers:
            stack.append(closers[ch])
            i += 1
        elif ch in ")]}":
            if not stack:
                if ch == "}":
                    return i
                raise ParseError(
                    f"Unbalanced '{ch}' in expression",
                    code=WeaveErrorCodes.INVALID_EXPRESSION,
                    span=SourceSpan.from_offset(content, i, filename),
                    expected=["}"],
                    got=ch,
                )
            if stack[-1] != ch:
                raise ParseError(
                    f"Expected '{stack[-1]}', got '{ch}'",
                    code=WeaveErrorCodes.INVALID_EXPRESSION,
                    span=SourceSpan.from_offset(content, i, filename),
                    expected=[stack[-1]],
                    got=ch,
                )
            stack.pop()
            i += 1
        else:
            i += 1

    raise ParseError(
        "Unexpected end of input inside expression",
        code=WeaveErrorCodes.UNEXPECTED_EOF,
        span=SourceSpan.from_offset(content, n, filename),
        expected=[stack[-1] if stack else "}"],
    )


def _skip_string(content: str, start: int) -> int:
    """Index just past the string literal opening at *start*."""
    quote = content[start]
    i = start + 1
    while i < len(content):
        ch = content[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote or ch == "\n":
            return i + 1
        i += 1
    return len(content)


def _syntax_error(
    content: str,
    script: ScriptSource,
    error: Node,
    filename: str,
    code,
) -> ParseError:
    offset = script.char_offset(error.start_byte)
    if error.is_missing:
        message = f"Expected '{error.type}'"
        expected = [error.type]
        got = ""
    else:
        got = script.slice(error).strip()[:20]
        message = f"Unexpected {got!r} in script" if got else "Unexpected end of script"
        expected = []
    line_start = content.rfind("\n", 0, offset) + 1
    line_end = content.find("\n", offset)
    return ParseError(
        message,
        code=code,
        span=SourceSpan.from_offset(content, offset, filename),
        expected=expected,
        got=got,
        source_line=content[line_start:len(content) if line_end == -1 else line_end],
    )


__all__ = [
    "JS_LANGUAGE",
    "REFERENCE_TYPES",
    "ASSIGNMENT_TYPES",
    "MUTATION_TYPES",
    "FUNCTION_TYPES",
    "FUNCTION_DECLARATION_TYPES",
    "ScriptSource",
    "ScriptExpression",
    "SourcePatch",
    "walk",
    "named_children",
    "first_error",
    "node_name",
    "binding_identifiers",
    "root_object",
    "mutation_target",
    "target_names",
    "identifier_references",
    "root_identifier",
    "parse_program",
    "parse_expression_at",
]
