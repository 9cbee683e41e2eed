"""weave/parser.py – template text → weave markup AST.

Recursive-descent parser over the raw template string.  Markup is handled
here character by character; every embedded piece of JavaScript is handed to
:mod:`weave.script`, which returns the parsed expression together with the
position where markup parsing resumes.

Design principles
-----------------
* **Single pass, cursor based** – one ``_pos`` index walks the template; each
  ``_parse_<thing>`` helper consumes exactly its production.
* **Fail-fast with location** – every grammar violation raises
  :class:`~weave.errors.ParseError` naming the expected token and the
  line/column where parsing stopped.  No partial document is returned.
* **Markup never understands script** – ``{`` hands control to
  :func:`weave.script.parse_expression_at`.

Public API
----------
``parse(content, filename="<template>") -> Document``
    Parse a complete template.

Grammar
-------
::

    Document    := Fragment*
    Fragment    := Script | Element | Expression | Text
    Script      := '<script>' <raw script text> '</script>'
    Element     := '<' tagname Attribute* '>' Fragment* '</' tagname '>'
                 | '<' tagname Attribute* '/>'
    Attribute   := name '={' ScriptExpr '}' | name '="' chars '"'
    Expression  := '{' ScriptExpr '}'
    Text        := any run of characters containing neither '<' nor '{'
"""

from __future__ import annotations

import logging
import re
from typing import Final, List, NoReturn, Optional, Sequence

from weave.ast_nodes import Attribute, Document, Element, Expression, Fragment, Script, Text
from weave.errors import ErrorCode, ParseError, SourceSpan, WeaveErrorCodes
from weave.script import parse_expression_at, parse_program

logger = logging.getLogger(__name__)

_TAG_NAME_RE: Final = re.compile(r"[a-z][a-z0-9]*")
_ATTRIBUTE_NAME_RE: Final = re.compile(r"[^\s=/>\"'{}<]+")
_WHITESPACE_RE: Final = re.compile(r"\s*")
_TEXT_RE: Final = re.compile(r"[^<{]+")
_SCRIPT_OPEN_RE: Final = re.compile(r"<script\s*>")

_SCRIPT_CLOSE: Final = "</script>"


class TemplateParser:
    """Parser state for one template."""

    def __init__(self, content: str, filename: str = "<template>") -> None:
        self._content = content
        self._filename = filename
        self._pos = 0
        self._script: Optional[Script] = None

    def parse(self) -> Document:
        html = self._parse_fragments(closing=None)
        logger.debug(
            "parsed %s: %d top-level fragment(s), script=%s",
            self._filename, len(html), self._script is not None,
        )
        return Document(html=html, script=self._script, filename=self._filename, source=self._content)

    # ── helpers ──────────────────────────────────────────────────

    def _at_end(self) -> bool:
        return self._pos >= len(self._content)

    def _match(self, literal: str) -> bool:
        return self._content.startswith(literal, self._pos)

    def _eat(self, literal: str) -> None:
        if not self._match(literal):
            got = self._content[self._pos:self._pos + len(literal)]
            self._fail(
                f"Expected '{literal}'",
                expected=[f"'{literal}'"],
                got=got,
                code=WeaveErrorCodes.UNEXPECTED_EOF if self._at_end() else None,
            )
        self._pos += len(literal)

    def _read(self, pattern: "re.Pattern[str]") -> str:
        m = pattern.match(self._content, self._pos)
        if m is None:
            return ""
        self._pos = m.end()
        return m.group(0)

    def _skip_whitespace(self) -> None:
        self._read(_WHITESPACE_RE)

    def _fail(
        self,
        message: str,
        expected: Sequence[str] = (),
        got: str = "",
        code: Optional[ErrorCode] = None,
        pos: Optional[int] = None,
    ) -> NoReturn:
        pos = self._pos if pos is None else pos
        line_start = self._content.rfind("\n", 0, pos) + 1
        line_end = self._content.find("\n", pos)
        if line_end == -1:
            line_end = len(self._content)
        raise ParseError(
            message,
            code=code,
            span=SourceSpan.from_offset(self._content, pos, self._filename),
            expected=expected,
            got=got,
            source_line=self._content[line_start:line_end],
        )

    # ── productions ──────────────────────────────────────────────

    def _parse_fragments(self, closing: Optional[str]) -> List[Fragment]:
        """Fragments up to end of input (top level) or to ``</closing``."""
        fragments: List[Fragment] = []
        while True:
            if self._at_end():
                if closing is not None:
                    self._fail(
                        f"Unexpected end of input, <{closing}> is not closed",
                        expected=[f"</{closing}>"],
                        code=WeaveErrorCodes.UNEXPECTED_EOF,
                    )
                return fragments
            if self._match("</"):
                if closing is None:
                    tag = self._content[self._pos:self._content.find(">", self._pos) + 1 or None]
                    self._fail(
                        f"Unexpected closing tag {tag}",
                        expected=["end of input"],
                        got=tag,
                        code=WeaveErrorCodes.MISMATCHED_CLOSING_TAG,
                    )
                return fragments
            fragment = self._parse_fragment()
            if fragment is not None:
                fragments.append(fragment)

    def _parse_fragment(self) -> Optional[Fragment]:
        if _SCRIPT_OPEN_RE.match(self._content, self._pos):
            self._parse_script()
            return None
        if self._match("<"):
            return self._parse_element()
        if self._match("{"):
            return self._parse_expression()
        return self._parse_text()

    def _parse_script(self) -> None:
        start = self._pos
        if self._script is not None:
            self._fail(
                "A template may contain only one <script> block",
                code=WeaveErrorCodes.DUPLICATE_SCRIPT,
            )
        self._read(_SCRIPT_OPEN_RE)
        body_start = self._pos
        body_end = self._content.find(_SCRIPT_CLOSE, body_start)
        if body_end == -1:
            self._pos = len(self._content)
            self._fail(
                "Unexpected end of input, <script> is not closed",
                expected=[_SCRIPT_CLOSE],
                code=WeaveErrorCodes.UNEXPECTED_EOF,
            )
        program = parse_program(self._content, body_start, body_end, self._filename)
        self._script = Script(program=program, start=start)
        self._pos = body_end + len(_SCRIPT_CLOSE)

    def _parse_element(self) -> Element:
        start = self._pos
        self._eat("<")
        name = self._read(_TAG_NAME_RE)
        if not name:
            self._fail(
                "Expected a tag name",
                expected=["tag name"],
                got=self._content[self._pos:self._pos + 1],
            )

        element = Element(name=name, start=start)
        while True:
            self._skip_whitespace()
            if self._match("/>"):
                self._pos += 2
                return element
            if self._match(">"):
                self._pos += 1
                break
            if self._at_end():
                self._fail(
                    f"Unexpected end of input in <{name}>",
                    expected=["'>'"],
                    code=WeaveErrorCodes.UNEXPECTED_EOF,
                )
            element.attributes.append(self._parse_attribute())

        element.children = self._parse_fragments(closing=name)
        self._parse_closing_tag(name)
        return element

    def _parse_closing_tag(self, name: str) -> None:
        start = self._pos
        self._eat("</")
        closing = self._read(_TAG_NAME_RE)
        self._skip_whitespace()
        if closing != name or not self._match(">"):
            self._fail(
                f"Expected </{name}>, got </{closing}",
                expected=[f"</{name}>"],
                got=f"</{closing}",
                code=WeaveErrorCodes.MISMATCHED_CLOSING_TAG,
                pos=start,
            )
        self._pos += 1

    def _parse_attribute(self) -> Attribute:
        start = self._pos
        name = self._read(_ATTRIBUTE_NAME_RE)
        if not name:
            self._fail(
                "Expected an attribute name",
                expected=["attribute name", "'>'", "'/>'"],
                got=self._content[self._pos:self._pos + 1],
            )
        self._eat("=")

        quote = self._content[self._pos:self._pos + 1]
        if quote == "{":
            self._pos += 1
            expression, self._pos = parse_expression_at(self._content, self._pos, self._filename)
            self._eat("}")
            return Attribute(name=name, value=expression, start=start)
        if quote in ("\"", "'"):
            end = self._content.find(quote, self._pos + 1)
            if end == -1:
                self._pos = len(self._content)
                self._fail(
                    f"Unterminated value for attribute '{name}'",
                    expected=[quote],
                    code=WeaveErrorCodes.UNEXPECTED_EOF,
                )
            value = self._content[self._pos + 1:end]
            self._pos = end + 1
            return Attribute(name=name, value=value, start=start)

        self._fail(
            f"Expected a value for attribute '{name}'",
            expected=["'{'", "'\"'"],
            got=quote,
        )

    def _parse_expression(self) -> Expression:
        start = self._pos
        self._eat("{")
        expression, self._pos = parse_expression_at(self._content, self._pos, self._filename)
        self._eat("}")
        return Expression(expression=expression, start=start)

    def _parse_text(self) -> Optional[Text]:
        start = self._pos
        value = self._read(_TEXT_RE)
        if not value.strip():
            return None
        return Text(value=value, start=start)


def parse(content: str, filename: str = "<template>") -> Document:
    """Parse a complete template into a :class:`~weave.ast_nodes.Document`."""
    return TemplateParser(content, filename).parse()


__all__ = ["TemplateParser", "parse"]
