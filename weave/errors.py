# weave/errors.py
"""
Weave Error Types and Reporting Module

Error infrastructure for the weave template compiler.  Every failure the
pipeline can report is a :class:`CompileError` carrying a structured
:class:`ErrorMessage` (error code, source span, hint) that renders as a
GCC-style diagnostic.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│                          Error Hierarchy                                     │
├─────────────────────────────────────────────────────────────────────────────┤
│  CompileError (base)                                                        │
│  ├── ParseError               - Grammar violations in markup or script      │
│  └── CircularDependencyError  - Reactive declarations that form a cycle     │
└─────────────────────────────────────────────────────────────────────────────┘

The analysis stage is total over any document the parser accepts, so it has
no error class of its own.

Error Codes:
────────────
Each error has a unique code following the pattern WEAVE-XXXX where XXXX is
a 4-digit number in ranges:
  - 1000-1999: Parse errors
  - 4000-4999: Code generation errors
  - 9000-9999: Internal compiler errors

Example Usage:
──────────────
    from weave.errors import ParseError, SourceSpan

    try:
        document = parse(text, filename="app.svelte")
    except ParseError as exc:
        print(exc.to_gcc_format())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Dict, List, Optional, Sequence


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorSeverity(Enum):
    """Severity levels for weave diagnostics."""

    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"


@unique
class ErrorPhase(Enum):
    """Compilation phase where the error occurred."""

    PARSE = "parse"
    ANALYSIS = "analysis"
    CODEGEN = "codegen"
    INTERNAL = "internal"


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """
    Structured error code of the form ``WEAVE-NNNN``.

    Ranges:
      - 1000-1999: Parse errors
      - 4000-4999: Code generation errors
      - 9000-9999: Internal errors
    """

    __slots__ = ("prefix", "number", "phase", "default_severity")

    def __init__(
        self,
        prefix: str,
        number: int,
        phase: ErrorPhase,
        default_severity: ErrorSeverity = ErrorSeverity.FATAL,
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.phase = phase
        self.default_severity = default_severity

    @property
    def code(self) -> str:
        """Get the full error code string."""
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.phase.value})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        return NotImplemented


class WeaveErrorCodes:
    """Registry of every error code the compiler can report."""

    # Parse errors (1000-1999)
    UNEXPECTED_TOKEN = ErrorCode("WEAVE", 1001, ErrorPhase.PARSE)
    UNEXPECTED_EOF = ErrorCode("WEAVE", 1002, ErrorPhase.PARSE)
    MISMATCHED_CLOSING_TAG = ErrorCode("WEAVE", 1003, ErrorPhase.PARSE)
    INVALID_EXPRESSION = ErrorCode("WEAVE", 1004, ErrorPhase.PARSE)
    INVALID_SCRIPT = ErrorCode("WEAVE", 1005, ErrorPhase.PARSE)
    DUPLICATE_SCRIPT = ErrorCode("WEAVE", 1006, ErrorPhase.PARSE)

    # Code generation errors (4000-4999)
    CIRCULAR_DEPENDENCY = ErrorCode("WEAVE", 4001, ErrorPhase.CODEGEN)

    # Internal errors (9000-9999)
    INTERNAL_ERROR = ErrorCode("WEAVE", 9001, ErrorPhase.INTERNAL)


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOCATION TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceSpan:
    """
    A position in the template source.

    ``line`` and ``column`` are 1-based; ``offset`` is the 0-based character
    offset into the template text.
    """

    file: str = ""
    line: int = 0
    column: int = 0
    offset: int = 0

    @classmethod
    def from_offset(cls, text: str, offset: int, file: str = "") -> "SourceSpan":
        """Create a SourceSpan for character *offset* of *text*."""
        offset = max(0, min(offset, len(text)))
        line = text.count("\n", 0, offset) + 1
        line_start = text.rfind("\n", 0, offset) + 1
        return cls(file=file, line=line, column=offset - line_start + 1, offset=offset)

    def __str__(self) -> str:
        if not self.file and self.line == 0:
            return "<unknown location>"

        parts = []
        if self.file:
            parts.append(self.file)
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))

        return ":".join(parts)


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR MESSAGE FORMATTING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ErrorMessage:
    """
    A complete error message with all context.

    This is the internal representation of an error before it is printed.
    """

    code: ErrorCode
    message: str
    span: SourceSpan = field(default_factory=SourceSpan)
    severity: Optional[ErrorSeverity] = None  # None means use code's default
    hint: str = ""
    source_line: str = ""

    def __post_init__(self) -> None:
        if self.severity is None:
            self.severity = self.code.default_severity

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        severity = "error" if self.severity is ErrorSeverity.FATAL else self.severity.value
        lines = [f"{self.span}: {severity}: {self.message} [{self.code}]"]

        # Source line with caret
        if self.source_line:
            lines.append(f"    {self.source_line}")
            if self.span.column > 0:
                lines.append(f"    {' ' * (self.span.column - 1)}^")

        if self.hint:
            lines.append(f"hint: {self.hint}")

        return "\n".join(lines)

    def to_json(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code.code,
            "message": self.message,
            "severity": self.severity.value if self.severity else "error",
            "phase": self.code.phase.value,
            "location": {
                "file": self.span.file,
                "line": self.span.line,
                "column": self.span.column,
                "offset": self.span.offset,
            },
            "hint": self.hint,
        }

    def __str__(self) -> str:
        return self.to_gcc_format()


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class CompileError(Exception):
    """
    Base exception for all weave errors.

    Carries structured error information that can be pretty-printed or
    serialized.
    """

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        severity: Optional[ErrorSeverity] = None,
        hint: str = "",
        source_line: str = "",
    ) -> None:
        super().__init__(message)
        self.error_message = ErrorMessage(
            code=code or WeaveErrorCodes.INTERNAL_ERROR,
            message=message,
            span=span or SourceSpan(),
            severity=severity,
            hint=hint,
            source_line=source_line,
        )

    @property
    def message(self) -> str:
        return self.error_message.message

    @property
    def code(self) -> ErrorCode:
        return self.error_message.code

    @property
    def span(self) -> SourceSpan:
        return self.error_message.span

    @property
    def severity(self) -> ErrorSeverity:
        return self.error_message.severity or ErrorSeverity.FATAL

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        return self.error_message.to_gcc_format()

    def to_json(self) -> Dict[str, Any]:
        return self.error_message.to_json()

    def __str__(self) -> str:
        return self.to_gcc_format()


# ───────────────────────────────────────────────────────────────────────────────
# PARSE ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class ParseError(CompileError):
    """Grammar violation in the template markup or its embedded script."""

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        expected: Optional[Sequence[str]] = None,
        got: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=message,
            code=code or WeaveErrorCodes.UNEXPECTED_TOKEN,
            span=span,
            **kwargs,
        )
        self.expected: List[str] = list(expected) if expected else []
        self.got = got

        # Auto-generate hint if expected tokens provided
        if self.expected and not self.error_message.hint:
            if len(self.expected) == 1:
                self.error_message.hint = f"Expected {self.expected[0]}"
            else:
                self.error_message.hint = f"Expected one of: {', '.join(self.expected)}"


# ───────────────────────────────────────────────────────────────────────────────
# CODE GENERATION ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class CircularDependencyError(CompileError):
    """Reactive declarations whose assignees depend on each other in a cycle."""

    def __init__(
        self,
        cycle: Sequence[str],
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        self.cycle: List[str] = list(cycle)
        super().__init__(
            message=f"Cyclical dependency between reactive declarations: {' -> '.join(self.cycle)}",
            code=WeaveErrorCodes.CIRCULAR_DEPENDENCY,
            span=span,
            hint="Break the cycle so that no reactive declaration reads its own result",
            **kwargs,
        )


__all__ = [
    "ErrorSeverity",
    "ErrorPhase",
    "ErrorCode",
    "WeaveErrorCodes",
    "SourceSpan",
    "ErrorMessage",
    "CompileError",
    "ParseError",
    "CircularDependencyError",
]
