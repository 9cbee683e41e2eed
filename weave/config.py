# weave/config.py
"""Compile options for the weave pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, List

MODULE_FORMATS = ("esm", "cjs")

_LABEL_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


@dataclass(frozen=True)
class CompileOptions:
    """Tuning knobs for one compilation."""
    filename: str = "<template>"
    format: str = "esm"
    event_prefix: str = "on:"
    reactive_label: str = "$"
    indent: str = "    "

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if self.format not in MODULE_FORMATS:
            problems.append(
                f"format must be one of {', '.join(MODULE_FORMATS)}, got {self.format!r}"
            )
        if not self.event_prefix:
            problems.append("event_prefix must not be empty")
        if not _LABEL_RE.match(self.reactive_label):
            problems.append(f"reactive_label must be a JavaScript label, got {self.reactive_label!r}")
        if self.indent.strip():
            problems.append("indent must contain only whitespace")
        return problems

    def with_overrides(self, **overrides: Any) -> "CompileOptions":
        """Return a copy with the non-``None`` *overrides* applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
