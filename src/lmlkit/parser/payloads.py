"""Payload readers shared by the text-format and brace-syntax parsers."""

from __future__ import annotations

import re
import textwrap
from dataclasses import dataclass, field

from .base import Alignment
from .properties import paren_argument, parse_params

_SEPARATOR_CELL_RE = re.compile(r"^:?-+:?$")
_LIST_ITEM_RE = re.compile(r"^(?:[-*+]|\d+[.)])\s+(.*)$")
_CAPTION_RE = re.compile(r"^\*(?!\*)(.+)\*$")
_CODE_LANGUAGE_RE = re.compile(r"^[\w+#.-]+$")

# Brace-syntax code modifiers that can never be read as a language.
CODE_FLAGS = ("lines", "numbered")
ESCAPED_MODIFIER = "escaped"


@dataclass(slots=True)
class PipeTable:
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    alignment: list[Alignment] | None = None
    caption: str = ""


def split_row(row: str) -> list[str]:
    row = row.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|"):
        row = row[:-1]
    return [cell.strip() for cell in row.split("|")]


def is_separator_row(cells: list[str]) -> bool:
    return bool(cells) and all(_SEPARATOR_CELL_RE.match(c) for c in cells)


def cell_alignment(cell: str) -> Alignment:
    if cell.startswith(":") and cell.endswith(":"):
        return "center"
    if cell.endswith(":"):
        return "right"
    return "left"


def parse_pipe_table(lines: list[str]) -> PipeTable:
    """Read ``| a | b |`` rows, a ``:---:`` separator row and an optional ``*caption*`` line."""
    table = PipeTable()
    rows: list[list[str]] = []

    for line in lines:
        stripped = line.strip()
        if stripped.startswith("|"):
            cells = split_row(stripped)
            if is_separator_row(cells):
                table.alignment = [cell_alignment(c) for c in cells]
            else:
                rows.append(cells)
        elif caption := caption_line(stripped):
            table.caption = caption

    if rows:
        table.headers = rows[0]
        table.rows = rows[1:]
    return table


def caption_line(stripped: str) -> str | None:
    """Caption text of a ``*caption*`` line, or ``None``."""
    match = _CAPTION_RE.match(stripped)
    if match and len(stripped) > 2:
        return match.group(1).strip()
    return None


def list_items(lines: list[str]) -> list[str]:
    """Collect ``- item`` / ``1. item`` entries; unmarked lines continue the previous item."""
    items: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped:
            continue
        match = _LIST_ITEM_RE.match(stripped)
        if match:
            items.append(match.group(1).strip())
        elif items:
            items[-1] = f"{items[-1]} {stripped}"
        else:
            items.append(stripped)
    return [item for item in items if item]


def normalize_code(text: str) -> str:
    """Dedent source text and drop leading/trailing blank lines."""
    lines = textwrap.dedent(text).split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(line.rstrip() for line in lines)


def split_attribution(lines: list[str]) -> tuple[str, str | None]:
    """Separate ``-- Author`` attribution lines from quote text."""
    text_lines: list[str] = []
    attribution: str | None = None
    for line in lines:
        stripped = line.strip()
        if stripped.startswith("--"):
            attribution = stripped[2:].strip() or None
        else:
            text_lines.append(stripped)
    return "\n".join(text_lines).strip(), attribution


def code_language(param_line: str) -> tuple[str, dict[str, str]]:
    """Language and parameters of an ``@code(...)`` directive line.

    Accepts both ``@code(python)`` and ``@code(language: python, label: x)``.
    ``@code(lines)`` means plain text with line numbers.
    """
    argument = (paren_argument(param_line) or "").strip()
    params = parse_params(argument) if ":" in argument else {}
    if params:
        language = params.get("language") or params.get("lang") or "text"
    elif argument and _CODE_LANGUAGE_RE.match(argument):
        language = argument
    else:
        language = "text"
    # Flag words are never languages, matching the brace grammar.
    if language in CODE_FLAGS:
        return "text", {**params, "lineNumbers": "true"}
    if language == ESCAPED_MODIFIER:
        return "text", params
    return language, params


def code_body(lines: list[str]) -> tuple[str, str | None]:
    """Split code lines from a trailing ``*caption*`` line."""
    code_lines: list[str] = []
    for line in lines:
        found = caption_line(line.strip())
        if found is not None:
            return normalize_code("\n".join(code_lines)), found
        code_lines.append(line)
    return normalize_code("\n".join(code_lines)), None
