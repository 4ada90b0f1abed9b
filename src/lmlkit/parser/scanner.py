"""Shared block-boundary scanner for the LML text format.

The text parser, the preview renderer and the validator all consume
:func:`scan_blocks`, so the three agree on where every block starts and ends.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

from .properties import directive_name

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")

THEOREM_KINDS = (
    "definition",
    "theorem",
    "proof",
    "lemma",
    "proposition",
    "corollary",
    "remark",
    "example",
)

# Directive name -> raw block kind.
_DIRECTIVE_KINDS: dict[str, str] = {
    "equation": "equation",
    "figure": "figure",
    "code": "code",
    "table": "table",
    "list": "list",
    "abstract": "abstract",
    "pagebreak": "pagebreak",
    "toc": "toc",
    "bibliography": "bibliography",
    "footnote": "footnote",
    "alert": "alert",
    "center": "center",
    "epigraph": "epigraph",
    "dropcap": "dropcap",
    "divider": "divider",
    "lorem": "lorem",
    "date": "date",
    "latex": "latex",
    "endlatex": "endlatex",
    "document": "document",
    **{name: "theorem" for name in THEOREM_KINDS},
}

# Every directive name allowed at the start of a line.
KNOWN_BLOCK_NAMES = frozenset(_DIRECTIVE_KINDS) | {"bib", "quote"}

SINGLE_LINE_KINDS = frozenset({"heading", "hr", "pagebreak", "toc", "date", "lorem", "divider", "endlatex"})
# These end on a blank line only once they hold content beyond the directive line.
MULTI_LINE_KINDS = frozenset({"equation", "code", "table", "list"})
# These run until the next block start, blank lines included.
GREEDY_KINDS = frozenset({"bibliography"})


@dataclass(slots=True)
class RawBlock:
    """One block as delimited in the source, before any interpretation."""

    kind: str
    start_line: int
    param_line: str = ""
    lines: list[str] = field(default_factory=list)
    name: str = ""
    closed: bool = True
    nested: list[int] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def source_lines(self) -> list[str]:
        return [self.param_line, *self.lines] if self.param_line else list(self.lines)

    @property
    def content_start_line(self) -> int:
        """1-based line number of ``lines[0]``."""
        return self.start_line + 1 if self.param_line else self.start_line


def classify_line(trimmed: str) -> tuple[str, str] | None:
    """Return ``(kind, directive_name)`` when *trimmed* starts a block."""
    if HEADING_RE.match(trimmed):
        return "heading", ""
    if trimmed == "---":
        return "hr", ""
    if trimmed.startswith(">"):
        return "quote", ""
    name = directive_name(trimmed)
    if name is None:
        return None
    kind = _DIRECTIVE_KINDS.get(name)
    if kind is None:
        return None
    if kind in ("latex", "endlatex", "document") and trimmed != f"@{name}":
        return None
    return kind, name


def scan_blocks(source: str) -> Iterator[RawBlock]:
    """Lazily split LML text source into :class:`RawBlock` items in document order."""
    current: RawBlock | None = None

    for line_no, line in enumerate(source.split("\n"), start=1):
        line = line.rstrip("\r")
        trimmed = line.strip()

        if current is not None and current.kind == "latex":
            if trimmed == "@endlatex":
                yield current
                current = None
            else:
                if trimmed == "@latex":
                    current.nested.append(line_no)
                current.lines.append(line)
            continue

        if current is not None and current.kind == "document":
            if trimmed and not trimmed.startswith(("#", "@")):
                current.lines.append(line)
                continue
            yield current
            current = None

        start = classify_line(trimmed)
        if start is not None:
            kind, name = start
            if kind == "quote":
                if current is not None and current.kind == "quote":
                    current.lines.append(line)
                    continue
                if current is not None:
                    yield current
                current = RawBlock(kind="quote", start_line=line_no, lines=[line])
                continue

            if current is not None:
                yield current
            current = RawBlock(kind=kind, start_line=line_no, param_line=trimmed, name=name)
            if kind in SINGLE_LINE_KINDS:
                yield current
                current = None
            continue

        if not trimmed:
            if current is None:
                continue
            if _ends_on_blank(current):
                yield current
                current = None
            else:
                current.lines.append(line)
            continue

        if current is None:
            current = RawBlock(kind="paragraph", start_line=line_no, lines=[line])
        else:
            current.lines.append(line)

    if current is not None:
        if current.kind == "latex":
            current.closed = False
        yield current


def _ends_on_blank(block: RawBlock) -> bool:
    if block.kind in GREEDY_KINDS:
        return False
    if block.kind in MULTI_LINE_KINDS:
        return len(block.lines) > 0
    return True
