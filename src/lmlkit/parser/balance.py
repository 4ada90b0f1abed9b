"""Balanced-delimiter scanning used by the brace, LaTeX and BibTeX readers."""

from __future__ import annotations

import re


def find_closing(text: str, open_index: int, end: int | None = None, opener: str = "{", closer: str = "}") -> int | None:
    """Index of the delimiter closing the one at *open_index*, or ``None`` if unclosed.

    Delimiters preceded by a backslash are treated as escaped.
    """
    limit = len(text) if end is None else min(end, len(text))
    if open_index >= limit or text[open_index] != opener:
        return None
    depth = 0
    i = open_index
    while i < limit:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


def read_balanced_braces(text: str, brace_start: int) -> tuple[str, int]:
    """Return the content inside the braces at *brace_start* and the index after the closing brace.

    An unclosed group yields everything to the end of *text*.
    """
    if brace_start >= len(text) or text[brace_start] != "{":
        return "", brace_start
    close = find_closing(text, brace_start)
    if close is None:
        return text[brace_start + 1 :], len(text)
    return text[brace_start + 1 : close], close + 1


def is_balanced(text: str, opener: str = "{", closer: str = "}") -> bool:
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth < 0:
                return False
        i += 1
    return depth == 0


# ---------------------------------------------------------------------------
# Escaping for brace-delimited payloads and quoted titles
# ---------------------------------------------------------------------------

_BRACE_ESCAPE_RE = re.compile(r"\\([\\{}])")
_TITLE_ESCAPE_RE = re.compile(r"\\([\\\"])")


def fits_in_braces(text: str) -> bool:
    """True when ``{text}`` closes exactly at its final brace."""
    wrapped = "{" + text + "}"
    return find_closing(wrapped, 0) == len(wrapped) - 1


def escape_braces(text: str) -> str:
    return text.replace("\\", "\\\\").replace("{", "\\{").replace("}", "\\}")


def unescape_braces(text: str) -> str:
    return _BRACE_ESCAPE_RE.sub(r"\1", text)


def escape_title(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def unescape_title(text: str) -> str:
    return _TITLE_ESCAPE_RE.sub(r"\1", text)
