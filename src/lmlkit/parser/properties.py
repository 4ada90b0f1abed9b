"""Permissive ``key: value`` property and parameter-list parsing."""

from __future__ import annotations

import re

_HEADER_LINE_RE = re.compile(r"^\s*([A-Za-z_][\w-]*)\s*:\s*(.+?)\s*$")
_PARAM_SPLIT_RE = re.compile(r",\s*(?=[A-Za-z_][\w-]*\s*:)")
_PARAM_RE = re.compile(r"^\s*([A-Za-z_][\w-]*)\s*:\s*(.*?)\s*$", re.DOTALL)
_DIRECTIVE_RE = re.compile(r"^@([A-Za-z]\w*)")


def strip_quotes(value: str) -> str:
    """Strip a single layer of matching surrounding quotes."""
    if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
        return value[1:-1]
    return value


def parse_properties(content: str) -> dict[str, str]:
    """Parse YAML-like ``key: value`` lines; lines without a colon are skipped."""
    props: dict[str, str] = {}
    for line in content.splitlines():
        match = _HEADER_LINE_RE.match(line)
        if match:
            props[match.group(1)] = strip_quotes(match.group(2))
    return props


def parse_params(param_string: str) -> dict[str, str]:
    """Parse an inline ``key1: v1, key2: v2`` list.

    Commas only separate entries when followed by another ``key:``, so values
    like ``alt: Cats, dogs`` survive intact.
    """
    params: dict[str, str] = {}
    if not param_string:
        return params
    for part in _PARAM_SPLIT_RE.split(param_string):
        match = _PARAM_RE.match(part)
        if match:
            params[match.group(1)] = strip_quotes(match.group(2))
    return params


def directive_name(line: str) -> str | None:
    """Name of the ``@name`` directive starting *line*, if any."""
    match = _DIRECTIVE_RE.match(line.strip())
    return match.group(1) if match else None


def paren_argument(line: str) -> str | None:
    """Content of the first balanced ``(...)`` group in *line*.

    Returns ``None`` when there is no opening parenthesis. An unclosed group
    yields everything after the opening parenthesis.
    """
    start = line.find("(")
    if start == -1:
        return None
    depth = 0
    for idx in range(start, len(line)):
        ch = line[idx]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return line[start + 1 : idx]
    return line[start + 1 :]


def directive_params(line: str) -> dict[str, str]:
    """Parameters of a directive line such as ``@figure(src: a.png, width: 50)``."""
    return parse_params(paren_argument(line) or "")
