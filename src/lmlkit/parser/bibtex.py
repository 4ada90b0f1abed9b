"""BibTeX reader and writer."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from .balance import find_closing
from .base import BIB_FIELDS, BibEntry, parse_year

logger = logging.getLogger(__name__)

TYPE_MAP = {
    "article": "article",
    "book": "book",
    "inbook": "book",
    "incollection": "book",
    "inproceedings": "inproceedings",
    "conference": "inproceedings",
    "phdthesis": "thesis",
    "mastersthesis": "thesis",
    "thesis": "thesis",
    "techreport": "misc",
    "manual": "misc",
    "unpublished": "misc",
    "misc": "misc",
}

_SKIPPED_TYPES = frozenset({"comment", "string", "preamble"})
_RECORD_RE = re.compile(r"@(\w+)\s*([{(])")
_FIELD_NAME_RE = re.compile(r"\s*([\w-]+)\s*=\s*")


def parse_bibtex(source: str) -> list[BibEntry]:
    """Extract every ``@type{key, field = value, ...}`` record from *source*."""
    if not isinstance(source, str):
        raise TypeError(f"source must be str, not {type(source).__name__}")

    entries: list[BibEntry] = []
    pos = 0
    while match := _RECORD_RE.search(source, pos):
        entry_type = match.group(1).lower()
        opener = match.group(2)
        start = match.end() - 1
        close = find_closing(source, start, opener=opener, closer="}" if opener == "{" else ")")
        if close is None:
            logger.debug("Unterminated BibTeX record @%s at offset %d", entry_type, match.start())
            break
        pos = close + 1
        if entry_type in _SKIPPED_TYPES:
            continue

        body = source[start + 1 : close]
        key, _, rest = body.partition(",")
        key = key.strip()
        if not key:
            logger.debug("BibTeX record @%s without key skipped", entry_type)
            continue

        fields = _parse_fields(rest)
        entries.append(BibEntry.from_fields(key, TYPE_MAP.get(entry_type, "misc"), fields))
    return entries


def _parse_fields(body: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    pos = 0
    while match := _FIELD_NAME_RE.match(body, pos):
        name = match.group(1).lower()
        value, pos = _read_value(body, match.end())
        fields[name] = " ".join(value.split())
        comma = body.find(",", pos)
        if comma == -1:
            break
        pos = comma + 1
    return fields


def _read_value(body: str, pos: int) -> tuple[str, int]:
    """Read one field value: ``{...}``, ``"..."`` or a bare token, joined by ``#``."""
    parts: list[str] = []
    while pos < len(body):
        ch = body[pos]
        if ch == "{":
            close = find_closing(body, pos)
            end = len(body) if close is None else close
            parts.append(_strip_grouping(body[pos + 1 : end]))
            pos = end + 1
        elif ch == '"':
            end = pos + 1
            depth = 0
            while end < len(body):
                if body[end] == "{":
                    depth += 1
                elif body[end] == "}":
                    depth -= 1
                elif body[end] == '"' and depth == 0 and body[end - 1] != "\\":
                    break
                end += 1
            parts.append(_strip_grouping(body[pos + 1 : end]))
            pos = end + 1
        else:
            match = re.match(r"[^,#\s}]+", body[pos:])
            if match is None:
                break
            parts.append(match.group(0))
            pos += match.end()

        rest = re.match(r"\s*#\s*", body[pos:])
        if rest is None:
            break
        pos += rest.end()
    return "".join(parts), pos


def _strip_grouping(value: str) -> str:
    # {B}ayesian -> Bayesian; escaped braces stay.
    return re.sub(r"(?<!\\)[{}]", "", value)


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

def format_bibtex(entries: Iterable[BibEntry]) -> str:
    """Render *entries* as a ``.bib`` file."""
    records = []
    for entry in entries:
        fields = [("author", entry.author), ("title", entry.title)]
        if entry.year:
            fields.append(("year", str(entry.year)))
        fields.extend((name, getattr(entry, name)) for name in BIB_FIELDS)
        lines = [f"  {name} = {{{value}}}" for name, value in fields if value]
        records.append(f"@{entry.type}{{{entry.key},\n" + ",\n".join(lines) + "\n}")
    return "\n\n".join(records) + ("\n" if records else "")


def merge_entries(existing: Iterable[BibEntry], new: Iterable[BibEntry]) -> list[BibEntry]:
    """Append the entries of *new* whose keys are not already present."""
    merged = list(existing)
    seen = {entry.key for entry in merged}
    for entry in new:
        if entry.key not in seen:
            merged.append(entry)
            seen.add(entry.key)
    return merged
