"""Brace-syntax LML parser (``@type #label "title" modifier { ... }``)."""

from __future__ import annotations

import logging
import re
import textwrap

from .balance import find_closing, unescape_braces, unescape_title
from .base import (
    BibEntry,
    Block,
    Code,
    Degraded,
    DocumentData,
    DocumentMetadata,
    Equation,
    Figure,
    Heading,
    ListBlock,
    Paragraph,
    ParseContext,
    ParseResult,
    Quote,
    Rule,
    Section,
    Table,
)
from .payloads import CODE_FLAGS, ESCAPED_MODIFIER, normalize_code, parse_pipe_table, split_attribution
from .properties import parse_properties

logger = logging.getLogger(__name__)

SECTION_LEVELS = {"section": 1, "subsection": 2, "subsubsection": 3}

_LEAF_TYPES = ("p", "h", "heading", "eq", "equation", "fig", "figure", "tbl", "table", "code", "list", "quote", "hr")

BLOCK_HEAD_RE = re.compile(
    r"@(?P<type>" + "|".join((*SECTION_LEVELS, *_LEAF_TYPES)) + r")(?![\w-])"
    r"(?:[ \t]+#(?P<label>[^\s{\"]+))?"
    r"(?:[ \t]+\"(?P<title>(?:[^\"\\\n]|\\.)*)\")?"
    r"(?P<modifiers>(?:[ \t]+[\w+#.-]+)*)"
    r"\s*\{"
)
_FENCE_RE = {
    "document": re.compile(r"@document(?:[ \t]+(escaped))?\s*\{"),
    "bibliography": re.compile(r"@bibliography()\s*\{"),
}
_ENTRY_RE = re.compile(r"@entry\s+([^\s{]+)(?:[ \t]+(escaped))?\s*\{")
_LIST_MARKER_RE = re.compile(r"^(?:[-*+]|\d+[.)])\s*")
_DOCUMENT_START_RE = re.compile(r"^@document(?:[ \t]+escaped)?\s*\{")


class BraceFormatParser:
    """Parse brace-syntax LML (the canonical serialized form) into :class:`DocumentData`."""

    def __init__(self, id_prefix: str | None = None) -> None:
        self.id_prefix = id_prefix

    def parse(self, source: str) -> DocumentData:
        return self.parse_with_errors(source).document

    def parse_with_errors(self, source: str) -> ParseResult:
        if not isinstance(source, str):
            raise TypeError(f"source must be str, not {type(source).__name__}")

        text = source.replace("\r\n", "\n")
        header, text = _take_fence(text, "document")
        bib_body, text = _take_fence(text, "bibliography")

        metadata = DocumentMetadata.from_properties(parse_properties(header)) if header is not None else DocumentMetadata()
        bibliography = _parse_entries(bib_body) if bib_body is not None else []

        state = _ParseState(text=text, ctx=ParseContext(id_prefix=self.id_prefix))
        state.parse_range(0, len(text), None, 0)

        document = DocumentData(metadata=metadata, blocks=state.blocks, bibliography=bibliography)
        return ParseResult(document=document, degraded=state.degraded)


class _ParseState:
    def __init__(self, text: str, ctx: ParseContext) -> None:
        self.text = text
        self.ctx = ctx
        self.blocks: list[Block] = []
        self.degraded: list[Degraded] = []

    def parse_range(self, start: int, end: int, parent_id: str | None, depth: int) -> None:
        pos = start
        while pos < end:
            match = BLOCK_HEAD_RE.search(self.text, pos, end)
            if match is None:
                self._free_text(pos, end, parent_id, depth)
                return

            self._free_text(pos, match.start(), parent_id, depth)
            brace = match.end() - 1
            close = find_closing(self.text, brace, end)
            if close is None:
                self._unclosed(match.start(), end, parent_id, depth)
                return

            block_type = match.group("type")
            label = match.group("label")
            title = match.group("title")
            modifiers = match.group("modifiers").split()

            if block_type in SECTION_LEVELS:
                section = Section(
                    **self.ctx.stamp(parent_id, depth, label),
                    title=unescape_title(title or ""),
                    level=SECTION_LEVELS[block_type],
                )
                self.blocks.append(section)
                self.parse_range(brace + 1, close, section.id, depth + 1)
            else:
                inner = self.text[brace + 1 : close]
                self.blocks.append(self._leaf(block_type, label, title, modifiers, inner, parent_id, depth))
            pos = close + 1

    def _leaf(
        self,
        block_type: str,
        label: str | None,
        title: str | None,
        modifiers: list[str],
        inner: str,
        parent_id: str | None,
        depth: int,
    ) -> Block:
        base = self.ctx.stamp(parent_id, depth, label)
        escaped = ESCAPED_MODIFIER in modifiers
        title = unescape_title(title) if title is not None else None
        body = textwrap.dedent(inner).strip()
        if escaped:
            body = unescape_braces(body)

        if block_type == "p":
            return Paragraph(**base, text=body)
        if block_type in ("h", "heading"):
            level = next((int(m) for m in modifiers if m.isdigit()), 1)
            return Heading(**base, text=body, level=level)
        if block_type in ("eq", "equation"):
            return Equation(**base, latex=body, numbered=bool(label))
        if block_type in ("fig", "figure"):
            props = parse_properties(inner)
            if escaped:
                props = {key: unescape_braces(value) for key, value in props.items()}
            width = props.get("width", "")
            return Figure(
                **base,
                src=props.get("src", ""),
                alt=props.get("alt", ""),
                caption=props.get("caption", ""),
                width=int(width) if width.isdigit() else None,
            )
        if block_type in ("tbl", "table"):
            parsed = parse_pipe_table(body.split("\n"))
            return Table(
                **base,
                caption=title or parsed.caption,
                headers=parsed.headers,
                rows=parsed.rows,
                alignment=parsed.alignment,
            )
        if block_type == "code":
            flags = [m for m in modifiers if m in CODE_FLAGS]
            language = next((m for m in modifiers if m not in CODE_FLAGS and m != ESCAPED_MODIFIER), "text")
            code = normalize_code(inner)
            return Code(
                **base,
                code=unescape_braces(code) if escaped else code,
                language=language,
                caption=title or None,
                line_numbers=bool(flags),
            )
        if block_type == "list":
            items = [_LIST_MARKER_RE.sub("", line.strip()).strip() for line in body.split("\n")]
            return ListBlock(**base, ordered="ordered" in modifiers, items=[i for i in items if i])
        if block_type == "quote":
            text, attribution = split_attribution(body.split("\n"))
            return Quote(**base, text=text, attribution=attribution)
        return Rule(**base)

    def _free_text(self, start: int, end: int, parent_id: str | None, depth: int) -> None:
        text = textwrap.dedent(self.text[start:end]).strip()
        if text:
            self.blocks.append(Paragraph(**self.ctx.stamp(parent_id, depth), text=text))

    def _unclosed(self, start: int, end: int, parent_id: str | None, depth: int) -> None:
        text = self.text[start:end].strip()
        line = self.text.count("\n", 0, start) + 1
        logger.debug("Line %d: unclosed block, remainder kept as paragraph", line)
        self.degraded.append(Degraded(line=line, kind="paragraph", text=text, reason="unclosed block"))
        self.blocks.append(Paragraph(**self.ctx.stamp(parent_id, depth), text=text))


def parse_brace_format(source: str) -> DocumentData:
    """Parse brace-syntax LML into a fresh :class:`DocumentData`."""
    return BraceFormatParser().parse(source)


def parse_brace_format_with_errors(source: str) -> ParseResult:
    return BraceFormatParser().parse_with_errors(source)


def is_brace_format(source: str) -> bool:
    """True when the first non-blank line opens a brace-syntax block."""
    for line in source.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        return bool(_DOCUMENT_START_RE.match(stripped) or BLOCK_HEAD_RE.match(stripped))
    return False


# ---------------------------------------------------------------------------
# Fenced sections
# ---------------------------------------------------------------------------

def _take_fence(text: str, name: str) -> tuple[str | None, str]:
    """Cut the first ``@name { ... }`` fence out of *text*, keeping its line breaks."""
    match = _FENCE_RE[name].search(text)
    if match is None:
        return None, text
    brace = match.end() - 1
    close = find_closing(text, brace)
    if close is None:
        return None, text
    span = text[match.start() : close + 1]
    body = text[brace + 1 : close]
    if match.group(1):
        body = unescape_braces(body)
    return body, text[: match.start()] + "\n" * span.count("\n") + text[close + 1 :]


def _parse_entries(body: str) -> list[BibEntry]:
    entries: list[BibEntry] = []
    pos = 0
    while match := _ENTRY_RE.search(body, pos):
        brace = match.end() - 1
        close = find_closing(body, brace)
        if close is None:
            break
        content = body[brace + 1 : close]
        props = parse_properties(unescape_braces(content) if match.group(2) else content)
        entries.append(BibEntry.from_fields(match.group(1), props.get("type", "misc"), props))
        pos = close + 1
    return entries
