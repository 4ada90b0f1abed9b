"""Human-readable LML text-format parser into the block model."""

from __future__ import annotations

import logging
import re

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
    Table,
)
from .payloads import code_body, code_language, list_items, parse_pipe_table, split_attribution
from .properties import directive_name, directive_params, parse_properties
from .scanner import HEADING_RE, KNOWN_BLOCK_NAMES, RawBlock, scan_blocks

logger = logging.getLogger(__name__)

INLINE_DIRECTIVES = frozenset(
    {
        "fn", "hl", "highlight", "note", "comment", "del", "strike", "todo", "link",
        "kbd", "abbr", "sub", "sup", "sc", "color", "img", "raw", "ref", "cite",
    }
)

# Raw blocks that only mean something to the preview renderer.
_PREVIEW_ONLY_KINDS = frozenset(
    {"toc", "footnote", "alert", "center", "epigraph", "dropcap", "divider", "lorem", "date", "latex"}
)

_LATEX_REF_RE = re.compile(r"\\(ref|cite)\{([^}]+)\}")
BIB_ENTRY_RE = re.compile(r"@bib\(\s*(\w+)\s*,\s*([^)\s]+)\s*\)")
_WIDTH_RE = re.compile(r"\s*(\d+)")


class TextFormatParser:
    """Parse LML text-format source into :class:`DocumentData`.

    Never raises on malformed input: anything that does not match a block rule
    degrades to a paragraph and is reported through :meth:`parse_with_errors`.
    """

    def __init__(self, id_prefix: str | None = None) -> None:
        self.id_prefix = id_prefix

    def parse(self, source: str) -> DocumentData:
        return self.parse_with_errors(source).document

    def parse_with_errors(self, source: str) -> ParseResult:
        if not isinstance(source, str):
            raise TypeError(f"source must be str, not {type(source).__name__}")

        ctx = ParseContext(id_prefix=self.id_prefix)
        degraded: list[Degraded] = []
        metadata: DocumentMetadata | None = None
        blocks: list[Block] = []
        bibliography: list[BibEntry] = []

        for raw in scan_blocks(source):
            if raw.kind == "document":
                if metadata is None:
                    metadata = DocumentMetadata.from_properties(parse_properties(raw.text))
                continue
            if raw.kind == "bibliography":
                bibliography.extend(_parse_bib_entries(raw.text))
                continue
            block = self._build_block(raw, ctx, degraded)
            if block is not None:
                blocks.append(block)

        document = DocumentData(
            metadata=metadata or DocumentMetadata(),
            blocks=blocks,
            bibliography=bibliography,
        )
        return ParseResult(document=document, degraded=degraded)

    def _build_block(self, raw: RawBlock, ctx: ParseContext, degraded: list[Degraded]) -> Block | None:
        kind = raw.kind

        if kind == "heading":
            return _heading(raw, ctx)
        if kind in ("hr", "pagebreak"):
            return Rule(**ctx.stamp())
        if kind == "paragraph":
            return _paragraph(raw, ctx, degraded)
        if kind == "equation":
            return _equation(raw, ctx)
        if kind == "figure":
            return _figure(raw, ctx)
        if kind == "code":
            return _code(raw, ctx)
        if kind == "table":
            return _table(raw, ctx)
        if kind == "list":
            return _list(raw, ctx)
        if kind == "quote":
            return _quote(raw, ctx)
        if kind == "abstract":
            return Paragraph(**ctx.stamp(), text=f"**Abstract:** {raw.text.strip()}".rstrip())
        if kind == "theorem":
            return _theorem(raw, ctx)

        if kind == "endlatex":
            _degrade(degraded, raw, "stray @endlatex dropped")
            return None

        if kind in _PREVIEW_ONLY_KINDS:
            lines = raw.source_lines
            if kind == "latex" and raw.closed:
                lines = ["@latex", *raw.lines, "@endlatex"]
            elif kind == "latex":
                lines = ["@latex", *raw.lines]
            text = "\n".join(lines).strip()
            _degrade(degraded, raw, "preview-only directive")
            return Paragraph(**ctx.stamp(), text=text) if text else None

        _degrade(degraded, raw, f"unhandled block kind {kind!r}")
        return None


def parse_text_format(source: str) -> DocumentData:
    """Parse text-format LML into a fresh :class:`DocumentData`."""
    return TextFormatParser().parse(source)


def parse_text_format_with_errors(source: str) -> ParseResult:
    return TextFormatParser().parse_with_errors(source)


# ---------------------------------------------------------------------------
# Block constructors
# ---------------------------------------------------------------------------

def _heading(raw: RawBlock, ctx: ParseContext) -> Heading:
    match = HEADING_RE.match(raw.param_line)
    if not match:
        return Heading(**ctx.stamp(), text=raw.param_line.lstrip("#").strip(), level=1)
    return Heading(**ctx.stamp(), text=match.group(2).strip(), level=len(match.group(1)))


def _paragraph(raw: RawBlock, ctx: ParseContext, degraded: list[Degraded]) -> Paragraph | None:
    text = raw.text.strip()
    if not text:
        return None

    name = directive_name(text)
    if name and name not in KNOWN_BLOCK_NAMES and name not in INLINE_DIRECTIVES:
        _degrade(degraded, raw, f"unknown directive @{name}")

    # LaTeX-style references are normalized to LML directives.
    text = _LATEX_REF_RE.sub(lambda m: f"@{m.group(1)}{{{m.group(2)}}}", text)
    return Paragraph(**ctx.stamp(), text=text)


def _equation(raw: RawBlock, ctx: ParseContext) -> Equation:
    params = directive_params(raw.param_line)
    label = params.get("label") or None
    return Equation(**ctx.stamp(label=label), latex=raw.text.strip(), numbered=bool(label))


def _figure(raw: RawBlock, ctx: ParseContext) -> Figure:
    params = directive_params(raw.param_line)
    width_match = _WIDTH_RE.match(params.get("width", ""))
    return Figure(
        **ctx.stamp(label=params.get("label")),
        src=params.get("src", ""),
        alt=params.get("alt", ""),
        caption=" ".join(line.strip() for line in raw.lines if line.strip()),
        width=int(width_match.group(1)) if width_match else None,
    )


def _code(raw: RawBlock, ctx: ParseContext) -> Code:
    language, params = code_language(raw.param_line)
    code, caption = code_body(raw.lines)
    return Code(
        **ctx.stamp(label=params.get("label")),
        code=code,
        language=language,
        caption=caption,
        line_numbers=params.get("lineNumbers", params.get("line_numbers", "")).lower() == "true",
    )


def _table(raw: RawBlock, ctx: ParseContext) -> Table:
    params = directive_params(raw.param_line)
    parsed = parse_pipe_table(raw.lines)
    return Table(
        **ctx.stamp(label=params.get("label")),
        caption=parsed.caption or params.get("caption", ""),
        headers=parsed.headers,
        rows=parsed.rows,
        alignment=parsed.alignment,
    )


def _list(raw: RawBlock, ctx: ParseContext) -> ListBlock:
    return ListBlock(**ctx.stamp(), ordered="ordered" in raw.param_line, items=list_items(raw.lines))


def _quote(raw: RawBlock, ctx: ParseContext) -> Quote:
    lines = [re.sub(r"^\s*>\s?", "", line) for line in raw.lines]
    text, attribution = split_attribution(lines)
    return Quote(**ctx.stamp(), text=text, attribution=attribution)


def _theorem(raw: RawBlock, ctx: ParseContext) -> Paragraph:
    params = directive_params(raw.param_line)
    type_label = (raw.name or "theorem").capitalize()
    title_part = f" ({params['title']})" if params.get("title") else ""
    prefix = f"**{type_label}{title_part}:** "
    return Paragraph(**ctx.stamp(label=params.get("label")), text=(prefix + raw.text.strip()).rstrip())


# ---------------------------------------------------------------------------
# Bibliography
# ---------------------------------------------------------------------------

def _parse_bib_entries(text: str) -> list[BibEntry]:
    """Parse ``@bib(type, key)`` entries followed by ``key: value`` lines."""
    matches = list(BIB_ENTRY_RE.finditer(text))
    entries: list[BibEntry] = []
    for idx, match in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        props = parse_properties(text[match.end() : end])
        entries.append(BibEntry.from_fields(match.group(2), match.group(1), props))
    return entries


def _degrade(degraded: list[Degraded], raw: RawBlock, reason: str) -> None:
    text = "\n".join(raw.source_lines)
    logger.debug("Line %d: %s block degraded (%s)", raw.start_line, raw.kind, reason)
    degraded.append(Degraded(line=raw.start_line, kind=raw.kind, text=text, reason=reason))
