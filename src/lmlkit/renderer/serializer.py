"""Serialize the block model back to canonical brace-syntax LML."""

from __future__ import annotations

from lmlkit import config
from lmlkit.parser.balance import escape_braces, escape_title, fits_in_braces
from lmlkit.parser.base import (
    BIB_FIELDS,
    BibEntry,
    Block,
    Code,
    DocumentData,
    DocumentMetadata,
    Equation,
    Figure,
    Heading,
    ListBlock,
    Paragraph,
    Quote,
    Section,
    Table,
)
from lmlkit.parser.payloads import ESCAPED_MODIFIER

_SECTION_TYPES = {1: "section", 2: "subsection", 3: "subsubsection", 4: "subsubsection"}


class LMLSerializer:
    """Pure function object turning :class:`DocumentData` into LML source.

    Output is round-trippable through the brace parser, not byte-identical to
    whatever was originally parsed.
    """

    def __init__(self, indent: str = config.INDENT) -> None:
        self.indent = indent

    def serialize(self, doc: DocumentData) -> str:
        parts = [self._document(doc.metadata), self._blocks(doc)]
        if doc.bibliography:
            parts.append(self._bibliography(doc.bibliography))
        return "\n\n".join(part for part in parts if part) + "\n"

    def _document(self, meta: DocumentMetadata) -> str:
        props = [f'title: "{meta.title}"']
        if meta.author:
            props.append(f'author: "{meta.author}"')
        if meta.date:
            props.append(f'date: "{meta.date}"')
        props.append(f"language: {meta.language}")
        if meta.template:
            props.append(f"template: {meta.template}")
        props.append(f"paperSize: {meta.paper_size}")
        props.append(f"fontSize: {meta.font_size}")
        props.append(f"fontFamily: {meta.font_family}")
        head, body = _escaped("@document", "\n".join(self.indent + p for p in props))
        return f"{head} {{\n{body}\n}}"

    def _blocks(self, doc: DocumentData) -> str:
        known = {block.id for block in doc.blocks}
        children = doc.children_index()
        # Blocks whose parent is missing are emitted at the root rather than lost.
        roots = sorted(
            (b for b in doc.blocks if not b.parent_id or b.parent_id not in known),
            key=lambda b: b.sort_key,
        )
        return "\n\n".join(self._block(block, children, 0) for block in roots)

    def _block(self, block: Block, children: dict[str, list[Block]], level: int) -> str:
        prefix = self.indent * level
        label = f" #{block.label}" if block.label else ""

        if isinstance(block, Section):
            child_text = "\n\n".join(self._block(c, children, level + 1) for c in children.get(block.id, []))
            head = f"{prefix}@{_SECTION_TYPES[block.level]}{label}{_title(block.title)}"
            if child_text:
                return f"{head} {{\n{child_text}\n{prefix}}}"
            return f"{head} {{}}"

        if isinstance(block, Paragraph):
            return self._text_block(f"{prefix}@p{label}", block.text, prefix, compact=True)

        if isinstance(block, Heading):
            head, text = _escaped(f"{prefix}@h{label} {block.level}", block.text)
            return f"{head} {{ {text} }}"

        if isinstance(block, Equation):
            return self._text_block(f"{prefix}@eq{label}", block.latex, prefix, compact=True)

        if isinstance(block, Figure):
            return self._figure(block, prefix, label)

        if isinstance(block, Table):
            return self._table(block, prefix, label)

        if isinstance(block, Code):
            title = _title(block.caption) if block.caption else ""
            flags = " lines" if block.line_numbers else ""
            head = f"{prefix}@code{label}{title} {block.language or 'text'}{flags}"
            return self._text_block(head, block.code, prefix, compact=False)

        if isinstance(block, ListBlock):
            modifier = " ordered" if block.ordered else ""
            markers = [f"{i}." if block.ordered else "-" for i in range(1, len(block.items) + 1)]
            lines = [f"{marker} {item}" for marker, item in zip(markers, block.items)]
            return self._text_block(f"{prefix}@list{label}{modifier}", "\n".join(lines), prefix, compact=False)

        if isinstance(block, Quote):
            text = block.text
            if block.attribution:
                text = f"{text}\n-- {block.attribution}" if text else f"-- {block.attribution}"
            return self._text_block(f"{prefix}@quote{label}", text, prefix, compact=False)

        return f"{prefix}@hr{label} {{}}"

    def _text_block(self, head: str, text: str, prefix: str, *, compact: bool) -> str:
        head, text = _escaped(head, text)
        if compact and "\n" not in text and len(text) < config.COMPACT_PARAGRAPH_LIMIT:
            return f"{head} {{ {text} }}"
        body = _indent(text, prefix + self.indent)
        return f"{head} {{\n{body}\n{prefix}}}"

    def _figure(self, block: Figure, prefix: str, label: str) -> str:
        inner = prefix + self.indent
        values = {"src": block.src, "alt": block.alt, "caption": " ".join(block.caption.split("\n"))}
        modifier = ""
        if not all(fits_in_braces(value) for value in values.values()):
            modifier = f" {ESCAPED_MODIFIER}"
            values = {key: escape_braces(value) for key, value in values.items()}
        props = [f'{inner}src: "{values["src"]}"']
        if values["alt"]:
            props.append(f'{inner}alt: "{values["alt"]}"')
        if values["caption"]:
            props.append(f'{inner}caption: "{values["caption"]}"')
        if block.width:
            props.append(f"{inner}width: {block.width}")
        body = "\n".join(props)
        return f"{prefix}@fig{label}{modifier} {{\n{body}\n{prefix}}}"

    def _table(self, block: Table, prefix: str, label: str) -> str:
        title = _title(block.caption) if block.caption else ""
        head = f"{prefix}@tbl{label}{title}"
        if not block.headers and not block.rows:
            return f"{head} {{}}"

        all_rows = [block.headers, *block.rows]
        columns = max(len(row) for row in all_rows)
        widths = [max(3, *(len(row[i]) if i < len(row) else 0 for row in all_rows)) for i in range(columns)]

        def format_row(row: list[str]) -> str:
            cells = [(row[i] if i < len(row) else "").ljust(widths[i]) for i in range(columns)]
            return "| " + " | ".join(cells) + " |"

        lines = [format_row(block.headers)]
        if block.alignment:
            lines.append("|" + "|".join(_separator(block.alignment[i] if i < len(block.alignment) else "left", w) for i, w in enumerate(widths)) + "|")
        lines.extend(format_row(row) for row in block.rows)

        head, text = _escaped(head, "\n".join(lines))
        inner = prefix + self.indent
        body = "\n".join(inner + line for line in text.split("\n"))
        return f"{head} {{\n{body}\n{prefix}}}"

    def _bibliography(self, entries: list[BibEntry]) -> str:
        inner = self.indent * 2
        rendered = []
        for entry in entries:
            props = [
                f"{inner}type: {entry.type}",
                f'{inner}author: "{entry.author}"',
                f'{inner}title: "{entry.title}"',
                f"{inner}year: {entry.year}",
            ]
            for name in BIB_FIELDS:
                value = getattr(entry, name)
                if value:
                    props.append(f'{inner}{name}: "{value}"')
            head, body = _escaped(f"{self.indent}@entry {entry.key}", "\n".join(props))
            rendered.append(f"{head} {{\n{body}\n{self.indent}}}")
        return "@bibliography {\n" + "\n\n".join(rendered) + "\n}"


def serialize(doc: DocumentData) -> str:
    """Serialize *doc* to canonical LML source."""
    return LMLSerializer().serialize(doc)


def _escaped(head: str, text: str) -> tuple[str, str]:
    """Mark and escape *text* when its braces would not close where the block does."""
    if fits_in_braces(text):
        return head, text
    return f"{head} {ESCAPED_MODIFIER}", escape_braces(text)


def _title(text: str) -> str:
    return f' "{escape_title(text)}"'


def _indent(text: str, prefix: str) -> str:
    return "\n".join(prefix + line if line.strip() else "" for line in text.split("\n"))


def _separator(alignment: str, width: int) -> str:
    if alignment == "center":
        return ":" + "-" * width + ":"
    if alignment == "right":
        return "-" * (width + 1) + ":"
    return "-" * (width + 2)
