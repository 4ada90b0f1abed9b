"""Core block model (IR) shared by the LML parsers, the serializer and the importer."""

from __future__ import annotations

import re
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar, Literal

from lmlkit import config

Alignment = Literal["left", "center", "right"]
BibType = Literal["article", "book", "inproceedings", "thesis", "misc"]

BIB_TYPES = ("article", "book", "inproceedings", "thesis", "misc")
BIB_FIELDS = ("journal", "booktitle", "publisher", "volume", "pages", "doi", "url")

_BASE_FIELDS = frozenset({"id", "sort_key", "label", "parent_id", "depth"})
_YEAR_RE = re.compile(r"\d{4}")


@dataclass(slots=True)
class ParseContext:
    """Explicit id and sort-key counters threaded through every block constructor.

    A fresh context per parse keeps concurrent parses of independent documents
    from sharing state.
    """

    id_prefix: str | None = None
    sort_counter: int = 0
    id_counter: int = 0

    def next_sort_key(self) -> str:
        self.sort_counter += 1
        return str(self.sort_counter).zfill(config.SORT_KEY_WIDTH)

    def next_id(self) -> str:
        self.id_counter += 1
        if self.id_prefix:
            return f"{self.id_prefix}-{self.id_counter}"
        return uuid.uuid4().hex[:13]

    def stamp(self, parent_id: str | None = None, depth: int = 0, label: str | None = None) -> dict[str, Any]:
        """Base-field keyword arguments for the next block in document order."""
        return {
            "id": self.next_id(),
            "sort_key": self.next_sort_key(),
            "label": label or None,
            "parent_id": parent_id,
            "depth": depth,
        }


@dataclass(slots=True, kw_only=True)
class BlockBase:
    kind: ClassVar[str] = ""

    id: str
    sort_key: str
    label: str | None = None
    parent_id: str | None = None
    depth: int = 0

    def payload(self) -> dict[str, Any]:
        """Variant-specific fields, without the shared base fields."""
        return {f.name: _copy_value(getattr(self, f.name)) for f in fields(self) if f.name not in _BASE_FIELDS}


@dataclass(slots=True, kw_only=True)
class Section(BlockBase):
    kind: ClassVar[str] = "section"

    title: str = ""
    level: int = 1

    def __post_init__(self) -> None:
        self.level = _clamp(self.level, 1, 4)


@dataclass(slots=True, kw_only=True)
class Paragraph(BlockBase):
    kind: ClassVar[str] = "paragraph"

    text: str = ""


@dataclass(slots=True, kw_only=True)
class Heading(BlockBase):
    kind: ClassVar[str] = "heading"

    text: str = ""
    level: int = 1

    def __post_init__(self) -> None:
        self.level = _clamp(self.level, 1, 6)


@dataclass(slots=True, kw_only=True)
class Equation(BlockBase):
    kind: ClassVar[str] = "equation"

    latex: str = ""
    numbered: bool = False


@dataclass(slots=True, kw_only=True)
class Figure(BlockBase):
    kind: ClassVar[str] = "figure"

    src: str = ""
    alt: str = ""
    caption: str = ""
    width: int | None = None


@dataclass(slots=True, kw_only=True)
class Table(BlockBase):
    kind: ClassVar[str] = "table"

    caption: str = ""
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    alignment: list[Alignment] | None = None

    def __post_init__(self) -> None:
        # Ragged rows are normalized to the header width.
        width = len(self.headers)
        if width:
            self.rows = [(list(row) + [""] * width)[:width] for row in self.rows]
            if self.alignment:
                self.alignment = (list(self.alignment) + ["left"] * width)[:width]
        if not self.alignment:
            self.alignment = None


@dataclass(slots=True, kw_only=True)
class Code(BlockBase):
    kind: ClassVar[str] = "code"

    code: str = ""
    language: str = "text"
    caption: str | None = None
    line_numbers: bool = False


@dataclass(slots=True, kw_only=True)
class ListBlock(BlockBase):
    kind: ClassVar[str] = "list"

    ordered: bool = False
    items: list[str] = field(default_factory=list)


@dataclass(slots=True, kw_only=True)
class Quote(BlockBase):
    kind: ClassVar[str] = "quote"

    text: str = ""
    attribution: str | None = None


@dataclass(slots=True, kw_only=True)
class Rule(BlockBase):
    kind: ClassVar[str] = "hr"


Block = Section | Paragraph | Heading | Equation | Figure | Table | Code | ListBlock | Quote | Rule


@dataclass(frozen=True, slots=True)
class DocumentMetadata:
    title: str = config.DEFAULT_TITLE
    author: str | None = None
    date: str | None = None
    language: str = config.DEFAULT_LANGUAGE
    paper_size: str = config.DEFAULT_PAPER_SIZE
    font_size: int = config.DEFAULT_FONT_SIZE
    font_family: str = config.DEFAULT_FONT_FAMILY
    template: str | None = None

    @classmethod
    def from_properties(cls, props: dict[str, str]) -> DocumentMetadata:
        """Build metadata from ``key: value`` header properties, falling back to defaults."""
        paper_size = props.get("paperSize") or props.get("paper_size") or config.DEFAULT_PAPER_SIZE
        if paper_size not in config.PAPER_SIZES:
            paper_size = config.DEFAULT_PAPER_SIZE

        raw_size = props.get("fontSize") or props.get("font_size") or ""
        match = re.match(r"\s*(\d+)", raw_size)
        font_size = int(match.group(1)) if match else config.DEFAULT_FONT_SIZE

        return cls(
            title=props.get("title") or config.DEFAULT_TITLE,
            author=props.get("author") or None,
            date=props.get("date") or None,
            language=props.get("language") or config.DEFAULT_LANGUAGE,
            paper_size=paper_size,
            font_size=font_size,
            font_family=props.get("fontFamily") or props.get("font_family") or config.DEFAULT_FONT_FAMILY,
            template=props.get("template") or None,
        )


@dataclass(slots=True)
class BibEntry:
    key: str
    type: BibType = "misc"
    author: str = ""
    title: str = ""
    year: int = 0
    journal: str | None = None
    booktitle: str | None = None
    publisher: str | None = None
    volume: str | None = None
    pages: str | None = None
    doi: str | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        if self.type not in BIB_TYPES:
            self.type = "misc"

    @classmethod
    def from_fields(cls, key: str, entry_type: str, values: dict[str, str]) -> BibEntry:
        return cls(
            key=key,
            type=entry_type.lower(),  # type: ignore[arg-type]
            author=values.get("author", ""),
            title=values.get("title", ""),
            year=parse_year(values.get("year", "")),
            **{name: values.get(name) or None for name in BIB_FIELDS},
        )


@dataclass(slots=True)
class DocumentData:
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    blocks: list[Block] = field(default_factory=list)
    bibliography: list[BibEntry] = field(default_factory=list)

    def roots(self) -> list[Block]:
        return sorted((b for b in self.blocks if not b.parent_id), key=lambda b: b.sort_key)

    def children_index(self) -> dict[str, list[Block]]:
        """Map each parent id to its children in sort-key order."""
        index: dict[str, list[Block]] = {}
        for block in self.blocks:
            if block.parent_id:
                index.setdefault(block.parent_id, []).append(block)
        for children in index.values():
            children.sort(key=lambda b: b.sort_key)
        return index

    def find_label(self, label: str) -> Block | None:
        return next((b for b in self.blocks if b.label == label), None)


@dataclass(slots=True)
class Degraded:
    """Input that did not match a grammar rule and fell back to a permissive form."""

    line: int
    kind: str
    text: str
    reason: str


@dataclass(slots=True)
class ParseResult:
    document: DocumentData
    degraded: list[Degraded] = field(default_factory=list)


def structural_view(doc: DocumentData) -> dict[str, Any]:
    """Id-free projection of a document, comparable across independent parses."""
    position = {block.id: idx for idx, block in enumerate(doc.blocks)}
    return {
        "metadata": asdict(doc.metadata),
        "blocks": [
            {
                "kind": block.kind,
                "label": block.label,
                "depth": block.depth,
                "parent": position.get(block.parent_id) if block.parent_id else None,
                "payload": block.payload(),
            }
            for block in doc.blocks
        ],
        "bibliography": [asdict(entry) for entry in doc.bibliography],
    }


def parse_year(value: str) -> int:
    match = _YEAR_RE.search(value or "")
    return int(match.group(0)) if match else 0


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _copy_value(value: Any) -> Any:
    if isinstance(value, list):
        return [_copy_value(v) for v in value]
    return value
