"""lmlkit: parse, serialize, import, render and validate LML documents."""

from __future__ import annotations

from lmlkit.parser import (
    BibEntry,
    DocumentData,
    DocumentMetadata,
    LatexImportOptions,
    ParseResult,
    format_bibtex,
    import_latex,
    is_brace_format,
    merge_entries,
    parse_bibtex,
    parse_brace_format,
    parse_brace_format_with_errors,
    parse_text_format,
    parse_text_format_with_errors,
    structural_view,
    validate_latex,
)
from lmlkit.renderer import HTMLRenderer, render_to_markup, serialize
from lmlkit.validator import document_stats, validate

__version__ = "0.1.0"


def parse(source: str) -> DocumentData:
    """Parse LML in either grammar, picking brace syntax when the source opens with a brace block."""
    return parse_with_errors(source).document


def parse_with_errors(source: str) -> ParseResult:
    if not isinstance(source, str):
        raise TypeError(f"source must be str, not {type(source).__name__}")
    if is_brace_format(source):
        return parse_brace_format_with_errors(source)
    return parse_text_format_with_errors(source)


__all__ = [
    "BibEntry",
    "DocumentData",
    "DocumentMetadata",
    "HTMLRenderer",
    "LatexImportOptions",
    "ParseResult",
    "document_stats",
    "format_bibtex",
    "import_latex",
    "is_brace_format",
    "merge_entries",
    "parse",
    "parse_bibtex",
    "parse_brace_format",
    "parse_brace_format_with_errors",
    "parse_text_format",
    "parse_text_format_with_errors",
    "parse_with_errors",
    "render_to_markup",
    "serialize",
    "structural_view",
    "validate",
    "validate_latex",
]
