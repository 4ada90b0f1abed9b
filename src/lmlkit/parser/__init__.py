"""Parser package."""

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
    structural_view,
)
from .bibtex import format_bibtex, merge_entries, parse_bibtex
from .brace_parser import BraceFormatParser, is_brace_format, parse_brace_format, parse_brace_format_with_errors
from .scanner import RawBlock, scan_blocks
from .tex_parser import (
    ImportIssue,
    LatexCheck,
    LatexImporter,
    LatexImportOptions,
    LatexImportResult,
    import_latex,
    validate_latex,
)
from .text_parser import TextFormatParser, parse_text_format, parse_text_format_with_errors

__all__ = [
    "BibEntry",
    "Block",
    "Code",
    "Degraded",
    "DocumentData",
    "DocumentMetadata",
    "Equation",
    "Figure",
    "Heading",
    "ListBlock",
    "Paragraph",
    "ParseContext",
    "ParseResult",
    "Quote",
    "Rule",
    "Section",
    "Table",
    "structural_view",
    "format_bibtex",
    "merge_entries",
    "parse_bibtex",
    "BraceFormatParser",
    "is_brace_format",
    "parse_brace_format",
    "parse_brace_format_with_errors",
    "RawBlock",
    "scan_blocks",
    "ImportIssue",
    "LatexCheck",
    "LatexImporter",
    "LatexImportOptions",
    "LatexImportResult",
    "import_latex",
    "validate_latex",
    "TextFormatParser",
    "parse_text_format",
    "parse_text_format_with_errors",
]
