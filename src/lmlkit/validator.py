"""Line/column diagnostics for LML text-format source."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Literal

from lmlkit.parser.payloads import code_language
from lmlkit.parser.properties import directive_params, paren_argument
from lmlkit.parser.scanner import KNOWN_BLOCK_NAMES, RawBlock, scan_blocks
from lmlkit.parser.text_parser import INLINE_DIRECTIVES

logger = logging.getLogger(__name__)

Severity = Literal["error", "warning", "info"]

_DIRECTIVE_RE = re.compile(r"^@(\w+)")
_INLINE_OPEN_RE = re.compile(r"@(" + "|".join(sorted(INLINE_DIRECTIVES, key=len, reverse=True)) + r")\(")
_EMPTY_HEADING_RE = re.compile(r"^#{1,6}\s*$")
_EMPTY_BOLD_RE = re.compile(r"^\*\*\s*\*\*$")
_DOLLAR_RE = re.compile(r"(?<!\\)\$")

# Content of these blocks is source, not prose; inline checks do not apply.
_OPAQUE_KINDS = frozenset({"code", "equation", "latex", "document"})


@dataclass(slots=True)
class Diagnostic:
    line: int
    column: int
    severity: Severity
    message: str
    code: str
    end_column: int | None = None


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == "error"]


@dataclass(slots=True)
class DocumentStats:
    word_count: int = 0
    char_count: int = 0
    line_count: int = 0
    heading_count: int = 0
    equation_count: int = 0
    figure_count: int = 0
    code_block_count: int = 0
    table_count: int = 0
    citation_count: int = 0
    footnote_count: int = 0


def validate(source: str) -> ValidationResult:
    """Check *source* and return diagnostics sorted by line."""
    if not isinstance(source, str):
        raise TypeError(f"source must be str, not {type(source).__name__}")

    diagnostics: list[Diagnostic] = []
    for raw in scan_blocks(source):
        diagnostics.extend(_check_block(raw))

    diagnostics.sort(key=lambda d: d.line)
    valid = not any(d.severity == "error" for d in diagnostics)
    logger.debug("Validation produced %d diagnostics (valid=%s)", len(diagnostics), valid)
    return ValidationResult(valid=valid, diagnostics=diagnostics)


def _check_block(raw: RawBlock) -> list[Diagnostic]:
    found: list[Diagnostic] = []

    if raw.kind == "latex":
        for line_no in raw.nested:
            found.append(
                Diagnostic(line_no, 1, "error", "Nested @latex block. Did you forget @endlatex?", "nested-latex-block")
            )
        if not raw.closed:
            found.append(
                Diagnostic(raw.start_line, 1, "error", "@latex block never closed with @endlatex", "unclosed-latex-block")
            )
        return found

    if raw.kind == "endlatex":
        found.append(Diagnostic(raw.start_line, 1, "error", "@endlatex without matching @latex", "unmatched-endlatex"))
        return found

    if raw.kind == "code":
        language, _params = code_language(raw.param_line)
        argument = (paren_argument(raw.param_line) or "").strip().lower()
        if language == "text" and argument != "text":
            found.append(
                Diagnostic(
                    raw.start_line,
                    1,
                    "info",
                    "Code block without language. Consider adding @code(language)",
                    "code-no-language",
                )
            )

    if raw.kind == "equation":
        argument = (paren_argument(raw.param_line) or "").strip()
        if argument and "label:" not in argument and "mode:" not in argument:
            found.append(
                Diagnostic(
                    raw.start_line, 1, "info", "Equation block should have label: or mode: parameters", "equation-params"
                )
            )

    if raw.kind == "figure" and not directive_params(raw.param_line).get("src"):
        found.append(Diagnostic(raw.start_line, 1, "error", "Figure requires src: parameter", "figure-no-src"))

    if raw.param_line:
        found.extend(_check_line(raw.param_line, raw.start_line))
    if raw.kind not in _OPAQUE_KINDS:
        for offset, line in enumerate(raw.lines):
            found.extend(_check_line(line, raw.content_start_line + offset))
    return found


def _check_line(line: str, line_no: int) -> list[Diagnostic]:
    found: list[Diagnostic] = []
    trimmed = line.strip()

    directive = _DIRECTIVE_RE.match(trimmed)
    if directive:
        name = directive.group(1)
        if name not in KNOWN_BLOCK_NAMES and name not in INLINE_DIRECTIVES:
            column = line.index("@") + 1
            found.append(
                Diagnostic(
                    line_no,
                    column,
                    "warning",
                    f"Unknown directive @{name}",
                    "unknown-directive",
                    end_column=column + len(name) + 1,
                )
            )

    for match in _INLINE_OPEN_RE.finditer(line):
        if not _parens_close(line, match.end() - 1):
            found.append(
                Diagnostic(
                    line_no, match.start() + 1, "error", f"Unclosed @{match.group(1)}() directive", "unclosed-directive"
                )
            )

    if _EMPTY_HEADING_RE.match(trimmed):
        found.append(Diagnostic(line_no, 1, "warning", "Empty heading", "empty-heading"))

    if _EMPTY_BOLD_RE.match(trimmed):
        found.append(Diagnostic(line_no, 1, "info", "Empty bold text", "empty-bold"))

    dollars = list(_DOLLAR_RE.finditer(line))
    # Display math may span lines.
    if len(dollars) % 2 and "\\[" not in line and "\\]" not in line:
        found.append(
            Diagnostic(
                line_no,
                dollars[0].start() + 1,
                "warning",
                "Unbalanced $ delimiters. Check inline math.",
                "unbalanced-math",
            )
        )
    return found


def _parens_close(line: str, open_index: int) -> bool:
    depth = 0
    for ch in line[open_index:]:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return True
    return False


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def document_stats(source: str) -> DocumentStats:
    """Word, character and construct counts for *source*."""
    text = re.sub(r"@\w+(\([^)]*\))?", "", source)
    text = re.sub(r"[#*_`$\\{}\[\]|]", "", text)
    return DocumentStats(
        word_count=len(text.split()),
        char_count=len(source),
        line_count=len(source.split("\n")),
        heading_count=len(re.findall(r"^#{1,6}\s", source, flags=re.MULTILINE)),
        equation_count=source.count("@equation"),
        figure_count=source.count("@figure"),
        code_block_count=source.count("@code"),
        table_count=source.count("@table"),
        citation_count=len(re.findall(r"(?:\\|@)cite\{", source)),
        footnote_count=source.count("@fn("),
    )
