"""LaTeX importer: map LaTeX source onto the LML block model."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Literal

from lmlkit import config

from .balance import find_closing, is_balanced, read_balanced_braces
from .base import (
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
    ParseContext,
    Quote,
    Table,
)
from .bibtex import merge_entries, parse_bibtex
from .payloads import normalize_code
from .scanner import THEOREM_KINDS

logger = logging.getLogger(__name__)

_HEADING_LEVELS = {
    "chapter": 1,
    "section": 1,
    "subsection": 2,
    "subsubsection": 3,
    "paragraph": 4,
}

_MATH_ENVS = ("equation", "align", "gather", "multline", "eqnarray")
_LIST_ENVS = ("itemize", "enumerate", "description")
_QUOTE_ENVS = ("quote", "quotation", "verse")
_CODE_ENVS = ("verbatim", "lstlisting", "minted")
_CONTAINER_ENVS = ("document", "center", "flushleft", "flushright", "minipage")

_TOKEN_RE = re.compile(
    r"\\begin\{(?P<env>[^{}]+)\}"
    r"|\\(?P<heading>chapter|section|subsection|subsubsection|paragraph)\*?(?:\[[^\]]*\])?\{"
    r"|\\(?P<bare>maketitle|tableofcontents|listoffigures|listoftables|newpage|clearpage|bibliographystyle|bibliography)(?![a-zA-Z])"
    r"|(?<!\\)(?P<display>\\\[|\$\$)"
)
_ITEM_RE = re.compile(r"\\item(?![a-zA-Z])\s*(?:\[(?P<term>[^\]]*)\])?|\\begin\{(?P<env>[^{}]+)\}")
_BIBITEM_RE = re.compile(r"\\bibitem\s*(?:\[[^\]]*\])?\s*\{([^{}]+)\}")
_RULE_RE = re.compile(r"\\(?:hline|toprule|midrule|bottomrule)\b|\\cline\{[^{}]*\}")
_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n")
_WIDTH_RE = re.compile(r"width\s*=\s*([\d.]+)\s*\\(?:textwidth|linewidth|columnwidth)")
_LABEL_FOLLOW_RE = re.compile(r"\s*\\label\{([^{}]*)\}")

IssueSeverity = Literal["error", "warning"]


@dataclass(slots=True)
class LatexImportOptions:
    preserve_labels: bool = True
    parse_inline_math: bool = True
    strict_mode: bool = False


@dataclass(slots=True)
class ImportIssue:
    line: int
    message: str
    severity: IssueSeverity = "warning"

    def __str__(self) -> str:
        return f"Line {self.line}: {self.message}"


@dataclass(slots=True)
class LatexImportResult:
    title: str = config.DEFAULT_TITLE
    author: str | None = None
    date: str | None = None
    document_class: str = "article"
    blocks: list[Block] = field(default_factory=list)
    bibliography: list[BibEntry] = field(default_factory=list)
    errors: list[ImportIssue] = field(default_factory=list)
    warnings: list[ImportIssue] = field(default_factory=list)

    def to_document(self) -> DocumentData:
        metadata = DocumentMetadata(title=self.title, author=self.author, date=self.date)
        return DocumentData(metadata=metadata, blocks=list(self.blocks), bibliography=list(self.bibliography))


@dataclass(slots=True)
class LatexCheck:
    valid: bool
    errors: list[str] = field(default_factory=list)


class LatexImporter:
    """Import LaTeX source into LML blocks.

    The body is walked by a small recursive-descent scanner: environments are
    matched to their own ``\\end`` with a same-name depth counter and command
    arguments are read with a balanced-brace reader. Recognized constructs
    become blocks; the rest is cleaned into paragraph text.
    """

    def __init__(self, options: LatexImportOptions | None = None) -> None:
        if options is None:
            options = LatexImportOptions()
        if not isinstance(options, LatexImportOptions):
            raise TypeError(f"options must be LatexImportOptions, not {type(options).__name__}")
        self.options = options
        self._text = ""
        self._ctx = ParseContext(id_prefix="imported")
        self._result = LatexImportResult()

    def parse(self, source: str) -> LatexImportResult:
        if not isinstance(source, str):
            raise TypeError(f"source must be str, not {type(source).__name__}")

        self._text = _strip_comments(source.replace("\r\n", "\n"))
        self._ctx = ParseContext(id_prefix="imported")
        self._result = LatexImportResult()

        begin = self._text.find("\\begin{document}")
        if begin == -1:
            self._scan(0, len(self._text))
        else:
            self._parse_preamble(self._text[:begin])
            content_start = begin + len("\\begin{document}")
            span = _find_environment_end(self._text, "document", content_start, len(self._text))
            content_end = span[0] if span else len(self._text)
            self._scan(content_start, content_end)

        logger.info(
            "Imported %d blocks (%d warnings, %d errors)",
            len(self._result.blocks),
            len(self._result.warnings),
            len(self._result.errors),
        )
        return self._result

    # ------------------------------------------------------------------
    # Preamble
    # ------------------------------------------------------------------

    def _parse_preamble(self, preamble: str) -> None:
        class_match = re.search(r"\\documentclass(?:\[[^\]]*\])?\{([^{}]+)\}", preamble)
        if class_match:
            self._result.document_class = class_match.group(1).strip()

        title = clean_text(_extract_command_value(preamble, "title") or "", self.options.parse_inline_math)
        author = clean_text(_extract_command_value(preamble, "author") or "", self.options.parse_inline_math)
        date = clean_text(_extract_command_value(preamble, "date") or "", self.options.parse_inline_math)
        self._result.title = title or config.DEFAULT_TITLE
        self._result.author = author or None
        self._result.date = date or None

    # ------------------------------------------------------------------
    # Body scanner
    # ------------------------------------------------------------------

    def _scan(self, start: int, end: int) -> None:
        text = self._text
        pos = start
        while pos < end:
            match = _TOKEN_RE.search(text, pos, end)
            if match is None:
                self._add_text(pos, end)
                return

            self._add_text(pos, match.start())

            if match.group("env"):
                pos = self._environment(match, end)
            elif match.group("heading"):
                pos = self._heading(match, end)
            elif match.group("bare"):
                pos = match.end()
                if match.group("bare").startswith("bibliography") and text.startswith("{", pos):
                    _, pos = read_balanced_braces(text[:end], pos)
            else:
                pos = self._display_math(match, end)

    def _heading(self, match: re.Match[str], end: int) -> int:
        title, pos = read_balanced_braces(self._text[:end], match.end() - 1)
        label = None
        follow = _LABEL_FOLLOW_RE.match(self._text, pos, end)
        if follow:
            label = follow.group(1).strip()
            pos = follow.end()
        self._add(
            Heading,
            label=label,
            text=clean_text(title, self.options.parse_inline_math),
            level=_HEADING_LEVELS[match.group("heading")],
        )
        return pos

    def _display_math(self, match: re.Match[str], end: int) -> int:
        opener = match.group("display")
        closer = "\\]" if opener == "\\[" else "$$"
        close = self._text.find(closer, match.end(), end)
        if close == -1:
            self._issue(match.start(), f"Unterminated display math '{opener}'")
            self._add_text(match.start(), end)
            return end
        latex, label = _clean_math_block(self._text[match.end() : close])
        self._add(Equation, label=label, latex=latex, numbered=False)
        return close + len(closer)

    def _environment(self, match: re.Match[str], end: int) -> int:
        name = match.group("env").strip()
        content_start = match.end()
        span = _find_environment_end(self._text, name, content_start, end)
        if span is None:
            self._issue(match.start(), f"Unterminated environment '{name}'")
            return content_start
        content_end, after = span
        content = self._text[content_start:content_end]
        base = name.rstrip("*")

        if base in _MATH_ENVS:
            latex, label = _clean_math_block(content)
            self._add(Equation, label=label, latex=latex, numbered=not name.endswith("*"))
        elif base == "figure":
            self._figure(content)
        elif base == "table":
            self._table_environment(content, match.start())
        elif base == "tabular":
            self._tabular(content)
        elif base in _LIST_ENVS:
            self._list(content, base)
        elif base in _QUOTE_ENVS:
            text = clean_text(content, self.options.parse_inline_math)
            if text:
                self._add(Quote, text=text)
        elif base in _CODE_ENVS:
            self._code(content, base)
        elif base == "abstract":
            text = clean_text(content, self.options.parse_inline_math)
            if text:
                self._add(Paragraph, text=f"**Abstract:** {text}")
        elif base in THEOREM_KINDS:
            self._theorem(content, base)
        elif base == "thebibliography":
            self._bibliography(content)
        elif base in _CONTAINER_ENVS:
            if base == "minipage":
                content_start += _leading_arguments_length(content)
            self._scan(content_start, content_end)
        else:
            self._issue(match.start(), f"Unrecognized environment '{name}' imported as paragraph")
            text = clean_text(content, self.options.parse_inline_math)
            if text:
                self._add(Paragraph, text=text)
        return after

    # ------------------------------------------------------------------
    # Environment handlers
    # ------------------------------------------------------------------

    def _figure(self, content: str) -> None:
        caption = clean_text(_extract_command_value(content, "caption") or "", self.options.parse_inline_math)
        graphics = re.search(r"\\includegraphics(?:\[([^\]]*)\])?\{([^{}]+)\}", content)
        width = None
        if graphics and graphics.group(1):
            width_match = _WIDTH_RE.search(graphics.group(1))
            if width_match:
                width = round(float(width_match.group(1)) * 100)
        self._add(
            Figure,
            label=_extract_command_value(content, "label"),
            src=graphics.group(2).strip() if graphics else "",
            alt=caption or "Figure",
            caption=caption,
            width=width,
        )

    def _table_environment(self, content: str, offset: int) -> None:
        begin = re.search(r"\\begin\{tabular\*?\}", content)
        if begin is None:
            self._issue(offset, "Table environment without tabular skipped")
            return
        span = _find_environment_end(content, "tabular", begin.end(), len(content))
        inner = content[begin.end() : span[0] if span else len(content)]
        caption = clean_text(_extract_command_value(content, "caption") or "", self.options.parse_inline_math)
        self._tabular(inner, caption=caption, label=_extract_command_value(content, "label"))

    def _tabular(self, content: str, caption: str = "", label: str | None = None) -> None:
        spec, content = _take_column_spec(content)
        alignment = _column_alignment(spec)

        rows: list[list[str]] = []
        for raw_row in re.split(r"\\\\", _RULE_RE.sub("", content)):
            cells = [clean_text(cell, self.options.parse_inline_math) for cell in re.split(r"(?<!\\)&", raw_row)]
            if any(cells):
                rows.append(cells)

        headers = rows[0] if rows else []
        self._add(
            Table,
            label=label,
            caption=caption,
            headers=headers,
            rows=rows[1:],
            alignment=alignment or None,
        )

    def _list(self, content: str, kind: str) -> None:
        items = []
        for term, body in _split_items(content):
            text = clean_text(body, self.options.parse_inline_math)
            if term:
                text = f"**{clean_text(term, self.options.parse_inline_math)}** {text}".strip()
            if text:
                items.append(text)
        if items:
            self._add(ListBlock, ordered=kind == "enumerate", items=items)

    def _code(self, content: str, kind: str) -> None:
        language = "text"
        option = re.match(r"[ \t]*\[([^\]]*)\]", content)
        if kind == "lstlisting" and option:
            lang_match = re.search(r"language\s*=\s*\{?([\w+#-]+)", option.group(1))
            if lang_match:
                language = lang_match.group(1).lower()
            content = content[option.end() :]
        elif kind == "minted":
            if option:
                content = content[option.end() :]
            stripped = content.lstrip(" \t")
            if stripped.startswith("{"):
                value, consumed = read_balanced_braces(stripped, 0)
                language = value.strip().lower() or "text"
                content = stripped[consumed:]
        self._add(Code, code=normalize_code(content), language=language)

    def _theorem(self, content: str, kind: str) -> None:
        title = None
        option = re.match(r"\s*\[([^\]]*)\]", content)
        if option:
            title = clean_text(option.group(1), self.options.parse_inline_math)
            content = content[option.end() :]
        label = _extract_command_value(content, "label")
        text = clean_text(content, self.options.parse_inline_math)
        title_part = f" ({title})" if title else ""
        self._add(Paragraph, label=label, text=f"**{kind.capitalize()}{title_part}:** {text}".rstrip())

    def _bibliography(self, content: str) -> None:
        matches = list(_BIBITEM_RE.finditer(content))
        for idx, match in enumerate(matches):
            stop = matches[idx + 1].start() if idx + 1 < len(matches) else len(content)
            text = clean_text(content[match.end() : stop], self.options.parse_inline_math)
            entry = BibEntry.from_fields(match.group(1).strip(), "misc", {"title": text, "year": text})
            self._result.bibliography.append(entry)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add_text(self, start: int, end: int) -> None:
        if start >= end:
            return
        for chunk in _PARAGRAPH_BREAK_RE.split(self._text[start:end]):
            text = clean_text(chunk, self.options.parse_inline_math)
            if text:
                self._add(Paragraph, text=text)

    def _add(self, cls: type[Block], label: str | None = None, **payload: object) -> None:
        if not self.options.preserve_labels:
            label = None
        self._result.blocks.append(cls(**self._ctx.stamp(label=label), **payload))

    def _issue(self, offset: int, message: str) -> None:
        line = self._text.count("\n", 0, offset) + 1
        if self.options.strict_mode:
            logger.warning("Line %d: %s", line, message)
            self._result.errors.append(ImportIssue(line=line, message=message, severity="error"))
        else:
            logger.info("Line %d: %s", line, message)
            self._result.warnings.append(ImportIssue(line=line, message=message, severity="warning"))


def import_latex(
    source: str,
    options: LatexImportOptions | None = None,
    *,
    bibtex: str | None = None,
) -> LatexImportResult:
    """Import *source* into LML blocks, optionally merging a BibTeX database."""
    result = LatexImporter(options).parse(source)
    if bibtex:
        result.bibliography = merge_entries(result.bibliography, parse_bibtex(bibtex))
    return result


def validate_latex(source: str) -> LatexCheck:
    """Cheap structural pre-check run before importing."""
    text = _strip_comments(source)
    errors: list[str] = []

    has_begin = "\\begin{document}" in text
    if not has_begin and "\\documentclass" in text:
        errors.append("Missing \\begin{document} environment")
    if not is_balanced(text):
        errors.append("Unbalanced braces in document")
    if "\\end{document}" in text and not has_begin:
        errors.append("Found \\end{document} without matching \\begin{document}")

    stack: list[str] = []
    for match in re.finditer(r"\\(begin|end)\{([^{}]+)\}", text):
        kind, name = match.groups()
        if name == "document":
            continue
        if kind == "begin":
            stack.append(name)
        elif stack and stack[-1] == name:
            stack.pop()
        else:
            errors.append(f"\\end{{{name}}} without matching \\begin{{{name}}}")
    errors.extend(f"Unclosed environment '{name}'" for name in stack)

    return LatexCheck(valid=not errors, errors=errors)


# ---------------------------------------------------------------------------
# Inline cleanup
# ---------------------------------------------------------------------------

def clean_text(text: str, parse_inline_math: bool = True) -> str:
    """Rewrite common inline LaTeX to LML markers and strip the remaining commands."""
    kept: list[str] = []

    def keep(value: str) -> str:
        kept.append(value)
        return f"\x00{len(kept) - 1}\x00"

    text = re.sub(r"\\label\{[^{}]*\}", "", text)
    if parse_inline_math:
        text = re.sub(r"(?<!\\)\$([^$]+)\$", lambda m: keep(f"${m.group(1).strip()}$"), text)
    else:
        text = re.sub(r"(?<!\\)\$([^$]+)\$", r"\1", text)
    text = re.sub(r"\\texttt\{([^{}]*)\}", lambda m: keep(f"`{m.group(1)}`"), text)
    text = re.sub(
        r"\\(?:cite|citep|citet|autocite|parencite)\*?(?:\[[^\]]*\])*\{([^{}]*)\}",
        lambda m: keep(f"@cite{{{m.group(1).strip()}}}"),
        text,
    )
    text = re.sub(r"\\(?:ref|eqref|autoref|cref)\{([^{}]*)\}", lambda m: keep(f"@ref{{{m.group(1).strip()}}}"), text)
    text = re.sub(r"\\textbf\{([^{}]*)\}", r"**\1**", text)
    text = re.sub(r"\\(?:textit|emph)\{([^{}]*)\}", r"*\1*", text)
    text = text.replace("\\\\", "\n")
    text = text.replace("~", " ")
    text = re.sub(r"\\(?:begin|end)\{[^{}]*\}", "", text)
    text = re.sub(r"\\[a-zA-Z]+\*?(?:\[[^\]]*\])?\{([^{}]*)\}", r"\1", text)
    text = re.sub(r"\\[a-zA-Z]+\*?", "", text)
    text = re.sub(r"(?<!\\)[{}]", "", text)
    text = re.sub(r"\\([%&_#${}])", r"\1", text)
    text = _normalize_whitespace(text)
    return re.sub(r"\x00(\d+)\x00", lambda m: kept[int(m.group(1))], text)


def _normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _clean_math_block(text: str) -> tuple[str, str | None]:
    """Strip ``\\label`` from display math, returning the LaTeX and the label."""
    label_match = re.search(r"\\label\{([^{}]*)\}", text)
    text = re.sub(r"\\label\{[^{}]*\}", "", text)
    lines = [line.strip() for line in text.split("\n")]
    latex = "\n".join(line for line in lines if line)
    return latex, label_match.group(1).strip() if label_match else None


# ---------------------------------------------------------------------------
# Source helpers
# ---------------------------------------------------------------------------

def _strip_comments(text: str) -> str:
    lines = []
    for line in text.splitlines():
        stripped = re.sub(r"(?<!\\)%.*$", "", line)
        lines.append(stripped)
    return "\n".join(lines)


def _extract_command_value(text: str, command: str) -> str | None:
    match = re.search(rf"\\{command}\*?(?:\[[^\]]*\])?\{{", text)
    if not match:
        return None
    value, _end = read_balanced_braces(text, match.end() - 1)
    return value.strip()


def _find_environment_end(text: str, name: str, start: int, end: int) -> tuple[int, int] | None:
    """Locate the ``\\end{name}`` closing an environment whose content starts at *start*.

    Returns ``(content_end, index_after_end)`` or ``None`` when unterminated.
    """
    pattern = re.compile(r"\\(begin|end)\{" + re.escape(name) + r"\}")
    depth = 1
    for match in pattern.finditer(text, start, end):
        depth += 1 if match.group(1) == "begin" else -1
        if depth == 0:
            return match.start(), match.end()
    return None


def _leading_arguments_length(content: str) -> int:
    match = re.match(r"\s*(?:\[[^\]]*\])*\s*", content)
    pos = match.end() if match else 0
    if content.startswith("{", pos):
        close = find_closing(content, pos)
        if close is not None:
            return close + 1
    return pos


def _take_column_spec(content: str) -> tuple[str, str]:
    stripped = content.lstrip()
    if not stripped.startswith("{"):
        return "", content
    spec, consumed = read_balanced_braces(stripped, 0)
    return spec, stripped[consumed:]


def _column_alignment(spec: str) -> list[str]:
    # p{3cm}, @{} and >{\bfseries} arguments carry no alignment.
    spec = re.sub(r"[@!<>]\{[^{}]*\}", "", spec)
    spec = re.sub(r"\{[^{}]*\}", "", spec)
    mapping = {"l": "left", "c": "center", "r": "right", "p": "left", "m": "left", "b": "left", "X": "left"}
    return [mapping[ch] for ch in spec if ch in mapping]


def _split_items(content: str) -> list[tuple[str | None, str]]:
    """Split list content on top-level ``\\item`` markers, skipping nested environments."""
    markers: list[tuple[str | None, int, int]] = []
    pos = 0
    while match := _ITEM_RE.search(content, pos):
        if match.group("env"):
            span = _find_environment_end(content, match.group("env").strip(), match.end(), len(content))
            pos = span[1] if span else match.end()
            continue
        markers.append((match.group("term"), match.start(), match.end()))
        pos = match.end()

    items = []
    for idx, (term, _start, body_start) in enumerate(markers):
        body_end = markers[idx + 1][1] if idx + 1 < len(markers) else len(content)
        items.append((term, content[body_start:body_end]))
    return items
