"""Render LML text-format source to preview HTML in two passes."""

from __future__ import annotations

import html
import logging
import random
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from lmlkit import config
from lmlkit.parser.base import BibEntry, DocumentMetadata
from lmlkit.parser.payloads import code_body, code_language, list_items, parse_pipe_table, split_attribution
from lmlkit.parser.properties import directive_params, paren_argument, parse_properties
from lmlkit.parser.scanner import HEADING_RE, RawBlock, scan_blocks
from lmlkit.parser.text_parser import BIB_ENTRY_RE

from .inline import InlineFormatter, MathRenderer, default_math_renderer, render_math

logger = logging.getLogger(__name__)

Formatter = Callable[[str], str]

_SOURCE_LINE_RE = re.compile(r"^(\s*<\w+)")
_BIB_KEY_LINE_RE = re.compile(r"^\[([^\]]+)\]\s*(.+)$")
_BIB_PROPERTY_RE = re.compile(r"^([A-Za-z_]\w*)\s*:\s*(.+)$")
_LOREM_RE = re.compile(r"(paragraphs?|sentences?|words?)\s*:\s*(\d+)", re.IGNORECASE)

ALERT_ICONS = {
    "info": "&#8505;&#65039;",
    "warning": "&#9888;&#65039;",
    "danger": "&#128680;",
    "success": "&#9989;",
    "tip": "&#128161;",
    "note": "&#128221;",
}

DIVIDERS = {
    "stars": "⁂",
    "asterisk": "* * *",
    "dashes": "— — —",
    "dots": "• • •",
    "fleuron": "❧",
    "line": "─" * 7,
}

LOREM_WORDS = (
    "lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua enim ad minim veniam quis nostrud "
    "exercitation ullamco laboris nisi aliquip ex ea commodo consequat duis aute irure "
    "in reprehenderit voluptate velit esse cillum fugiat nulla pariatur excepteur sint "
    "occaecat cupidatat non proident sunt culpa qui officia deserunt mollit anim id est laborum"
).split()
LOREM_OPENING = (
    "Lorem ipsum dolor sit amet, consectetur adipiscing elit, sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua."
)


@dataclass(slots=True)
class TocEntry:
    level: int
    text: str
    anchor: str


@dataclass(slots=True)
class RenderState:
    """Forward references collected in pass 1 and consumed in pass 2."""

    headings: list[TocEntry] = field(default_factory=list)
    footnotes: dict[str, str] = field(default_factory=dict)
    heading_index: int = 0


class HTMLRenderer:
    """Render text-format LML into preview HTML.

    Pass 1 walks the scanned blocks to collect headings (for ``@toc``) and
    footnote definitions. Pass 2 renders every block, tagging its outermost
    element with ``data-source-line``.
    """

    def __init__(
        self,
        math_renderer: MathRenderer | None = None,
        math_engine: str = config.DEFAULT_MATH_ENGINE,
        template_path: Path | None = None,
        today: date | None = None,
    ) -> None:
        if math_engine not in config.MATH_ENGINES:
            raise ValueError(f"Unknown math engine {math_engine!r}; expected one of {config.MATH_ENGINES}")
        if template_path is None:
            template_path = config.DEFAULT_TEMPLATE
        template_path = Path(template_path)

        self.math_engine = math_engine
        self.math_renderer = math_renderer or default_math_renderer(math_engine)
        self.today = today

        loader = FileSystemLoader(str(template_path.parent))
        self._env = Environment(loader=loader, autoescape=True, trim_blocks=True, lstrip_blocks=True)
        self._template_name = template_path.name

    def render(self, source: str) -> str:
        """Render *source* to an HTML fragment."""
        if not isinstance(source, str):
            raise TypeError(f"source must be str, not {type(source).__name__}")

        blocks = list(scan_blocks(source))
        state = self._collect(blocks)
        inline = InlineFormatter(self.math_renderer, footnotes=state.footnotes)

        parts: list[str] = []
        for raw in blocks:
            markup = self._render_block(raw, state, inline)
            if markup:
                parts.append(_SOURCE_LINE_RE.sub(rf'\1 data-source-line="{raw.start_line}"', markup, count=1))

        if state.footnotes:
            parts.append(self._render_footnotes(state, inline))
        return "\n".join(parts)

    def render_page(self, source: str, title: str | None = None) -> str:
        """Render *source* into the standalone preview page template."""
        metadata = _document_metadata(source)
        body = self.render(source)
        template = self._env.get_template(self._template_name)
        return template.render(
            page_title=title or metadata.title,
            metadata=metadata,
            body=body,
            math_engine=self.math_engine,
        )

    # ------------------------------------------------------------------
    # Pass 1
    # ------------------------------------------------------------------

    def _collect(self, blocks: list[RawBlock]) -> RenderState:
        state = RenderState()
        used_anchors: set[str] = set()
        for raw in blocks:
            if raw.kind == "heading":
                level, text = _heading_parts(raw.param_line)
                anchor = _dedupe_anchor(_heading_anchor(text), used_anchors)
                state.headings.append(TocEntry(level=level, text=text, anchor=anchor))
            elif raw.kind == "footnote":
                fn_id = (paren_argument(raw.param_line) or "1").strip()
                state.footnotes[fn_id] = " ".join(line.strip() for line in raw.lines if line.strip())
        logger.debug("Collected %d headings and %d footnotes", len(state.headings), len(state.footnotes))
        return state

    # ------------------------------------------------------------------
    # Pass 2
    # ------------------------------------------------------------------

    def _render_block(self, raw: RawBlock, state: RenderState, inline: InlineFormatter) -> str:
        kind = raw.kind
        fmt = inline.format

        if kind == "heading":
            entry = state.headings[state.heading_index]
            state.heading_index += 1
            return f'<h{entry.level} id="{entry.anchor}">{fmt(entry.text)}</h{entry.level}>'
        if kind == "hr":
            return "<hr />"
        if kind == "pagebreak":
            return '<div class="page-break"></div>'
        if kind == "paragraph":
            return f"<p>{fmt(_joined(raw.lines))}</p>"
        if kind == "equation":
            return self._render_equation(raw)
        if kind == "code":
            return _render_code(raw)
        if kind == "table":
            return _render_table(raw, fmt)
        if kind == "list":
            tag = "ol" if "ordered" in raw.param_line else "ul"
            items = "".join(f"<li>{fmt(item)}</li>" for item in list_items(raw.lines))
            return f"<{tag}>{items}</{tag}>"
        if kind == "figure":
            return _render_figure(raw, fmt)
        if kind == "quote":
            text, attribution = split_attribution([re.sub(r"^\s*>\s?", "", line) for line in raw.lines])
            cite = f"<cite>— {fmt(attribution)}</cite>" if attribution else ""
            return f"<blockquote><p>{fmt(text.replace(chr(10), ' '))}</p>{cite}</blockquote>"
        if kind == "theorem":
            return _render_theorem(raw, fmt)
        if kind == "abstract":
            return f'<div class="abstract"><h4>Abstract</h4><p>{fmt(_joined(raw.lines))}</p></div>'
        if kind == "latex":
            return _render_latex(raw)
        if kind == "lorem":
            return _render_lorem(raw.param_line)
        if kind == "date":
            return self._render_date(raw.param_line)
        if kind == "toc":
            return _render_toc(state.headings)
        if kind == "bibliography":
            return _render_bibliography(raw, fmt)
        if kind == "alert":
            return _render_alert(raw, fmt)
        if kind == "center":
            lines = [fmt(line.strip()) for line in raw.lines if line.strip()]
            return f'<div class="center-block">{"<br />".join(lines)}</div>'
        if kind == "epigraph":
            text, attribution = split_attribution(raw.lines)
            footer = f"<footer>— {fmt(attribution)}</footer>" if attribution else ""
            return f'<div class="epigraph"><blockquote><p>{fmt(text.replace(chr(10), " "))}</p>{footer}</blockquote></div>'
        if kind == "dropcap":
            text = _joined(raw.lines)
            if not text:
                return ""
            return f'<p class="dropcap"><span class="dropcap-letter">{html.escape(text[0])}</span>{fmt(text[1:])}</p>'
        if kind == "divider":
            style = (paren_argument(raw.param_line) or "stars").strip() or "stars"
            if style not in DIVIDERS:
                style = "stars"
            return f'<div class="divider divider-{style}">{DIVIDERS[style]}</div>'

        # document header, footnote definitions and stray @endlatex emit nothing.
        return ""

    def _render_equation(self, raw: RawBlock) -> str:
        params = directive_params(raw.param_line)
        label = params.get("label")
        rendered = render_math(self.math_renderer, raw.text.strip(), True)
        if not label:
            return f'<div class="equation">{rendered}</div>'
        safe = html.escape(label)
        return f'<div class="equation" id="{safe}">{rendered}<span class="equation-number">({safe})</span></div>'

    def _render_date(self, param_line: str) -> str:
        style = (paren_argument(param_line) or "long").strip().lower()
        today = self.today or date.today()
        if style == "iso":
            value = today.isoformat()
        elif style == "short":
            value = f"{today:%b} {today.day}, {today.year}"
        else:
            value = f"{today:%B} {today.day}, {today.year}"
        return f'<span class="date-value">{value}</span>'

    def _render_footnotes(self, state: RenderState, inline: InlineFormatter) -> str:
        items = []
        for fn_id, text in state.footnotes.items():
            safe = html.escape(fn_id)
            items.append(
                f'<li id="fn-{safe}" class="footnote-item"><span class="footnote-back">'
                f'<a href="#fnref-{safe}">&#8617;</a></span> {inline.format(text)}</li>'
            )
        return (
            '<section class="footnotes-section"><hr /><h4>Footnotes</h4>'
            f'<ol class="footnotes-list">{"".join(items)}</ol></section>'
        )


def render_to_markup(source: str, *, math_renderer: MathRenderer | None = None) -> str:
    """Render text-format *source* to an HTML fragment."""
    return HTMLRenderer(math_renderer=math_renderer).render(source)


# ---------------------------------------------------------------------------
# Block renderers
# ---------------------------------------------------------------------------

def _render_code(raw: RawBlock) -> str:
    language, params = code_language(raw.param_line)
    code, caption = code_body(raw.lines)
    classes = ' class="line-numbers"' if params.get("lineNumbers", "").lower() == "true" else ""
    block = f'<pre{classes}><code class="language-{html.escape(language)}">{html.escape(code)}</code></pre>'
    if caption:
        return f'<figure class="code-block">{block}<figcaption>{html.escape(caption)}</figcaption></figure>'
    return block


def _render_table(raw: RawBlock, fmt: Formatter) -> str:
    params = directive_params(raw.param_line)
    table = parse_pipe_table(raw.lines)
    if not table.headers:
        return ""

    alignment = table.alignment or []

    def align(idx: int) -> str:
        return alignment[idx] if idx < len(alignment) else "left"

    head = "".join(f'<th style="text-align: {align(i)}">{fmt(cell)}</th>' for i, cell in enumerate(table.headers))
    rows = "".join(
        "<tr>" + "".join(f'<td style="text-align: {align(i)}">{fmt(cell)}</td>' for i, cell in enumerate(row)) + "</tr>"
        for row in table.rows
    )
    caption = table.caption or params.get("caption", "")
    caption_html = f"<caption>{fmt(caption)}</caption>" if caption else ""
    label = params.get("label")
    id_attr = f' id="{html.escape(label)}"' if label else ""
    return f"<table{id_attr}>{caption_html}<thead><tr>{head}</tr></thead><tbody>{rows}</tbody></table>"


def _render_figure(raw: RawBlock, fmt: Formatter) -> str:
    params = directive_params(raw.param_line)
    width = re.match(r"\s*(\d+)", params.get("width", ""))
    style = f' style="width: {width.group(1)}%"' if width else ""
    label = params.get("label")
    id_attr = f' id="{html.escape(label)}"' if label else ""
    caption = _joined(raw.lines)
    figcaption = f"<figcaption>{fmt(caption)}</figcaption>" if caption else ""
    return (
        f'<figure{id_attr}><img src="{html.escape(params.get("src", ""))}" '
        f'alt="{html.escape(params.get("alt", ""))}"{style} />{figcaption}</figure>'
    )


def _render_theorem(raw: RawBlock, fmt: Formatter) -> str:
    params = directive_params(raw.param_line)
    name = raw.name or "theorem"
    title = f" ({fmt(params['title'])})" if params.get("title") else ""
    label = params.get("label")
    id_attr = f' id="{html.escape(label)}"' if label else ""
    return (
        f'<div class="theorem-block {name}"{id_attr}><div class="theorem-title">{name.capitalize()}{title}</div>'
        f"<div>{fmt(_joined(raw.lines))}</div></div>"
    )


def _render_latex(raw: RawBlock) -> str:
    content = raw.text
    limit = config.LATEX_PREVIEW_CHARS
    preview = html.escape(content[:limit]) + ("..." if len(content) > limit else "")
    return (
        '<div class="latex-passthrough"><div class="latex-passthrough-header">'
        '<span class="latex-passthrough-icon">&#9889;</span>'
        "<span>Raw LaTeX — will render in final PDF</span></div>"
        f'<pre class="latex-passthrough-code"><code>{preview}</code></pre></div>'
    )


def _render_lorem(param_line: str) -> str:
    match = _LOREM_RE.search(param_line)
    unit = match.group(1).lower() if match else "paragraphs"
    count = int(match.group(2)) if match else 3
    # Seeded by the directive line so the preview does not flicker between renders.
    rng = random.Random(param_line)

    if unit.startswith("word"):
        text = _lorem_words(rng, count)
    elif unit.startswith("sentence"):
        text = _lorem_sentences(rng, count)
    else:
        text = "</p><p>".join(_lorem_sentences(rng, rng.randint(4, 7)) for _ in range(max(count, 0)))
    return f'<div class="lorem-preview"><p>{text}</p></div>'


def _lorem_words(rng: random.Random, count: int) -> str:
    words = ["Lorem", "ipsum", "dolor", "sit", "amet"]
    words.extend(rng.choice(LOREM_WORDS) for _ in range(5, count))
    return " ".join(words[: max(count, 0)])


def _lorem_sentences(rng: random.Random, count: int) -> str:
    if count <= 0:
        return ""
    sentences = [LOREM_OPENING]
    for _ in range(1, count):
        words = [rng.choice(LOREM_WORDS) for _ in range(rng.randint(8, 15))]
        sentences.append(" ".join(words).capitalize() + ".")
    return " ".join(sentences)


def _render_toc(headings: list[TocEntry]) -> str:
    if not headings:
        return (
            '<nav class="toc"><p class="toc-title"><strong>Table of Contents</strong></p>'
            '<p class="toc-empty">No headings found.</p></nav>'
        )
    min_level = min(entry.level for entry in headings)
    items = "".join(
        f'<li class="toc-item toc-level-{entry.level}" style="padding-left: {(entry.level - min_level) * 1.2:g}rem">'
        f'<a href="#{entry.anchor}">{html.escape(entry.text)}</a></li>'
        for entry in headings
    )
    return (
        '<nav class="toc"><p class="toc-title"><strong>Table of Contents</strong></p>'
        f'<ul class="toc-list">{items}</ul></nav>'
    )


def _render_bibliography(raw: RawBlock, fmt: Formatter) -> str:
    items: list[str] = []
    entry: tuple[str, str, dict[str, str]] | None = None

    def flush() -> None:
        if entry is not None:
            entry_type, key, props = entry
            items.append(_format_reference(BibEntry.from_fields(key, entry_type, props), fmt))

    for line in raw.lines:
        stripped = line.strip()
        if not stripped:
            continue
        bib = BIB_ENTRY_RE.match(stripped)
        if bib:
            flush()
            entry = (bib.group(1), bib.group(2), {})
            continue
        prop = _BIB_PROPERTY_RE.match(stripped)
        if entry is not None and prop:
            entry[2].update(parse_properties(stripped))
            continue
        flush()
        entry = None
        keyed = _BIB_KEY_LINE_RE.match(stripped)
        if keyed:
            key = html.escape(keyed.group(1))
            items.append(
                f'<li id="bib-{key}" class="bib-entry"><span class="bib-key">[{key}]</span> {fmt(keyed.group(2))}</li>'
            )
        else:
            items.append(f'<li class="bib-entry">{fmt(stripped)}</li>')
    flush()

    if not items:
        return '<section class="bibliography"><h3>References</h3><p class="bib-empty">No entries.</p></section>'
    return f'<section class="bibliography"><h3>References</h3><ol class="bib-list">{"".join(items)}</ol></section>'


def _format_reference(entry: BibEntry, fmt: Formatter) -> str:
    parts = []
    if entry.author:
        parts.append(f"{fmt(entry.author)}.")
    if entry.title:
        parts.append(f"<em>{fmt(entry.title)}</em>.")
    venue = entry.journal or entry.booktitle or entry.publisher
    tail = ", ".join(p for p in (fmt(venue) if venue else "", str(entry.year) if entry.year else "") if p)
    if tail:
        parts.append(f"{tail}.")
    key = html.escape(entry.key)
    return f'<li id="bib-{key}" class="bib-entry"><span class="bib-key">[{key}]</span> {" ".join(parts)}</li>'


def _render_alert(raw: RawBlock, fmt: Formatter) -> str:
    kind = (paren_argument(raw.param_line) or "info").strip().lower() or "info"
    if kind not in ALERT_ICONS:
        kind = "info"
    return (
        f'<div class="alert alert-{kind}"><div class="alert-header">'
        f'<span class="alert-icon">{ALERT_ICONS[kind]}</span> <strong>{kind.capitalize()}</strong></div>'
        f'<div class="alert-content">{fmt(_joined(raw.lines))}</div></div>'
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _joined(lines: list[str]) -> str:
    return " ".join(line.strip() for line in lines if line.strip())


def _heading_parts(param_line: str) -> tuple[int, str]:
    match = HEADING_RE.match(param_line)
    if not match:
        return 1, param_line.lstrip("#").strip()
    return len(match.group(1)), match.group(2).strip()


def _heading_anchor(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return f"heading-{slug}" if slug else "heading"


def _dedupe_anchor(anchor: str, used: set[str]) -> str:
    if anchor not in used:
        used.add(anchor)
        return anchor

    idx = 2
    while True:
        candidate = f"{anchor}-{idx}"
        if candidate not in used:
            used.add(candidate)
            return candidate
        idx += 1


def _document_metadata(source: str) -> DocumentMetadata:
    for raw in scan_blocks(source):
        if raw.kind == "document":
            return DocumentMetadata.from_properties(parse_properties(raw.text))
    return DocumentMetadata()
