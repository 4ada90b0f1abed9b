"""Inline LML formatting (bold, math, citations, ``@name(...)`` spans) to HTML."""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Callable, Collection

logger = logging.getLogger(__name__)

MathRenderer = Callable[[str, bool], str]

_CODE_RE = re.compile(r"`([^`]+)`")
_MATH_RE = re.compile(r"(?<!\\)\$([^$]+)\$")
_RAW_RE = re.compile(r"@raw\(([^)]+)\)")
_TOKEN_RE = re.compile(r"\x00(\d+)\x00")

_BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC_UNDERSCORE_RE = re.compile(r"(?<![\w\\])_([^_]+)_(?!\w)")
_ITALIC_STAR_RE = re.compile(r"(?<!\*)\*([^*]+)\*(?!\*)")
_REF_RE = re.compile(r"(?:\\|@)ref\{([^}]+)\}")
_CITE_RE = re.compile(r"(?:\\|@)cite\{([^}]+)\}")
_FN_RE = re.compile(r"@fn\(([^)]+)\)")

# Applied in order after escaping; each pattern sees the output of the previous one.
_SPAN_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"@(?:hl|highlight)\(([^)]+)\)"), r'<mark class="highlight">\1</mark>'),
    (re.compile(r"@(?:note|comment)\(([^)]+)\)"), r'<span class="author-note" title="\1">&#128221;</span>'),
    (re.compile(r"@(?:del|strike)\(([^)]+)\)"), r"<del>\1</del>"),
    (re.compile(r"@todo\(([^)]+)\)"), r'<span class="todo-marker"><span class="todo-icon">&#9744;</span> \1</span>'),
    (re.compile(r"@link\(([^,)]+),\s*([^)]+)\)"), r'<a href="\2" class="lml-link">\1</a>'),
    (re.compile(r"@link\(([^)]+)\)"), r'<a href="\1" class="lml-link">\1</a>'),
    (re.compile(r"@kbd\(([^)]+)\)"), r'<kbd class="keyboard-shortcut">\1</kbd>'),
    (re.compile(r"@abbr\(([^,]+),\s*([^)]+)\)"), r'<abbr title="\2" class="lml-abbr">\1</abbr>'),
    (re.compile(r"@sub\(([^)]+)\)"), r"<sub>\1</sub>"),
    (re.compile(r"@sup\(([^)]+)\)"), r"<sup>\1</sup>"),
    (re.compile(r"@sc\(([^)]+)\)"), r'<span class="small-caps">\1</span>'),
    (re.compile(r"@color\(([^,]+),\s*([^)]+)\)"), r'<span style="color: \2">\1</span>'),
    (re.compile(r"@img\(([^,)]+),\s*([^)]+)\)"), r'<img src="\1" alt="\2" class="inline-img" />'),
    (re.compile(r"@img\(([^)]+)\)"), r'<img src="\1" alt="" class="inline-img" />'),
)


def default_math_renderer(engine: str) -> MathRenderer:
    """Emit escaped LaTeX tagged for client-side typesetting by *engine*."""

    def render(latex: str, display: bool) -> str:
        escaped = html.escape(latex)
        if display:
            return f'<pre class="math-display" data-engine="{engine}">{escaped}</pre>'
        return f'<code class="math-inline" data-engine="{engine}">{escaped}</code>'

    return render


def render_math(math_renderer: MathRenderer, latex: str, display: bool) -> str:
    """Call *math_renderer*, turning any failure into a visible error span."""
    try:
        return math_renderer(latex, display)
    except Exception as exc:  # noqa: BLE001
        logger.debug("Math rendering failed for %r: %s", latex, exc)
        return f'<span class="math-error" title="{html.escape(str(exc))}">{html.escape(latex)}</span>'


class InlineFormatter:
    """Format one render's inline text.

    Holds per-render state (known footnote ids, footnote refs already emitted),
    so a fresh instance is made for every document.
    """

    def __init__(self, math_renderer: MathRenderer, footnotes: Collection[str] = ()) -> None:
        self.math_renderer = math_renderer
        self.footnotes = footnotes
        self._referenced: set[str] = set()

    def format(self, text: str) -> str:
        stash: list[str] = []

        def keep(fragment: str) -> str:
            stash.append(fragment)
            return f"\x00{len(stash) - 1}\x00"

        # Code, math, raw LaTeX and footnote refs are opaque to the rest of the chain.
        text = _CODE_RE.sub(lambda m: keep(f"<code>{html.escape(m.group(1))}</code>"), text)
        text = _MATH_RE.sub(lambda m: keep(render_math(self.math_renderer, m.group(1).strip(), False)), text)
        text = _RAW_RE.sub(lambda m: keep(_raw_latex(m.group(1))), text)
        text = _FN_RE.sub(lambda m: keep(self._footnote_ref(m)), text)

        result = html.escape(text)
        result = _BOLD_RE.sub(r"<strong>\1</strong>", result)
        result = _ITALIC_UNDERSCORE_RE.sub(r"<em>\1</em>", result)
        result = _ITALIC_STAR_RE.sub(r"<em>\1</em>", result)
        result = _REF_RE.sub(_reference, result)
        result = _CITE_RE.sub(_citation, result)
        for pattern, replacement in _SPAN_RULES:
            result = pattern.sub(replacement, result)

        return _TOKEN_RE.sub(lambda m: stash[int(m.group(1))], result)

    def _footnote_ref(self, match: re.Match[str]) -> str:
        fn_id = match.group(1).strip()
        shown = html.escape(fn_id)
        if fn_id not in self.footnotes:
            return f'<sup class="footnote-ref footnote-missing">[{shown}]</sup>'
        anchor = "" if fn_id in self._referenced else f' id="fnref-{shown}"'
        self._referenced.add(fn_id)
        return f'<sup class="footnote-ref"{anchor}><a href="#fn-{shown}">[{shown}]</a></sup>'


def _reference(match: re.Match[str]) -> str:
    label = match.group(1).strip()
    return f'<a class="reference" href="#{label}">[{label}]</a>'


def _citation(match: re.Match[str]) -> str:
    keys = [key.strip() for key in match.group(1).split(",") if key.strip()]
    links = ", ".join(f'<a href="#bib-{key}">{key}</a>' for key in keys)
    return f'<span class="citation">[{links}]</span>'


def _raw_latex(content: str) -> str:
    escaped = html.escape(content)
    return f'<code class="raw-latex" title="Will render in final PDF: {escaped}">&#9889;{escaped}</code>'
