"""Tests for the two-pass HTML preview renderer and inline formatting."""

from __future__ import annotations

from datetime import date

import pytest

from lmlkit.renderer.html_renderer import HTMLRenderer, render_to_markup
from lmlkit.renderer.inline import InlineFormatter, default_math_renderer


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

def test_heading_and_paragraph() -> None:
    html = render_to_markup("# Intro\n\nHello *world*.")

    assert '<h1 data-source-line="1" id="heading-intro">Intro</h1>' in html
    assert '<p data-source-line="3">Hello <em>world</em>.</p>' in html


def test_duplicate_heading_anchors_are_suffixed() -> None:
    html = render_to_markup("# Same\n# Same\n# Same")

    assert 'id="heading-same"' in html
    assert 'id="heading-same-2"' in html
    assert 'id="heading-same-3"' in html


def test_toc_sees_headings_after_it() -> None:
    html = render_to_markup("@toc\n\n# One\n\n## Two")

    assert '<a href="#heading-one">One</a>' in html
    assert '<a href="#heading-two">Two</a>' in html
    assert "padding-left: 1.2rem" in html
    assert html.index('class="toc"') < html.index("<h1")


def test_empty_toc() -> None:
    assert "No headings found." in render_to_markup("@toc")


def test_footnotes_are_linked_both_ways() -> None:
    source = "Text @fn(1) again @fn(1) and @fn(9).\n\n@footnote(1)\nNote body."
    html = render_to_markup(source)

    assert html.count('id="fnref-1"') == 1
    assert '<a href="#fn-1">[1]</a>' in html
    assert 'footnote-missing">[9]</sup>' in html
    assert '<li id="fn-1" class="footnote-item">' in html
    assert '<a href="#fnref-1">' in html
    assert "Note body." in html
    assert html.rstrip().endswith("</section>")


def test_footnote_ids_with_markup_characters_resolve() -> None:
    html = render_to_markup("See @fn(a&b).\n\n@footnote(a&b)\nBody")

    assert "footnote-missing" not in html
    assert '<sup class="footnote-ref" id="fnref-a&amp;b"><a href="#fn-a&amp;b">[a&amp;b]</a></sup>' in html
    assert '<li id="fn-a&amp;b" class="footnote-item">' in html


def test_equation_with_label() -> None:
    html = render_to_markup("@equation(label: eq:a)\nE=mc^2")

    assert 'id="eq:a"' in html
    assert '<span class="equation-number">(eq:a)</span>' in html
    assert '<pre class="math-display" data-engine="katex">E=mc^2</pre>' in html


def test_math_failure_renders_error_span() -> None:
    def broken(latex: str, display: bool) -> str:
        raise ValueError("bad input")

    html = render_to_markup("Inline $x^$ math.\n\n@equation\n\\frac{", math_renderer=broken)

    assert html.count('class="math-error"') == 2
    assert 'title="bad input"' in html


def test_custom_math_renderer() -> None:
    html = render_to_markup("See $a<b$.", math_renderer=lambda latex, display: f"[[{latex}|{display}]]")

    assert "[[a<b|False]]" in html


def test_latex_passthrough_preview() -> None:
    html = render_to_markup("@latex\n\\vspace{1cm}\n@endlatex\n\nAfter.")

    assert 'class="latex-passthrough"' in html
    assert "\\vspace{1cm}" in html
    assert "After." in html


def test_long_latex_passthrough_is_truncated() -> None:
    body = "x" * 200
    html = render_to_markup(f"@latex\n{body}\n@endlatex")

    assert "x" * 150 + "..." in html
    assert "x" * 151 not in html


def test_code_table_figure_and_list() -> None:
    source = """\
@code(language: python, lineNumbers: true)
print("<x>")
*Demo*

@table(label: tab:a)
| A | B |
|:-:|--:|
| 1 | 2 |
*Caption*

@figure(src: cat.png, alt: A cat, width: 40, label: fig:cat)
A **fine** cat.

@list(ordered)
1. one
2. two
"""
    html = render_to_markup(source)

    assert '<pre class="line-numbers"><code class="language-python">' in html
    assert "&lt;x&gt;" in html
    assert "<figcaption>Demo</figcaption>" in html
    assert '<table data-source-line="5" id="tab:a"><caption>Caption</caption>' in html
    assert '<th style="text-align: center">A</th>' in html
    assert '<td style="text-align: right">2</td>' in html
    assert '<img src="cat.png" alt="A cat" style="width: 40%" />' in html
    assert "<figcaption>A <strong>fine</strong> cat.</figcaption>" in html
    assert "<li>one</li><li>two</li></ol>" in html


def test_code_flag_word_is_not_a_language() -> None:
    html = render_to_markup("@code(lines)\nx = 1")

    assert 'class="line-numbers"><code class="language-text">x = 1</code></pre>' in html


def test_quote_theorem_and_abstract() -> None:
    source = "> Stay hungry.\n-- Someone\n\n@lemma(title: Key, label: lem:k)\nHolds.\n\n@abstract\nSummary."
    html = render_to_markup(source)

    assert "<p>Stay hungry.</p><cite>— Someone</cite></blockquote>" in html
    assert 'class="theorem-block lemma" id="lem:k"' in html
    assert '<div class="theorem-title">Lemma (Key)</div>' in html
    assert "<h4>Abstract</h4><p>Summary.</p></div>" in html


def test_bibliography_and_citations() -> None:
    source = """\
See @cite{feynman82, knuth84}.

@bibliography
@bib(article, feynman82)
author: Richard Feynman
title: Simulating Physics
year: 1982
journal: IJTP

[knuth84] Knuth, The TeXbook.
"""
    html = render_to_markup(source)

    assert '<a href="#bib-feynman82">feynman82</a>, <a href="#bib-knuth84">knuth84</a>' in html
    assert '<li id="bib-feynman82" class="bib-entry">' in html
    assert "Richard Feynman. <em>Simulating Physics</em>. IJTP, 1982." in html
    assert '<li id="bib-knuth84" class="bib-entry"><span class="bib-key">[knuth84]</span>' in html


def test_presentation_blocks() -> None:
    source = "@alert(warning)\nCareful.\n\n@center\nMiddle\n\n@divider(dots)\n\n@dropcap\nOnce upon.\n\n@pagebreak\n\n---"
    html = render_to_markup(source)

    assert 'class="alert alert-warning"' in html
    assert '<div data-source-line="4" class="center-block">Middle</div>' in html
    assert "• • •" in html
    assert '<span class="dropcap-letter">O</span>nce upon.' in html
    assert 'class="page-break"' in html
    assert "<hr" in html


def test_document_header_is_not_rendered() -> None:
    html = render_to_markup("@document\ntitle: Hidden\n\nBody.")

    assert "Hidden" not in html
    assert "Body." in html


def test_date_and_lorem() -> None:
    renderer = HTMLRenderer(today=date(2024, 3, 5))

    assert "2024-03-05" in renderer.render("@date(iso)")
    assert "Mar 5, 2024" in renderer.render("@date(short)")
    assert "March 5, 2024" in renderer.render("@date")
    assert "Lorem ipsum dolor sit amet" in renderer.render("@lorem(words: 5)")
    assert renderer.render("@lorem(paragraphs: 2)") == renderer.render("@lorem(paragraphs: 2)")


def test_text_is_escaped() -> None:
    html = render_to_markup("a <script>alert(1)</script> & b")

    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "&amp; b" in html


# ---------------------------------------------------------------------------
# Page template
# ---------------------------------------------------------------------------

def test_render_page_uses_template() -> None:
    source = "@document\ntitle: Paper <1>\nauthor: Ada\npaperSize: letter\n\n# Intro"
    page = HTMLRenderer().render_page(source)

    assert page.startswith("<!DOCTYPE html>")
    assert "<title>Paper &lt;1&gt;</title>" in page
    assert '<span class="author">Ada</span>' in page
    assert "--paper: 8.5in" in page
    assert "katex.min.js" in page
    assert 'id="heading-intro"' in page


def test_render_page_title_override_and_engine() -> None:
    page = HTMLRenderer(math_engine="mathjax").render_page("Body.", title="Override")

    assert "<title>Override</title>" in page
    assert "tex-chtml.js" in page
    assert "katex" not in page


def test_invalid_arguments() -> None:
    with pytest.raises(ValueError):
        HTMLRenderer(math_engine="texvc")
    with pytest.raises(TypeError):
        HTMLRenderer().render(None)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Inline formatting
# ---------------------------------------------------------------------------

def _fmt(text: str) -> str:
    return InlineFormatter(default_math_renderer("none")).format(text)


def test_inline_emphasis() -> None:
    assert _fmt("**b** and *i* and _u_") == "<strong>b</strong> and <em>i</em> and <em>u</em>"
    assert _fmt("snake_case_name") == "snake_case_name"


def test_inline_code_is_opaque() -> None:
    assert _fmt("`a *b* <c>`") == "<code>a *b* &lt;c&gt;</code>"


def test_inline_references() -> None:
    assert _fmt("@ref{fig:a}") == '<a class="reference" href="#fig:a">[fig:a]</a>'
    assert _fmt("\\ref{x}") == '<a class="reference" href="#x">[x]</a>'


def test_inline_span_directives() -> None:
    assert _fmt("@kbd(Ctrl+C)") == '<kbd class="keyboard-shortcut">Ctrl+C</kbd>'
    assert _fmt("@link(Docs, https://example.org)") == '<a href="https://example.org" class="lml-link">Docs</a>'
    assert _fmt("@sup(2)@sub(i)") == "<sup>2</sup><sub>i</sub>"
    assert _fmt("@hl(key)") == '<mark class="highlight">key</mark>'
    assert _fmt("@abbr(HTML, HyperText)") == '<abbr title="HyperText" class="lml-abbr">HTML</abbr>'
    assert 'class="raw-latex"' in _fmt("@raw(\\LaTeX)")


def test_inline_math_uses_engine_tag() -> None:
    assert _fmt("$x$") == '<code class="math-inline" data-engine="none">x</code>'
    assert _fmt("costs \\$5") == "costs \\$5"
