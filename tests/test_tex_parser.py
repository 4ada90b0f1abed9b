"""Tests for the LaTeX importer.

Covers:
- Preamble metadata (title, author, date, document class)
- Sections, labels and inline markup cleanup
- Math, figure, table, list, code, quote and theorem environments
- thebibliography and BibTeX merging
- Import options and issue reporting
- Structural pre-check (validate_latex)
"""

from __future__ import annotations

from pathlib import Path

import pytest

from lmlkit.parser.base import Code, Equation, Figure, Heading, ListBlock, Paragraph, Quote, Table
from lmlkit.parser.tex_parser import (
    LatexImporter,
    LatexImportOptions,
    clean_text,
    import_latex,
    validate_latex,
)

PAPER = r"""
\documentclass[11pt]{article}
\usepackage{amsmath}
\title{A Test Paper}
\author{Alice}
\date{2024-01-01}
\begin{document}
\maketitle
\begin{abstract}
Abstract text.
\end{abstract}

\section{Intro}\label{sec:intro}
Intro with \textbf{bold} and $x^2$ and \cite{feynman82}. % a comment

\begin{equation}
E = mc^2 \label{eq:e}
\end{equation}

\begin{itemize}
\item First
\item Second
\end{itemize}

\begin{figure}
\centering
\includegraphics[width=0.5\textwidth]{fig.png}
\caption{A figure}
\label{fig:a}
\end{figure}

\begin{table}
\caption{Numbers}
\begin{tabular}{lc}
A & B \\
\hline
1 & 2 \\
\end{tabular}
\end{table}

\begin{lstlisting}[language=Python]
print(1)
\end{lstlisting}
\end{document}
"""


# ---------------------------------------------------------------------------
# Full document
# ---------------------------------------------------------------------------

def test_import_paper_metadata() -> None:
    result = import_latex(PAPER)

    assert result.title == "A Test Paper"
    assert result.author == "Alice"
    assert result.date == "2024-01-01"
    assert result.document_class == "article"
    assert result.warnings == []
    assert result.errors == []


def test_import_paper_blocks() -> None:
    blocks = import_latex(PAPER).blocks

    assert [b.kind for b in blocks] == ["paragraph", "heading", "paragraph", "equation", "list", "figure", "table", "code"]
    abstract, heading, para, eq, items, fig, table, code = blocks

    assert abstract.text == "**Abstract:** Abstract text."
    assert isinstance(heading, Heading)
    assert heading.text == "Intro"
    assert heading.label == "sec:intro"
    assert para.text == "Intro with **bold** and $x^2$ and @cite{feynman82}."
    assert isinstance(eq, Equation)
    assert eq.latex == "E = mc^2"
    assert eq.label == "eq:e"
    assert eq.numbered is True
    assert isinstance(items, ListBlock)
    assert items.items == ["First", "Second"]
    assert isinstance(fig, Figure)
    assert (fig.src, fig.width, fig.caption, fig.label) == ("fig.png", 50, "A figure", "fig:a")
    assert isinstance(table, Table)
    assert table.headers == ["A", "B"]
    assert table.rows == [["1", "2"]]
    assert table.caption == "Numbers"
    assert table.alignment == ["left", "center"]
    assert isinstance(code, Code)
    assert code.language == "python"
    assert code.code == "print(1)"


def test_imported_ids_and_sort_keys() -> None:
    blocks = import_latex(PAPER).blocks

    assert blocks[0].id == "imported-1"
    keys = [b.sort_key for b in blocks]
    assert keys == sorted(keys)


def test_import_from_file(tmp_path: Path) -> None:
    tex_path = tmp_path / "paper.tex"
    tex_path.write_text(PAPER, encoding="utf-8")

    result = LatexImporter().parse(tex_path.read_text(encoding="utf-8"))
    doc = result.to_document()

    assert doc.metadata.title == "A Test Paper"
    assert len(doc.blocks) == len(result.blocks)


def test_body_without_document_environment() -> None:
    result = import_latex("\\section{Only}\nSome text.")

    assert [b.kind for b in result.blocks] == ["heading", "paragraph"]
    assert result.title == "Untitled Document"


# ---------------------------------------------------------------------------
# Environments
# ---------------------------------------------------------------------------

def test_starred_math_and_display_math() -> None:
    result = import_latex("\\begin{align*}\na &= b \\\\\nc &= d\n\\end{align*}\n\\[ x + y \\]\n$$ z $$")

    align, bracket, dollars = result.blocks
    assert align.numbered is False
    assert align.latex == "a &= b \\\\\nc &= d"
    assert bracket.latex == "x + y"
    assert dollars.latex == "z"


def test_enumerate_description_and_nested_lists() -> None:
    source = r"""
\begin{enumerate}
\item One
\item Two
  \begin{itemize}
  \item inner
  \end{itemize}
\end{enumerate}
\begin{description}
\item[Term] Meaning
\end{description}
"""
    ordered, described = import_latex(source).blocks

    assert ordered.ordered is True
    assert ordered.items == ["One", "Two inner"]
    assert described.items == ["**Term** Meaning"]


def test_quote_minted_and_verbatim() -> None:
    source = r"""
\begin{quote}
To be \emph{or} not.
\end{quote}
\begin{minted}{Rust}
fn main() {}
\end{minted}
\begin{verbatim}
  raw \text
\end{verbatim}
"""
    quote, minted, verbatim = import_latex(source).blocks

    assert isinstance(quote, Quote)
    assert quote.text == "To be *or* not."
    assert minted.language == "rust"
    assert minted.code == "fn main() {}"
    assert verbatim.language == "text"
    assert verbatim.code == "raw \\text"


def test_theorem_environment() -> None:
    block = import_latex("\\begin{lemma}[Key]\\label{lem:k}\nAll is well.\n\\end{lemma}").blocks[0]

    assert isinstance(block, Paragraph)
    assert block.text == "**Lemma (Key):** All is well."
    assert block.label == "lem:k"


def test_containers_are_transparent() -> None:
    source = "\\begin{center}\n\\begin{minipage}{0.5\\textwidth}\nInside.\n\\end{minipage}\n\\end{center}"
    blocks = import_latex(source).blocks

    assert [b.text for b in blocks] == ["Inside."]


def test_thebibliography_and_bibtex_merge() -> None:
    source = r"""
\begin{document}
Text \cite{k1}.
\begin{thebibliography}{9}
\bibitem{k1} A. Author. Some paper, 1999.
\end{thebibliography}
\end{document}
"""
    bibtex = "@book{k1, title={Dup}}\n@book{k2, title={Other}, year={2005}}"
    result = import_latex(source, bibtex=bibtex)

    assert [e.key for e in result.bibliography] == ["k1", "k2"]
    assert result.bibliography[0].year == 1999
    assert result.bibliography[0].type == "misc"
    assert result.bibliography[1].year == 2005


# ---------------------------------------------------------------------------
# Options and issues
# ---------------------------------------------------------------------------

def test_unrecognized_environment_is_a_warning() -> None:
    result = import_latex("\\begin{tikzpicture}\nDraw.\n\\end{tikzpicture}")

    assert [b.text for b in result.blocks] == ["Draw."]
    assert len(result.warnings) == 1
    assert result.warnings[0].line == 1
    assert "tikzpicture" in str(result.warnings[0])
    assert result.errors == []


def test_strict_mode_reports_errors() -> None:
    options = LatexImportOptions(strict_mode=True)
    result = import_latex("Text.\n\\begin{tikzpicture}\n\\end{tikzpicture}", options)

    assert result.warnings == []
    assert result.errors[0].severity == "error"
    assert result.errors[0].line == 2


def test_unterminated_constructs_are_reported() -> None:
    result = import_latex("\\begin{itemize}\n\\item x\n\n\\[ a + b")

    messages = [issue.message for issue in result.warnings]
    assert "Unterminated environment 'itemize'" in messages
    assert "Unterminated display math '\\['" in messages


def test_labels_can_be_dropped() -> None:
    options = LatexImportOptions(preserve_labels=False)
    blocks = import_latex("\\section{A}\\label{sec:a}\n\\begin{equation}x\\label{eq:x}\\end{equation}", options).blocks

    assert all(block.label is None for block in blocks)


def test_inline_math_can_be_flattened() -> None:
    options = LatexImportOptions(parse_inline_math=False)
    blocks = import_latex("Value $x_1$ here.", options).blocks

    assert blocks[0].text == "Value x_1 here."


def test_invalid_arguments_rejected() -> None:
    with pytest.raises(TypeError):
        LatexImporter(options={"strict_mode": True})  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        import_latex(42)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Inline cleanup
# ---------------------------------------------------------------------------

def test_clean_text_markup() -> None:
    assert clean_text(r"\emph{a}~b \textit{c} 50\%") == "*a* b *c* 50%"
    assert clean_text(r"See \eqref{eq:1} and \citep[p.~3]{k1,k2}.") == "See @ref{eq:1} and @cite{k1,k2}."
    assert clean_text(r"Use \texttt{a_b} and \textsc{Caps}") == "Use `a_b` and Caps"


# ---------------------------------------------------------------------------
# Structural pre-check
# ---------------------------------------------------------------------------

def test_validate_latex_accepts_paper() -> None:
    check = validate_latex(PAPER)

    assert check.valid is True
    assert check.errors == []


def test_validate_latex_reports_problems() -> None:
    assert "Missing \\begin{document} environment" in validate_latex("\\documentclass{article}\nHello").errors
    assert "Unbalanced braces in document" in validate_latex("\\begin{document}\n{oops\n\\end{document}").errors

    check = validate_latex("\\begin{document}\\begin{itemize}\\end{enumerate}\\end{document}")
    assert check.valid is False
    assert "\\end{enumerate} without matching \\begin{enumerate}" in check.errors
    assert "Unclosed environment 'itemize'" in check.errors


def test_validate_latex_ignores_commented_braces() -> None:
    assert validate_latex("\\begin{document}\n% stray {\n\\end{document}").valid is True
