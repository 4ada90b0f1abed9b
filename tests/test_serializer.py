"""Tests for the canonical brace-syntax serializer."""

from __future__ import annotations

import pytest

from lmlkit import parse
from lmlkit.parser.base import Code, DocumentData, DocumentMetadata, Heading, Paragraph, Section, Table, structural_view
from lmlkit.parser.brace_parser import parse_brace_format
from lmlkit.renderer.serializer import LMLSerializer, serialize

TEXT_SOURCE = """\
@document
title: Round Trip
author: Ada
date: 2024-05-01

# Intro

Hello *world* with @cite{feynman82}.

@equation(label: eq:a)
E=mc^2

@figure(src: cat.png, alt: A cat, width: 50)
A cat on a mat.

@table
| A | B |
|:--|:-:|
| 1 | 2 |
*Results*

@code(python)
print("hi")

@list(ordered)
1. first
2. second

> Stay hungry.
-- Someone

@theorem(title: Main, label: thm:main)
Every x is y.

---

@bibliography
@bib(article, feynman82)
author: Richard Feynman
title: Simulating Physics
year: 1982
journal: IJTP
"""


def test_text_document_round_trips_structurally() -> None:
    original = parse(TEXT_SOURCE)
    reparsed = parse(serialize(original))

    assert structural_view(reparsed) == structural_view(original)


def test_nested_sections_round_trip() -> None:
    source = """\
@section #s1 "One" {
  @p { Intro. }
  @subsection "Two" {
    @subsubsection "Three" {
      @eq #eq:x { x^2 }
    }
  }
}
@p { After. }
"""
    original = parse_brace_format(source)
    text = serialize(original)

    assert structural_view(parse(text)) == structural_view(original)
    assert text.index('@section #s1 "One"') < text.index("@p { Intro. }") < text.index('@subsection "Two"')


def test_output_shape() -> None:
    text = serialize(parse("# Intro\n\nShort paragraph."))

    assert text.startswith('@document {\n  title: "Untitled Document"\n')
    assert "@h 1 { Intro }" in text
    assert "@p { Short paragraph. }" in text
    assert text.endswith("}\n")
    assert "@bibliography" not in text


def test_long_paragraph_is_indented() -> None:
    long_text = "word " * 30
    text = serialize(parse(long_text))

    assert "@p {\n  word word" in text


def test_table_columns_are_padded() -> None:
    doc = DocumentData(
        blocks=[
            Table(
                id="t",
                sort_key="0000000001",
                headers=["A", "Long header"],
                rows=[["1", "2"]],
                alignment=["left", "right"],
            )
        ]
    )
    text = serialize(doc)

    assert "| A   | Long header |" in text
    assert "|-----|------------:|" in text
    assert "| 1   | 2           |" in text


def test_orphan_blocks_are_emitted_at_root() -> None:
    doc = DocumentData(
        blocks=[
            Paragraph(id="p1", sort_key="0000000002", parent_id="missing", text="Orphan"),
            Section(id="s1", sort_key="0000000001", title="Real"),
        ]
    )
    text = serialize(doc)

    assert '\n@section "Real" {}' in text
    assert "\n@p { Orphan }" in text
    assert text.index("@section") < text.index("@p")


def test_custom_indent_and_metadata() -> None:
    doc = DocumentData(metadata=DocumentMetadata(title="T", template="thesis", paper_size="letter"))
    text = LMLSerializer(indent="    ").serialize(doc)

    assert '    title: "T"' in text
    assert "    template: thesis" in text
    assert "    paperSize: letter" in text


# ---------------------------------------------------------------------------
# Delimiters inside payloads and titles
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "source",
    [
        '@code(python)\nprint("}")\n',
        "@code(latex)\n\\end{x}}\n",
        "# A } b\n",
        "Let the set be {a, b.\n",
        "Sets like $\\{x\\}$ stay put.\n",
        '@table\n| A | B |\n|---|---|\n| 1 | 2 |\n*The "best" result*\n',
        "@list\n- open { here\n- plain\n",
        "> close } here\n-- Ann\n",
        "@figure(src: a.png)\nA {weird caption\n",
        "@equation\na \\\\\nb\n",
        "@document\ntitle: Odd } title\n\nBody.\n",
        "@abstract\n\nThis thesis explores.\n",
        "@theorem(title: Main)\n\nBody text.\n",
        "@code(lines)\nx = 1\n",
        "@p { Sets \\{x\\} stay. }\n",
        "@p escaped { a \\} b }\n",
        '@code "A \\"quoted\\" title" python {\n  x = 1\n}\n',
        '@section "Back \\\\ slash" {\n  @p { x }\n}\n',
    ],
)
def test_round_trip_edge_inputs(source: str) -> None:
    original = parse(source)

    assert structural_view(parse(serialize(original))) == structural_view(original)


def test_unbalanced_payload_is_marked_escaped() -> None:
    doc = DocumentData(
        blocks=[
            Code(id="c1", sort_key="0000000001", code='print("}")', language="python"),
            Heading(id="h1", sort_key="0000000002", text="A } b", level=1),
            Paragraph(id="p1", sort_key="0000000003", text="Sets $\\{x\\}$"),
        ]
    )
    text = serialize(doc)

    assert '@code python escaped {\n  print("\\}")\n}' in text
    assert "@h 1 escaped { A \\} b }" in text
    assert "@p { Sets $\\{x\\}$ }" in text


def test_titles_escape_quotes() -> None:
    doc = DocumentData(blocks=[Table(id="t1", sort_key="0000000001", caption='The "best"', headers=["A"])])

    assert '@tbl "The \\"best\\"" {' in serialize(doc)
