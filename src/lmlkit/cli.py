"""lmlkit CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from lmlkit import config, parse_with_errors
from lmlkit.parser.bibtex import format_bibtex, parse_bibtex
from lmlkit.parser.tex_parser import LatexImportOptions, import_latex, validate_latex
from lmlkit.renderer.html_renderer import HTMLRenderer
from lmlkit.renderer.serializer import serialize
from lmlkit.validator import validate

logger = logging.getLogger(__name__)

_INPUT = click.Path(exists=True, dir_okay=False, path_type=Path)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", "-v", is_flag=True, help="Log debug output")
def main(verbose: bool) -> None:
    """Parse, render, validate and convert LML documents."""
    logging.basicConfig(level=logging.DEBUG if verbose else config.LOG_LEVEL, format=config.LOG_FORMAT)


@main.command()
@click.argument("input_path", type=_INPUT)
@click.option("--output", "-o", type=click.Path(path_type=Path), required=True, help="Output HTML path")
@click.option("--standalone/--fragment", default=True, show_default=True, help="Wrap the markup in the page template")
@click.option("--title", type=str, default=None, help="Override document title")
@click.option(
    "--math-engine",
    type=click.Choice(config.MATH_ENGINES, case_sensitive=False),
    default=config.DEFAULT_MATH_ENGINE,
    show_default=True,
    help="Math rendering mode",
)
def render(input_path: Path, output: Path, standalone: bool, title: str | None, math_engine: str) -> None:
    """Render a text-format LML document to HTML."""
    source = input_path.read_text(encoding="utf-8")
    renderer = HTMLRenderer(math_engine=math_engine.lower())
    html = renderer.render_page(source, title=title) if standalone else renderer.render(source)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(html, encoding="utf-8")

    click.echo(f"Rendered: {output}")


@main.command("validate")
@click.argument("input_path", type=_INPUT)
@click.pass_context
def validate_command(ctx: click.Context, input_path: Path) -> None:
    """Report diagnostics; exits with status 1 when any is an error."""
    result = validate(input_path.read_text(encoding="utf-8"))
    for diag in result.diagnostics:
        click.echo(f"{input_path}:{diag.line}:{diag.column}: {diag.severity}: {diag.message} [{diag.code}]")
    if not result.valid:
        ctx.exit(1)
    click.echo("OK" if not result.diagnostics else f"{len(result.diagnostics)} non-error diagnostics")


@main.command()
@click.argument("input_path", type=_INPUT)
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Output path (default: stdout)")
def canonicalize(input_path: Path, output: Path | None) -> None:
    """Rewrite a document in canonical brace syntax."""
    result = parse_with_errors(input_path.read_text(encoding="utf-8"))
    for item in result.degraded:
        logger.info("Line %d: %s (%s)", item.line, item.kind, item.reason)
    _emit(serialize(result.document), output)


@main.command("import-latex")
@click.argument("input_path", type=_INPUT)
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Output path (default: stdout)")
@click.option("--bib", "bib_path", type=_INPUT, default=None, help="BibTeX database to merge")
@click.option("--strict", is_flag=True, help="Treat unrecognized constructs as errors")
@click.option("--no-labels", is_flag=True, help="Drop \\label values")
def import_latex_command(
    input_path: Path,
    output: Path | None,
    bib_path: Path | None,
    strict: bool,
    no_labels: bool,
) -> None:
    """Convert a LaTeX document to canonical LML."""
    source = input_path.read_text(encoding="utf-8", errors="ignore")
    check = validate_latex(source)
    for message in check.errors:
        click.echo(f"warning: {message}", err=True)

    options = LatexImportOptions(preserve_labels=not no_labels, strict_mode=strict)
    bibtex = bib_path.read_text(encoding="utf-8", errors="ignore") if bib_path else None
    result = import_latex(source, options, bibtex=bibtex)

    for issue in result.warnings:
        click.echo(f"warning: {issue}", err=True)
    if result.errors:
        for issue in result.errors:
            click.echo(f"error: {issue}", err=True)
        raise click.ClickException(f"{len(result.errors)} import error(s) in strict mode")

    _emit(serialize(result.to_document()), output)


@main.command()
@click.argument("input_path", type=_INPUT)
def bib(input_path: Path) -> None:
    """Normalize a BibTeX file to stdout."""
    entries = parse_bibtex(input_path.read_text(encoding="utf-8", errors="ignore"))
    if not entries:
        raise click.ClickException(f"No BibTeX entries found in {input_path.name}")
    click.echo(format_bibtex(entries), nl=False)


def _emit(text: str, output: Path | None) -> None:
    if output is None:
        click.echo(text, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    click.echo(f"Wrote: {output}")


if __name__ == "__main__":  # pragma: no cover
    main()
