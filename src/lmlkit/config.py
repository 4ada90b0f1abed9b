"""Configuration defaults for LML parsing, rendering and the CLI."""

from pathlib import Path

# Package paths
PACKAGE_ROOT = Path(__file__).resolve().parent
TEMPLATE_DIR = PACKAGE_ROOT / "template"
DEFAULT_TEMPLATE = TEMPLATE_DIR / "preview.html"

# Document metadata defaults
DEFAULT_TITLE = "Untitled Document"
DEFAULT_LANGUAGE = "en"
DEFAULT_PAPER_SIZE = "a4"
PAPER_SIZES = ("a4", "letter")
DEFAULT_FONT_SIZE = 11
DEFAULT_FONT_FAMILY = "charter"

# Block ordering
SORT_KEY_WIDTH = 10  # Zero-padded digits per sort key

# Serializer layout
COMPACT_PARAGRAPH_LIMIT = 80  # Paragraphs shorter than this stay on one line
INDENT = "  "

# Renderer
MATH_ENGINES = ("none", "katex", "mathjax")
DEFAULT_MATH_ENGINE = "katex"
LATEX_PREVIEW_CHARS = 150  # Characters shown for @latex passthrough blocks

# Logging configuration
LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
