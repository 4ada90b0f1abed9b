"""Renderer package."""

from .html_renderer import HTMLRenderer, render_to_markup
from .inline import InlineFormatter, default_math_renderer
from .serializer import LMLSerializer, serialize

__all__ = [
    "HTMLRenderer",
    "render_to_markup",
    "InlineFormatter",
    "default_math_renderer",
    "LMLSerializer",
    "serialize",
]
