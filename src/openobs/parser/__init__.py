"""Markdown parsing and template substitution."""

from .markdown import MarkdownParser
from .templates import TemplateProcessor

__all__ = ["MarkdownParser", "TemplateProcessor"]
