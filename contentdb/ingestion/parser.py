"""
Markup parsing collaborator.

The ingestion pipeline only needs structured metadata plus a body for each
source file. Any object implementing MarkupParser can be plugged in; the
default FrontmatterParser reads YAML frontmatter with python-frontmatter
and keeps the body as raw markup.

Parsers must be deterministic for identical input and signal failure by
raising ParseError, which the pipeline records as a per-file
ValidationError.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Protocol, runtime_checkable

import frontmatter
import yaml

from contentdb.core.exceptions import ParseError


@dataclass(frozen=True)
class ParsedDocument:
    """Structured output of a markup parser."""
    metadata: Dict[str, Any] = field(default_factory=dict)
    body: str = ""


@runtime_checkable
class MarkupParser(Protocol):
    """Structural protocol for markup parsers."""

    def parse(self, path: Path) -> ParsedDocument:
        ...


class FrontmatterParser:
    """
    YAML frontmatter + Markdown/MDX body parser.

    Parameters
    ----------
    encoding : str
        Source file encoding.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def parse(self, path: Path) -> ParsedDocument:
        try:
            text = Path(path).read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(f"Cannot read source file: {e}", source_path=str(path)) from e

        try:
            post = frontmatter.loads(text)
        except (yaml.YAMLError, ValueError, TypeError) as e:
            raise ParseError(f"Frontmatter parsing error: {e}", source_path=str(path)) from e

        if not isinstance(post.metadata, dict):
            raise ParseError(
                "Frontmatter must be a YAML mapping (key-value pairs)",
                source_path=str(path),
            )

        return ParsedDocument(metadata=dict(post.metadata), body=post.content)
