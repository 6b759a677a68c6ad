"""
Schema discovery from a definitions folder.

Each Markdown file in the folder describes one collection. Its frontmatter
maps field names to a description with a trailing type annotation:

    ---
    title: Title of the post (string)
    date: Publication date (date)
    summary: Optional teaser (string?)
    tags: Topic tags (list<string>?)
    ---

The file stem becomes the collection name and its source pattern defaults
to content/<name>/**/*.{md,mdx}.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, List, Optional, Tuple

import frontmatter
import yaml

from contentdb.core.exceptions import InvalidSchemaError
from contentdb.core.logging_config import get_logger
from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.fields import FieldKind, FieldSpec, list_of, optional

logger = get_logger(__name__)

_ANNOTATION_RE = re.compile(r"\(([^()]+)\)\s*$")
_LIST_RE = re.compile(r"^list(?:<(\w+)>)?$")

SCHEMA_SUFFIXES = (".md", ".mdx")


def default_pattern(name: str) -> str:
    return f"content/{name}/**/*.{{md,mdx}}"


def parse_field(name: str, description: Any) -> FieldSpec:
    """
    Build a FieldSpec from a "description (type)" string.

    Unannotated descriptions default to string fields.
    """
    if not isinstance(description, str):
        return FieldSpec(name, FieldKind.STRING, description=str(description))

    match = _ANNOTATION_RE.search(description)
    annotation = match.group(1).strip().lower() if match else "string"
    text = description[:match.start()].strip() if match else description.strip()

    is_optional = annotation.endswith("?")
    annotation = annotation.rstrip("?").strip()

    list_match = _LIST_RE.match(annotation)
    if list_match:
        element_kind = _kind(list_match.group(1) or "string", name)
        spec = list_of(name, FieldSpec(name, element_kind), description=text)
    else:
        spec = FieldSpec(name, _kind(annotation, name), description=text)

    return optional(spec) if is_optional else spec


def _kind(annotation: str, field_name: str) -> FieldKind:
    try:
        kind = FieldKind(annotation)
    except ValueError:
        raise InvalidSchemaError(f"Unknown field type '{annotation}' for field '{field_name}'")
    if kind in (FieldKind.LIST, FieldKind.OPTIONAL):
        raise InvalidSchemaError(f"Field type '{annotation}' needs an element type")
    return kind


def load_definition(path: Path, pattern: Optional[str] = None) -> CollectionDefinition:
    """Read one schema file into a CollectionDefinition."""
    try:
        post = frontmatter.load(str(path))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise InvalidSchemaError(f"Cannot read schema file {path}: {e}") from e

    name = path.stem
    fields: List[FieldSpec] = []
    for field_name, description in post.metadata.items():
        try:
            fields.append(parse_field(str(field_name), description))
        except InvalidSchemaError as e:
            raise InvalidSchemaError(e.message, collection=name) from e

    return CollectionDefinition(
        name=name,
        pattern=pattern or default_pattern(name),
        fields=tuple(fields),
        description=post.content.strip() or None,
    )


def discover_definitions(schema_dir: Path) -> Tuple[CollectionDefinition, ...]:
    """
    Load every schema file in a definitions folder.

    A missing folder yields no definitions.
    """
    schema_dir = Path(schema_dir)
    if not schema_dir.is_dir():
        logger.debug(f"No schema folder at {schema_dir}")
        return ()

    definitions = []
    for path in sorted(schema_dir.iterdir()):
        if path.is_file() and path.suffix.lower() in SCHEMA_SUFFIXES:
            definition = load_definition(path)
            logger.info(
                f"Discovered schema for '{definition.name}' "
                f"({len(definition.fields)} fields) from {path.name}"
            )
            definitions.append(definition)
    return tuple(definitions)


def merge_definitions(
    explicit: Tuple[CollectionDefinition, ...],
    discovered: Tuple[CollectionDefinition, ...],
) -> Tuple[CollectionDefinition, ...]:
    """Explicit definitions win over discovered ones with the same name."""
    names = {definition.name for definition in explicit}
    merged = list(explicit)
    for definition in discovered:
        if definition.name in names:
            logger.info(f"Skipped discovered schema for '{definition.name}': defined explicitly")
            continue
        merged.append(definition)
    return tuple(merged)
