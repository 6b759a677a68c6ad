"""
Schema module - collection definitions and their validation rules.

This module handles:
- Field kinds and per-kind validators
- Collection definitions (pattern, fields, transform, slug/permalink rules)
- The collection registry
- Schema discovery from a definitions folder
"""
from contentdb.schema.fields import (
    FieldKind,
    FieldSpec,
    string,
    date_field,
    slug,
    markdown,
    number,
    integer,
    boolean,
    list_of,
    optional,
    validate_metadata,
)
from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.registry import CollectionRegistry
from contentdb.schema.discovery import discover_definitions, merge_definitions

__all__ = [
    # Fields
    "FieldKind",
    "FieldSpec",
    "string",
    "date_field",
    "slug",
    "markdown",
    "number",
    "integer",
    "boolean",
    "list_of",
    "optional",
    "validate_metadata",
    # Collections
    "CollectionDefinition",
    "CollectionRegistry",
    # Discovery
    "discover_definitions",
    "merge_definitions",
]
