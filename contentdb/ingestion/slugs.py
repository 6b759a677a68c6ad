"""
Slug and permalink derivation.

Both are pure functions of a record's identifying fields, so re-running
ingestion over an unchanged source set reproduces the same identities.
"""
from pathlib import PurePosixPath
from typing import Any, Dict, Mapping

from slugify import slugify

from contentdb.core.exceptions import ValidationError
from contentdb.schema.collection import CollectionDefinition


def path_slug(source_path: str) -> str:
    """
    Slug from a relative source path, suffix removed.

    Example:
        >>> path_slug("guides/Getting Started.md")
        'guides-getting-started'
    """
    stem = PurePosixPath(source_path).with_suffix("").as_posix()
    return slugify(stem)


def derive_slug(
    definition: CollectionDefinition,
    data: Mapping[str, Any],
    metadata: Mapping[str, Any],
    source_path: str,
) -> str:
    """
    First non-empty identifying field, slugified; the source path otherwise.

    Validated data takes precedence over raw metadata so that identifying
    fields declared in the schema are read after coercion.
    """
    for field_name in definition.slug_fields:
        value = data.get(field_name)
        if value is None:
            value = metadata.get(field_name)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            candidate = slugify(str(value))
            if candidate:
                return candidate

    candidate = path_slug(source_path)
    if not candidate:
        raise ValidationError(
            "Cannot derive a slug from identifying fields or path",
            source_path=source_path,
            field="slug",
        )
    return candidate


def build_permalink(definition: CollectionDefinition, slug: str, data: Dict[str, Any]) -> str:
    """Format the collection's permalink template."""
    values = dict(data)
    values["collection"] = definition.name
    values["slug"] = slug
    return definition.permalink_template.format_map(values)
