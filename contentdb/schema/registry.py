"""
Collection Schema Registry.

Holds the collection definitions of one store instance. Registration runs
every structural check up front so that ingestion never has to cope with a
malformed schema.
"""
from __future__ import annotations

from string import Formatter
from typing import Dict, Iterable, Iterator, List, Optional

from contentdb.core.exceptions import (
    DuplicateCollectionError,
    InvalidSchemaError,
    UnknownCollectionError,
)
from contentdb.core.logging_config import get_logger
from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.fields import has_validator
from contentdb.schema.patterns import normalize_pattern, patterns_overlap

logger = get_logger(__name__)

# Record attributes plus the storage columns every backend reserves
SYSTEM_FIELDS = frozenset({
    "slug", "permalink", "source_path", "content", "collection", "position", "extra_data",
})


class CollectionRegistry:
    """
    Registry of collection definitions.

    Example:
        >>> registry = CollectionRegistry()
        >>> registry.register(CollectionDefinition(
        ...     name="articles",
        ...     pattern="articles/*.md",
        ...     fields=(string("title"), date_field("date")),
        ... ))
        >>> registry.resolve("articles").pattern
        'articles/*.md'
    """

    def __init__(self, definitions: Optional[Iterable[CollectionDefinition]] = None):
        self._definitions: Dict[str, CollectionDefinition] = {}
        for definition in definitions or ():
            self.register(definition)

    def register(self, definition: CollectionDefinition) -> CollectionDefinition:
        """
        Validate and add a collection definition.

        Raises:
            DuplicateCollectionError: name already registered
            InvalidSchemaError: bad name, field, pattern or template
        """
        name = definition.name
        if name in self._definitions:
            raise DuplicateCollectionError(name)

        self._check_name(definition)
        self._check_fields(definition)
        self._check_pattern(definition)
        self._check_templates(definition)

        self._definitions[name] = definition
        logger.debug(f"Registered collection '{name}' pattern={definition.normalized_pattern}")
        return definition

    def resolve(self, name: str) -> CollectionDefinition:
        """Return the definition or raise UnknownCollectionError."""
        try:
            return self._definitions[name]
        except KeyError:
            raise UnknownCollectionError(name) from None

    def names(self) -> List[str]:
        return list(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[CollectionDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    # ------------------------------------------------------------------
    # Structural checks
    # ------------------------------------------------------------------

    def _check_name(self, definition: CollectionDefinition) -> None:
        name = definition.name
        if not isinstance(name, str) or not name.isidentifier() or name.startswith("_"):
            raise InvalidSchemaError(
                f"Collection name {name!r} must be a public Python identifier",
                collection=str(name),
            )

    def _check_fields(self, definition: CollectionDefinition) -> None:
        seen = set()
        for spec in definition.fields:
            if spec.name in seen:
                raise InvalidSchemaError(
                    f"Field '{spec.name}' declared twice", collection=definition.name
                )
            seen.add(spec.name)
            if spec.name in SYSTEM_FIELDS - {"slug"}:
                raise InvalidSchemaError(
                    f"Field '{spec.name}' collides with a system field",
                    collection=definition.name,
                )
            if not has_validator(spec):
                raise InvalidSchemaError(
                    f"Field '{spec.name}' has no validator for kind {spec.kind!r}",
                    collection=definition.name,
                )
        if definition.sort_by is not None and definition.sort_by not in seen | {"slug"}:
            raise InvalidSchemaError(
                f"sort_by '{definition.sort_by}' is not a declared field",
                collection=definition.name,
            )

    def _check_pattern(self, definition: CollectionDefinition) -> None:
        pattern = normalize_pattern(definition.pattern or "")
        if not pattern:
            raise InvalidSchemaError("Source pattern is empty", collection=definition.name)
        if pattern.startswith("..") or "/../" in f"/{pattern}/":
            raise InvalidSchemaError(
                f"Source pattern escapes the content root: {definition.pattern}",
                collection=definition.name,
            )
        for other in self._definitions.values():
            if patterns_overlap(pattern, other.pattern):
                raise InvalidSchemaError(
                    f"Source pattern '{definition.pattern}' overlaps "
                    f"collection '{other.name}' ('{other.pattern}')",
                    collection=definition.name,
                )

    def _check_templates(self, definition: CollectionDefinition) -> None:
        allowed = {"collection", "slug"} | set(definition.field_names)
        try:
            keys = {
                field_name.split(".")[0].split("[")[0]
                for _, field_name, _, _ in Formatter().parse(definition.permalink_template)
                if field_name
            }
        except ValueError as e:
            raise InvalidSchemaError(
                f"Malformed permalink template: {e}", collection=definition.name
            ) from e
        unknown = keys - allowed
        if unknown:
            raise InvalidSchemaError(
                f"Permalink template references unknown fields: {sorted(unknown)}",
                collection=definition.name,
            )
