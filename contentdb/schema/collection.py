"""
Collection definitions.

A CollectionDefinition is pure configuration: which files belong to the
collection, which fields they must carry, how slugs and permalinks are
derived, and an optional transform applied to each validated record.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from contentdb.schema.fields import FieldSpec
from contentdb.schema.patterns import normalize_pattern, static_base

Transform = Callable[[Dict[str, Any]], Dict[str, Any]]

DEFAULT_PERMALINK = "/{collection}/{slug}"


@dataclass(frozen=True)
class CollectionDefinition:
    """
    Declarative description of one collection.

    Attributes:
        name: Unique collection key
        pattern: Glob relative to the content root selecting source files
        fields: Ordered schema fields
        transform: Optional pure function taking the record dict
            (data fields plus slug, permalink, content, source_path) and
            returning an augmented dict
        slug_fields: Identifying fields tried in order when deriving slugs;
            the source path is used when none is present
        permalink_template: str.format template; receives collection, slug
            and every data field
        sort_by: Optional data field ordering list() output
        descending: Reverse the sort_by ordering
    """
    name: str
    pattern: str
    fields: Tuple[FieldSpec, ...] = ()
    transform: Optional[Transform] = None
    slug_fields: Tuple[str, ...] = ("slug", "title")
    permalink_template: str = DEFAULT_PERMALINK
    sort_by: Optional[str] = None
    descending: bool = False
    description: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        # Accept lists from callers; the definition itself stays hashable
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "slug_fields", tuple(self.slug_fields))

    @property
    def normalized_pattern(self) -> str:
        return normalize_pattern(self.pattern)

    @property
    def source_dir(self) -> str:
        """Static directory prefix of the pattern, relative to the content root."""
        return static_base(self.pattern)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)

    def field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def signature(self) -> str:
        """
        Stable digest of everything that shapes the generated records.

        Folded into the source fingerprint so that a schema change forces a
        new generation even when no source file changed. Transforms are
        identified by qualified name only.
        """
        transform_id = ""
        if self.transform is not None:
            transform_id = f"{getattr(self.transform, '__module__', '')}." \
                           f"{getattr(self.transform, '__qualname__', repr(self.transform))}"
        parts = [
            self.name,
            self.normalized_pattern,
            ",".join(spec.signature() for spec in self.fields),
            transform_id,
            ",".join(self.slug_fields),
            self.permalink_template,
            self.sort_by or "",
            str(self.descending),
        ]
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
