"""
Document records.

A DocumentRecord is one validated source file plus its derived identity
fields. Records are frozen pydantic models: they are replaced wholesale
when a new generation is committed and never mutated in place.
"""
from typing import Any, Dict, List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.fields import decode_value


class DocumentRecord(BaseModel):
    """
    One schema-conformant document.

    Attributes:
        collection: Owning collection name
        slug: Identifier, unique within the collection
        permalink: Public path derived from the slug
        source_path: Source file path relative to the content root
        content: Document body (raw markup)
        data: Validated schema fields plus keys added by the transform
    """
    model_config = ConfigDict(frozen=True)

    collection: str = Field(..., description="Owning collection name")
    slug: str = Field(..., min_length=1, description="Unique identifier within the collection")
    permalink: str = Field(..., description="Public path derived from the slug")
    source_path: str = Field(..., description="Source file, relative to the content root")
    content: str = Field(default="", description="Document body")
    data: Dict[str, Any] = Field(default_factory=dict, description="Validated fields")

    def __getitem__(self, key: str) -> Any:
        """Look up a data field, falling back to the system fields."""
        if key in self.data:
            return self.data[key]
        if key in ("collection", "slug", "permalink", "source_path", "content"):
            return getattr(self, key)
        raise KeyError(key)

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def to_dict(self) -> Dict[str, Any]:
        """Flat dictionary: data fields plus system fields."""
        flat = dict(self.data)
        flat.update(
            collection=self.collection,
            slug=self.slug,
            permalink=self.permalink,
            source_path=self.source_path,
            content=self.content,
        )
        return flat


def to_storage(record: DocumentRecord) -> Dict[str, Any]:
    """JSON-safe payload for persistence (dates become ISO strings)."""
    return record.model_dump(mode="json")


def from_storage(definition: CollectionDefinition, payload: Dict[str, Any]) -> DocumentRecord:
    """
    Rebuild a record from a persisted payload.

    Schema fields are decoded back to their validated Python types; keys
    added by a transform keep their JSON representation. Both backends go
    through this function, so they return identical records.
    """
    data = dict(payload.get("data") or {})
    for spec in definition.fields:
        if spec.name in data:
            data[spec.name] = decode_value(spec, data[spec.name])
    return DocumentRecord(
        collection=payload["collection"],
        slug=payload["slug"],
        permalink=payload["permalink"],
        source_path=payload["source_path"],
        content=payload.get("content") or "",
        data=data,
    )


def _sort_key(definition: CollectionDefinition, record: DocumentRecord) -> Tuple:
    if definition.sort_by is None or definition.sort_by == "slug":
        return (record.slug,)
    value = record.data.get(definition.sort_by)
    # Missing values sort last in either direction
    missing = value is None
    return (missing if not definition.descending else not missing, value if not missing else 0)


def order_records(
    definition: CollectionDefinition,
    records: Sequence[DocumentRecord],
) -> List[DocumentRecord]:
    """
    Canonical list() ordering for a collection.

    Slug ascending unless the collection sets sort_by; ties on the sort
    field are broken by slug ascending.
    """
    by_slug = sorted(records, key=lambda r: r.slug)
    if definition.sort_by is None or definition.sort_by == "slug":
        return list(reversed(by_slug)) if definition.descending else by_slug
    return sorted(
        by_slug,
        key=lambda r: _sort_key(definition, r),
        reverse=definition.descending,
    )
