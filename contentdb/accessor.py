"""
Collection accessor.

Attribute-style access to one collection of a ContentDB: `db.articles.list()`
is the same call as `db.list("articles")`.
"""
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

from contentdb.core.exceptions import NotFoundError
from contentdb.models.manifest import ManifestEntry
from contentdb.models.records import DocumentRecord

if TYPE_CHECKING:
    from contentdb.db import ContentDB
    from contentdb.rebuild import RebuildOutcome


class CollectionAccessor:
    """View of one collection, bound to its ContentDB."""

    def __init__(self, db: "ContentDB", name: str):
        self._db = db
        self.name = name

    def list(self, pattern: Optional[str] = None) -> List[DocumentRecord]:
        return self._db.list(self.name, pattern=pattern)

    def get(self, slug: str, pattern: Optional[str] = None) -> DocumentRecord:
        return self._db.get(self.name, slug, pattern=pattern)

    def set(self, slug: str, metadata: Optional[Dict[str, Any]] = None, body: str = "") -> "RebuildOutcome":
        return self._db.set(self.name, slug, metadata, body)

    def delete(self, slug: str) -> bool:
        return self._db.delete(self.name, slug)

    @property
    def manifest(self) -> Optional[ManifestEntry]:
        """Committed manifest entry, or None before the first build."""
        return self._db.manifest_entry(self.name)

    def __iter__(self) -> Iterator[DocumentRecord]:
        return iter(self.list())

    def __len__(self) -> int:
        return len(self.list())

    def __contains__(self, slug: object) -> bool:
        if not isinstance(slug, str):
            return False
        try:
            self.get(slug)
        except NotFoundError:
            return False
        return True

    def __repr__(self) -> str:
        return f"<CollectionAccessor {self.name!r}>"
