"""
Build manifests and ingestion reports.

ManifestEntry records what one ingestion run committed for a collection:
the ordered record ids, the source fingerprint and the generation id.
BuildManifest is the per-store view over all collections.

IngestionReport collects the non-fatal outcomes of a run: per-file
validation errors and slug collisions.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from contentdb.core.exceptions import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ManifestEntry(BaseModel):
    """Committed (or candidate) generation of one collection."""
    model_config = ConfigDict(frozen=True)

    collection: str
    fingerprint: str
    record_ids: List[str] = Field(default_factory=list, description="Slugs in list() order")
    generation_id: Optional[str] = Field(
        default=None,
        description="Assigned by the store when the generation is committed"
    )
    built_at: datetime = Field(default_factory=_utcnow)

    @property
    def record_count(self) -> int:
        return len(self.record_ids)


class BuildManifest(BaseModel):
    """Latest committed generation per collection."""
    model_config = ConfigDict(frozen=True)

    entries: Dict[str, ManifestEntry] = Field(default_factory=dict)

    def __getitem__(self, collection: str) -> ManifestEntry:
        return self.entries[collection]

    def __contains__(self, collection: object) -> bool:
        return collection in self.entries

    def fingerprint(self, collection: str) -> Optional[str]:
        entry = self.entries.get(collection)
        return entry.fingerprint if entry else None


class SlugCollision(BaseModel):
    """Two source files produced the same slug; the later path won."""
    model_config = ConfigDict(frozen=True)

    slug: str
    kept: str
    discarded: str


class IngestionReport(BaseModel):
    """Non-fatal outcomes of one ingestion run."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    collection: str
    scanned: int = 0
    errors: List[ValidationError] = Field(default_factory=list)
    collisions: List[SlugCollision] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and not self.collisions

    def summary(self) -> str:
        return (
            f"{self.collection}: scanned={self.scanned} "
            f"errors={len(self.errors)} collisions={len(self.collisions)}"
        )
