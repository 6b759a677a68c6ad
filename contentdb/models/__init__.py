"""
Models module - Pydantic models shared by the pipeline and the stores.

This module defines:
- DocumentRecord : one validated document plus derived identity fields
- ManifestEntry / BuildManifest : what each ingestion run committed
- IngestionReport / SlugCollision : non-fatal outcomes of a run
"""
from contentdb.models.records import (
    DocumentRecord,
    to_storage,
    from_storage,
    order_records,
)
from contentdb.models.manifest import (
    ManifestEntry,
    BuildManifest,
    IngestionReport,
    SlugCollision,
)

__all__ = [
    "DocumentRecord",
    "to_storage",
    "from_storage",
    "order_records",
    "ManifestEntry",
    "BuildManifest",
    "IngestionReport",
    "SlugCollision",
]
