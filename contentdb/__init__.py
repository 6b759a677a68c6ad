"""
contentdb - a schema-validated document database over Markdown/MDX sources.

Typical use:

    from contentdb import ContentDB, StoreConfig, CollectionDefinition
    from contentdb.schema import string, date_field

    articles = CollectionDefinition(
        name="articles",
        pattern="articles/*.md",
        fields=(string("title"), date_field("date")),
    )
    with ContentDB(StoreConfig(content_root="site", collections=(articles,))) as db:
        for record in db.articles.list():
            print(record.permalink, record["title"])
"""
from contentdb.accessor import CollectionAccessor
from contentdb.core.cancellation import CancellationToken
from contentdb.core.config import BackendKind, RebuildPolicy
from contentdb.core.exceptions import (
    BackendIOError,
    ConfigurationError,
    ContentDBException,
    DuplicateCollectionError,
    InvalidSchemaError,
    NotFoundError,
    ParseError,
    RebuildCancelled,
    SourceNotFoundError,
    UnknownCollectionError,
    ValidationError,
)
from contentdb.db import ContentDB, StoreConfig
from contentdb.ingestion.writer import ContentWriter
from contentdb.models import BuildManifest, DocumentRecord, IngestionReport, ManifestEntry
from contentdb.rebuild import RebuildOutcome, RebuildState
from contentdb.schema import CollectionDefinition, CollectionRegistry, FieldKind, FieldSpec

__version__ = "1.0.0"

__all__ = [
    "ContentDB",
    "StoreConfig",
    "CollectionAccessor",
    "CollectionDefinition",
    "CollectionRegistry",
    "FieldKind",
    "FieldSpec",
    "DocumentRecord",
    "ManifestEntry",
    "BuildManifest",
    "IngestionReport",
    "RebuildOutcome",
    "RebuildState",
    "CancellationToken",
    "ContentWriter",
    "BackendKind",
    "RebuildPolicy",
    # Errors
    "ContentDBException",
    "ConfigurationError",
    "InvalidSchemaError",
    "DuplicateCollectionError",
    "UnknownCollectionError",
    "SourceNotFoundError",
    "ValidationError",
    "ParseError",
    "NotFoundError",
    "BackendIOError",
    "RebuildCancelled",
]
