"""
Ingestion package - source files to validated records.
"""
from contentdb.ingestion.fingerprint import compute_fingerprint, stat_sources
from contentdb.ingestion.parser import FrontmatterParser, MarkupParser, ParsedDocument
from contentdb.ingestion.pipeline import IngestionPipeline, IngestionResult
from contentdb.ingestion.slugs import build_permalink, derive_slug, path_slug
from contentdb.ingestion.writer import ContentWriter

__all__ = [
    "compute_fingerprint",
    "stat_sources",
    "FrontmatterParser",
    "MarkupParser",
    "ParsedDocument",
    "IngestionPipeline",
    "IngestionResult",
    "build_permalink",
    "derive_slug",
    "path_slug",
    "ContentWriter",
]
