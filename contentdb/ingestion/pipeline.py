"""
Content Ingestion Pipeline.

Turns the source files matching a collection pattern into ordered
DocumentRecords plus a manifest entry and an ingestion report.

Steps per run:
1. Resolve the collection's source directory (missing -> SourceNotFoundError)
2. Enumerate matching files in lexicographic path order
3. Parse files (concurrently, on a thread pool) through the MarkupParser
4. Validate metadata, derive slug and permalink, apply the transform
5. Resolve slug collisions (later path wins, warning recorded)
6. Order records and fingerprint the source set

One malformed file never aborts the run: its error lands in the report.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from contentdb.core.cancellation import CancellationToken
from contentdb.core.exceptions import ParseError, SourceNotFoundError, ValidationError
from contentdb.core.logging_config import LoggerMixin
from contentdb.ingestion.fingerprint import compute_fingerprint, stat_sources
from contentdb.ingestion.parser import FrontmatterParser, MarkupParser, ParsedDocument
from contentdb.ingestion.slugs import build_permalink, derive_slug
from contentdb.models.manifest import IngestionReport, ManifestEntry, SlugCollision
from contentdb.models.records import DocumentRecord, order_records, to_storage
from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.fields import FieldValueError, validate_metadata, validate_value
from contentdb.schema.patterns import iter_matches

ParseOutcome = Union[ParsedDocument, ParseError]

SYSTEM_KEYS = ("slug", "permalink", "content", "source_path", "collection")


@dataclass
class IngestionResult:
    """
    Output of one ingestion run.

    Attributes:
        records: Validated records in list() order
        manifest: Candidate manifest entry (no generation id yet)
        report: Per-file errors and slug collisions
    """
    records: List[DocumentRecord]
    manifest: ManifestEntry
    report: IngestionReport

    @property
    def fingerprint(self) -> str:
        return self.manifest.fingerprint


class IngestionPipeline(LoggerMixin):
    """
    Scans, parses and validates one collection at a time.

    Example:
        >>> pipeline = IngestionPipeline(Path("site"))
        >>> result = pipeline.ingest(articles)
        >>> [r.slug for r in result.records]
        ['hello', 'world']
    """

    def __init__(
        self,
        content_root: Union[str, Path],
        parser: Optional[MarkupParser] = None,
        max_workers: int = 4,
    ):
        self.content_root = Path(content_root)
        self.parser = parser or FrontmatterParser()
        self.max_workers = max(1, int(max_workers))

    # ------------------------------------------------------------------
    # Source enumeration
    # ------------------------------------------------------------------

    def source_dir(self, definition: CollectionDefinition) -> Path:
        """Existing source directory of a collection."""
        if not self.content_root.is_dir():
            raise SourceNotFoundError(str(self.content_root), collection=definition.name)
        directory = self.content_root / definition.source_dir if definition.source_dir else self.content_root
        if not directory.is_dir():
            raise SourceNotFoundError(str(directory), collection=definition.name)
        return directory

    def enumerate(self, definition: CollectionDefinition) -> List[Path]:
        """Matching source files, sorted by relative POSIX path."""
        self.source_dir(definition)
        return list(iter_matches(self.content_root, definition.pattern))

    def scan(self, definition: CollectionDefinition) -> str:
        """Fingerprint of the current source set, without parsing."""
        paths = self.enumerate(definition)
        return compute_fingerprint(definition, stat_sources(self.content_root, paths))

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(
        self,
        definition: CollectionDefinition,
        cancel: Optional[CancellationToken] = None,
    ) -> IngestionResult:
        """
        Run the full pipeline for one collection.

        Raises:
            SourceNotFoundError: content root or source directory missing
            RebuildCancelled: the token fired between files
        """
        paths = self.enumerate(definition)
        fingerprint = compute_fingerprint(definition, stat_sources(self.content_root, paths))
        report = IngestionReport(collection=definition.name, scanned=len(paths))

        self.logger.debug(f"Ingesting '{definition.name}': {len(paths)} files")

        if cancel is not None:
            cancel.raise_if_cancelled(definition.name)

        outcomes = self._parse_all(paths)

        by_slug: Dict[str, DocumentRecord] = {}
        for path, outcome in zip(paths, outcomes):
            if cancel is not None:
                cancel.raise_if_cancelled(definition.name)

            rel = path.relative_to(self.content_root).as_posix()
            try:
                if isinstance(outcome, ParseError):
                    raise ValidationError(outcome.message, source_path=rel) from outcome
                record = self._build_record(definition, rel, outcome)
            except ValidationError as e:
                self.logger.warning(f"Skipping {rel}: {e.message}")
                report.errors.append(e)
                continue

            previous = by_slug.get(record.slug)
            if previous is not None:
                self.logger.warning(
                    f"Slug collision in '{definition.name}': '{record.slug}' from {rel} "
                    f"replaces {previous.source_path}"
                )
                report.collisions.append(
                    SlugCollision(slug=record.slug, kept=rel, discarded=previous.source_path)
                )
            by_slug[record.slug] = record

        records = order_records(definition, list(by_slug.values()))
        manifest = ManifestEntry(
            collection=definition.name,
            fingerprint=fingerprint,
            record_ids=[record.slug for record in records],
        )

        self.logger.info(f"Ingested {report.summary()}")
        return IngestionResult(records=records, manifest=manifest, report=report)

    def _parse_one(self, path: Path) -> ParseOutcome:
        try:
            return self.parser.parse(path)
        except ParseError as e:
            return e

    def _parse_all(self, paths: List[Path]) -> List[ParseOutcome]:
        if self.max_workers == 1 or len(paths) < 2:
            return [self._parse_one(path) for path in paths]
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="contentdb-parse") as pool:
            # map() yields in submission order, keeping path order
            return list(pool.map(self._parse_one, paths))

    def _build_record(
        self,
        definition: CollectionDefinition,
        rel: str,
        parsed: ParsedDocument,
    ) -> DocumentRecord:
        data = validate_metadata(definition.fields, parsed.metadata, parsed.body, rel)
        slug = derive_slug(definition, data, parsed.metadata, rel)
        try:
            permalink = build_permalink(definition, slug, data)
        except (KeyError, IndexError, ValueError) as e:
            raise ValidationError(f"Cannot build permalink: {e}", source_path=rel) from e

        slug, permalink, content, data = self._apply_transform(
            definition, rel, slug, permalink, parsed.body, data
        )

        try:
            record = DocumentRecord(
                collection=definition.name,
                slug=slug,
                permalink=permalink,
                source_path=rel,
                content=content,
                data=data,
            )
            to_storage(record)
        # PydanticSerializationError subclasses ValueError
        except ValueError as e:
            raise ValidationError(f"Record is not storable: {e}", source_path=rel) from e
        return record

    def _apply_transform(
        self,
        definition: CollectionDefinition,
        rel: str,
        slug: str,
        permalink: str,
        content: str,
        data: Dict[str, Any],
    ) -> Tuple[str, str, str, Dict[str, Any]]:
        if definition.transform is None:
            return slug, permalink, content, data

        payload = dict(data)
        payload.update(
            collection=definition.name,
            slug=slug,
            permalink=permalink,
            content=content,
            source_path=rel,
        )
        try:
            output = definition.transform(payload)
        except Exception as e:
            raise ValidationError(
                f"Transform failed: {type(e).__name__}: {e}", source_path=rel
            ) from e
        if not isinstance(output, Mapping):
            raise ValidationError(
                f"Transform returned {type(output).__name__}, expected a mapping",
                source_path=rel,
            )

        new_slug = output.get("slug", slug)
        if not isinstance(new_slug, str) or not new_slug:
            raise ValidationError("Transform produced an empty slug", source_path=rel, field="slug")

        new_data = {k: v for k, v in output.items() if k not in SYSTEM_KEYS}
        if "slug" in definition.field_names:
            new_data["slug"] = new_slug
        # Schema fields the transform kept must still match their kind
        for spec in definition.fields:
            if spec.name in new_data:
                try:
                    new_data[spec.name] = validate_value(spec, new_data[spec.name])
                except FieldValueError as e:
                    raise ValidationError(
                        f"Transform produced an invalid '{spec.name}': {e}",
                        source_path=rel,
                        field=spec.name,
                    ) from e

        new_permalink = str(output.get("permalink", permalink))
        # A renamed slug keeps the permalink derived from it unless the transform set one
        if new_slug != slug and new_permalink == permalink:
            try:
                new_permalink = build_permalink(definition, new_slug, new_data)
            except (KeyError, IndexError, ValueError) as e:
                raise ValidationError(f"Cannot build permalink: {e}", source_path=rel) from e

        return (
            new_slug,
            new_permalink,
            str(output.get("content", content)),
            new_data,
        )
