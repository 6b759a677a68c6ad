"""
ContentDB - the root handle.

Binds a collection registry, an ingestion pipeline, a document store and a
rebuild controller into one object, and serves the read API:

    db.list("articles")             -> ordered records
    db.get("articles", "hello")     -> one record or NotFoundError
    db.articles.list()              -> same, through the collection accessor
    db["articles"].get("hello")
    db.find("hello")                -> first match across collections
    db.set("articles", "new", {...}) -> write the source file and rebuild

Every ContentDB owns its own registry and store; nothing is process-global
except the cached environment Settings that StoreConfig.from_settings reads.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from contentdb.accessor import CollectionAccessor
from contentdb.core.cancellation import CancellationToken
from contentdb.core.config import BackendKind, RebuildPolicy, Settings, get_settings
from contentdb.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    SourceNotFoundError,
    UnknownCollectionError,
)
from contentdb.core.logging_config import LoggerMixin, setup_logging
from contentdb.ingestion.parser import MarkupParser
from contentdb.ingestion.pipeline import IngestionPipeline
from contentdb.ingestion.writer import ContentWriter
from contentdb.models.manifest import BuildManifest, ManifestEntry
from contentdb.models.records import DocumentRecord
from contentdb.rebuild import RebuildController, RebuildOutcome, RebuildState
from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.discovery import discover_definitions, merge_definitions
from contentdb.schema.patterns import matches
from contentdb.schema.registry import CollectionRegistry
from contentdb.storage.base import DocumentStore, create_store


@dataclass(frozen=True)
class StoreConfig:
    """
    Construction parameters of one ContentDB.

    Attributes:
        content_root: Directory that collection patterns are relative to
        backend: Storage backend ("file" or "sql")
        location: Snapshot directory (file) or SQLAlchemy URL (sql)
        collections: Explicit collection definitions
        rebuild_policy: What to do with persisted generations on construction
        max_workers: Thread pool size for per-file parsing
        schema_dir: Optional folder of schema definition files
        parser: Markup parser; FrontmatterParser when omitted
    """
    content_root: Union[str, Path]
    backend: Union[BackendKind, str] = BackendKind.FILE
    location: Union[str, Path] = ".contentdb"
    collections: Tuple[CollectionDefinition, ...] = ()
    rebuild_policy: Union[RebuildPolicy, str] = RebuildPolicy.AUTO_IF_STALE
    max_workers: int = 4
    schema_dir: Optional[Union[str, Path]] = None
    parser: Optional[MarkupParser] = field(default=None, compare=False)

    def __post_init__(self):
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "content_root", Path(self.content_root))
        object.__setattr__(self, "collections", tuple(self.collections))
        try:
            object.__setattr__(self, "backend", BackendKind(self.backend))
            object.__setattr__(self, "rebuild_policy", RebuildPolicy(self.rebuild_policy))
        except ValueError as e:
            raise ConfigurationError(f"Invalid store configuration: {e}") from None
        if self.schema_dir is not None:
            object.__setattr__(self, "schema_dir", Path(self.schema_dir))
        if int(self.max_workers) < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")

    @classmethod
    def from_settings(
        cls,
        collections: Iterable[CollectionDefinition] = (),
        settings: Optional[Settings] = None,
        **overrides,
    ) -> "StoreConfig":
        """
        Build a config from environment Settings.

        Example:
            >>> config = StoreConfig.from_settings([articles], location=".cache")
        """
        settings = settings or get_settings()
        config = cls(
            content_root=settings.content_root,
            backend=settings.backend,
            location=settings.location,
            collections=tuple(collections),
            rebuild_policy=settings.rebuild_policy,
            max_workers=settings.max_workers,
            schema_dir=settings.schema_dir,
        )
        return replace(config, **overrides) if overrides else config


class ContentDB(LoggerMixin):
    """
    Schema-validated document database over a Markdown/MDX source tree.

    Example:
        >>> config = StoreConfig(content_root="site", collections=(articles,))
        >>> with ContentDB(config) as db:
        ...     [record.slug for record in db.articles.list()]
        ['hello', 'world']
    """

    def __init__(self, config: StoreConfig, store: Optional[DocumentStore] = None):
        """
        Register collections, open the store and apply the rebuild policy.

        Args:
            config: Construction parameters
            store: Pre-built store; created from config.backend when omitted

        Raises:
            InvalidSchemaError / DuplicateCollectionError: bad definitions
            SourceNotFoundError: a never-built collection has no sources. A
                built one whose sources vanished keeps serving; see
                startup_outcomes
            BackendIOError: the store cannot be opened or written
        """
        self.config = config
        self._closed = False

        definitions = config.collections
        if config.schema_dir is not None:
            definitions = merge_definitions(definitions, discover_definitions(config.schema_dir))
        self.registry = CollectionRegistry(definitions)

        self.pipeline = IngestionPipeline(
            config.content_root,
            parser=config.parser,
            max_workers=config.max_workers,
        )
        self.writer = ContentWriter(config.content_root)
        self.store = store if store is not None else create_store(config.backend, config.location)

        try:
            for definition in self.registry:
                self.store.attach(definition)
            self.controller = RebuildController(self.registry, self.pipeline, self.store)
            self._accessors: Dict[str, CollectionAccessor] = {
                name: CollectionAccessor(self, name) for name in self.registry.names()
            }
            self.startup_outcomes = self._apply_policy(config.rebuild_policy)
        except Exception:
            self.store.close()
            raise

        self.logger.info(
            f"ContentDB ready: {len(self.registry)} collections, "
            f"backend={self.store.backend_name}, policy={config.rebuild_policy.value}"
        )

    @classmethod
    def from_settings(
        cls,
        collections: Iterable[CollectionDefinition] = (),
        settings: Optional[Settings] = None,
        **overrides,
    ) -> "ContentDB":
        """Configure logging and open a ContentDB from environment Settings."""
        settings = settings or get_settings()
        setup_logging(settings.log_level)
        return cls(StoreConfig.from_settings(collections, settings=settings, **overrides))

    def _apply_policy(self, policy: RebuildPolicy) -> Dict[str, RebuildOutcome]:
        if policy is RebuildPolicy.REBUILD:
            return self.controller.rebuild_all(force=True)
        if policy is RebuildPolicy.AUTO_IF_STALE:
            return self.controller.refresh()
        # Reuse persisted generations; only never-built collections are ingested
        return {
            name: self.controller.rebuild(name)
            for name in self.registry.names()
            if self.store.manifest_entry(name) is None
        }

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def list(self, name: Optional[str] = None, pattern: Optional[str] = None) -> List[DocumentRecord]:
        """
        Records of a collection in stored order.

        Args:
            name: Collection name; every collection in registration order
                when omitted
            pattern: Optional glob; keeps records whose source_path matches

        Raises:
            UnknownCollectionError: name is not registered
        """
        if name is None:
            records = [record for each in self.registry.names() for record in self.store.list(each)]
        else:
            self.registry.resolve(name)
            records = self.store.list(name)
        if pattern:
            records = [record for record in records if matches(pattern, record.source_path)]
        return records

    def get(self, name: str, slug: str, pattern: Optional[str] = None) -> DocumentRecord:
        """
        One record by slug.

        Args:
            name: Collection name
            slug: Record slug
            pattern: Optional glob the record's source_path must match

        Raises:
            UnknownCollectionError: name is not registered
            NotFoundError: no record with this slug (or it fails the pattern)
        """
        self.registry.resolve(name)
        record = self.store.get(name, slug)
        if pattern and not matches(pattern, record.source_path):
            raise NotFoundError(name, slug)
        return record

    def find(self, slug: str, pattern: Optional[str] = None) -> DocumentRecord:
        """
        First record with this slug, searching collections in registration order.

        Raises:
            NotFoundError: no collection holds a matching record
        """
        for name in self.registry.names():
            try:
                return self.get(name, slug, pattern=pattern)
            except NotFoundError:
                continue
        raise NotFoundError("*", slug)

    def collection(self, name: str) -> CollectionAccessor:
        try:
            return self._accessors[name]
        except KeyError:
            raise UnknownCollectionError(name) from None

    def __getitem__(self, name: str) -> CollectionAccessor:
        return self.collection(name)

    def __getattr__(self, name: str) -> CollectionAccessor:
        # Only reached when normal lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        accessors = self.__dict__.get("_accessors")
        if accessors is None:
            raise AttributeError(name)
        try:
            return accessors[name]
        except KeyError:
            raise UnknownCollectionError(name) from None

    def __dir__(self) -> List[str]:
        return sorted(set(super().__dir__()) | set(self.__dict__.get("_accessors", {})))

    def __contains__(self, name: object) -> bool:
        return name in self.registry

    def names(self) -> List[str]:
        return self.registry.names()

    def manifest(self) -> BuildManifest:
        return self.store.manifest()

    def manifest_entry(self, name: str) -> Optional[ManifestEntry]:
        self.registry.resolve(name)
        return self.store.manifest_entry(name)

    def export(self, target: Union[str, Path]) -> Path:
        """Dump every committed generation as JSON files under target."""
        return self.store.export(target)

    # ------------------------------------------------------------------
    # Source writes
    # ------------------------------------------------------------------

    def set(
        self,
        name: str,
        slug: str,
        metadata: Optional[Dict[str, Any]] = None,
        body: str = "",
    ) -> RebuildOutcome:
        """
        Create or overwrite a source document, then rebuild its collection.

        The new record is readable once this returns, unless it failed
        validation; the outcome's report says which.

        Raises:
            UnknownCollectionError: name is not registered
            ValidationError: slug is not in slug form
        """
        definition = self.registry.resolve(name)
        self.writer.write(definition, slug, metadata, body)
        return self.controller.rebuild(name)

    def delete(self, name: str, slug: str) -> bool:
        """
        Remove a source document and rebuild its collection.

        Returns:
            False if no source file existed for the slug
        """
        definition = self.registry.resolve(name)
        try:
            self.writer.remove(definition, slug)
        except SourceNotFoundError:
            self.logger.info(f"Nothing to delete for {name}/{slug}")
            return False
        self.controller.rebuild(name)
        return True

    # ------------------------------------------------------------------
    # Rebuilds
    # ------------------------------------------------------------------

    def rebuild(
        self,
        name: Optional[str] = None,
        force: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> Union[RebuildOutcome, Dict[str, RebuildOutcome]]:
        """
        Rebuild one collection, or all of them when name is omitted.

        Returns:
            RebuildOutcome for one collection, name -> outcome for all
        """
        if name is None:
            return self.controller.rebuild_all(force=force)
        return self.controller.rebuild(name, force=force, cancel=cancel)

    def refresh(self) -> Dict[str, RebuildOutcome]:
        """Rebuild collections whose sources changed since their last build."""
        return self.controller.refresh()

    def is_stale(self, name: str) -> bool:
        return self.controller.is_stale(name)

    def state(self, name: str) -> RebuildState:
        return self.controller.state(name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.store.close()
        self.logger.info("ContentDB closed")

    def __enter__(self) -> "ContentDB":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<ContentDB collections={self.names()} backend={self.store.backend_name}>"
