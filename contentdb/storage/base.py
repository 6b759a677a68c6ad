"""
Document store contract.

A DocumentStore persists committed generations of records, one active
generation per collection. Backends differ in how they make the swap
atomic, but they must return equal records in equal order for any
sequence of calls.

Backends must provide:

    store.list(name)                              -> ordered records
    store.get(name, slug)                         -> record or NotFoundError
    store.upsert_generation(name, records, fp)    -> committed ManifestEntry
    store.manifest_entry(name)                    -> ManifestEntry | None
    store.close()

This file provides:
- DocumentStore: abstract base class
- new_generation_id: sortable generation identifiers
- DocumentStore.export: backend-neutral JSON dump of the committed generations
- create_store: backend factory
"""
from __future__ import annotations

import json
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from contentdb.core.config import BackendKind
from contentdb.core.exceptions import BackendIOError, ConfigurationError, UnknownCollectionError
from contentdb.core.logging_config import LoggerMixin
from contentdb.models.manifest import BuildManifest, ManifestEntry
from contentdb.models.records import DocumentRecord, order_records, to_storage
from contentdb.schema.collection import CollectionDefinition


EXPORT_MANIFEST = "manifest.json"


def new_generation_id() -> str:
    """Time-ordered generation id, e.g. '20240101T120000123456-1a2b3c4d'."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


class DocumentStore(ABC, LoggerMixin):
    """
    Abstract base class for document store backends.

    Collections must be attached before they are read or written; attaching
    is idempotent for the same definition.
    """

    backend_name = "abstract"

    def __init__(self):
        self._definitions: Dict[str, CollectionDefinition] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def attach(self, definition: CollectionDefinition) -> None:
        """Make a collection known to the backend (creating storage if needed)."""
        with self._lock:
            self._attach(definition)
            self._definitions[definition.name] = definition
        self.logger.debug(f"Attached collection '{definition.name}' to {self.backend_name} store")

    def definition(self, name: str) -> CollectionDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise UnknownCollectionError(name) from None

    def collections(self) -> List[str]:
        return list(self._definitions)

    def manifest(self) -> BuildManifest:
        """Latest committed entry of every attached, built collection."""
        entries = {}
        for name in self.collections():
            entry = self.manifest_entry(name)
            if entry is not None:
                entries[name] = entry
        return BuildManifest(entries=entries)

    def export(self, target: Union[str, Path]) -> Path:
        """
        Copy the committed generation of every built collection to a directory.

        Writes <target>/<collection>.json (records in list order) and
        <target>/manifest.json. Holding the store lock keeps a concurrent
        swap from interleaving with the dump.

        Raises:
            BackendIOError: the target cannot be written
        """
        target = Path(target)
        with self._lock:
            manifest = self.manifest()
            try:
                target.mkdir(parents=True, exist_ok=True)
                for name in manifest.entries:
                    payload = [to_storage(record) for record in self.list(name)]
                    (target / f"{name}.json").write_text(
                        json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
                    )
                (target / EXPORT_MANIFEST).write_text(manifest.model_dump_json(indent=2), encoding="utf-8")
            except OSError as e:
                raise BackendIOError(f"Cannot export to {target}", details=str(e)) from e

        self.logger.info(f"Exported {len(manifest.entries)} collections to {target}")
        return target

    def _prepare(
        self,
        name: str,
        records: Sequence[DocumentRecord],
        fingerprint: str,
    ) -> Tuple[ManifestEntry, List[DocumentRecord]]:
        """Canonical ordering and the manifest entry for a new generation."""
        definition = self.definition(name)
        ordered = order_records(definition, records)
        slugs = [record.slug for record in ordered]
        if len(set(slugs)) != len(slugs):
            raise ValueError(f"Duplicate slugs in generation for '{name}'")
        return ManifestEntry(
            collection=name,
            fingerprint=fingerprint,
            record_ids=slugs,
            generation_id=new_generation_id(),
        ), ordered

    # ------------------------------------------------------------------
    # Backend interface
    # ------------------------------------------------------------------

    @abstractmethod
    def _attach(self, definition: CollectionDefinition) -> None:
        raise NotImplementedError

    @abstractmethod
    def list(self, name: str) -> List[DocumentRecord]:
        """
        Records of the latest committed generation in stored order.

        Returns an empty list for a collection that was never built.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, name: str, slug: str) -> DocumentRecord:
        """
        One record of the latest committed generation.

        Raises:
            NotFoundError: no record with this slug
        """
        raise NotImplementedError

    @abstractmethod
    def upsert_generation(
        self,
        name: str,
        records: Sequence[DocumentRecord],
        fingerprint: str,
    ) -> ManifestEntry:
        """
        Atomically replace the active generation of a collection.

        Readers observe either the previous generation or the new one in
        full, never a mix.

        Raises:
            BackendIOError: the write failed; the previous generation stays
        """
        raise NotImplementedError

    @abstractmethod
    def manifest_entry(self, name: str) -> Optional[ManifestEntry]:
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources. Default: no-op."""
        return None

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def create_store(backend: Union[BackendKind, str], location: Union[str, Path]) -> DocumentStore:
    """
    Build a store for a backend kind.

    Args:
        backend: "file" or "sql"
        location: Directory (file) or SQLAlchemy URL (sql)

    Raises:
        ConfigurationError: unknown backend
    """
    try:
        kind = BackendKind(backend)
    except ValueError:
        raise ConfigurationError(
            f"Unknown storage backend: {backend!r}",
            details=f"Expected one of {[k.value for k in BackendKind]}",
        ) from None

    if kind is BackendKind.FILE:
        from contentdb.storage.file_backend import FileSnapshotStore
        return FileSnapshotStore(Path(location))

    from contentdb.storage.sql_backend import SQLStore
    return SQLStore(str(location))
