"""
File snapshot backend.

Layout under the store root:

    <root>/<collection>/manifest.json
    <root>/<collection>/generations/<generation_id>/<slug>.json

A generation directory is written in full before manifest.json is replaced
with os.replace, which is atomic on POSIX and Windows. manifest.json is the
only pointer readers follow, so a reader sees the old generation or the new
one, never a partially written directory.

Reads are served from an in-memory snapshot keyed by the generation id the
manifest points to. The current and the previous generation are kept on
disk; older ones are pruned after each swap.
"""
from __future__ import annotations

import json
import os
import shutil
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from contentdb.core.exceptions import BackendIOError, NotFoundError
from contentdb.models.manifest import ManifestEntry
from contentdb.models.records import DocumentRecord, from_storage, to_storage
from contentdb.schema.collection import CollectionDefinition
from contentdb.storage.base import DocumentStore

MANIFEST_FILE = "manifest.json"
GENERATIONS_DIR = "generations"

# Re-read manifest.json this many times when a generation vanishes mid-read
READ_ATTEMPTS = 3


class _Snapshot:
    """Decoded generation held in memory."""

    def __init__(self, generation_id: Optional[str], records: List[DocumentRecord]):
        self.generation_id = generation_id
        self.records = records
        self.by_slug = {record.slug: record for record in records}


class FileSnapshotStore(DocumentStore):
    """
    Directory-per-generation document store.

    Example:
        >>> store = FileSnapshotStore(Path(".contentdb"))
        >>> store.attach(articles)
        >>> store.upsert_generation("articles", records, fingerprint)
        >>> [r.slug for r in store.list("articles")]
        ['hello', 'world']
    """

    backend_name = "file"

    def __init__(self, root: Union[str, Path], keep_generations: int = 2):
        super().__init__()
        self.root = Path(root)
        self.keep_generations = max(1, keep_generations)
        self._snapshots: Dict[str, _Snapshot] = {}
        self._cache_lock = threading.Lock()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackendIOError(f"Cannot create store directory {self.root}", details=str(e)) from e
        self.logger.info(f"File store initialized: root={self.root}")

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _collection_dir(self, name: str) -> Path:
        return self.root / name

    def _manifest_path(self, name: str) -> Path:
        return self._collection_dir(name) / MANIFEST_FILE

    def _generation_dir(self, name: str, generation_id: str) -> Path:
        return self._collection_dir(name) / GENERATIONS_DIR / generation_id

    @staticmethod
    def _record_file(slug: str) -> str:
        return f"{quote(slug, safe='')}.json"

    # ------------------------------------------------------------------
    # DocumentStore interface
    # ------------------------------------------------------------------

    def _attach(self, definition: CollectionDefinition) -> None:
        try:
            (self._collection_dir(definition.name) / GENERATIONS_DIR).mkdir(
                parents=True, exist_ok=True
            )
        except OSError as e:
            raise BackendIOError(
                f"Cannot create collection directory for '{definition.name}'", details=str(e)
            ) from e

    def manifest_entry(self, name: str) -> Optional[ManifestEntry]:
        self.definition(name)
        path = self._manifest_path(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BackendIOError(f"Cannot read {path}", details=str(e)) from e
        try:
            return ManifestEntry.model_validate_json(raw)
        except PydanticValidationError as e:
            raise BackendIOError(f"Corrupt manifest {path}", details=str(e)) from e

    def list(self, name: str) -> List[DocumentRecord]:
        return list(self._snapshot(name).records)

    def get(self, name: str, slug: str) -> DocumentRecord:
        record = self._snapshot(name).by_slug.get(slug)
        if record is None:
            raise NotFoundError(name, slug)
        return record

    def upsert_generation(
        self,
        name: str,
        records: Sequence[DocumentRecord],
        fingerprint: str,
    ) -> ManifestEntry:
        entry, ordered = self._prepare(name, records, fingerprint)
        generation_dir = self._generation_dir(name, entry.generation_id)

        with self._lock:
            try:
                generation_dir.mkdir(parents=True)
                for record in ordered:
                    self._write_record(generation_dir, record)
                self._write_manifest(name, entry)
            except OSError as e:
                shutil.rmtree(generation_dir, ignore_errors=True)
                self.logger.error(f"Generation write failed for '{name}': {e}")
                raise BackendIOError(
                    f"Cannot write generation {entry.generation_id} of '{name}'",
                    details=str(e),
                ) from e

            with self._cache_lock:
                self._snapshots.pop(name, None)

            self.logger.info(
                f"Committed generation {entry.generation_id} of '{name}' "
                f"({entry.record_count} records)"
            )
            self._prune(name, entry.generation_id)
        return entry

    def close(self) -> None:
        with self._cache_lock:
            self._snapshots.clear()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write_record(self, generation_dir: Path, record: DocumentRecord) -> None:
        payload = json.dumps(to_storage(record), ensure_ascii=False, sort_keys=True)
        (generation_dir / self._record_file(record.slug)).write_text(payload, encoding="utf-8")

    def _write_manifest(self, name: str, entry: ManifestEntry) -> None:
        target = self._manifest_path(name)
        tmp = target.with_name(f".{MANIFEST_FILE}.{entry.generation_id}.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(entry.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, target)
        finally:
            if tmp.exists():
                tmp.unlink()

    def _prune(self, name: str, current: str) -> None:
        """Delete generations older than the kept window (best effort)."""
        generations_root = self._collection_dir(name) / GENERATIONS_DIR
        try:
            generation_ids = sorted(p.name for p in generations_root.iterdir() if p.is_dir())
        except OSError as e:
            self.logger.warning(f"Cannot list generations of '{name}': {e}")
            return

        keep = set(generation_ids[-self.keep_generations:]) | {current}
        for generation_id in generation_ids:
            if generation_id in keep:
                continue
            try:
                shutil.rmtree(generations_root / generation_id)
                self.logger.debug(f"Pruned generation {generation_id} of '{name}'")
            except OSError as e:
                self.logger.warning(f"Cannot prune generation {generation_id} of '{name}': {e}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _snapshot(self, name: str) -> _Snapshot:
        definition = self.definition(name)
        for _ in range(READ_ATTEMPTS):
            entry = self.manifest_entry(name)
            if entry is None:
                return _Snapshot(None, [])

            with self._cache_lock:
                cached = self._snapshots.get(name)
            if cached is not None and cached.generation_id == entry.generation_id:
                return cached

            try:
                records = self._load_generation(definition, entry)
            except FileNotFoundError:
                # Pruned between reading the manifest and the records
                continue

            snapshot = _Snapshot(entry.generation_id, records)
            with self._cache_lock:
                self._snapshots[name] = snapshot
            return snapshot

        raise BackendIOError(f"Generation of '{name}' kept disappearing while reading")

    def _load_generation(
        self,
        definition: CollectionDefinition,
        entry: ManifestEntry,
    ) -> List[DocumentRecord]:
        generation_dir = self._generation_dir(definition.name, entry.generation_id)
        records = []
        for slug in entry.record_ids:
            path = generation_dir / self._record_file(slug)
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
                records.append(from_storage(definition, payload))
            except FileNotFoundError:
                raise
            except (OSError, ValueError, KeyError) as e:
                raise BackendIOError(f"Cannot read record {path}", details=str(e)) from e
        self.logger.debug(
            f"Loaded generation {entry.generation_id} of '{definition.name}' "
            f"({len(records)} records)"
        )
        return records

