"""
Embedded SQL backend.

One table per collection plus a shared manifest table:

    collection_<name>   slug (PK), permalink, source_path, content, position,
                        one column per schema field, extra_data (JSON)
    contentdb_manifest  collection (PK), fingerprint, generation_id,
                        record_ids (JSON), built_at

A new generation is committed in a single transaction that deletes the old
rows, inserts the new ones and updates the manifest row. Readers outside
the transaction keep seeing the previous generation until the commit.

extra_data holds {"extra": {...}, "missing": [...]}: keys a transform added
beyond the schema, and schema fields absent from the record's data. The
schema field named "slug" (when declared) is kept in "extra" since the
slug column is the record identity.
"""
from __future__ import annotations

import threading
from contextlib import nullcontext
from datetime import timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    delete,
    inspect,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError

from contentdb.core.exceptions import BackendIOError, NotFoundError
from contentdb.models.manifest import ManifestEntry
from contentdb.models.records import DocumentRecord, from_storage, to_storage
from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.fields import FieldKind, FieldSpec, decode_value
from contentdb.storage.base import DocumentStore
from contentdb.storage.connection import DatabaseConnection

MANIFEST_TABLE = "contentdb_manifest"
TABLE_PREFIX = "collection_"

# Rows per INSERT round-trip
BATCH_SIZE = 500

COLUMN_TYPES = {
    FieldKind.STRING: Text,
    FieldKind.SLUG: Text,
    FieldKind.MARKDOWN: Text,
    FieldKind.DATE: Date,
    FieldKind.NUMBER: Float,
    FieldKind.INTEGER: Integer,
    FieldKind.BOOLEAN: Boolean,
    FieldKind.LIST: JSON,
}


def table_name(collection: str) -> str:
    return f"{TABLE_PREFIX}{collection}"


def _column_fields(definition: CollectionDefinition) -> List[FieldSpec]:
    """Schema fields that get their own column."""
    return [spec for spec in definition.fields if spec.name != "slug"]


class SQLStore(DocumentStore):
    """
    SQLAlchemy-backed document store.

    Example:
        >>> store = SQLStore("sqlite:///.contentdb.sqlite3")
        >>> store.attach(articles)
        >>> store.upsert_generation("articles", records, fingerprint)
        >>> store.get("articles", "hello").permalink
        '/articles/hello'
    """

    backend_name = "sql"

    def __init__(self, connection_url: str, echo: bool = False):
        super().__init__()
        self.db = DatabaseConnection(connection_url, echo=echo)
        self.metadata = MetaData()
        self.manifest_table = Table(
            MANIFEST_TABLE,
            self.metadata,
            Column("collection", String(255), primary_key=True),
            Column("fingerprint", String(128), nullable=False),
            Column("generation_id", String(64), nullable=False),
            Column("record_ids", JSON, nullable=False),
            Column("built_at", DateTime(timezone=True), nullable=False),
        )
        self._tables: Dict[str, Table] = {}
        # In-memory SQLite is one shared connection: serialize all access
        self._io_lock = threading.RLock() if self.db.is_memory else nullcontext()

        if not self.db.check_connection():
            self.db.close()
            raise BackendIOError(
                "Cannot connect to the SQL store",
                details=self.db.url.render_as_string(hide_password=True),
            )

        try:
            self.manifest_table.create(self.db.engine, checkfirst=True)
        except SQLAlchemyError as e:
            self.db.close()
            raise BackendIOError("Cannot create manifest table", details=str(e)) from e

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _build_table(self, definition: CollectionDefinition) -> Table:
        columns = [
            Column("slug", String(255), primary_key=True),
            Column("permalink", Text, nullable=False),
            Column("source_path", Text, nullable=False),
            Column("content", Text, nullable=False),
            Column("position", Integer, nullable=False, index=True),
        ]
        for spec in _column_fields(definition):
            columns.append(Column(spec.name, COLUMN_TYPES[spec.base_kind], nullable=True))
        columns.append(Column("extra_data", JSON, nullable=False))
        return Table(table_name(definition.name), MetaData(), *columns)

    def _attach(self, definition: CollectionDefinition) -> None:
        table = self._build_table(definition)
        with self._io_lock:
            try:
                inspector = inspect(self.db.engine)
                if inspector.has_table(table.name):
                    existing = {column["name"] for column in inspector.get_columns(table.name)}
                    expected = {column.name for column in table.columns}
                    if existing != expected:
                        self._reset_table(definition.name, table)
                else:
                    table.create(self.db.engine)
            except SQLAlchemyError as e:
                raise BackendIOError(
                    f"Cannot prepare table for '{definition.name}'", details=str(e)
                ) from e
        self._tables[definition.name] = table

    def _reset_table(self, name: str, table: Table) -> None:
        """Recreate a table whose columns no longer match the definition."""
        self.logger.warning(
            f"Table {table.name} does not match the '{name}' schema; "
            f"dropping it and its manifest entry"
        )
        with self.db.engine.begin() as conn:
            conn.exec_driver_sql(f'DROP TABLE IF EXISTS "{table.name}"')
            table.create(conn)
            conn.execute(
                delete(self.manifest_table).where(self.manifest_table.c.collection == name)
            )

    def _table(self, name: str) -> Table:
        self.definition(name)
        return self._tables[name]

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _to_row(
        self,
        definition: CollectionDefinition,
        record: DocumentRecord,
        position: int,
    ) -> Dict[str, Any]:
        payload = to_storage(record)
        data = dict(payload["data"])
        row: Dict[str, Any] = {
            "slug": record.slug,
            "permalink": record.permalink,
            "source_path": record.source_path,
            "content": record.content,
            "position": position,
        }
        missing = []
        for spec in _column_fields(definition):
            if spec.name not in data:
                row[spec.name] = None
                missing.append(spec.name)
                continue
            value = data.pop(spec.name)
            # JSON columns take the JSON form, typed columns the Python value
            row[spec.name] = value if spec.base_kind is FieldKind.LIST else decode_value(spec, value)
        row["extra_data"] = {"extra": data, "missing": missing}
        return row

    def _from_row(self, definition: CollectionDefinition, row: Mapping[str, Any]) -> DocumentRecord:
        extra_data = row["extra_data"] or {}
        missing = set(extra_data.get("missing") or ())
        data = {
            spec.name: row[spec.name]
            for spec in _column_fields(definition)
            if spec.name not in missing
        }
        data.update(extra_data.get("extra") or {})
        return from_storage(definition, {
            "collection": definition.name,
            "slug": row["slug"],
            "permalink": row["permalink"],
            "source_path": row["source_path"],
            "content": row["content"],
            "data": data,
        })

    # ------------------------------------------------------------------
    # DocumentStore interface
    # ------------------------------------------------------------------

    def list(self, name: str) -> List[DocumentRecord]:
        definition = self.definition(name)
        table = self._table(name)
        with self._io_lock:
            try:
                with self.db.get_session() as session:
                    rows = session.execute(
                        select(table).order_by(table.c.position)
                    ).mappings().all()
            except SQLAlchemyError as e:
                raise BackendIOError(f"Cannot list '{name}'", details=str(e)) from e
        return [self._from_row(definition, row) for row in rows]

    def get(self, name: str, slug: str) -> DocumentRecord:
        definition = self.definition(name)
        table = self._table(name)
        with self._io_lock:
            try:
                with self.db.get_session() as session:
                    row = session.execute(
                        select(table).where(table.c.slug == slug)
                    ).mappings().first()
            except SQLAlchemyError as e:
                raise BackendIOError(f"Cannot read '{name}/{slug}'", details=str(e)) from e
        if row is None:
            raise NotFoundError(name, slug)
        return self._from_row(definition, row)

    def manifest_entry(self, name: str) -> Optional[ManifestEntry]:
        self.definition(name)
        manifest = self.manifest_table
        with self._io_lock:
            try:
                with self.db.get_session() as session:
                    row = session.execute(
                        select(manifest).where(manifest.c.collection == name)
                    ).mappings().first()
            except SQLAlchemyError as e:
                raise BackendIOError(f"Cannot read manifest of '{name}'", details=str(e)) from e
        if row is None:
            return None
        built_at = row["built_at"]
        if built_at.tzinfo is None:
            # SQLite drops the offset; values are always written in UTC
            built_at = built_at.replace(tzinfo=timezone.utc)
        return ManifestEntry(
            collection=row["collection"],
            fingerprint=row["fingerprint"],
            record_ids=list(row["record_ids"]),
            generation_id=row["generation_id"],
            built_at=built_at,
        )

    def upsert_generation(
        self,
        name: str,
        records: Sequence[DocumentRecord],
        fingerprint: str,
    ) -> ManifestEntry:
        entry, ordered = self._prepare(name, records, fingerprint)
        definition = self.definition(name)
        table = self._table(name)
        rows = [self._to_row(definition, record, position) for position, record in enumerate(ordered)]
        manifest = self.manifest_table

        with self._lock, self._io_lock:
            try:
                with self.db.get_session() as session:
                    session.execute(delete(table))
                    for start in range(0, len(rows), BATCH_SIZE):
                        self._insert_batch(session, table, rows[start:start + BATCH_SIZE])
                    session.execute(delete(manifest).where(manifest.c.collection == name))
                    session.execute(insert(manifest).values(
                        collection=name,
                        fingerprint=entry.fingerprint,
                        generation_id=entry.generation_id,
                        record_ids=entry.record_ids,
                        built_at=entry.built_at,
                    ))
            except (SQLAlchemyError, OverflowError) as e:
                # OverflowError: the DB-API driver rejects ints outside its column range
                raise BackendIOError(
                    f"Cannot commit generation {entry.generation_id} of '{name}'",
                    details=str(e),
                ) from e

        self.logger.info(
            f"Committed generation {entry.generation_id} of '{name}' "
            f"({entry.record_count} records)"
        )
        return entry

    def _insert_batch(self, session, table: Table, rows: List[Dict[str, Any]]) -> None:
        session.execute(insert(table), rows)

    def close(self) -> None:
        self.db.close()
