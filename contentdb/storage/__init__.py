"""
Storage package - document store backends.
"""
from contentdb.storage.base import DocumentStore, create_store, new_generation_id
from contentdb.storage.connection import DatabaseConnection
from contentdb.storage.file_backend import FileSnapshotStore
from contentdb.storage.sql_backend import SQLStore

__all__ = [
    "DocumentStore",
    "create_store",
    "new_generation_id",
    "DatabaseConnection",
    "FileSnapshotStore",
    "SQLStore",
]
