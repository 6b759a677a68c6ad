"""
Shared fixtures: a throwaway content tree, sample collections and stores
for both backends.
"""
from pathlib import Path
from typing import Any, Dict, Optional

import frontmatter
import pytest

from contentdb.core.config import get_settings
from contentdb.schema import CollectionDefinition, date_field, list_of, optional, string
from contentdb.storage import FileSnapshotStore, SQLStore

BACKENDS = ["file", "sql"]


def write_doc(
    root: Path,
    rel: str,
    metadata: Optional[Dict[str, Any]] = None,
    body: str = "",
) -> Path:
    """Write a frontmatter document below root."""
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    post = frontmatter.Post(body, **(metadata or {}))
    path.write_text(frontmatter.dumps(post, sort_keys=False) + "\n", encoding="utf-8")
    return path


def write_raw(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def make_store(backend: str, tmp_path: Path):
    if backend == "file":
        return FileSnapshotStore(tmp_path / "snapshots")
    return SQLStore(f"sqlite:///{tmp_path / 'store.sqlite3'}")


def store_location(backend: str, tmp_path: Path) -> str:
    if backend == "file":
        return str(tmp_path / "snapshots")
    return f"sqlite:///{tmp_path / 'store.sqlite3'}"


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def content_root(tmp_path):
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest.fixture
def articles():
    return CollectionDefinition(
        name="articles",
        pattern="articles/*.md",
        fields=(
            string("title"),
            date_field("date"),
            optional(list_of("tags", string("tag"))),
        ),
    )


@pytest.fixture
def article_tree(content_root):
    """The two-article scenario: hello and world."""
    write_doc(content_root, "articles/hello.md", {"title": "Hello", "date": "2024-01-01"}, "Hi!")
    write_doc(
        content_root,
        "articles/world.md",
        {"title": "World", "date": "2024-02-01", "tags": ["intro", "news"]},
        "Round.",
    )
    return content_root


@pytest.fixture(params=BACKENDS)
def backend(request):
    return request.param


@pytest.fixture
def store(backend, tmp_path):
    store = make_store(backend, tmp_path)
    yield store
    store.close()
