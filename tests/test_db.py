"""
End-to-end tests for the ContentDB handle and its collection accessors.
"""
import json
import shutil
from datetime import date

import pytest

from conftest import store_location, write_doc
from contentdb import (
    CollectionAccessor,
    CollectionDefinition,
    ContentDB,
    NotFoundError,
    RebuildPolicy,
    StoreConfig,
    UnknownCollectionError,
)
from contentdb.core.config import BackendKind
from contentdb.core.exceptions import ConfigurationError, InvalidSchemaError, SourceNotFoundError
from contentdb.schema import string


@pytest.fixture
def open_db(backend, tmp_path, articles):
    opened = []

    def factory(content_root, policy=RebuildPolicy.AUTO_IF_STALE, collections=None, **kwargs):
        config = StoreConfig(
            content_root=content_root,
            backend=backend,
            location=store_location(backend, tmp_path),
            collections=(articles,) if collections is None else collections,
            rebuild_policy=policy,
            **kwargs,
        )
        db = ContentDB(config)
        opened.append(db)
        return db

    yield factory
    for db in opened:
        db.close()


class TestArticlesScenario:

    def test_list_and_get(self, open_db, article_tree):
        db = open_db(article_tree)

        assert [r.slug for r in db.list("articles")] == ["hello", "world"]
        hello = db.get("articles", "hello")
        assert hello.permalink == "/articles/hello"
        assert hello["date"] == date(2024, 1, 1)

    def test_accessor_parity(self, open_db, article_tree):
        db = open_db(article_tree)

        assert db.articles.list() == db.list("articles")
        assert db["articles"].get("world") == db.get("articles", "world")
        assert db.collection("articles") is db.articles
        assert isinstance(db.articles, CollectionAccessor)
        assert len(db.articles) == 2
        assert "hello" in db.articles
        assert "nope" not in db.articles
        assert [r.slug for r in db.articles] == ["hello", "world"]
        assert db.articles.manifest.record_ids == ["hello", "world"]

    def test_not_found(self, open_db, article_tree):
        db = open_db(article_tree)
        with pytest.raises(NotFoundError):
            db.get("articles", "missing")
        with pytest.raises(NotFoundError):
            db.articles.get("missing")

    def test_unknown_collection(self, open_db, article_tree):
        db = open_db(article_tree)
        with pytest.raises(UnknownCollectionError):
            db.list("posts")
        with pytest.raises(UnknownCollectionError):
            db.get("posts", "hello")
        with pytest.raises(UnknownCollectionError):
            db.posts
        with pytest.raises(UnknownCollectionError):
            db["posts"]
        with pytest.raises(AttributeError):
            db._private

    def test_list_pattern_filter(self, open_db, article_tree):
        db = open_db(article_tree)
        assert [r.slug for r in db.list("articles", pattern="articles/h*.md")] == ["hello"]
        assert [r.slug for r in db.articles.list(pattern="**/w*.md")] == ["world"]

    def test_manifest(self, open_db, article_tree):
        db = open_db(article_tree)
        manifest = db.manifest()
        assert manifest["articles"].record_count == 2
        assert db.names() == ["articles"]
        assert "articles" in db


class TestRebuildPolicies:

    def test_auto_if_stale_picks_up_changes_on_reopen(self, open_db, article_tree):
        first = open_db(article_tree)
        generation = first.manifest_entry("articles").generation_id
        first.close()

        reopened = open_db(article_tree)
        assert reopened.manifest_entry("articles").generation_id == generation
        reopened.close()

        write_doc(article_tree, "articles/new.md", {"title": "New", "date": "2024-03-03"})
        changed = open_db(article_tree)
        assert changed.manifest_entry("articles").generation_id != generation
        assert len(changed.list("articles")) == 3

    def test_rebuild_policy_always_rebuilds(self, open_db, article_tree):
        first = open_db(article_tree)
        generation = first.manifest_entry("articles").generation_id
        first.close()

        rebuilt = open_db(article_tree, policy="rebuild")
        assert rebuilt.manifest_entry("articles").generation_id != generation

    def test_reuse_keeps_stale_generation(self, open_db, article_tree):
        first = open_db(article_tree)
        first.close()
        write_doc(article_tree, "articles/new.md", {"title": "New", "date": "2024-03-03"})

        reused = open_db(article_tree, policy=RebuildPolicy.REUSE)

        assert [r.slug for r in reused.list("articles")] == ["hello", "world"]
        assert reused.is_stale("articles")
        assert reused.refresh()["articles"].rebuilt
        assert len(reused.list("articles")) == 3

    def test_reuse_builds_never_built_collections(self, open_db, article_tree):
        db = open_db(article_tree, policy=RebuildPolicy.REUSE)
        assert len(db.list("articles")) == 2

    def test_missing_sources_fail_construction(self, open_db, content_root):
        with pytest.raises(SourceNotFoundError):
            open_db(content_root)

    @pytest.mark.parametrize("policy", [RebuildPolicy.AUTO_IF_STALE, RebuildPolicy.REBUILD])
    def test_vanished_sources_keep_committed_generation(self, open_db, article_tree, policy):
        open_db(article_tree).close()
        shutil.rmtree(article_tree / "articles")

        db = open_db(article_tree, policy=policy)

        assert [r.slug for r in db.articles.list()] == ["hello", "world"]
        outcome = db.startup_outcomes["articles"]
        assert outcome.failed
        assert isinstance(outcome.error, SourceNotFoundError)
        assert db.state("articles").value == "failed"


class TestRebuildApi:

    def test_rebuild_one_and_all(self, open_db, article_tree):
        db = open_db(article_tree)
        assert db.rebuild("articles").skipped
        outcomes = db.rebuild(force=True)
        assert outcomes["articles"].rebuilt
        assert db.state("articles").value == "idle"


class TestConstruction:

    def test_invalid_definitions_surface_immediately(self, open_db, article_tree, articles):
        with pytest.raises(InvalidSchemaError):
            open_db(article_tree, collections=(articles, CollectionDefinition(
                name="posts", pattern="articles/*.md", fields=articles.fields,
            )))

    def test_schema_discovery(self, open_db, tmp_path):
        site = tmp_path / "project"
        schema_dir = site / ".db"
        write_doc(schema_dir, "notes.md", {"title": "Title of the note (string)", "order": "Position (integer?)"})
        write_doc(site, "content/notes/first.md", {"title": "First", "order": 1}, "one")
        write_doc(site, "content/notes/deep/second.mdx", {"title": "Second"}, "two")

        db = open_db(site, collections=(), schema_dir=schema_dir)

        assert db.names() == ["notes"]
        assert [r.slug for r in db.notes.list()] == ["first", "second"]
        assert db.notes.get("second")["order"] is None

    def test_context_manager_closes(self, open_db, article_tree):
        with open_db(article_tree) as db:
            assert db.list("articles")
        db.close()

    def test_bad_config_values(self, article_tree):
        with pytest.raises(ConfigurationError):
            StoreConfig(content_root=article_tree, backend="mongo")
        with pytest.raises(ConfigurationError):
            StoreConfig(content_root=article_tree, rebuild_policy="sometimes")
        with pytest.raises(ConfigurationError):
            StoreConfig(content_root=article_tree, max_workers=0)


def test_from_settings(monkeypatch, tmp_path, article_tree, articles):
    monkeypatch.setenv("CONTENTDB_CONTENT_ROOT", str(article_tree))
    monkeypatch.setenv("CONTENTDB_BACKEND", "sql")
    monkeypatch.setenv("CONTENTDB_LOCATION", f"sqlite:///{tmp_path / 'env.sqlite3'}")
    monkeypatch.setenv("CONTENTDB_MAX_WORKERS", "2")

    config = StoreConfig.from_settings([articles], rebuild_policy="rebuild")
    assert config.backend is BackendKind.SQL
    assert config.rebuild_policy is RebuildPolicy.REBUILD
    assert config.max_workers == 2

    with ContentDB.from_settings([articles]) as db:
        assert [r.slug for r in db.articles.list()] == ["hello", "world"]


class TestCrossCollectionReads:

    @pytest.fixture
    def db(self, open_db, article_tree, articles):
        notes = CollectionDefinition(name="notes", pattern="notes/*.md", fields=(string("title"),))
        write_doc(article_tree, "notes/hello.md", {"title": "Hello"})
        write_doc(article_tree, "notes/memo.md", {"title": "Memo"})
        return open_db(article_tree, collections=(articles, notes))

    def test_list_every_collection(self, db):
        assert [(r.collection, r.slug) for r in db.list()] == [
            ("articles", "hello"),
            ("articles", "world"),
            ("notes", "hello"),
            ("notes", "memo"),
        ]
        assert [r.slug for r in db.list(pattern="notes/*.md")] == ["hello", "memo"]

    def test_find_searches_in_registration_order(self, db):
        assert db.find("memo").collection == "notes"
        assert db.find("hello").collection == "articles"
        assert db.find("hello", pattern="notes/*.md").collection == "notes"
        with pytest.raises(NotFoundError):
            db.find("nope")

    def test_get_with_pattern(self, db):
        assert db.get("articles", "hello", pattern="articles/h*.md").slug == "hello"
        with pytest.raises(NotFoundError):
            db.get("articles", "hello", pattern="articles/w*.md")
        with pytest.raises(NotFoundError):
            db.articles.get("world", pattern="**/h*.md")


class TestSourceWrites:

    def test_set_writes_and_rebuilds(self, open_db, article_tree):
        db = open_db(article_tree)

        outcome = db.set("articles", "fresh", {"title": "Fresh", "date": "2024-06-01"}, "New body.")

        assert outcome.rebuilt
        assert (article_tree / "articles" / "fresh.md").is_file()
        assert db.get("articles", "fresh").content == "New body."
        assert [r.slug for r in db.articles] == ["fresh", "hello", "world"]

    def test_set_invalid_document_is_reported(self, open_db, article_tree):
        db = open_db(article_tree)

        outcome = db.set("articles", "undated", {"title": "Undated"})

        assert [e.source_path for e in outcome.report.errors] == ["articles/undated.md"]
        assert "undated" not in db.articles

    def test_accessor_set_and_delete(self, open_db, article_tree):
        db = open_db(article_tree)

        db.articles.set("fresh", {"title": "Fresh", "date": date(2024, 6, 1)})
        assert "fresh" in db.articles

        assert db.articles.delete("fresh") is True
        assert "fresh" not in db.articles
        assert not (article_tree / "articles" / "fresh.md").exists()
        assert db.delete("articles", "fresh") is False

    def test_writes_to_unknown_collection(self, open_db, article_tree):
        db = open_db(article_tree)
        with pytest.raises(UnknownCollectionError):
            db.set("posts", "hello", {"title": "Hello"})
        with pytest.raises(UnknownCollectionError):
            db.delete("posts", "hello")


def test_export_copies_committed_generation(open_db, article_tree, tmp_path):
    db = open_db(article_tree)

    target = db.export(tmp_path / "export")

    records = json.loads((target / "articles.json").read_text(encoding="utf-8"))
    assert [r["slug"] for r in records] == ["hello", "world"]
    assert records[0]["data"]["date"] == "2024-01-01"
    manifest = json.loads((target / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["entries"]["articles"]["record_ids"] == ["hello", "world"]
