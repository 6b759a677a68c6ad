"""
Tests for slug and permalink derivation.
"""
import pytest

from contentdb.core.exceptions import ValidationError
from contentdb.ingestion.slugs import build_permalink, derive_slug, path_slug
from contentdb.schema import CollectionDefinition, date_field, string


@pytest.fixture
def guides():
    return CollectionDefinition(
        name="guides",
        pattern="guides/**/*.md",
        fields=(string("title"), date_field("date")),
        permalink_template="/docs/{collection}/{slug}",
    )


def test_path_slug():
    assert path_slug("guides/Getting Started.md") == "guides-getting-started"


def test_title_wins_over_path(guides):
    slug = derive_slug(guides, {"title": "Hello World!"}, {}, "guides/intro.md")
    assert slug == "hello-world"


def test_explicit_slug_metadata_wins_over_title(guides):
    slug = derive_slug(guides, {"title": "Hello"}, {"slug": "Custom Slug"}, "guides/intro.md")
    assert slug == "custom-slug"


def test_falls_back_to_path(guides):
    assert derive_slug(guides, {}, {}, "guides/Intro Page.md") == "guides-intro-page"


def test_non_string_identifiers(guides):
    assert derive_slug(guides, {}, {"slug": 2024}, "guides/a.md") == "2024"
    assert derive_slug(guides, {}, {"slug": True}, "guides/a.md") == "guides-a"


def test_deterministic(guides):
    args = (guides, {"title": "Über Café"}, {}, "guides/x.md")
    assert derive_slug(*args) == derive_slug(*args) == "uber-cafe"


def test_no_slug_possible(guides):
    with pytest.raises(ValidationError):
        derive_slug(guides, {"title": "!!!"}, {}, "!!!.md")


def test_build_permalink(guides):
    assert build_permalink(guides, "hello", {"title": "Hello"}) == "/docs/guides/hello"
