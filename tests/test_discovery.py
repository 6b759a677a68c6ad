"""
Tests for schema discovery from a definitions folder.
"""
import pytest

from conftest import write_doc, write_raw
from contentdb.core.exceptions import InvalidSchemaError
from contentdb.schema import CollectionDefinition, FieldKind, string
from contentdb.schema.discovery import (
    default_pattern,
    discover_definitions,
    load_definition,
    merge_definitions,
    parse_field,
)


class TestParseField:

    def test_plain_types(self):
        spec = parse_field("date", "Publication date (date)")
        assert spec.kind is FieldKind.DATE
        assert spec.description == "Publication date"

    def test_optional_suffix(self):
        spec = parse_field("summary", "Teaser (string?)")
        assert spec.kind is FieldKind.OPTIONAL
        assert spec.inner.kind is FieldKind.STRING

    def test_lists(self):
        bare = parse_field("tags", "Tags (list)")
        assert bare.kind is FieldKind.LIST
        assert bare.inner.kind is FieldKind.STRING

        typed = parse_field("days", "Days (list<date>?)")
        assert typed.kind is FieldKind.OPTIONAL
        assert typed.inner.kind is FieldKind.LIST
        assert typed.inner.inner.kind is FieldKind.DATE

    def test_unannotated_defaults_to_string(self):
        assert parse_field("title", "The title").kind is FieldKind.STRING
        assert parse_field("count", 3).kind is FieldKind.STRING

    def test_unknown_type(self):
        with pytest.raises(InvalidSchemaError, match="Unknown field type"):
            parse_field("color", "Colour (rgb)")


def test_load_definition(tmp_path):
    path = write_doc(
        tmp_path,
        "posts.md",
        {"title": "Post title (string)", "date": "Published (date)"},
        "Blog posts.",
    )

    definition = load_definition(path)

    assert definition.name == "posts"
    assert definition.pattern == default_pattern("posts") == "content/posts/**/*.{md,mdx}"
    assert definition.field_names == ("title", "date")
    assert definition.description == "Blog posts."


def test_discover_definitions_sorted_and_filtered(tmp_path):
    write_doc(tmp_path, "b.md", {"title": "Title (string)"})
    write_doc(tmp_path, "a.mdx", {"title": "Title (string)"})
    write_raw(tmp_path, "README.txt", "ignored")

    assert [d.name for d in discover_definitions(tmp_path)] == ["a", "b"]


def test_missing_folder(tmp_path):
    assert discover_definitions(tmp_path / "nowhere") == ()


def test_bad_schema_file_names_collection(tmp_path):
    write_doc(tmp_path, "notes.md", {"title": "Title (wat)"})
    with pytest.raises(InvalidSchemaError) as exc_info:
        discover_definitions(tmp_path)
    assert "collection=notes" in exc_info.value.details


def test_explicit_definitions_win(tmp_path):
    explicit = (CollectionDefinition(name="posts", pattern="blog/*.md", fields=(string("title"),)),)
    write_doc(tmp_path, "posts.md", {"title": "Title (string)"})
    write_doc(tmp_path, "notes.md", {"title": "Title (string)"})

    merged = merge_definitions(explicit, discover_definitions(tmp_path))

    assert [d.name for d in merged] == ["posts", "notes"]
    assert merged[0] is explicit[0]
