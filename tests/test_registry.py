"""
Tests for collection registration and resolution.
"""
import pytest

from contentdb.core.exceptions import (
    DuplicateCollectionError,
    InvalidSchemaError,
    UnknownCollectionError,
)
from contentdb.schema import CollectionDefinition, CollectionRegistry, FieldKind, FieldSpec, string


def _definition(name="articles", pattern="articles/*.md", **kwargs):
    kwargs.setdefault("fields", (string("title"),))
    return CollectionDefinition(name=name, pattern=pattern, **kwargs)


class TestRegister:

    def test_register_and_resolve(self):
        registry = CollectionRegistry()
        definition = registry.register(_definition())
        assert registry.resolve("articles") is definition
        assert "articles" in registry
        assert registry.names() == ["articles"]
        assert len(registry) == 1
        assert list(registry) == [definition]

    def test_constructor_registers_in_order(self):
        registry = CollectionRegistry([
            _definition("articles", "articles/*.md"),
            _definition("notes", "notes/**/*.mdx"),
        ])
        assert registry.names() == ["articles", "notes"]

    def test_duplicate_name(self):
        registry = CollectionRegistry([_definition()])
        with pytest.raises(DuplicateCollectionError):
            registry.register(_definition(pattern="other/*.md"))

    def test_unknown_name(self):
        with pytest.raises(UnknownCollectionError) as exc_info:
            CollectionRegistry().resolve("missing")
        assert exc_info.value.error_code == "unknown_collection"


class TestStructuralChecks:

    @pytest.mark.parametrize("name", ["", "2fast", "has-dash", "_private"])
    def test_bad_collection_names(self, name):
        with pytest.raises(InvalidSchemaError):
            CollectionRegistry().register(_definition(name=name))

    def test_field_without_validator(self):
        with pytest.raises(InvalidSchemaError, match="no validator"):
            CollectionRegistry().register(_definition(fields=(FieldSpec("color", "rgb"),)))

    def test_list_without_inner_spec(self):
        with pytest.raises(InvalidSchemaError):
            CollectionRegistry().register(_definition(fields=(FieldSpec("tags", FieldKind.LIST),)))

    def test_repeated_field(self):
        with pytest.raises(InvalidSchemaError, match="declared twice"):
            CollectionRegistry().register(_definition(fields=(string("title"), string("title"))))

    @pytest.mark.parametrize("name", ["permalink", "content", "position", "extra_data"])
    def test_reserved_field_names(self, name):
        with pytest.raises(InvalidSchemaError, match="system field"):
            CollectionRegistry().register(_definition(fields=(string(name),)))

    def test_unknown_sort_field(self):
        with pytest.raises(InvalidSchemaError, match="sort_by"):
            CollectionRegistry().register(_definition(sort_by="date"))

    @pytest.mark.parametrize("pattern", ["", "   ", "../outside/*.md", "a/../../b/*.md"])
    def test_bad_patterns(self, pattern):
        with pytest.raises(InvalidSchemaError):
            CollectionRegistry().register(_definition(pattern=pattern))

    def test_overlapping_patterns(self):
        registry = CollectionRegistry([_definition("articles", "content/**/*.md")])
        with pytest.raises(InvalidSchemaError, match="overlaps"):
            registry.register(_definition("posts", "content/posts/*.md"))

    def test_disjoint_patterns(self):
        registry = CollectionRegistry([_definition("articles", "content/articles/*.md")])
        registry.register(_definition("posts", "content/posts/*.md"))
        assert registry.names() == ["articles", "posts"]

    def test_permalink_template_fields(self):
        CollectionRegistry().register(_definition(permalink_template="/blog/{title}/{slug}"))
        with pytest.raises(InvalidSchemaError, match="unknown fields"):
            CollectionRegistry().register(_definition(permalink_template="/{year}/{slug}"))

    def test_failed_registration_leaves_registry_unchanged(self):
        registry = CollectionRegistry([_definition()])
        with pytest.raises(InvalidSchemaError):
            registry.register(_definition("notes", "articles/*.md"))
        assert registry.names() == ["articles"]
