"""
Tests for source pattern matching.
"""
import pytest

from contentdb.schema.patterns import (
    expand_braces,
    iter_matches,
    matches,
    normalize_pattern,
    patterns_overlap,
    static_base,
)


@pytest.mark.parametrize("pattern,path,expected", [
    ("articles/*.md", "articles/hello.md", True),
    ("articles/*.md", "articles/deep/hello.md", False),
    ("articles/*.md", "articles/hello.mdx", False),
    ("content/**/*.md", "content/a.md", True),
    ("content/**/*.md", "content/a/b/c.md", True),
    ("content/*.{md,mdx}", "content/a.mdx", True),
    ("notes/day-??.md", "notes/day-01.md", True),
    ("notes/[ab]*.md", "notes/beta.md", True),
    ("notes/[!ab]*.md", "notes/beta.md", False),
])
def test_matches(pattern, path, expected):
    assert matches(pattern, path) is expected


def test_normalize_pattern():
    assert normalize_pattern("  ./content\\posts/*.md/ ") == "content/posts/*.md"


def test_expand_braces_nested_alternatives():
    assert expand_braces("{a,b}/*.{md,mdx}") == ["a/*.md", "a/*.mdx", "b/*.md", "b/*.mdx"]


@pytest.mark.parametrize("pattern,base", [
    ("content/posts/**/*.mdx", "content/posts"),
    ("articles/*.md", "articles"),
    ("*.md", ""),
    ("content/{a,b}/*.md", "content"),
])
def test_static_base(pattern, base):
    assert static_base(pattern) == base


def test_iter_matches_is_sorted_and_files_only(tmp_path):
    for rel in ("b/z.md", "a/y.md", "a/x.md", "a/skip.txt"):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x")
    (tmp_path / "a" / "dir.md").mkdir()

    found = [p.relative_to(tmp_path).as_posix() for p in iter_matches(tmp_path, "**/*.md")]
    assert found == ["a/x.md", "a/y.md", "b/z.md"]


class TestOverlap:

    def test_identical(self):
        assert patterns_overlap("posts/*.md", "./posts/*.md")

    def test_nested_recursive(self):
        assert patterns_overlap("content/**/*.md", "content/posts/*.md")

    def test_disjoint_directories(self):
        assert not patterns_overlap("content/posts/*.md", "content/notes/*.md")

    def test_same_directory_different_suffix(self):
        assert not patterns_overlap("content/*.md", "content/*.mdx")
