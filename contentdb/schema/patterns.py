"""
Source pattern helpers.

Collection patterns are POSIX globs relative to the content root:

    content/posts/**/*.mdx
    content/{posts,drafts}/*.md
    articles/*.md

Supported syntax: "*" (within one path segment), "**" (any number of
segments), "?", "[...]" character classes and "{a,b}" alternation.
"""
from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Iterator, List

_WILDCARDS = set("*?[{")


def normalize_pattern(pattern: str) -> str:
    """Strip whitespace, leading "./" and slashes, convert backslashes."""
    cleaned = pattern.strip().replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned.strip("/")


def has_wildcards(pattern: str) -> bool:
    return any(ch in _WILDCARDS for ch in pattern)


def expand_braces(pattern: str) -> List[str]:
    """
    Expand "{a,b}" alternations into plain globs.

    Example:
        >>> expand_braces("posts/*.{md,mdx}")
        ['posts/*.md', 'posts/*.mdx']
    """
    match = re.search(r"\{([^{}]*)\}", pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded: List[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


def static_base(pattern: str) -> str:
    """
    Longest leading directory path without wildcards.

    Example:
        >>> static_base("content/posts/**/*.mdx")
        'content/posts'
    """
    parts = normalize_pattern(pattern).split("/")
    base: List[str] = []
    for part in parts[:-1]:
        if has_wildcards(part):
            break
        base.append(part)
    return "/".join(base)


def _segment_to_regex(segment: str) -> str:
    out = []
    i = 0
    while i < len(segment):
        ch = segment[i]
        if ch == "*":
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            end = segment.find("]", i + 1)
            if end == -1:
                out.append(re.escape(ch))
            else:
                body = segment[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(ch))
        i += 1
    return "".join(out)


def _glob_to_regex(pattern: str) -> str:
    segments = pattern.split("/")
    out = []
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            out.append(".*" if last else "(?:[^/]+/)*")
        else:
            out.append(_segment_to_regex(segment) + ("" if last else "/"))
    return "".join(out)


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> "re.Pattern[str]":
    alternatives = [_glob_to_regex(p) for p in expand_braces(normalize_pattern(pattern))]
    return re.compile("^(?:" + "|".join(alternatives) + ")$")


def matches(pattern: str, path: str) -> bool:
    """True when a relative POSIX path matches the glob."""
    return compile_pattern(pattern).match(normalize_pattern(path)) is not None


def iter_matches(root: Path, pattern: str) -> Iterator[Path]:
    """
    Yield files under root matching the pattern, in lexicographic order of
    their relative POSIX path.
    """
    found = {}
    for alternative in expand_braces(normalize_pattern(pattern)):
        for path in root.glob(alternative):
            if path.is_file():
                rel = path.relative_to(root).as_posix()
                if matches(pattern, rel):
                    found[rel] = path
    for rel in sorted(found):
        yield found[rel]


def _sample_path(pattern: str) -> str:
    """A concrete path the pattern matches, used for overlap checks."""
    segments = []
    for segment in pattern.split("/"):
        if segment == "**":
            continue
        sample = re.sub(r"\[!?([^\]])[^\]]*\]", r"\1", segment)
        sample = sample.replace("*", "x").replace("?", "x")
        segments.append(sample)
    return "/".join(segments)


def patterns_overlap(first: str, second: str) -> bool:
    """
    Decide whether two collection patterns could select the same file.

    Patterns overlap when they are equal, when one static base directory
    contains the other and a concrete sample path of either pattern is
    matched by the other.
    """
    a, b = normalize_pattern(first), normalize_pattern(second)
    if a == b:
        return True

    base_a, base_b = static_base(a), static_base(b)
    nested = (
        base_a == base_b
        or not base_a
        or not base_b
        or base_a.startswith(base_b + "/")
        or base_b.startswith(base_a + "/")
    )
    if not nested:
        return False

    for left, right in ((a, b), (b, a)):
        for alternative in expand_braces(left):
            if matches(right, _sample_path(alternative)):
                return True
    return False
