"""
Source set fingerprinting.

The goal:
    - compute a stable, deterministic hash for the files a collection
      would ingest
    - cheap enough to run on every staleness check (stat only, no reads)
    - change whenever a file is added, removed, renamed, touched or resized,
      or when the collection definition itself changes
"""
from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, List, Tuple

from contentdb.schema.collection import CollectionDefinition

SourceStat = Tuple[str, int, int]


def stat_sources(root: Path, paths: Iterable[Path]) -> List[SourceStat]:
    """(relative POSIX path, mtime_ns, size) per file, sorted by path."""
    stats = []
    for path in paths:
        st = path.stat()
        stats.append((path.relative_to(root).as_posix(), st.st_mtime_ns, st.st_size))
    return sorted(stats)


def compute_fingerprint(
    definition: CollectionDefinition,
    stats: Iterable[SourceStat],
    algo: str = "sha256",
) -> str:
    """
    Hash the definition signature and the sorted source stats.

    Returns:
        hex digest string (algorithm: sha256 by default)
    """
    h = hashlib.new(algo)
    h.update(definition.signature().encode("utf-8"))
    for rel, mtime_ns, size in sorted(stats):
        h.update(b"\0")
        h.update(rel.encode("utf-8", "surrogateescape"))
        h.update(f"|{mtime_ns}|{size}".encode("ascii"))
    return h.hexdigest()
