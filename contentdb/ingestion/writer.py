"""
Source authoring helper.

Writes and removes source documents under a collection's base directory so
that tools can create content programmatically. The writer never touches
the document store: callers request a rebuild afterwards.
"""
from pathlib import Path
from typing import Any, Dict, Optional, Union

import frontmatter
from slugify import slugify

from contentdb.core.exceptions import InvalidSchemaError, SourceNotFoundError, ValidationError
from contentdb.core.logging_config import LoggerMixin
from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.patterns import matches

SUFFIXES = (".md", ".mdx")


class ContentWriter(LoggerMixin):
    """
    Creates, overwrites and deletes source files of a collection.

    Example:
        >>> writer = ContentWriter(Path("site"))
        >>> writer.write(articles, "hello", {"title": "Hello"}, "Hi!")
        PosixPath('site/content/articles/hello.md')
    """

    def __init__(self, content_root: Union[str, Path]):
        self.content_root = Path(content_root)

    def path_for(self, definition: CollectionDefinition, slug: str) -> Path:
        """
        Source path a slug is written to.

        The first suffix accepted by the collection pattern wins.

        Raises:
            ValidationError: slug is not already in slug form
            InvalidSchemaError: the pattern accepts no supported suffix
        """
        if not slug or slugify(slug) != slug:
            raise ValidationError(
                f"'{slug}' is not a valid slug",
                source_path=definition.source_dir or ".",
                field="slug",
            )
        base = f"{definition.source_dir}/" if definition.source_dir else ""
        for suffix in SUFFIXES:
            rel = f"{base}{slug}{suffix}"
            if matches(definition.pattern, rel):
                return self.content_root / rel
        raise InvalidSchemaError(
            f"Pattern '{definition.pattern}' accepts no file directly under "
            f"'{definition.source_dir or '.'}'",
            collection=definition.name,
        )

    def write(
        self,
        definition: CollectionDefinition,
        slug: str,
        metadata: Optional[Dict[str, Any]] = None,
        body: str = "",
    ) -> Path:
        """
        Serialise frontmatter and body to the collection's base directory.

        Args:
            definition: Target collection
            slug: Slug of the new document (also its file stem)
            metadata: Frontmatter fields
            body: Markdown/MDX body

        Returns:
            Path of the written file
        """
        path = self.path_for(definition, slug)
        metadata = dict(metadata or {})
        if "slug" in definition.slug_fields:
            metadata.setdefault("slug", slug)

        post = frontmatter.Post(body, **metadata)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(frontmatter.dumps(post, sort_keys=False) + "\n", encoding="utf-8")

        self.logger.info(f"Wrote {definition.name}/{slug} -> {path}")
        return path

    def remove(self, definition: CollectionDefinition, slug: str) -> Path:
        """
        Delete the source file of a slug.

        Raises:
            SourceNotFoundError: no source file exists for the slug
        """
        self.path_for(definition, slug)
        base = self.content_root / definition.source_dir if definition.source_dir else self.content_root
        for suffix in SUFFIXES:
            path = base / f"{slug}{suffix}"
            if path.is_file():
                path.unlink()
                self.logger.info(f"Removed {definition.name}/{slug} ({path})")
                return path
        raise SourceNotFoundError(str(base / slug), collection=definition.name)
