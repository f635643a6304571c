"""Content source for folio.

This module discovers and reads the documents of a content directory. Every
call goes back to the filesystem: nothing is cached, so edits are visible on
the next request without any invalidation step.

Key classes:
- Document: Immutable snapshot of one source file and its metadata.
- UrlDeriver: Derives URL and output paths from a document's relative path.
- ContentSource: Lists, reads and looks up documents by URL.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlsplit

from .errors import DecodeError, MarkupError, NotFoundError
from .extractors import CompositeMetadataExtractor, default_metadata_extractor
from .utils import document_format, is_internal_path, slugify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Heading:
    """A heading of a rendered document, used for the table of contents.

    Attributes:
        id: Anchor id of the heading.
        text: Plain text of the heading.
        level: Heading level (1-6).
    """

    id: str
    text: str
    level: int


@dataclass(frozen=True)
class Document:
    """One source document and its metadata.

    Attributes:
        path: Absolute path of the source file.
        rel_path: Path relative to the content directory, POSIX style.
        body: Source text with the metadata header removed.
        format: "markdown" or "asciidoc".
        title: Resolved title.
        draft: Whether the document is a draft.
        url: URL path the document is served at.
        metadata: Front matter or AsciiDoc header attributes.
        issues: Recovered problems found while reading the header.
        body_line: Number of source lines that precede the body.
    """

    path: Path
    rel_path: str
    body: str
    format: str
    title: str
    draft: bool
    url: str
    metadata: dict[str, Any] = field(default_factory=dict)
    issues: tuple[MarkupError, ...] = ()
    body_line: int = 0

    @property
    def output_path(self) -> str:
        """Relative path of the rendered HTML file."""
        return UrlDeriver().output_path(self.url)


class UrlDeriver:
    """Derives URLs for documents.

    `posts/2024-01-15-kafka.md` becomes `/posts/kafka`, an `index` file
    stands for its folder, and the root index is `/`.
    """

    def derive(self, rel: PurePosixPath) -> str:
        """Derive the URL for a relative source path.

        Args:
            rel: Path relative to the content directory.

        Returns:
            URL path without a trailing slash (except the root "/").
        """
        segments = [p for p in rel.parent.parts if p not in ("", ".")]
        slug = slugify(rel.stem)
        if slug != "index":
            segments.append(slug)
        return "/" + "/".join(segments)

    def output_path(self, url: str) -> str:
        stripped = url.strip("/")
        return f"{stripped}/index.html" if stripped else "index.html"

    def normalize(self, request_path: str) -> str:
        """Normalize a request path to the canonical document URL.

        Drops the query string, percent-decodes, and accepts a trailing
        slash, `.html` and `/index.html`.
        """
        path = unquote(urlsplit(request_path).path) or "/"
        if path.endswith("/index.html"):
            path = path[: -len("index.html")]
        elif path.endswith(".html"):
            path = path[: -len(".html")]
        path = "/" + path.strip("/")
        return path


class ContentSource:
    """Reads documents from a content directory.

    Attributes:
        root: Content directory.
        include_drafts: Whether drafts are visible through list() and find().
    """

    def __init__(
        self,
        root: Path,
        include_drafts: bool = False,
        metadata_extractor: CompositeMetadataExtractor | None = None,
    ):
        """Initialize the content source.

        Args:
            root: Path to the content directory.
            include_drafts: Whether to expose draft documents.
            metadata_extractor: Optional custom metadata extractor.

        Raises:
            NotFoundError: If root is not an existing directory.
        """
        root = Path(root)
        if not root.is_dir():
            raise NotFoundError("content directory not found", root)
        self.root = root.resolve()
        self.include_drafts = include_drafts
        self.metadata_extractor = metadata_extractor or default_metadata_extractor
        self.url_deriver = UrlDeriver()

    def iter_paths(self) -> Iterator[Path]:
        """Yield document source paths in sorted order, without reading them."""
        for path in sorted(self.root.rglob("*")):
            rel = path.relative_to(self.root)
            if is_internal_path(rel):
                continue
            if document_format(path) is None or not path.is_file():
                continue
            yield path

    def list(self) -> Iterator[Document]:
        """Yield every visible document.

        The directory is scanned again on each call. Documents that cannot
        be decoded, that vanished since the scan or that resolve outside the
        content directory are logged and skipped so one bad file does not
        hide the rest.
        """
        for path in self.iter_paths():
            try:
                document = self.read(path)
            except DecodeError as exc:
                logger.error("Skipping %s", exc)
                continue
            except NotFoundError as exc:
                logger.warning("Skipping %s", exc)
                continue
            if document.draft and not self.include_drafts:
                continue
            yield document

    def read(self, path: Path | str) -> Document:
        """Read a single document.

        Drafts are returned regardless of include_drafts.

        Args:
            path: Absolute path, or path relative to the content directory.

        Returns:
            Document read from disk.

        Raises:
            NotFoundError: If the file does not exist or is not a document.
            DecodeError: If the file is not valid UTF-8.
        """
        path = Path(path)
        if not path.is_absolute():
            path = self.root / path
        fmt = document_format(path)
        if fmt is None or not path.is_file():
            raise NotFoundError("no such document", path)
        path = path.resolve()
        if not path.is_relative_to(self.root):
            raise NotFoundError("document is outside the content directory", path)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError("no such document", path) from exc
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"not valid UTF-8 at byte {exc.start}", path) from exc
        # Byte order marks and Windows newlines
        text = text.lstrip("\ufeff").replace("\r\n", "\n")

        rel = PurePosixPath(path.relative_to(self.root).as_posix())
        extracted = self.metadata_extractor.extract(text, path)
        body = extracted["body"]
        return Document(
            path=path,
            rel_path=str(rel),
            body=body,
            format=fmt,
            title=extracted["title"],
            draft=extracted["draft"],
            url=self.url_deriver.derive(rel),
            metadata=extracted["metadata"],
            issues=tuple(extracted["issues"]),
            body_line=max(text.count("\n") - body.count("\n"), 0),
        )

    def find(self, request_path: str) -> Document:
        """Find the document served at a request path.

        Only paths are compared, so a lookup reads a single file.

        Raises:
            NotFoundError: If no document maps to the URL, or the match is a
                draft and drafts are hidden.
            DecodeError: If the matching file is not valid UTF-8.
        """
        url = self.url_deriver.normalize(request_path)
        for path in self.iter_paths():
            rel = PurePosixPath(path.relative_to(self.root).as_posix())
            if self.url_deriver.derive(rel) != url:
                continue
            document = self.read(path)
            if document.draft and not self.include_drafts:
                raise NotFoundError(f"{url} is a draft", path)
            return document
        raise NotFoundError(f"no document for {url}")

    def static_file(self, request_path: str) -> Path:
        """Resolve a request path to a non-document file in the tree.

        Raises:
            NotFoundError: If the path is missing, internal, a document
                source, or escapes the content directory.
        """
        rel = unquote(urlsplit(request_path).path).lstrip("/")
        if not rel:
            raise NotFoundError("no static file for /")
        if "\x00" in rel:
            raise NotFoundError(f"no static file for {request_path!r}")
        try:
            candidate = (self.root / rel).resolve()
            is_file = candidate.is_file()
        except (OSError, ValueError) as exc:
            raise NotFoundError(f"no static file for {request_path}") from exc
        if not candidate.is_relative_to(self.root):
            raise NotFoundError(f"no static file for {request_path}")
        inside = candidate.relative_to(self.root)
        if is_internal_path(inside) or document_format(candidate) is not None or not is_file:
            raise NotFoundError(f"no static file for {request_path}")
        return candidate
