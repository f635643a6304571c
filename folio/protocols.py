"""Protocol definitions for folio.

Markup renderers and metadata extractors are plugged in through these
interfaces, so a new markup format only needs a class that satisfies
ContentRenderer and a registration with the RendererRegistry.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .content import Document, Heading
    from .errors import MarkupError


@runtime_checkable
class ContentRenderer(Protocol):
    """Protocol for turning a document body into HTML.

    Implementations handle one markup format each.
    """

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return the format identifier ('markdown', 'asciidoc')."""
        ...

    @abstractmethod
    def can_render(self, fmt: str) -> bool:
        """Check if this renderer handles the given document format."""
        ...

    @abstractmethod
    def render(
        self, document: Document, strict: bool = False
    ) -> tuple[str, list[Heading], list[MarkupError]]:
        """Render a document body to HTML.

        Args:
            document: Document to render.
            strict: Raise the first MarkupError instead of recovering.

        Returns:
            Tuple of (body HTML, headings, recovered MarkupErrors).
        """
        ...


@runtime_checkable
class MetadataExtractor(Protocol):
    """Protocol for extracting metadata from content."""

    @abstractmethod
    def extract(self, content: str, path: Path, metadata: dict[str, Any] | None = None) -> dict[str, Any]:
        """Extract metadata from content.

        Args:
            content: Source body.
            path: Path to the source file.
            metadata: Header metadata found so far.

        Returns:
            Dictionary of extracted values.
        """
        ...
