"""Metadata extractors for folio.

Each extractor handles a single kind of metadata and returns a dictionary
that CompositeMetadataExtractor merges into one result. Extractors that
strip a header from the source hand the remaining body to the extractors
after them.

Key classes:
- HeaderExtractor: YAML front matter (Markdown) or the document header (AsciiDoc).
- TitleExtractor: Title from metadata, first level-1 heading, or filename.
- DraftExtractor: Draft flag from metadata.
- CompositeMetadataExtractor: Runs extractors in order and merges results.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from .errors import MarkupError
from .protocols import MetadataExtractor
from .utils import ASCIIDOC, MARKDOWN, document_format, parse_bool, titleize

FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE
)
ATTRIBUTE_ENTRY_RE = re.compile(r"^:(!?)([\w][\w-]*)(!?):(?:[ \t]+(.*))?$")
_FENCE_RE = re.compile(r"^(```|~~~)")


def extract_frontmatter(text: str, path: Path | None = None) -> tuple[dict[str, Any], str]:
    """Extract YAML front matter from Markdown content.

    Args:
        text: Raw file content.
        path: Source path, used in error messages.

    Returns:
        Tuple of (front matter dict, remaining content). Content without a
        front matter block comes back unchanged with an empty dict.

    Raises:
        MarkupError: If the block is not valid YAML or not a mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise MarkupError(f"invalid front matter: {exc}", path, line=1) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MarkupError("front matter is not a mapping", path, line=1)
    return data, text[match.end() :]


def extract_asciidoc_header(
    text: str, path: Path | None = None
) -> tuple[dict[str, Any], str, list[MarkupError]]:
    """Extract the document header from AsciiDoc content.

    The header is an optional `= Title` line, an optional author line, and
    `:name: value` attribute entries, ending at the first blank line.
    Attribute entries with a trailing or leading `!` unset the attribute.

    Args:
        text: Raw file content.
        path: Source path, used in error messages.

    Returns:
        Tuple of (attributes, remaining body, recovered errors). The title
        is stored under "title". Malformed attribute lines are skipped and
        reported in the error list.
    """
    lines = text.splitlines(keepends=True)
    attributes: dict[str, Any] = {}
    issues: list[MarkupError] = []
    index = 0
    while index < len(lines) and not lines[index].strip():
        index += 1
    start = index
    if index < len(lines) and lines[index].startswith("= "):
        attributes["title"] = lines[index][2:].strip()
        index += 1
        # Author line directly below the title.
        if index < len(lines) and lines[index].strip() and not lines[index].startswith(":"):
            attributes["author"] = lines[index].strip()
            index += 1
    while index < len(lines) and lines[index].strip():
        line = lines[index]
        if line.startswith("//"):
            index += 1
            continue
        match = ATTRIBUTE_ENTRY_RE.match(line)
        if match:
            name = match.group(2)
            if match.group(1) or match.group(3):
                attributes.pop(name, None)
            else:
                attributes[name] = (match.group(4) or "").strip()
            index += 1
            continue
        if line.startswith(":"):
            issues.append(
                MarkupError(f"malformed attribute entry {line.rstrip()!r}", path, line=index + 1)
            )
            index += 1
            continue
        # Not part of a header after all.
        break
    if index == start:
        return {}, text, issues
    body = "".join(lines[index:])
    return attributes, body.lstrip("\n"), issues


class HeaderExtractor:
    """Splits the metadata header from the document body.

    Markdown documents use YAML front matter, AsciiDoc documents use the
    AsciiDoc document header. Malformed headers are skipped and reported
    under the "issues" key instead of raising.
    """

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        fmt = document_format(path)
        if fmt == ASCIIDOC:
            metadata, body, issues = extract_asciidoc_header(content, path)
            return {"metadata": metadata, "body": body, "issues": issues}
        if fmt == MARKDOWN:
            try:
                metadata, body = extract_frontmatter(content, path)
            except MarkupError as exc:
                match = FRONTMATTER_RE.match(content)
                body = content[match.end() :] if match else content
                return {"metadata": {}, "body": body, "issues": [exc]}
            return {"metadata": metadata, "body": body, "issues": []}
        return {"metadata": {}, "body": content, "issues": []}


class TitleExtractor:
    """Extracts the document title.

    Looks at metadata "title" first, then the first level-1 heading in the
    body (outside fenced code), falling back to titleizing the filename.
    """

    def extract(self, content: str, path: Path, metadata: dict[str, Any] | None = None) -> dict[str, Any]:
        if metadata and metadata.get("title"):
            return {"title": str(metadata["title"])}
        marker = "= " if document_format(path) == ASCIIDOC else "# "
        in_fence = False
        for line in content.splitlines():
            if _FENCE_RE.match(line):
                in_fence = not in_fence
                continue
            if in_fence:
                continue
            if line.startswith(marker):
                title = line[len(marker) :].strip().rstrip("#").strip()
                if title:
                    return {"title": title}
        return {"title": titleize(path.name)}


class DraftExtractor:
    """Reads the draft flag from metadata."""

    def extract(self, content: str, path: Path, metadata: dict[str, Any] | None = None) -> dict[str, Any]:
        value = (metadata or {}).get("draft", False)
        return {"draft": parse_bool(value)}


class CompositeMetadataExtractor:
    """Combines multiple metadata extractors.

    The header extractor runs first and may shorten the body; later
    extractors see the shortened body and the metadata found so far.
    Issues reported by any extractor are concatenated.
    """

    def __init__(self, extractors: list | None = None):
        """Initialize with a list of extractors.

        Args:
            extractors: Extractors run after the header extractor. If None,
                uses TitleExtractor and DraftExtractor.
        """
        self._header = HeaderExtractor()
        if extractors is None:
            self._extractors = [TitleExtractor(), DraftExtractor()]
        else:
            self._extractors = list(extractors)

    def add_extractor(self, extractor: MetadataExtractor) -> None:
        """Add an extractor after the existing ones.

        Raises:
            TypeError: If the object has no extract method.
        """
        if not isinstance(extractor, MetadataExtractor):
            raise TypeError(f"{extractor!r} does not implement MetadataExtractor")
        self._extractors.append(extractor)

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        """Extract all metadata from content.

        Args:
            content: Source content.
            path: Path to the source file.

        Returns:
            Dictionary with "metadata", "body", "issues" and the keys of
            every registered extractor.
        """
        result = self._header.extract(content, path)
        issues = list(result.get("issues", []))
        for extractor in self._extractors:
            extracted = extractor.extract(result["body"], path, result["metadata"])
            issues.extend(extracted.pop("issues", []))
            result.update(extracted)
        result["issues"] = issues
        return result


# Default composite extractor instance
default_metadata_extractor = CompositeMetadataExtractor()
