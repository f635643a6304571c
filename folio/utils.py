"""Utility functions for folio.

String and path helpers shared by the content source, the renderers and the
build command.

Key functions:
    slugify: Convert filenames to URL slugs.
    titleize: Convert filenames to human-readable titles.
    heading_id: Convert heading text to an anchor id.
    escape_html: Escape text for inclusion in HTML.
    document_format: Classify a path as Markdown, AsciiDoc or neither.
    is_internal_path: Check for `_`/`.` prefixed path components.
    parse_bool: Interpret loose boolean metadata values.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Any

MARKDOWN = "markdown"
ASCIIDOC = "asciidoc"

MARKDOWN_SUFFIXES = (".md", ".markdown")
ASCIIDOC_SUFFIXES = (".adoc", ".asciidoc", ".asc")

_TRUE_STRINGS = {"true", "yes", "on", "1", ""}


def slugify(name: str) -> str:
    """Convert filename (without extension) to slug, dropping date prefix.

    Args:
        name: Filename stem.

    Returns:
        URL-friendly slug.
    """
    cleaned = name
    if "-" in cleaned:
        parts = cleaned.split("-")
        if len(parts) >= 4 and all(p.isdigit() for p in parts[:3]):
            cleaned = "-".join(parts[3:])
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", cleaned)
    cleaned = cleaned.strip("-").lower()
    return cleaned or "index"


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Removes date prefixes (YYYY-MM-DD), replaces hyphens and underscores
    with spaces, and capitalizes each word.

    Examples:
        >>> titleize("2024-01-15-hello-world.md")
        'Hello World'

        >>> titleize("kafka_notes.adoc")
        'Kafka Notes'
    """
    base = Path(filename).stem
    if "-" in base:
        parts = base.split("-")
        if len(parts) >= 4 and all(p.isdigit() for p in parts[:3]):
            base = "-".join(parts[3:])
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def heading_id(text: str) -> str:
    """Generate a URL-friendly anchor id from heading text.

    Markup tags inside the heading are ignored.
    """
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-") or "section"


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Examples:
        >>> escape_html('<b>"Tom" & Jerry</b>')
        '&lt;b&gt;&quot;Tom&quot; &amp; Jerry&lt;/b&gt;'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def document_format(path: Path) -> str | None:
    """Return the markup format of a path from its suffix.

    Args:
        path: Path to check.

    Returns:
        "markdown", "asciidoc", or None for anything else.
    """
    suffix = path.suffix.lower()
    if suffix in MARKDOWN_SUFFIXES:
        return MARKDOWN
    if suffix in ASCIIDOC_SUFFIXES:
        return ASCIIDOC
    return None


def is_internal_path(path: Path) -> bool:
    """Check if a relative path is internal.

    Internal paths have a component starting with `_` (layouts, `_site`
    output, `_config.yml`) or `.` (`.git`, editor swap files).
    """
    return any(part.startswith(("_", ".")) for part in path.parts)


def parse_bool(value: Any) -> bool:
    """Interpret a metadata value as a boolean.

    Accepts real booleans and the strings true/yes/on/1. An empty string
    counts as true, matching a bare AsciiDoc attribute such as `:draft:`.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in _TRUE_STRINGS


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path))
    path.mkdir(parents=True, exist_ok=True)
