"""Static build for folio.

Renders every visible document into an output directory, one
`<url>/index.html` per document, and copies the non-document files next to
them. The result is what the dev server would serve, frozen to disk.

Key functions:
- build_site: Render the whole content directory.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .content import ContentSource
from .errors import ConfigError, DecodeError, FolioError, MarkupError, NotFoundError
from .renderers import RenderedPage, Renderer
from .utils import document_format, ensure_clean_dir, is_internal_path

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        pages: Pages written to the output directory.
        output_dir: Directory the site was written to.
        failed: Source paths that could not be rendered, with the error.
        static_files: Number of non-document files copied.
    """

    pages: list[RenderedPage]
    output_dir: Path
    failed: list[tuple[Path, FolioError]] = field(default_factory=list)
    static_files: int = 0


def build_site(
    content_dir: Path,
    output_dir: Path,
    include_drafts: bool = False,
    renderer: Renderer | None = None,
    clean_output: bool = True,
) -> BuildResult:
    """Render every document of a content directory to disk.

    A document that cannot be read, decoded or rendered is recorded in
    BuildResult.failed and the build continues with the next one.

    Args:
        content_dir: Directory holding the documents.
        output_dir: Directory to write the site to.
        include_drafts: Whether to render draft documents.
        renderer: Optional renderer, e.g. one with a site title.
        clean_output: Whether to wipe output_dir first.

    Returns:
        BuildResult describing the build.

    Raises:
        NotFoundError: If content_dir does not exist.
        ConfigError: If output_dir is, or contains, the content directory.
    """
    source = ContentSource(content_dir, include_drafts=include_drafts)
    renderer = renderer or Renderer()
    output_dir = Path(output_dir)
    if source.root.is_relative_to(output_dir.resolve()):
        raise ConfigError("output directory must not contain the content directory", output_dir)
    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    result = BuildResult(pages=[], output_dir=output_dir)
    written: dict[str, str] = {}
    for path in source.iter_paths():
        try:
            document = source.read(path)
            if document.draft and not include_drafts:
                continue
            page = renderer.render(document)
        except (DecodeError, MarkupError, NotFoundError) as exc:
            logger.error("Failed to render %s", exc)
            result.failed.append((path, exc))
            continue
        if page.output_path in written:
            logger.warning(
                "%s and %s both map to %s; keeping the first",
                written[page.output_path],
                page.source,
                page.url,
            )
            continue
        written[page.output_path] = page.source
        _write_page(output_dir, page)
        result.pages.append(page)

    result.static_files = _copy_static_files(source.root, output_dir)
    return result


def _write_page(output_dir: Path, page: RenderedPage) -> None:
    target = output_dir / page.output_path
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        f.write(page.html)


def _copy_static_files(root: Path, output_dir: Path) -> int:
    """Copy non-document, non-internal files into the output directory.

    Returns:
        Number of files copied.
    """
    resolved_output = output_dir.resolve()
    copied = 0
    for path in sorted(root.rglob("*")):
        if path.is_dir() or document_format(path) is not None:
            continue
        if path.resolve().is_relative_to(resolved_output):
            continue
        rel = path.relative_to(root)
        if is_internal_path(rel):
            continue
        dest = output_dir / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, dest)
        copied += 1
    return copied
