"""Command-line interface for folio.

This module defines the CLI commands using the Click framework.

Commands:
- serve: Run the development server over a content directory.
- build: Render every document into an output directory.
- list: Show the documents and the URLs they are served at.
- new: Create a new document interactively.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
import questionary

from . import __version__
from .config import resolve_settings
from .errors import FolioError
from .utils import ASCIIDOC_SUFFIXES, MARKDOWN_SUFFIXES, is_internal_path, slugify

_CONTENT_DIR = click.argument(
    "content_dir",
    required=False,
    type=click.Path(file_okay=False, path_type=Path),
)

_FORMATS = {
    "Markdown (.md)": ".md",
    "AsciiDoc (.adoc)": ".adoc",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _fail(title: str, exc: FolioError) -> None:
    """Print a FolioError the way every command reports failures, then exit 1."""
    click.echo(click.style(title, fg="red", bold=True), err=True)
    if exc.path is not None:
        click.echo(click.style(f"  File: {exc.path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__, prog_name="folio")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Serve a folder of Markdown and AsciiDoc documents as HTML."""
    _configure_logging(verbose)


@cli.command()
@_CONTENT_DIR
@click.option("--port", type=int, default=None, help="Port to listen on [default: 4000]")
@click.option("--bind", "host", default=None, help="Interface to bind [default: 127.0.0.1]")
@click.option("--drafts", is_flag=True, help="Serve draft documents")
@click.option("--watch/--no-watch", default=True, help="Re-render when files change")
@click.option("--livereload", is_flag=True, help="Reload open pages when files change")
@click.option("--ws-port", type=int, default=None, help="Port for the live reload websocket")
def serve(
    content_dir: Path | None,
    port: int | None,
    host: str | None,
    drafts: bool,
    watch: bool,
    livereload: bool,
    ws_port: int | None,
):
    """Run the development server."""
    from .server import DevServer

    try:
        settings = resolve_settings(
            content_dir or Path.cwd(),
            port=port,
            host=host,
            drafts=True if drafts else None,
            livereload=True if livereload else None,
            ws_port=ws_port,
        )
        server = DevServer(
            settings.content_dir,
            host=settings.host,
            port=settings.port,
            include_drafts=settings.drafts,
            watch=watch,
            livereload=settings.livereload,
            ws_port=settings.ws_port,
            site_title=settings.title,
        )
        server.bind()
    except FolioError as exc:
        _fail("Cannot start server:", exc)
    click.echo(f"Serving {server.source.root} at {server.url} (Ctrl-C to stop)")
    server.start()
    click.echo("Server stopped.")


@cli.command()
@_CONTENT_DIR
@click.option("--drafts", is_flag=True, help="Include draft documents")
@click.option(
    "-o",
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Output directory [default: <content_dir>/_site]",
)
def build(content_dir: Path | None, drafts: bool, output: Path | None):
    """Render every document into the output directory."""
    from .build import build_site
    from .renderers import Renderer
    from .templates import PageTemplate

    try:
        settings = resolve_settings(
            content_dir or Path.cwd(),
            drafts=True if drafts else None,
            output_dir=str(output.resolve()) if output else None,
        )
        result = build_site(
            settings.content_dir,
            settings.output_dir,
            include_drafts=settings.drafts,
            renderer=Renderer(PageTemplate(settings.title)),
        )
    except FolioError as exc:
        _fail("Build failed:", exc)

    for path, exc in result.failed:
        click.echo(click.style(f"Skipped {path}: {exc.message}", fg="yellow"), err=True)
    click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")
    if result.failed:
        raise SystemExit(1)


@cli.command("list")
@_CONTENT_DIR
@click.option("--drafts", is_flag=True, help="Include draft documents")
def list_documents(content_dir: Path | None, drafts: bool):
    """List documents and the URLs they are served at."""
    from .content import ContentSource

    try:
        settings = resolve_settings(content_dir or Path.cwd(), drafts=True if drafts else None)
        source = ContentSource(settings.content_dir, include_drafts=settings.drafts)
        for document in source.list():
            marker = "\t(draft)" if document.draft else ""
            click.echo(f"{document.url}\t{document.rel_path}{marker}")
    except FolioError as exc:
        _fail("Cannot list documents:", exc)


@cli.command()
@_CONTENT_DIR
def new(content_dir: Path | None):
    """Create a new document interactively."""
    root = content_dir or Path.cwd()
    if not root.is_dir():
        raise click.ClickException(f"Content directory not found: {root}")

    folder = questionary.select(
        "Select folder:",
        choices=_get_content_folders(root),
        style=_questionary_style(),
    ).ask()
    if folder is None:
        raise click.Abort()

    name = questionary.text(
        "Title:",
        validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
        style=_questionary_style(),
    ).ask()
    if name is None:
        raise click.Abort()
    name = name.strip()

    fmt = questionary.select(
        "Format:",
        choices=list(_FORMATS),
        style=_questionary_style(),
    ).ask()
    if fmt is None:
        raise click.Abort()

    draft = questionary.confirm(
        "Mark as draft?",
        default=True,
        style=_questionary_style(),
    ).ask()
    if draft is None:
        raise click.Abort()

    target_dir = root if folder == ". (root)" else root / folder
    slug = slugify(name)
    suffix = _FORMATS[fmt]
    target_path = target_dir / f"{slug}{suffix}"

    conflicting = _find_slug(target_dir, slug)
    if conflicting is not None:
        raise click.ClickException(
            f"A document with slug '{slug}' already exists: {conflicting.name}"
        )

    target_dir.mkdir(parents=True, exist_ok=True)
    title = _titleize(name)
    target_path.write_text(_document_stub(title, suffix, draft), encoding="utf-8")
    click.echo(f"Created {target_path.relative_to(root)}")


def _get_content_folders(root: Path) -> list[str]:
    """Get the folders a new document can go into.

    Internal folders (starting with _ or .) and everything below them are
    left out. The root comes first.
    """
    folders = []
    for path in root.rglob("*"):
        if path.is_dir() and not is_internal_path(path.relative_to(root)):
            folders.append(path.relative_to(root).as_posix())
    folders.sort()
    folders.insert(0, ". (root)")
    return folders


def _find_slug(folder: Path, slug: str) -> Path | None:
    """Return an existing document in folder with the given slug, if any."""
    if not folder.exists():
        return None
    for path in sorted(folder.iterdir()):
        if path.suffix.lower() not in MARKDOWN_SUFFIXES + ASCIIDOC_SUFFIXES:
            continue
        if path.is_file() and slugify(path.stem) == slug:
            return path
    return None


def _titleize(name: str) -> str:
    """Title-case a name unless it already has capitals."""
    if name != name.lower():
        return name
    return " ".join(word.capitalize() for word in name.split())


def _document_stub(title: str, suffix: str, draft: bool) -> str:
    if suffix == ".adoc":
        header = f"= {title}\n"
        if draft:
            header += ":draft:\n"
        return header + "\n"
    if draft:
        return f"---\ndraft: true\n---\n\n# {title}\n\n"
    return f"# {title}\n\n"


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()
