"""folio: serve a folder of Markdown and AsciiDoc documents as HTML.

This package renders lightweight-markup documents on request for local
preview, and can freeze the same output into a static directory.

The main entry point is the CLI module, which provides commands for running
the development server, building the site, listing documents and creating
new ones.

Modules by concern:
- content: Discovers and reads documents (ContentSource).
- renderers: Turns Documents into RenderedPages (Renderer).
- server: Serves rendered pages over HTTP (DevServer).
- build: Writes every page to an output directory.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
