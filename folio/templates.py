"""Page template for folio.

Rendered document bodies are placed into one fixed Jinja2 page template.
The template is built in; it is not looked up in the content directory, so
rendering depends on nothing but the document and the site title.

Key class:
- PageTemplate: Wraps a rendered body in the HTML page.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from jinja2 import DictLoader, Environment, select_autoescape
from markupsafe import Markup

from .content import Heading
from .utils import escape_html, parse_bool

if TYPE_CHECKING:
    from .content import Document

__all__ = ["PAGE_TEMPLATE", "PageTemplate", "render_toc"]

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="{{ lang }}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="generator" content="folio">
<title>{{ document.title }}{% if site_title %} | {{ site_title }}{% endif %}</title>
<style>
{{ base_css }}
{{ pygments_css }}
</style>
</head>
<body>
<main class="document {{ document.format }}">
{% if toc %}<nav class="toc">
<p class="toc-title">Contents</p>
{{ toc }}
</nav>
{% endif %}<article>
{{ content }}
</article>
</main>
</body>
</html>
"""

BASE_CSS = """body { margin: 0; font: 17px/1.6 Georgia, serif; color: #222; background: #fdfdfb; }
main { max-width: 46rem; margin: 0 auto; padding: 2rem 1.25rem 4rem; }
pre { overflow-x: auto; padding: .75rem; background: #f4f4f0; }
code { font: .9em Menlo, Consolas, monospace; }
blockquote { margin: 1rem 0; padding-left: 1rem; border-left: 3px solid #ccc; color: #555; }
table { border-collapse: collapse; } th, td { border: 1px solid #ccc; padding: .25rem .5rem; }
.admonition { border-left: 4px solid #4a7; padding: .25rem 1rem; background: #f3f8f4; }
.admonition.warning, .admonition.caution { border-color: #c63; background: #fbf3ee; }
.admonition-title, .title, .toc-title { font-weight: bold; }
.sidebarblock { border: 1px solid #ddd; padding: .5rem 1rem; }
.toc { font-size: .9em; border-bottom: 1px solid #eee; margin-bottom: 1rem; }"""


def render_toc(headings: Sequence[Heading]) -> Markup:
    """Render headings as a nested HTML list.

    Generates properly nested `<ul><li><a href="#id">text</a></li></ul>`
    structure based on heading levels.

    Args:
        headings: Headings in document order.

    Returns:
        Markup-safe HTML string, or empty Markup if there are no headings.
    """
    if not headings:
        return Markup("")

    html_parts: list[str] = []
    level_stack: list[int] = []

    for heading in headings:
        level = heading.level

        # Close nested lists if going to a shallower level
        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ul>")

        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        elif not level_stack or level > level_stack[-1]:  # pragma: no branch
            html_parts.append("<ul>")
            level_stack.append(level)

        html_parts.append(
            f'<li><a href="#{escape_html(heading.id)}">{escape_html(heading.text)}</a>'
        )

    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ul>")

    return Markup("".join(html_parts))


def _pygments_css() -> str:
    """Return Pygments CSS styles for the .highlight class."""
    from pygments.formatters import HtmlFormatter

    return HtmlFormatter().get_style_defs(".highlight")


class PageTemplate:
    """Fixed HTML page around a rendered document body.

    Attributes:
        site_title: Site name appended to every page title.
        lang: Value of the html lang attribute.
        env: Jinja2 environment holding the page template.
    """

    def __init__(self, site_title: str = "", lang: str = "en"):
        self.site_title = site_title
        self.lang = lang
        self.env = Environment(
            loader=DictLoader({"page.html": PAGE_TEMPLATE}),
            autoescape=select_autoescape(["html", "xml"]),
            keep_trailing_newline=True,
        )
        self._template = self.env.get_template("page.html")
        self._pygments_css = Markup(_pygments_css())

    def wants_toc(self, document: Document) -> bool:
        """Whether the document asked for a table of contents.

        AsciiDoc documents set the `:toc:` attribute, Markdown documents
        set `toc: true` in their front matter.
        """
        if "toc" not in document.metadata:
            return False
        value = document.metadata["toc"]
        if isinstance(value, str) and value.strip().lower() in ("auto", "left", "right", "preamble"):
            return True
        return parse_bool(value)

    def render(self, document: Document, content: str, toc: Sequence[Heading] = ()) -> str:
        """Render the full page for a document.

        Args:
            document: Document being rendered.
            content: Rendered body HTML, inserted unescaped.
            toc: Headings of the body.

        Returns:
            Complete HTML page.
        """
        toc_html = render_toc(toc) if self.wants_toc(document) else Markup("")
        return self._template.render(
            document=document,
            content=Markup(content),
            toc=toc_html,
            site_title=self.site_title,
            lang=self.lang,
            base_css=Markup(BASE_CSS),
            pygments_css=self._pygments_css,
        )
