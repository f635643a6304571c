"""Document renderers for folio.

This module turns Documents into RenderedPages. Each markup format has its
own ContentRenderer; the Renderer facade picks one, recovers from malformed
markup, and wraps the body in the page template.

Key classes:
- RenderedPage: Immutable HTML output of one document.
- MarkdownRenderer: Renders Markdown with mistune and Pygments.
- AsciiDocRenderer: Renders AsciiDoc with the built-in converter.
- RendererRegistry: Maps document formats to renderers.
- Renderer: render(Document) -> RenderedPage.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .asciidoc import AsciiDocConverter
from .content import Document, Heading
from .errors import MarkupError
from .protocols import ContentRenderer
from .templates import PageTemplate
from .utils import ASCIIDOC, MARKDOWN, escape_html, heading_id

logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")


def highlight_code(code: str, lang: str | None) -> str:
    """Render a code block with Pygments syntax highlighting.

    Args:
        code: The code content.
        lang: Language identifier (e.g., 'python', 'java').

    Returns:
        Highlighted HTML, or an escaped <pre><code> block when the
        language is missing or unknown to Pygments.
    """
    if lang:
        try:
            lexer = get_lexer_by_name(lang, stripall=True)
        except ClassNotFound:
            logger.debug("No Pygments lexer for %r", lang)
        else:
            formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
            return highlight(code, lexer, formatter)
    lang_class = f' class="language-{escape_html(lang)}"' if lang else ""
    return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


@dataclass(frozen=True)
class RenderedPage:
    """HTML rendered from a Document.

    Attributes:
        url: URL path the page is served at.
        output_path: Relative output file path, e.g. hello/index.html.
        title: Page title.
        content: Rendered body HTML.
        html: Complete HTML page.
        toc: Headings of the body.
        issues: Messages of the MarkupErrors recovered from.
        source: Relative path of the source document.
    """

    url: str
    output_path: str
    title: str
    content: str
    html: str
    toc: tuple[Heading, ...] = ()
    issues: tuple[str, ...] = ()
    source: str = ""


class _HighlightRenderer(mistune.HTMLRenderer):
    """mistune renderer with heading ids and Pygments code blocks.

    Attributes:
        headings: Headings seen during rendering, in order.
    """

    def __init__(self):
        super().__init__(escape=False)
        self.headings: list[Heading] = []
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with an auto-generated, de-duplicated id."""
        base_id = heading_id(text)

        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            hid = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            hid = base_id

        plain = re.sub(r"<[^>]+>", "", text)
        self.headings.append(Heading(id=hid, text=plain, level=level))
        return f'<h{level} id="{hid}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else None
        return highlight_code(code, lang)


class MarkdownRenderer:
    """Renders Markdown documents to HTML.

    mistune accepts any input, so the only malformed construct detected
    here is a code fence that is never closed; its opening line is dropped
    so the rest of the document renders as prose instead of code.
    """

    @property
    def source_type(self) -> str:
        return MARKDOWN

    def can_render(self, fmt: str) -> bool:
        return fmt == MARKDOWN

    def render(
        self, document: Document, strict: bool = False
    ) -> tuple[str, list[Heading], list[MarkupError]]:
        source, issues = self._repair_fences(document, strict)
        renderer = _HighlightRenderer()
        markdown = mistune.create_markdown(
            renderer=renderer, plugins=["strikethrough", "footnotes", "table", "url"]
        )
        html = markdown(source)
        return html, renderer.headings, issues

    @staticmethod
    def _repair_fences(document: Document, strict: bool) -> tuple[str, list[MarkupError]]:
        lines = document.body.split("\n")
        open_index: int | None = None
        fence = ""
        for index, line in enumerate(lines):
            match = _FENCE_OPEN_RE.match(line)
            if not match:
                continue
            marker = match.group(1)
            if open_index is None:
                open_index, fence = index, marker
            elif marker[0] == fence[0] and len(marker) >= len(fence) and not line.strip()[len(marker) :].strip():
                open_index = None
        if open_index is None:
            return document.body, []
        error = MarkupError(
            "unterminated code fence", document.path, line=document.body_line + open_index + 1
        )
        if strict:
            raise error
        del lines[open_index]
        return "\n".join(lines), [error]


class AsciiDocRenderer:
    """Renders AsciiDoc documents to HTML."""

    @property
    def source_type(self) -> str:
        return ASCIIDOC

    def can_render(self, fmt: str) -> bool:
        return fmt == ASCIIDOC

    def render(
        self, document: Document, strict: bool = False
    ) -> tuple[str, list[Heading], list[MarkupError]]:
        converter = AsciiDocConverter(
            document.metadata,
            path=document.path,
            strict=strict,
            highlighter=highlight_code,
            line_offset=document.body_line,
        )
        result = converter.convert(document.body, doctitle=document.metadata.get("title"))
        return result.html, result.headings, result.issues


class RendererRegistry:
    """Registry for content renderers.

    New formats are added by registering a renderer; the registry itself
    never changes.
    """

    def __init__(self):
        self._renderers: list[ContentRenderer] = []
        self.register(MarkdownRenderer())
        self.register(AsciiDocRenderer())

    def register(self, renderer: ContentRenderer) -> None:
        """Register a new renderer.

        Raises:
            TypeError: If the object does not implement ContentRenderer.
        """
        if not isinstance(renderer, ContentRenderer):
            raise TypeError(f"{renderer!r} does not implement ContentRenderer")
        self._renderers.append(renderer)

    def get_renderer(self, fmt: str) -> ContentRenderer | None:
        for renderer in self._renderers:
            if renderer.can_render(fmt):
                return renderer
        return None


# Default renderer registry instance
default_renderer_registry = RendererRegistry()


class Renderer:
    """Renders Documents into RenderedPages.

    Holds no state between calls: the output depends only on the document
    and the page template.

    Attributes:
        template: Page template the body is placed in.
        registry: Renderers by document format.
        strict: Raise MarkupError instead of recovering.
    """

    def __init__(
        self,
        template: PageTemplate | None = None,
        registry: RendererRegistry | None = None,
        strict: bool = False,
    ):
        self.template = template or PageTemplate()
        self.registry = registry or default_renderer_registry
        self.strict = strict

    def render(self, document: Document) -> RenderedPage:
        """Render a document.

        Malformed markup is skipped and reported in RenderedPage.issues.

        Args:
            document: Document to render.

        Returns:
            RenderedPage for the document.

        Raises:
            MarkupError: In strict mode, or when no renderer handles the
                document's format.
        """
        if self.strict and document.issues:
            raise document.issues[0]
        renderer = self.registry.get_renderer(document.format)
        if renderer is None:
            raise MarkupError(f"no renderer for format {document.format!r}", document.path)

        content, headings, body_issues = renderer.render(document, strict=self.strict)
        issues = [*document.issues, *body_issues]
        for issue in issues:
            logger.warning("Recovered from malformed markup: %s", issue)

        return RenderedPage(
            url=document.url,
            output_path=document.output_path,
            title=document.title,
            content=content,
            html=self.template.render(document, content, headings),
            toc=tuple(headings),
            issues=tuple(str(issue) for issue in issues),
            source=document.rel_path,
        )
