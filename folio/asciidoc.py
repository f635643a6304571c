"""AsciiDoc to HTML conversion for folio.

A line-oriented converter for the subset of AsciiDoc that shows up in notes
and articles: sections, paragraphs, lists, delimited blocks, simple tables,
admonitions, images, links and the basic inline quotes.

Conversion is best effort. When a construct cannot be understood (an
unterminated block, an include directive, a ragged table) the converter
records a MarkupError, skips or degrades the offending span and carries on
with the rest of the document. With strict=True the first error is raised
instead.

Key classes:
- AsciiDocConverter: Converts a document body to HTML.
- ConversionResult: HTML, headings and recovered errors of one conversion.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .content import Heading
from .errors import MarkupError
from .utils import escape_html, heading_id

DELIMITER_RE = re.compile(r"^(-{4,}|\.{4,}|_{4,}|\*{4,}|={4,}|\+{4,}|/{4,}|--)\s*$")
SECTION_RE = re.compile(r"^(={1,6})\s+(\S.*?)\s*$")
BLOCK_TITLE_RE = re.compile(r"^\.([^\s.].*)$")
BLOCK_ATTR_RE = re.compile(r"^\[([^\[\]]*)\]$")
ANCHOR_RE = re.compile(r"^\[\[([\w:.-]+)(?:,\s*[^\]]*)?\]\]$")
ATTRIBUTE_ENTRY_RE = re.compile(r"^:(!?)([\w][\w-]*)(!?):(?:[ \t]+(.*))?$")
LIST_ITEM_RE = re.compile(r"^\s*(\*{1,5}|-|\.{1,5})\s+(\S.*)$")
ADMONITION_RE = re.compile(r"^(NOTE|TIP|IMPORTANT|WARNING|CAUTION):\s+(.*)$", re.DOTALL)
IMAGE_BLOCK_RE = re.compile(r"^image::([^\s\[]+)\[([^\]]*)\]$")
INCLUDE_RE = re.compile(r"^include::([^\[]*)\[.*\]$")
TABLE_DELIMITER = "|==="

_ADMONITIONS = {"NOTE", "TIP", "IMPORTANT", "WARNING", "CAUTION"}
_BLOCK_NAMES = {
    "-": "listing",
    ".": "literal",
    "_": "quote",
    "*": "sidebar",
    "=": "example",
    "+": "passthrough",
    "/": "comment",
}
_BUILTIN_ATTRIBUTES = {
    "empty": "",
    "sp": " ",
    "nbsp": "&#160;",
    "amp": "&amp;",
    "lt": "&lt;",
    "gt": "&gt;",
    "startsb": "[",
    "endsb": "]",
    "vbar": "|",
}

_PLACEHOLDER_RE = re.compile("\x00(\\d+)\x00")
_PASS_RE = re.compile(r"\+\+\+(.+?)\+\+\+")
_MONO_RE = re.compile(r"(?<![\w`])`(?!\s)([^`]+?)(?<!\s)`(?![\w`])")
_ATTR_REF_RE = re.compile(r"\{([\w][\w-]*)\}")
_XREF_RE = re.compile(r"&lt;&lt;([\w:.-]+)(?:,\s*(.+?))?&gt;&gt;")
_INLINE_IMAGE_RE = re.compile(r"(?<!\w)image:([^\s\[:][^\s\[]*)\[([^\]]*)\]")
_LINK_MACRO_RE = re.compile(r"(?<!\w)link:([^\s\[]+)\[([^\]]*)\]")
_URL_MACRO_RE = re.compile(r"(?<![\w/\"=])((?:https?|ftp)://[^\s\[<\x00]+)\[([^\]]*)\]")
_BARE_URL_RE = re.compile(r"(?<![\w/\"=])((?:https?|ftp)://[^\s\[<\x00]*[^\s\[<\x00.,;:!?)])")
_STRONG_UNCONSTRAINED_RE = re.compile(r"\*\*(.+?)\*\*")
_STRONG_RE = re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])")
_EMPHASIS_UNCONSTRAINED_RE = re.compile(r"__(.+?)__")
_EMPHASIS_RE = re.compile(r"(?<![\w_])_(?!\s)(.+?)(?<!\s)_(?![\w_])")

Highlighter = Callable[[str, str], str]


@dataclass
class ConversionResult:
    """Output of one AsciiDoc conversion.

    Attributes:
        html: Rendered HTML body.
        headings: Headings in document order, for the table of contents.
        issues: MarkupErrors that were recovered from.
    """

    html: str
    headings: list[Heading] = field(default_factory=list)
    issues: list[MarkupError] = field(default_factory=list)


@dataclass
class _BlockMeta:
    """Block attribute line, block title and anchor waiting for their block."""

    positional: list[str] = field(default_factory=list)
    named: dict[str, str] = field(default_factory=dict)
    title: str | None = None
    anchor: str | None = None

    @property
    def style(self) -> str | None:
        return self.positional[0] if self.positional else None


def _plain_listing(code: str, lang: str | None) -> str:
    lang_class = f' class="language-{escape_html(lang)}"' if lang else ""
    return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


class AsciiDocConverter:
    """Converts AsciiDoc source to HTML.

    A converter instance is single use: attributes defined in the body
    update its attribute table.

    Attributes:
        attributes: Document attributes available to `{name}` references.
        path: Source path, used in error messages.
        strict: Raise the first MarkupError instead of recovering.
    """

    def __init__(
        self,
        attributes: dict[str, Any] | None = None,
        path: Path | None = None,
        strict: bool = False,
        highlighter: Highlighter | None = None,
        line_offset: int = 0,
    ):
        """Initialize the converter.

        Args:
            attributes: Document header attributes.
            path: Source path for error messages.
            strict: Whether to raise on the first malformed construct.
            highlighter: Callable turning (code, language) into HTML.
            line_offset: Number of source lines before the body.
        """
        self.attributes = {k: "" if v is None else str(v) for k, v in (attributes or {}).items()}
        self.path = path
        self.strict = strict
        self.highlighter = highlighter
        self.line_offset = line_offset
        self.headings: list[Heading] = []
        self.issues: list[MarkupError] = []
        self._id_counts: dict[str, int] = {}

    def convert(self, text: str, doctitle: str | None = None) -> ConversionResult:
        """Convert a document body.

        Args:
            text: AsciiDoc body without its header.
            doctitle: Title from the document header, rendered as <h1>.

        Returns:
            ConversionResult for the body.

        Raises:
            MarkupError: Only in strict mode.
        """
        parts: list[str] = []
        if doctitle:
            parts.append(self._heading(1, doctitle, None))
        parts.extend(self._parse_blocks(text.split("\n"), self.line_offset + 1))
        return ConversionResult("".join(parts), list(self.headings), list(self.issues))

    # Blocks

    def _issue(self, message: str, line: int) -> None:
        error = MarkupError(message, self.path, line=line)
        if self.strict:
            raise error
        self.issues.append(error)

    def _parse_blocks(self, lines: list[str], base: int) -> list[str]:
        out: list[str] = []
        meta = _BlockMeta()
        i = 0
        while i < len(lines):
            line = lines[i]
            stripped = line.strip()
            lineno = base + i

            if not stripped:
                i += 1
                continue

            delimiter = DELIMITER_RE.match(line)
            if delimiter:
                delim = delimiter.group(1)
                kind = "open" if delim == "--" else _BLOCK_NAMES[delim[0]]
                end = self._find_closing(lines, i + 1, delim)
                if end is None:
                    self._issue(f"unterminated {kind} block", lineno)
                    meta = _BlockMeta()
                    i += 1
                    continue
                out.append(self._delimited(kind, lines[i + 1 : end], lineno + 1, meta))
                meta = _BlockMeta()
                i = end + 1
                continue

            if stripped.startswith("//"):
                i += 1
                continue

            if stripped == TABLE_DELIMITER:
                end = self._find_closing(lines, i + 1, TABLE_DELIMITER)
                if end is None:
                    self._issue("unterminated table", lineno)
                    meta = _BlockMeta()
                    i += 1
                    continue
                out.append(self._table(lines[i + 1 : end], lineno + 1, meta))
                meta = _BlockMeta()
                i = end + 1
                continue

            match = ANCHOR_RE.match(stripped)
            if match:
                meta.anchor = match.group(1)
                i += 1
                continue

            match = BLOCK_ATTR_RE.match(stripped)
            if match:
                self._parse_block_attributes(match.group(1), meta)
                i += 1
                continue

            match = BLOCK_TITLE_RE.match(stripped)
            if match and not line[0].isspace():
                meta.title = match.group(1)
                i += 1
                continue

            match = ATTRIBUTE_ENTRY_RE.match(line)
            if match:
                name = match.group(2)
                if match.group(1) or match.group(3):
                    self.attributes.pop(name, None)
                else:
                    self.attributes[name] = (match.group(4) or "").strip()
                i += 1
                continue

            match = SECTION_RE.match(line)
            if match:
                out.append(self._heading(len(match.group(1)), match.group(2), meta.anchor))
                meta = _BlockMeta()
                i += 1
                continue

            if stripped == "'''":
                out.append("<hr>\n")
                i += 1
                continue

            if stripped == "<<<":
                i += 1
                continue

            match = INCLUDE_RE.match(stripped)
            if match:
                self._issue(f"include directive not supported: {match.group(1)}", lineno)
                i += 1
                continue

            match = IMAGE_BLOCK_RE.match(stripped)
            if match:
                out.append(self._image_block(match.group(1), match.group(2), meta))
                meta = _BlockMeta()
                i += 1
                continue

            if LIST_ITEM_RE.match(line):
                html, i = self._list(lines, i)
                out.append(html)
                meta = _BlockMeta()
                continue

            if line[0].isspace():
                html, i = self._literal_paragraph(lines, i)
                out.append(html)
                meta = _BlockMeta()
                continue

            html, i = self._paragraph(lines, i, meta)
            out.append(html)
            meta = _BlockMeta()
        return out

    @staticmethod
    def _find_closing(lines: list[str], start: int, delimiter: str) -> int | None:
        for index in range(start, len(lines)):
            if lines[index].rstrip() == delimiter:
                return index
        return None

    @staticmethod
    def _parse_block_attributes(raw: str, meta: _BlockMeta) -> None:
        for part in (p.strip() for p in raw.split(",")):
            if "=" in part:
                key, _, value = part.partition("=")
                meta.named[key.strip()] = value.strip().strip('"')
                continue
            if part.startswith("#"):
                anchor, _, _role = part[1:].partition(".")
                meta.anchor = anchor or meta.anchor
                continue
            meta.positional.append(part)

    def _title_html(self, meta: _BlockMeta) -> str:
        if not meta.title:
            return ""
        return f'<div class="title">{self._inline(meta.title)}</div>\n'

    def _id_attr(self, meta: _BlockMeta) -> str:
        return f' id="{escape_html(meta.anchor)}"' if meta.anchor else ""

    def _heading(self, level: int, text: str, anchor: str | None) -> str:
        html = self._inline(text)
        if anchor:
            hid = anchor
        else:
            base = heading_id(html)
            if base in self._id_counts:
                self._id_counts[base] += 1
                hid = f"{base}-{self._id_counts[base]}"
            else:
                self._id_counts[base] = 0
                hid = base
        plain = re.sub(r"<[^>]+>", "", html)
        self.headings.append(Heading(id=hid, text=plain, level=level))
        return f'<h{level} id="{escape_html(hid)}">{html}</h{level}>\n'

    def _delimited(self, kind: str, inner: list[str], base: int, meta: _BlockMeta) -> str:
        if kind == "comment":
            return ""
        if kind == "passthrough":
            return "\n".join(inner) + "\n"
        title = self._title_html(meta)
        id_attr = self._id_attr(meta)
        if kind in ("listing", "literal"):
            code = "\n".join(inner)
            if kind == "listing" and meta.style == "source":
                lang = meta.positional[1] if len(meta.positional) > 1 else None
                body = self._highlight(code, lang)
            elif kind == "listing":
                body = _plain_listing(code, None)
            else:
                body = f"<pre>{escape_html(code)}</pre>\n"
            return f'<div class="{kind}block"{id_attr}>\n{title}{body}</div>\n'

        content = "".join(self._parse_blocks(inner, base))
        if kind == "quote":
            attribution = ""
            if meta.style in ("quote", "verse") and len(meta.positional) > 1:
                cite = ", ".join(self._inline(p) for p in meta.positional[1:] if p)
                attribution = f"<footer>&#8212; {cite}</footer>\n"
            return f"<blockquote{id_attr}>\n{title}{content}{attribution}</blockquote>\n"
        if kind == "example" and meta.style in _ADMONITIONS:
            return self._admonition(meta.style, content, meta)
        if kind == "sidebar":
            return f'<aside class="sidebarblock"{id_attr}>\n{title}{content}</aside>\n'
        return f'<div class="{kind}block"{id_attr}>\n{title}{content}</div>\n'

    def _highlight(self, code: str, lang: str | None) -> str:
        if lang and self.highlighter:
            return self.highlighter(code, lang)
        return _plain_listing(code, lang)

    def _admonition(self, label: str, content: str, meta: _BlockMeta) -> str:
        title = self._title_html(meta)
        return (
            f'<div class="admonition {label.lower()}"{self._id_attr(meta)}>\n'
            f'<p class="admonition-title">{label.capitalize()}</p>\n'
            f"{title}{content}</div>\n"
        )

    def _image_block(self, target: str, alt: str, meta: _BlockMeta) -> str:
        alt_text = alt.split(",")[0].strip() or Path(target).stem
        title = ""
        if meta.title:
            title = f'<div class="title">{self._inline(meta.title)}</div>\n'
        return (
            f'<div class="imageblock"{self._id_attr(meta)}>\n'
            f'<img src="{escape_html(self._substitute_attributes(target))}" alt="{escape_html(alt_text)}">\n'
            f"{title}</div>\n"
        )

    def _list(self, lines: list[str], i: int) -> tuple[str, int]:
        items: list[list] = []
        while i < len(lines):
            line = lines[i]
            match = LIST_ITEM_RE.match(line)
            if match:
                marker, text = match.group(1), match.group(2)
                kind = "ol" if marker[0] == "." else "ul"
                depth = 1 if marker == "-" else len(marker)
                items.append([kind, depth, text])
                i += 1
                continue
            if not line.strip():
                following = i
                while following < len(lines) and not lines[following].strip():
                    following += 1
                if following < len(lines) and LIST_ITEM_RE.match(lines[following]):
                    i = following
                    continue
                break
            if line.strip() == "+":
                i += 1
                continue
            if DELIMITER_RE.match(line) or line.strip() == TABLE_DELIMITER:
                break
            items[-1][2] += "\n" + line.strip()
            i += 1
        return self._render_list(items), i

    def _render_list(self, items: list[list]) -> str:
        out: list[str] = []
        stack: list[tuple[str, int]] = []
        for kind, depth, text in items:
            while stack and (
                stack[-1][1] > depth or (stack[-1][1] == depth and stack[-1][0] != kind)
            ):
                closing, _ = stack.pop()
                out.append(f"</li></{closing}>")
            if stack and stack[-1][1] == depth:
                out.append("</li>")
            else:
                out.append(f"<{kind}>")
                stack.append((kind, depth))
            out.append(f"<li>{self._inline(text)}")
        while stack:
            closing, _ = stack.pop()
            out.append(f"</li></{closing}>")
        return "".join(out) + "\n"

    def _literal_paragraph(self, lines: list[str], i: int) -> tuple[str, int]:
        block: list[str] = []
        while i < len(lines) and lines[i].strip():
            block.append(lines[i])
            i += 1
        indent = min(len(line) - len(line.lstrip()) for line in block)
        code = "\n".join(line[indent:] for line in block)
        return f'<div class="literalblock">\n<pre>{escape_html(code)}</pre>\n</div>\n', i

    def _paragraph(self, lines: list[str], i: int, meta: _BlockMeta) -> tuple[str, int]:
        block: list[str] = []
        while i < len(lines) and lines[i].strip():
            if block and (DELIMITER_RE.match(lines[i]) or lines[i].strip() == TABLE_DELIMITER):
                break
            block.append(lines[i].rstrip())
            i += 1
        text = "\n".join(block)

        admonition = ADMONITION_RE.match(text)
        label = meta.style if meta.style in _ADMONITIONS else None
        if admonition and not label:
            label, text = admonition.group(1), admonition.group(2)
        html = self._inline(text)
        html = re.sub(r" \+\n", "<br>\n", html)
        if label:
            return self._admonition(label, f"<p>{html}</p>\n", meta), i
        return f"{self._title_html(meta)}<p{self._id_attr(meta)}>{html}</p>\n", i

    def _table(self, inner: list[str], base: int, meta: _BlockMeta) -> str:
        rows_source = [(base + n, line.strip()) for n, line in enumerate(inner)]
        cells: list[str] = []
        columns = self._column_count(meta.named.get("cols"))
        options = {o.strip() for o in meta.named.get("options", "").split(",") if o.strip()}
        options.update(p[1:] for p in meta.positional if p.startswith("%"))
        header = "header" in options
        first_row_seen = False
        for index, (lineno, line) in enumerate(rows_source):
            if not line:
                continue
            if not line.startswith("|"):
                if cells:
                    cells[-1] += " " + line
                    continue
                self._issue("table cell text before the first cell separator", lineno)
                continue
            row = [cell.strip() for cell in line.split("|")[1:]]
            if not first_row_seen:
                first_row_seen = True
                if columns is None:
                    columns = len(row)
                following = rows_source[index + 1][1] if index + 1 < len(rows_source) else None
                if following == "" and "noheader" not in options:
                    header = True
            cells.extend(row)

        if not columns:
            return ""
        remainder = len(cells) % columns
        if remainder:
            self._issue(f"table has an incomplete row ({remainder} of {columns} cells)", base)
            cells.extend([""] * (columns - remainder))

        rows = [cells[n : n + columns] for n in range(0, len(cells), columns)]
        parts = [f"<table{self._id_attr(meta)}>\n"]
        if meta.title:
            parts.append(f"<caption>{self._inline(meta.title)}</caption>\n")
        if header and rows:
            head, rows = rows[0], rows[1:]
            parts.append("<thead><tr>")
            parts.extend(f"<th>{self._inline(cell)}</th>" for cell in head)
            parts.append("</tr></thead>\n")
        parts.append("<tbody>\n")
        for row in rows:
            parts.append("<tr>")
            parts.extend(f"<td>{self._inline(cell)}</td>" for cell in row)
            parts.append("</tr>\n")
        parts.append("</tbody>\n</table>\n")
        return "".join(parts)

    @staticmethod
    def _column_count(cols: str | None) -> int | None:
        if not cols:
            return None
        cols = cols.strip()
        multiplier = re.match(r"^(\d+)\*", cols)
        if multiplier:
            return int(multiplier.group(1))
        return len([c for c in cols.split(",") if c.strip()]) or None

    # Inline

    def _substitute_attributes(self, text: str) -> str:
        def repl(match: re.Match) -> str:
            name = match.group(1)
            if name in self.attributes:
                return escape_html(self.attributes[name])
            if name in _BUILTIN_ATTRIBUTES:
                return _BUILTIN_ATTRIBUTES[name]
            # Unknown references are left as written.
            return match.group(0)

        return _ATTR_REF_RE.sub(repl, text)

    def _quotes(self, text: str) -> str:
        text = _STRONG_UNCONSTRAINED_RE.sub(r"<strong>\1</strong>", text)
        text = _STRONG_RE.sub(r"<strong>\1</strong>", text)
        text = _EMPHASIS_UNCONSTRAINED_RE.sub(r"<em>\1</em>", text)
        return _EMPHASIS_RE.sub(r"<em>\1</em>", text)

    def _inline(self, text: str) -> str:
        store: list[str] = []

        def keep(html: str) -> str:
            store.append(html)
            return f"\x00{len(store) - 1}\x00"

        def link(url: str, label: str) -> str:
            href = url.replace('"', "&quot;")
            shown = self._quotes(label) if label else url
            return keep(f'<a href="{href}">{shown}</a>')

        def image(target: str, alt: str) -> str:
            alt_text = alt.split(",")[0].strip() or Path(target).stem
            src = target.replace('"', "&quot;")
            return keep(f'<img src="{src}" alt="{alt_text.replace(chr(34), "&quot;")}">')

        text = text.replace("\x00", "")
        text = _PASS_RE.sub(lambda m: keep(m.group(1)), text)
        text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        text = _MONO_RE.sub(lambda m: keep(f"<code>{m.group(1)}</code>"), text)
        text = self._substitute_attributes(text)
        text = _XREF_RE.sub(
            lambda m: keep(f'<a href="#{m.group(1)}">{m.group(2) or m.group(1)}</a>'), text
        )
        text = _INLINE_IMAGE_RE.sub(lambda m: image(m.group(1), m.group(2)), text)
        text = _LINK_MACRO_RE.sub(lambda m: link(m.group(1), m.group(2)), text)
        text = _URL_MACRO_RE.sub(lambda m: link(m.group(1), m.group(2)), text)
        text = _BARE_URL_RE.sub(lambda m: link(m.group(1), ""), text)
        text = self._quotes(text)

        # Stored fragments may themselves hold placeholders.
        while _PLACEHOLDER_RE.search(text):
            text = _PLACEHOLDER_RE.sub(lambda m: store[int(m.group(1))], text)
        return text


def convert(
    text: str,
    attributes: dict[str, Any] | None = None,
    doctitle: str | None = None,
    **options: Any,
) -> ConversionResult:
    """Convert AsciiDoc text with a fresh AsciiDocConverter."""
    return AsciiDocConverter(attributes, **options).convert(text, doctitle=doctitle)
