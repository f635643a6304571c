from pathlib import Path

import pytest

from folio.errors import MarkupError
from folio.extractors import (
    CompositeMetadataExtractor,
    DraftExtractor,
    HeaderExtractor,
    TitleExtractor,
    extract_asciidoc_header,
    extract_frontmatter,
)
from folio.protocols import MetadataExtractor


def test_extract_frontmatter():
    data, body = extract_frontmatter("---\ntitle: Hi\ndraft: true\n---\nbody\n")
    assert data == {"title": "Hi", "draft": True}
    assert body == "body\n"


def test_extract_frontmatter_without_block():
    text = "# Plain\n\n---\nnot front matter\n"
    assert extract_frontmatter(text) == ({}, text)


def test_extract_frontmatter_empty_block():
    data, body = extract_frontmatter("---\n---\nbody")
    assert data == {}
    assert body == "body"


def test_extract_frontmatter_invalid_yaml():
    with pytest.raises(MarkupError) as exc:
        extract_frontmatter("---\ntitle: [oops\n---\nbody", Path("bad.md"))
    assert exc.value.line == 1
    assert exc.value.path == Path("bad.md")
    assert "invalid front matter" in str(exc.value)


def test_extract_frontmatter_not_a_mapping():
    with pytest.raises(MarkupError, match="not a mapping"):
        extract_frontmatter("---\n- a\n- b\n---\nbody")


def test_extract_asciidoc_header():
    attrs, body, issues = extract_asciidoc_header(
        "= Kafka Notes\nJane Doe\n:toc:\n:draft:\n\nBody text\n"
    )
    assert attrs == {"title": "Kafka Notes", "author": "Jane Doe", "toc": "", "draft": ""}
    assert body == "Body text\n"
    assert issues == []


def test_extract_asciidoc_header_unsets_attribute():
    attrs, _, _ = extract_asciidoc_header("= T\n:foo: bar\n:foo!:\n\nx")
    assert "foo" not in attrs


def test_extract_asciidoc_header_reports_malformed_entry():
    attrs, body, issues = extract_asciidoc_header("= T\n:ok: 1\n:bad attr\n\nBody", Path("n.adoc"))
    assert attrs == {"title": "T", "ok": "1"}
    assert body == "Body"
    assert len(issues) == 1
    assert issues[0].line == 3


def test_extract_asciidoc_header_without_header():
    text = "Just text\n"
    assert extract_asciidoc_header(text) == ({}, text, [])


def test_header_extractor_recovers_from_bad_frontmatter():
    result = HeaderExtractor().extract("---\ntitle: [oops\n---\n# Body\n", Path("bad.md"))
    assert result["metadata"] == {}
    assert result["body"] == "# Body\n"
    assert len(result["issues"]) == 1


def test_header_extractor_asciidoc():
    result = HeaderExtractor().extract("= Title\n\ntext", Path("a.adoc"))
    assert result["metadata"] == {"title": "Title"}
    assert result["body"] == "text"


def test_title_extractor_prefers_metadata():
    result = TitleExtractor().extract("# Heading", Path("x.md"), {"title": "Meta"})
    assert result["title"] == "Meta"


def test_title_extractor_skips_fenced_code():
    content = "```\n# not a title\n```\n\n# Real Title\n"
    assert TitleExtractor().extract(content, Path("x.md"))["title"] == "Real Title"


def test_title_extractor_fallback():
    result = TitleExtractor().extract("No heading here", Path("my-test-file.md"))
    assert result["title"] == "My Test File"


def test_draft_extractor():
    assert DraftExtractor().extract("", Path("x.md"), {"draft": "yes"}) == {"draft": True}
    assert DraftExtractor().extract("", Path("x.adoc"), {"draft": ""}) == {"draft": True}
    assert DraftExtractor().extract("", Path("x.md"), {}) == {"draft": False}


def test_composite_extractor_markdown():
    result = CompositeMetadataExtractor().extract(
        "---\ndraft: true\n---\n# Hello\n", Path("hello.md")
    )
    assert result["title"] == "Hello"
    assert result["draft"] is True
    assert result["body"] == "# Hello\n"
    assert result["issues"] == []


def test_composite_extractor_add_extractor():
    class WordCountExtractor:
        def extract(self, content, path, metadata=None):
            return {"words": len(content.split())}

    extractor = CompositeMetadataExtractor()
    assert isinstance(WordCountExtractor(), MetadataExtractor)
    extractor.add_extractor(WordCountExtractor())
    result = extractor.extract("# One two three", Path("x.md"))
    assert result["words"] == 4


def test_composite_extractor_rejects_non_extractor():
    with pytest.raises(TypeError):
        CompositeMetadataExtractor().add_extractor(object())
