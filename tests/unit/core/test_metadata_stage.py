"""Unit tests for metadata extraction (core/stages/metadata.py and ContentStage)"""

import logging
from datetime import datetime, timezone

from mdsite.core.models import GhComment
from mdsite.core.post import build_post
from mdsite.core.stages.metadata import parse_metadata


def test_parse_metadata_full(make_post):
    """Every field is read, and a date-only value becomes midnight UTC."""
    post = make_post("")
    meta = parse_metadata(
        "title: Hello\ndate: 2024-01-02\ntags: [a, b]\nghcommentid: 7\nghcommentauthors: [me]\n",
        post,
    )
    assert meta.title == "Hello"
    assert meta.date == datetime(2024, 1, 2, tzinfo=timezone.utc)
    assert meta.tags == ["a", "b"]
    assert meta.ghcomment == GhComment(id=7, authors=["me"])


def test_parse_metadata_keeps_offset(make_post):
    """A timestamp with an offset keeps that instant."""
    meta = parse_metadata("title: x\ndate: 2024-03-01T12:30:00+02:00\n", make_post(""))
    assert int(meta.date.timestamp()) == 1709289000


def test_parse_metadata_quoted_zulu_date(make_post):
    """Quoted RFC 3339 strings with a Z suffix are accepted."""
    meta = parse_metadata("title: x\ndate: '2024-03-01T10:30:00Z'\n", make_post(""))
    assert int(meta.date.timestamp()) == 1709289000


def test_parse_metadata_ghcomment_needs_both_fields(make_post):
    """A comment reference needs both id and authors."""
    meta = parse_metadata("title: x\ndate: 2024-01-02\nghcommentid: 3\n", make_post(""))
    assert meta.ghcomment is None


def test_parse_metadata_defaults_title_and_date(make_post, caplog):
    """Missing title and date fall back to the post name and file creation time."""
    post = make_post("", name="my-post")
    meta = parse_metadata("tags: [t]\n", post)
    assert meta.title == "my-post"
    assert meta.date.tzinfo is not None
    assert meta.tags == ["t"]
    assert "post does not have a title" in caplog.text


def test_parse_metadata_ignores_unknown_keys(make_post):
    """Keys outside the schema are ignored."""
    meta = parse_metadata("title: x\ndate: 2024-01-02\nlayout: wide\n", make_post(""))
    assert meta.title == "x"


def test_parse_metadata_invalid_yaml(make_post, caplog):
    """Malformed YAML returns None and logs an error."""
    assert parse_metadata("title: [unclosed\n", make_post("")) is None
    assert "could not parse metadata" in caplog.text


def test_parse_metadata_not_a_mapping(make_post, caplog):
    """A document that is not a mapping is rejected."""
    assert parse_metadata("- a\n- b\n", make_post("")) is None
    assert "expected a mapping" in caplog.text


def test_parse_metadata_schema_error(make_post, caplog):
    """Values of the wrong type are rejected."""
    assert parse_metadata("title: x\nghcommentid: -1\n", make_post("")) is None
    assert "could not parse metadata" in caplog.text


def test_metadata_block_is_consumed(make_post, parser):
    """A valid block sets the post metadata and leaves no trace in the HTML."""
    post = make_post("---\ntitle: Hello\ndate: 2024-01-02\n---\n\nBody text\n")
    result = build_post(post, parser)
    assert post.meta.title == "Hello"
    assert result.meta.title == "Hello"
    assert result.age == 1704153600
    assert result.source == "<p>Body text</p>\n"


def test_metadata_followed_by_code_is_processed(make_post, parser):
    """The token right after a metadata block still goes through the stages."""
    post = make_post("---\ntitle: Hello\ndate: 2024-01-02\n---\n```python\nx = 1\n```\n")
    html = build_post(post, parser).source
    assert "<a-lf></a-lf>" in html
    assert "title" not in html


def test_invalid_metadata_block_passes_through(make_post, parser, caplog):
    """An unparseable block is rendered as preformatted text and defaults are used."""
    post = make_post("---\ntitle: [unclosed\n---\n\nBody\n", name="broken")
    result = build_post(post, parser)
    assert result.source.startswith("<pre>title: [unclosed")
    assert result.meta.title == "broken"
    assert "post does not have metadata, using defaults" in caplog.text


def test_post_without_metadata_uses_defaults(make_post, parser, caplog):
    """A post with no metadata block gets file-derived defaults."""
    caplog.set_level(logging.INFO)
    result = build_post(make_post("Just text\n", name="plain"), parser)
    assert result.id == "plain"
    assert result.meta.title == "plain"
    assert result.meta.tags == []
    assert result.age == int(result.meta.date.timestamp())
