"""
Record Builder Tests

Covers content cleaning, size accounting and chunking:
- chunk concatenation reproduces the cleaned text
- no record exceeds the size limit
- items whose metadata alone is over budget produce no records
"""

import pytest

from onesearch.content.models import ContentItem
from onesearch.core.errors import RecordOverBudget
from onesearch.index.records import (
    CONTINUATION_MARKER,
    RecordBuilder,
    clean_content,
    encoded_size,
    get_allowed_statuses,
    get_index_settings,
    join_chunks,
    split_content,
    text_size,
)
from onesearch.scope import ScopeKey

from conftest import make_item


def minimal_item(content, **overrides):
    return ContentItem(id=1, type="post", title="T", content=content, **overrides)


# ---------------------------------------------------------------------
# Cleaning and sizing
# ---------------------------------------------------------------------

def test_clean_content_strips_markup():
    html = (
        "<h2>Title</h2><p>First&nbsp;para &amp; more</p>"
        "<script>alert(1)</script><style>p{}</style><!-- hidden -->"
        "<ul><li>one</li><li>two</li></ul>"
    )
    assert clean_content(html) == "Title\nFirst para & more\none\ntwo"


def test_clean_content_collapses_whitespace():
    assert clean_content("<p>a   b\t\tc</p>\n\n\n<p>  d </p>") == "a b c\nd"
    assert clean_content("") == ""


def test_text_size_counts_escaped_utf8_bytes():
    assert text_size("abc") == 3
    assert text_size("é") == 2
    assert text_size('"') == 2
    assert text_size("\n") == 2
    assert encoded_size({"a": 1}) == 7


def test_allowed_statuses():
    assert get_allowed_statuses(["post", "page"]) == ["publish"]
    assert get_allowed_statuses(["post", "attachment"]) == ["publish", "inherit"]


def test_index_settings_are_copies():
    settings = get_index_settings()
    settings["distinct"] = False
    assert get_index_settings()["distinct"] is True
    assert get_index_settings()["attributeForDistinct"] == "site_post_id"


# ---------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------

def test_split_content_prefers_word_boundaries():
    text = "alpha beta gamma delta epsilon"
    pieces = split_content(text, 12)
    assert "".join(pieces) == text
    assert all(text_size(p) <= 12 for p in pieces)
    assert pieces[0] == "alpha beta "


def test_split_content_hard_cuts_long_words():
    text = "x" * 50
    pieces = split_content(text, 20)
    assert "".join(pieces) == text
    assert all(len(p) <= 20 for p in pieces)


def test_split_content_rejects_tiny_budget():
    with pytest.raises(ValueError):
        split_content("abc", 3)


def test_join_chunks_strips_markers_after_first():
    assert join_chunks(["one ", CONTINUATION_MARKER + "two ", CONTINUATION_MARKER + "three"]) == "one two three"
    assert join_chunks([CONTINUATION_MARKER + "first"]) == CONTINUATION_MARKER + "first"


# ---------------------------------------------------------------------
# Record building
# ---------------------------------------------------------------------

def test_single_record_for_short_content(builder):
    records = builder.build(make_item(5))
    assert len(records) == 1

    record = records[0]
    assert record["objectID"] == builder.scope.document_id(5) + "_0"
    assert record["site_post_id"] == builder.scope.document_id(5)
    assert record["chunk_index"] == 0
    assert record["total_chunks"] == 1
    assert record["content"] == "Hello world"
    assert record["site_url"] == "https://gov.example/"
    assert record["site_name"] == "Governing"
    assert record["post_author_data"]["author_id"] == 7
    assert record["taxonomies"]["category"][0]["slug"] == "news"
    assert record["post_date_gmt"] > 0


def test_empty_content_still_emits_one_record(builder):
    records = builder.build(make_item(1, content="<script>only()</script>"))
    assert len(records) == 1
    assert records[0]["content"] == ""
    assert records[0]["total_chunks"] == 1


def test_25k_characters_make_three_chunks(governing_scope):
    builder = RecordBuilder(governing_scope, record_size_limit=9000)
    text = "abcd efgh " * 2500
    assert len(text) == 25000

    records = builder.build(minimal_item(text))

    assert len(records) == 3
    assert [r["chunk_index"] for r in records] == [0, 1, 2]
    assert {r["total_chunks"] for r in records} == {3}
    assert [r["objectID"] for r in records] == [f"{governing_scope.document_id(1)}_{i}" for i in range(3)]
    assert all(r["content"].startswith(CONTINUATION_MARKER) for r in records[1:])
    assert join_chunks([r["content"] for r in records]) == text.strip()
    assert all(encoded_size(r) <= 9000 for r in records)


def test_no_record_exceeds_limit_with_multibyte_text(governing_scope):
    builder = RecordBuilder(governing_scope, site_name="Gouvernement", record_size_limit=1500)
    text = "héllo wörld 日本語のテキスト \"quoted\" " * 300
    item = make_item(9, content=f"<p>{text}</p>")

    records = builder.build(item)

    assert len(records) > 1
    assert all(encoded_size(r) <= 1500 for r in records)
    assert join_chunks([r["content"] for r in records]) == clean_content(item.content)


def test_rebuilding_is_deterministic(builder):
    item = make_item(4, content="<p>" + "word " * 5000 + "</p>")
    assert builder.build(item) == builder.build(item)


def test_metadata_over_budget_raises(governing_scope):
    builder = RecordBuilder(governing_scope, record_size_limit=500)
    with pytest.raises(RecordOverBudget):
        builder.build(minimal_item("body", excerpt="x" * 600))


def test_metadata_filling_the_limit_exactly_emits_nothing(governing_scope):
    item = minimal_item("body")
    sizing = RecordBuilder(governing_scope)
    metadata_size = sizing.record_size_limit - sizing.content_budget(sizing.base_record(item))

    exact = RecordBuilder(governing_scope, record_size_limit=metadata_size)
    with pytest.raises(RecordOverBudget):
        exact.build(item)
    assert exact.to_records(item) == []

    roomy = RecordBuilder(governing_scope, record_size_limit=metadata_size + 100)
    records = roomy.build(item)
    assert [r["content"] for r in records] == ["body"]
    assert all(encoded_size(r) <= metadata_size + 100 for r in records)


def test_to_records_skips_items_over_budget(governing_scope):
    builder = RecordBuilder(governing_scope, record_size_limit=500)
    assert builder.to_records(minimal_item("body", excerpt="x" * 600)) == []
    assert len(builder.to_records(minimal_item("body"))) == 1


def test_records_are_scoped_to_their_site():
    scope = ScopeKey.of("https://brand.example")
    brand = RecordBuilder(scope, site_name="Brand")
    record = brand.build(make_item(1))[0]
    assert record["site_url"] == "https://brand.example/"
    assert record["site_key"] == scope.key
    assert record["site_key"].startswith("httpsbrandexample-")
    assert record["objectID"] == f"{scope.key}_1_0"
