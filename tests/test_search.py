"""
Federated Search Tests

Planner, executor, reconstructor and the composed service, all against the
in-memory backend.
"""

from unittest.mock import AsyncMock

import pytest

from onesearch.api.dependencies import opener_for
from onesearch.content.source import InMemoryContentSource
from onesearch.core.errors import IndexUnavailable, RemoteUnreachable
from onesearch.index.filters import And, Eq, Or, render
from onesearch.index.memory import MemoryBackend
from onesearch.index.records import RecordBuilder
from onesearch.scope import ScopeKey
from onesearch.search.executor import SearchExecutor, compute_score
from onesearch.search.planner import QueryPlanner, build_filter
from onesearch.search.reconstructor import (
    LocalDocument,
    RemoteDocument,
    ResultReconstructor,
    extract_highlights,
    remote_author_id,
    remote_id,
)
from onesearch.search.service import FederatedSearch
from onesearch.sync.models import BrandConfig, SearchScopeConfig

from conftest import BRAND_URL, GOVERNING_URL, OTHER_URL, make_item


@pytest.fixture
def scopes():
    return [ScopeKey.of(GOVERNING_URL), ScopeKey.of(BRAND_URL)]


async def index_site(backend, url, items, name="Site", limit=9000):
    builder = RecordBuilder(ScopeKey.of(url), site_name=name, record_size_limit=limit)
    for item in items:
        await backend.upsert_batch(builder.build(item))


# ---------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------

def test_build_filter_ands_types_and_scopes(scopes):
    expr = build_filter(["post", "page"], scopes)
    assert expr == And(
        Or(Eq("post_type", "post"), Eq("post_type", "page")),
        Or(Eq("site_url", GOVERNING_URL), Eq("site_url", BRAND_URL)),
    )
    assert render(expr) == (
        '(post_type:"post" OR post_type:"page") AND '
        '(site_url:"https://gov.example/" OR site_url:"https://brand.example/")'
    )


@pytest.mark.parametrize("types", [None, [], ["any"], ["post", "any"]])
def test_build_filter_omits_type_clause(types, scopes):
    assert build_filter(types, scopes[:1]) == Eq("site_url", GOVERNING_URL)


async def test_governing_planner_uses_own_settings(governing_settings, governing_scope):
    await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "k"}])
    await governing_settings.set_search_settings(
        {GOVERNING_URL: {"enabled": True, "searchable_scopes": [BRAND_URL]}}
    )

    planner = QueryPlanner("governing", governing_scope, governing_settings=governing_settings)

    assert [s.url for s in await planner.resolve_searchable_scopes()] == [GOVERNING_URL, BRAND_URL]


async def test_governing_planner_disabled_by_default(governing_settings, governing_scope):
    planner = QueryPlanner("governing", governing_scope, governing_settings=governing_settings)
    assert await planner.resolve_searchable_scopes() == []


async def test_brand_planner_intersects_with_available_scopes(brand_scope):
    cache = AsyncMock()
    cache.get_config_or_default.return_value = BrandConfig(
        search_scope=SearchScopeConfig(enabled=True, searchable_scopes=[GOVERNING_URL, OTHER_URL]),
        available_scopes=[GOVERNING_URL, BRAND_URL],
    )

    planner = QueryPlanner("brand", brand_scope, brand_cache=cache)

    assert [s.url for s in await planner.resolve_searchable_scopes()] == [BRAND_URL, GOVERNING_URL]


# ---------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------

def test_compute_score_prefers_ranking_score():
    assert compute_score({"_rankingInfo": {"rankingScore": 0.5, "userScore": 100}}) == 0.5


def test_compute_score_fallback_formula():
    hit = {"_rankingInfo": {"userScore": 2, "words": 3, "nbTypos": 1, "proximityDistance": 4, "geoDistance": 2000}}
    assert compute_score(hit) == 2e6 + 3e3 - 1e4 - 4 - 2
    assert compute_score({}) == 0


async def test_executor_translates_pages_and_filters(scopes):
    backend = AsyncMock()
    backend.search.return_value = {"hits": [], "nbHits": 0, "page": 1}

    page = await SearchExecutor(backend).search("hello", scopes, types=["post"], page=2, per_page=5)

    query, params = backend.search.await_args.args
    assert query == "hello"
    assert params["page"] == 1
    assert params["hitsPerPage"] == 5
    assert params["distinct"] is True
    assert params["highlightPreTag"] == '<span class="algolia-highlight">'
    assert params["filters"] == build_filter(["post"], scopes)
    assert (page.page, page.per_page) == (2, 5)


async def test_executor_without_scopes_does_not_query():
    backend = AsyncMock()
    page = await SearchExecutor(backend).search("hello", [])
    assert page.hits == []
    backend.search.assert_not_awaited()


async def test_executor_sorts_by_score_and_drops_foreign_hits(scopes):
    backend = AsyncMock()
    backend.search.return_value = {
        "hits": [
            {"objectID": "a", "site_url": GOVERNING_URL, "_rankingInfo": {"userScore": 1}},
            {"objectID": "x", "site_url": OTHER_URL, "_rankingInfo": {"userScore": 9}},
            {"objectID": "b", "site_url": BRAND_URL, "_rankingInfo": {"userScore": 5}},
            {"objectID": "c", "site_url": BRAND_URL, "_rankingInfo": {"userScore": 5}},
        ],
        "nbHits": 4,
    }

    page = await SearchExecutor(backend).search("q", scopes)

    assert [h["objectID"] for h in page.hits] == ["b", "c", "a"]


async def test_chunked_documents_return_one_representative(scopes):
    backend = MemoryBackend()
    await index_site(backend, GOVERNING_URL, [make_item(1, content="<p>" + "needle hay " * 4000 + "</p>")])
    await backend.apply_settings({"distinct": True, "attributeForDistinct": "site_post_id"})
    assert backend.count() > 1

    page = await SearchExecutor(backend).search("needle", scopes)

    assert len(page.hits) == 1
    assert page.total == 1


async def test_search_never_leaves_searchable_scopes(scopes):
    backend = MemoryBackend()
    await index_site(backend, GOVERNING_URL, [make_item(1)])
    await index_site(backend, BRAND_URL, [make_item(1)])
    await index_site(backend, OTHER_URL, [make_item(1)])

    page = await SearchExecutor(backend).search("hello", scopes[1:])

    assert {h["site_url"] for h in page.hits} == {BRAND_URL}


# ---------------------------------------------------------------------
# Reconstructor
# ---------------------------------------------------------------------

def test_remote_ids_live_in_a_disjoint_namespace():
    assert remote_id(0) == -1
    assert remote_id(41) == -42
    assert remote_author_id(7) == -1007


def test_extract_highlights_falls_back_to_snippets():
    hit = {
        "_highlightResult": {"post_title": {"value": "<b>T</b>"}},
        "_snippetResult": {"post_title": {"value": "ignored"}, "content": {"value": "snip…"}},
    }
    assert extract_highlights(hit) == {"post_title": "<b>T</b>", "content": "snip…"}


async def test_remote_chunks_are_reassembled(governing_scope):
    backend = MemoryBackend()
    long_text = " ".join(f"word{i}" for i in range(4000))
    await index_site(backend, BRAND_URL, [make_item(5, content=f"<p>{long_text}</p>")], name="Brand")
    first = [r for r in backend.records if r["chunk_index"] == 0][0]
    assert first["total_chunks"] > 1

    documents = await ResultReconstructor(backend, governing_scope).reconstruct([first])

    [doc] = documents
    assert isinstance(doc, RemoteDocument)
    assert doc.content == long_text
    assert doc.id == -6
    assert doc.original_id == 5
    assert doc.author.id == -1007
    assert doc.author.display_name == "Ada"
    assert doc.site_url == BRAND_URL
    assert doc.site_name == "Brand"
    assert doc.taxonomies["category"][0]["name"] == "News"


async def test_reconstruct_can_be_switched_off(governing_scope):
    backend = MemoryBackend()
    await index_site(backend, BRAND_URL, [make_item(5, content="<p>" + "a b " * 6000 + "</p>")])
    first = [r for r in backend.records if r["chunk_index"] == 0][0]

    [doc] = await ResultReconstructor(backend, governing_scope).reconstruct([first], reconstruct=False)

    assert doc.content == first["content"]


async def test_failed_chunk_batch_falls_back_to_hit(governing_scope):
    backend = MemoryBackend()
    await index_site(backend, BRAND_URL, [make_item(5, content="<p>" + "a b " * 6000 + "</p>")])
    first = [r for r in backend.records if r["chunk_index"] == 0][0]
    backend.search = AsyncMock(side_effect=IndexUnavailable("down"))

    [doc] = await ResultReconstructor(backend, governing_scope).reconstruct([first])

    assert doc.content == first["content"]


async def test_document_with_missing_chunks_falls_back_to_hit(governing_scope):
    backend = MemoryBackend()
    long_text = " ".join(f"word{i}" for i in range(4000))
    await index_site(backend, BRAND_URL, [make_item(5, content=f"<p>{long_text}</p>")])
    first = [r for r in backend.records if r["chunk_index"] == 0][0]
    last_index = first["total_chunks"] - 1
    await backend.delete_by_filter(Eq("objectID", f"{first['site_post_id']}_{last_index}"))

    reconstructor = ResultReconstructor(backend, governing_scope)
    assert await reconstructor.fetch_full_contents([first["site_post_id"]]) == {}

    [doc] = await reconstructor.reconstruct([first])

    assert doc.content == first["content"]
    assert doc.content != long_text


async def test_chunk_fetch_is_batched(governing_scope):
    backend = MemoryBackend()
    items = [make_item(i, content="<p>" + "a b " * 3000 + "</p>") for i in range(1, 6)]
    await index_site(backend, BRAND_URL, items)
    hits = [r for r in backend.records if r["chunk_index"] == 0]
    backend.search = AsyncMock(wraps=backend.search)

    await ResultReconstructor(backend, governing_scope, batch_size=2).reconstruct(hits)

    assert backend.search.await_count == 3
    params = backend.search.await_args_list[0].args[1]
    assert params["distinct"] is False
    assert params["hitsPerPage"] == 1000


async def test_local_hits_resolve_through_source(governing_scope):
    backend = MemoryBackend()
    source = InMemoryContentSource([make_item(1)])
    await index_site(backend, GOVERNING_URL, [make_item(1), make_item(2)])
    hits = sorted(backend.records, key=lambda r: r["post_id"])

    documents = await ResultReconstructor(backend, governing_scope, source=source).reconstruct(hits)

    assert len(documents) == 1
    assert isinstance(documents[0], LocalDocument)
    assert documents[0].item.id == 1


# ---------------------------------------------------------------------
# Federated search service
# ---------------------------------------------------------------------

async def test_federated_search_mixes_local_and_remote(governing_settings, governing_scope):
    await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "k"}])
    await governing_settings.set_search_settings({GOVERNING_URL: {"enabled": True, "searchable_scopes": [BRAND_URL]}})

    backend = MemoryBackend()
    await index_site(backend, GOVERNING_URL, [make_item(1)])
    await index_site(backend, BRAND_URL, [make_item(2)])
    await backend.apply_settings({"distinct": True, "attributeForDistinct": "site_post_id"})

    service = FederatedSearch(
        QueryPlanner("governing", governing_scope, governing_settings=governing_settings),
        opener_for(backend),
        source=InMemoryContentSource([make_item(1)]),
    )
    results = await service.search("hello")

    assert results.enabled
    assert results.total == 2
    assert {d.kind for d in results.documents} == {"local", "remote"}
    assert results.scopes == sorted([GOVERNING_URL, BRAND_URL])


async def test_disabled_search_never_opens_the_backend(brand_scope):
    cache = AsyncMock()
    cache.get_config_or_default.return_value = BrandConfig.disabled()
    opener = AsyncMock(side_effect=RemoteUnreachable("should not be called"))

    service = FederatedSearch(QueryPlanner("brand", brand_scope, brand_cache=cache), opener)
    results = await service.search("hello")

    assert results.enabled is False
    assert results.documents == []
    opener.assert_not_called()
