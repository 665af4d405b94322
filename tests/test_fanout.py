import httpx
import pytest

from onesearch.core.errors import PartialFailure
from onesearch.content.source import InMemoryContentSource
from onesearch.index.writer import IndexWriter
from onesearch.sync.client import TOKEN_HEADER, SyncClient
from onesearch.sync.fanout import (
    CACHE_BUST_DONE_MESSAGE,
    REINDEX_DONE_MESSAGE,
    BrandFanOut,
    FanOutResult,
    ScopeOutcome,
    reindex_network,
)

from conftest import GOVERNING_URL, make_item

BRANDS = {
    "https://a.example/": "key-a",
    "https://b.example/": "key-b",
    "https://c.example/": "key-c",
}


@pytest.fixture
async def registered(governing_settings):
    await governing_settings.set_shared_sites(
        [{"url": url, "name": url, "api_key": key} for url, key in BRANDS.items()]
    )
    return governing_settings


def brand_handler(slow=(), requests=None):
    def handler(request):
        if requests is not None:
            requests.append(request)
        host = request.url.host
        if host in slow:
            raise httpx.ReadTimeout("timed out", request=request)
        if request.method == "DELETE":
            return httpx.Response(200, json={"success": True, "message": "Cache cleared."})
        return httpx.Response(200, json={"success": True, "message": f"Indexed {host}"})

    return handler


async def test_one_timeout_among_three_brands(registered):
    requests = []
    client = SyncClient(transport=httpx.MockTransport(brand_handler(slow={"b.example"}, requests=requests)))

    result = await BrandFanOut(registered, client, timeout=1).reindex_all_brands()

    assert result.success is False
    statuses = {url: o.status for url, o in result.results.items()}
    assert statuses == {
        "https://a.example/": "ok",
        "https://b.example/": "error",
        "https://c.example/": "ok",
    }
    lines = result.message.split("\n")
    assert len(lines) == 3
    assert lines[0] == "https://a.example/: Indexed a.example"
    assert lines[1].startswith("https://b.example/: Request timed out")

    # sequential, one call per brand, each with its own secret
    assert [r.url.host for r in requests] == ["a.example", "b.example", "c.example"]
    assert [r.headers[TOKEN_HEADER] for r in requests] == ["key-a", "key-b", "key-c"]
    assert all(r.url.path == "/onesearch/v1/re-index" for r in requests)

    with pytest.raises(PartialFailure) as excinfo:
        result.raise_for_failures()
    assert excinfo.value.results["https://b.example/"]["status"] == "error"


async def test_all_brands_ok(registered):
    client = SyncClient(transport=httpx.MockTransport(brand_handler()))

    result = await BrandFanOut(registered, client).reindex_all_brands()

    assert result.success
    assert result.message == REINDEX_DONE_MESSAGE
    result.raise_for_failures()


async def test_brand_reporting_failure_counts_as_error(registered):
    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "1 of 2 batches failed"})

    result = await BrandFanOut(registered, SyncClient(transport=httpx.MockTransport(handler))).reindex_all_brands()

    assert not result.success
    assert {o.message for o in result.results.values()} == {"1 of 2 batches failed"}


async def test_cache_bust_never_raises(registered):
    requests = []
    client = SyncClient(transport=httpx.MockTransport(brand_handler(slow={"a.example"}, requests=requests)))

    result = await BrandFanOut(registered, client).bust_brand_caches()

    assert not result.success
    assert result.results["https://c.example/"].status == "ok"
    assert {r.method for r in requests} == {"DELETE"}
    assert all(r.url.path == "/onesearch/v1/brand-config" for r in requests)


async def test_cache_bust_without_brands(governing_settings):
    result = await BrandFanOut(governing_settings, SyncClient(transport=httpx.MockTransport(brand_handler()))).bust_brand_caches()
    assert result.success
    assert result.message == CACHE_BUST_DONE_MESSAGE


async def test_reindex_network_indexes_governing_site_first(registered, backend, builder):
    await registered.set_entity_map({GOVERNING_URL: ["post"]})
    writer = IndexWriter(backend, builder, InMemoryContentSource([make_item(1)]))
    client = SyncClient(transport=httpx.MockTransport(brand_handler(slow={"c.example"})))

    result = await reindex_network(writer, registered, BrandFanOut(registered, client))

    assert list(result.results)[0] == GOVERNING_URL
    assert result.results[GOVERNING_URL].status == "ok"
    assert len(backend.records) == 1
    assert not result.success


def test_message_lists_every_site_when_any_failed():
    result = FanOutResult.from_results(
        {
            "https://a.example/": ScopeOutcome(status="ok", message="done"),
            "https://b.example/": ScopeOutcome(status="error", message="boom"),
        },
        REINDEX_DONE_MESSAGE,
    )
    assert result.message == "https://a.example/: done\nhttps://b.example/: boom"
