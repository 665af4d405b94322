import httpx
import pytest

from onesearch.core.errors import RemoteInvalidResponse, RemoteUnreachable
from onesearch.sync.cache import BRAND_CONFIG_KEY, BrandConfigCache
from onesearch.sync.client import GoverningLink, SyncClient
from onesearch.sync.models import BrandConfig

from conftest import BRAND_URL, GOVERNING_URL

WIRE_CONFIG = {
    "success": True,
    "algolia_credentials": {"app_id": "APP", "write_key": "KEY"},
    "search_settings": {"algolia_enabled": True, "searchable_sites": [GOVERNING_URL, "not a url"]},
    "indexable_entities": ["post", "page", "post"],
    "available_sites": [GOVERNING_URL, BRAND_URL],
}


class CountingGoverning:
    """MockTransport handler counting brand-config fetches."""

    def __init__(self, response=None):
        self.calls = 0
        self.response = response or httpx.Response(200, json=WIRE_CONFIG)

    def __call__(self, request):
        self.calls += 1
        assert request.url.path == "/onesearch/v1/brand-config"
        return self.response


def make_cache(store, handler, ttl=3600):
    client = SyncClient(transport=httpx.MockTransport(handler))
    return BrandConfigCache(store, GoverningLink(client, GOVERNING_URL, "secret"), ttl=ttl)


async def test_second_read_within_ttl_makes_no_network_call(store, clock):
    handler = CountingGoverning()
    cache = make_cache(store, handler)

    first = await cache.get_config()
    clock.advance(3599)
    second = await cache.get_config()

    assert handler.calls == 1
    assert first.model_dump() == second.model_dump()
    assert second.credentials.app_id == "APP"
    assert second.indexable_types == ["post", "page"]
    assert second.search_scope.searchable_scopes == [GOVERNING_URL]


async def test_expired_entry_is_refetched(store, clock):
    handler = CountingGoverning()
    cache = make_cache(store, handler)

    await cache.get_config()
    clock.advance(3600)
    await cache.get_config()

    assert handler.calls == 2


async def test_invalidate_forces_exactly_one_refetch(store):
    handler = CountingGoverning()
    cache = make_cache(store, handler)
    await cache.get_config()

    await cache.invalidate()
    assert await store.get(BRAND_CONFIG_KEY) is None
    await cache.get_config()
    await cache.get_config()

    assert handler.calls == 2


async def test_unreachable_governing_site_raises(store):
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(RemoteUnreachable):
        await make_cache(store, handler).get_config()


async def test_error_response_is_not_cached(store):
    handler = CountingGoverning(httpx.Response(200, json={"success": False, "message": "Unknown site"}))
    cache = make_cache(store, handler)

    with pytest.raises(RemoteInvalidResponse, match="Unknown site"):
        await cache.get_config()
    assert await store.get(BRAND_CONFIG_KEY) is None


async def test_default_is_disabled_when_unavailable(store, brand_scope):
    handler = CountingGoverning(httpx.Response(503, text="maintenance"))

    config = await make_cache(store, handler).get_config_or_default()

    assert config.model_dump() == BrandConfig.disabled().model_dump()
    assert config.searchable_scopes(brand_scope) == []
