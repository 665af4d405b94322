import pytest

from onesearch.core.crypto import Encryptor
from onesearch.core.errors import ScopeNotConfigured
from onesearch.sync.governing import CREDENTIALS_KEY, SHARED_SITES_KEY, GoverningSettings
from onesearch.sync.models import BrandConfig, IndexCredentials

from conftest import BRAND_URL, GOVERNING_URL, OTHER_URL


# ---------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------

@pytest.mark.parametrize("passphrase", ["short", "x" * 32, "a much longer passphrase than thirty-two characters"])
def test_encrypt_round_trip(passphrase):
    encryptor = Encryptor(passphrase)
    token = encryptor.encrypt("write-key-123")
    assert token != "write-key-123"
    assert encryptor.decrypt(token) == "write-key-123"


def test_empty_values_pass_through(encryptor):
    assert encryptor.encrypt("") == ""
    assert encryptor.decrypt("") == ""


def test_wrong_key_cannot_decrypt(encryptor):
    token = Encryptor("another-passphrase").encrypt("secret")
    assert encryptor.decrypt(token) is None


def test_passphrase_required():
    with pytest.raises(ValueError):
        Encryptor("")


# ---------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------

async def test_credentials_stored_encrypted(governing_settings, store):
    await governing_settings.set_credentials(IndexCredentials(app_id=" APP ", write_key="KEY"))

    raw = await store.get(CREDENTIALS_KEY)
    assert raw["app_id"] == "APP"
    assert raw["write_key"] != "KEY"

    credentials = await governing_settings.get_credentials()
    assert (credentials.app_id, credentials.write_key) == ("APP", "KEY")
    assert credentials.complete


async def test_environment_credentials_used_until_stored(store, encryptor, governing_scope):
    settings = GoverningSettings(store, encryptor, governing_scope, IndexCredentials(app_id="ENV", write_key="K"))
    assert (await settings.get_credentials()).app_id == "ENV"


# ---------------------------------------------------------------------
# Shared sites
# ---------------------------------------------------------------------

async def test_shared_sites_sanitized_and_encrypted(governing_settings, store):
    await governing_settings.set_shared_sites([
        {"url": "https://Brand.Example", "name": "Brand", "api_key": "k1"},
        {"url": "not a url", "api_key": "k2"},
        {"url": OTHER_URL, "api_key": ""},
        {"url": GOVERNING_URL, "api_key": "self"},
    ])

    sites = await governing_settings.get_shared_sites()
    assert list(sites) == [BRAND_URL]
    assert sites[BRAND_URL].api_key == "k1"
    assert (await store.get(SHARED_SITES_KEY))[0]["api_key"] != "k1"


async def test_find_site_by_token(governing_settings):
    await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "k1"}])

    assert (await governing_settings.find_site_by_token("k1")).url == BRAND_URL
    assert await governing_settings.find_site_by_token("k2") is None
    assert await governing_settings.find_site_by_token("") is None


async def test_removing_a_site_prunes_its_settings(governing_settings):
    await governing_settings.set_shared_sites([
        {"url": BRAND_URL, "api_key": "k1"},
        {"url": OTHER_URL, "api_key": "k2"},
    ])
    await governing_settings.set_entity_map({BRAND_URL: ["post"], OTHER_URL: ["page"]})
    await governing_settings.set_search_settings({
        GOVERNING_URL: {"enabled": True, "searchable_scopes": [BRAND_URL, OTHER_URL]},
        OTHER_URL: {"enabled": True, "searchable_scopes": []},
    })

    removed = await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "k1"}])

    assert [s.url for s in removed] == [OTHER_URL]
    assert await governing_settings.get_entity_map() == {BRAND_URL: ["post"]}
    search = await governing_settings.get_search_settings()
    assert list(search) == [GOVERNING_URL]
    assert search[GOVERNING_URL].searchable_scopes == [BRAND_URL]


# ---------------------------------------------------------------------
# Entities and search settings
# ---------------------------------------------------------------------

async def test_entity_map_drops_unknown_sites(governing_settings):
    await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "k1"}])

    saved = await governing_settings.set_entity_map({
        "https://BRAND.example": ["post", " page ", "post", ""],
        OTHER_URL: ["post"],
        "garbage": ["post"],
    })

    assert saved == {BRAND_URL: ["post", "page"]}
    assert await governing_settings.get_entities(OTHER_URL) == []


async def test_search_settings_accept_wire_spelling(governing_settings):
    await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "k1"}])

    saved = await governing_settings.set_search_settings({
        BRAND_URL: {"algolia_enabled": True, "searchable_sites": [GOVERNING_URL, OTHER_URL]},
    })

    assert saved[BRAND_URL].enabled
    assert saved[BRAND_URL].searchable_scopes == [GOVERNING_URL]


async def test_brand_config_for_registered_brand(governing_settings):
    await governing_settings.set_credentials(IndexCredentials(app_id="APP", write_key="KEY"))
    await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "k1"}])
    await governing_settings.set_entity_map({BRAND_URL: ["post"]})
    await governing_settings.set_search_settings({BRAND_URL: {"enabled": True, "searchable_scopes": [GOVERNING_URL]}})

    config = await governing_settings.brand_config_for(BRAND_URL)
    wire = config.to_wire()

    assert wire["success"] is True
    assert wire["algolia_credentials"] == {"app_id": "APP", "write_key": "KEY"}
    assert wire["search_settings"] == {"algolia_enabled": True, "searchable_sites": [GOVERNING_URL]}
    assert wire["indexable_entities"] == ["post"]
    assert wire["available_sites"] == [GOVERNING_URL, BRAND_URL]
    assert BrandConfig.from_wire(wire).model_dump() == config.model_dump()


async def test_brand_config_for_unknown_site(governing_settings):
    with pytest.raises(ScopeNotConfigured):
        await governing_settings.brand_config_for(OTHER_URL)
