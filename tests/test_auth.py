import time

import jwt
import pytest
from fastapi import HTTPException

from onesearch.auth.jwt_utils import JWTConfigurationError, create_admin_jwt
from onesearch.auth.security import _site_for_token, require_admin, require_scopes, verify_admin_jwt
from onesearch.config import Settings

from conftest import BRAND_URL, GOVERNING_URL, OTHER_URL

SECRET = "test-secret-admin-must-be-long-enough"

settings = Settings(site_url=GOVERNING_URL, jwt_admin_secret=SECRET)


def create_valid_token(
    issuer="onesearch-admin",
    audience="onesearch",
    user="admin",
    scopes=None,
    expired=False,
    secret=SECRET,
):
    if scopes is None:
        scopes = ["manage_options"]

    now = int(time.time())
    iat = now - 3600 if expired else now
    exp = iat - 10 if expired else now + 30

    payload = {
        "iss": issuer,
        "aud": audience,
        "iat": iat,
        "exp": exp,
        "sub": user,
        "scope": scopes,
    }

    return jwt.encode(payload, secret, algorithm="HS256")


class MockCredentials:
    def __init__(self, token):
        self.credentials = token


# ---------------------------------------------------------------------
# Admin JWT
# ---------------------------------------------------------------------

def test_valid_jwt_accepted():
    admin = verify_admin_jwt(MockCredentials(create_valid_token()), settings)

    assert admin.username == "admin"
    assert "manage_options" in admin.scopes


def test_missing_credentials_rejected():
    with pytest.raises(HTTPException) as excinfo:
        verify_admin_jwt(None, settings)
    assert excinfo.value.status_code == 401


def test_expired_jwt_rejected():
    with pytest.raises(HTTPException) as excinfo:
        verify_admin_jwt(MockCredentials(create_valid_token(expired=True)), settings)
    assert excinfo.value.status_code == 401
    assert "expired" in excinfo.value.detail


def test_wrong_issuer_rejected():
    with pytest.raises(HTTPException) as excinfo:
        verify_admin_jwt(MockCredentials(create_valid_token(issuer="WrongIssuer")), settings)
    assert excinfo.value.status_code == 401
    assert "issuer" in excinfo.value.detail


def test_wrong_audience_rejected():
    with pytest.raises(HTTPException) as excinfo:
        verify_admin_jwt(MockCredentials(create_valid_token(audience="wrong-audience")), settings)
    assert excinfo.value.status_code == 401
    assert "audience" in excinfo.value.detail


def test_wrong_signature_rejected():
    token = create_valid_token(secret="wrong-secret-key-that-is-long-enough")
    with pytest.raises(HTTPException) as excinfo:
        verify_admin_jwt(MockCredentials(token), settings)
    assert excinfo.value.status_code == 401
    assert "Invalid" in excinfo.value.detail


def test_unconfigured_secret_is_a_server_error():
    with pytest.raises(HTTPException) as excinfo:
        verify_admin_jwt(MockCredentials(create_valid_token()), Settings(site_url=GOVERNING_URL))
    assert excinfo.value.status_code == 500


def test_missing_scope_rejected():
    admin = verify_admin_jwt(MockCredentials(create_valid_token(scopes=["read"])), settings)

    with pytest.raises(HTTPException) as excinfo:
        require_admin(admin)
    assert excinfo.value.status_code == 403
    assert "Missing required scope" in excinfo.value.detail

    assert require_scopes("read")(admin) is admin


def test_admin_jwt_generation():
    token = create_admin_jwt("ada", SECRET, ttl_seconds=60)

    payload = jwt.decode(token, SECRET, algorithms=["HS256"], audience="onesearch")

    assert payload["iss"] == "onesearch-admin"
    assert payload["sub"] == "ada"
    assert payload["scope"] == ["manage_options"]
    assert payload["exp"] - payload["iat"] == 60


@pytest.mark.parametrize("secret,ttl", [("", 60), (SECRET, 0)])
def test_admin_jwt_generation_misconfigured(secret, ttl):
    with pytest.raises(JWTConfigurationError):
        create_admin_jwt("ada", secret, ttl_seconds=ttl)


# ---------------------------------------------------------------------
# Shared-secret token
# ---------------------------------------------------------------------

async def test_governing_site_accepts_registered_brand_token(governing_settings):
    await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "brand-key"}])

    site = await _site_for_token("brand-key", settings, governing_settings)

    assert site.site_url == BRAND_URL
    assert site.via == "token"
    assert await _site_for_token("other-key", settings, governing_settings) is None
    assert await _site_for_token(None, settings, governing_settings) is None


async def test_governing_site_checks_announced_origin(governing_settings):
    await governing_settings.set_shared_sites([{"url": BRAND_URL, "api_key": "brand-key"}])

    assert await _site_for_token("brand-key", settings, governing_settings, origin="https://BRAND.example")
    assert await _site_for_token("brand-key", settings, governing_settings, origin=OTHER_URL) is None
    assert await _site_for_token("brand-key", settings, governing_settings, origin="garbage") is None


async def test_brand_site_accepts_its_own_key(governing_settings):
    brand = Settings(site_url=BRAND_URL, site_type="brand", governing_url=GOVERNING_URL, api_key="brand-key")

    site = await _site_for_token("brand-key", brand, governing_settings)

    assert site.site_url == GOVERNING_URL
    assert await _site_for_token("nope", brand, governing_settings) is None
