"""
Authentication & Authorization Dependencies

Two kinds of callers reach the API:

1. Peer sites, identified by the shared secret in ``X-OneSearch-Token``.
   - On the governing site the token must belong to a registered brand.
   - On a brand site the token must equal the site's own API key (the
     governing site holds the same key in its registry).
2. Administrators, identified by a bearer JWT (``iss=onesearch-admin``,
   ``aud=onesearch``) carrying the ``manage_options`` scope.

Tokens are compared in constant time.
"""

from __future__ import annotations

import hmac
from typing import Callable, Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..api.dependencies import get_app_settings, get_governing_settings
from ..config import Settings
from ..core.errors import InvalidScopeError
from ..scope import normalize_url
from ..sync.client import ORIGIN_HEADER, TOKEN_HEADER
from ..sync.governing import GoverningSettings
from .jwt_utils import ADMIN_AUDIENCE, ADMIN_ISSUER, ADMIN_SCOPE
from .models import AdminContext, SiteContext


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------
# Admin JWT
# ---------------------------------------------------------------------

def _decode_admin_token(token: str, settings: Settings) -> dict:
    secret = settings.jwt_admin_secret.get_secret_value()
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT verification configuration error.",
        )

    return jwt.decode(
        token,
        secret,
        algorithms=[settings.jwt_algo],
        audience=ADMIN_AUDIENCE,
        issuer=ADMIN_ISSUER,
        options={"require": ["iss", "aud", "iat", "exp", "sub", "scope"]},
    )


def verify_admin_jwt(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_app_settings),
) -> AdminContext:
    """
    Verify an administrator bearer token.

    Raises
    ------
    HTTPException(401) for missing, invalid or expired tokens.
    """
    if creds is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
        )

    try:
        payload = _decode_admin_token(creds.credentials, settings)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired.",
        )
    except jwt.InvalidAudienceError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token audience.",
        )
    except jwt.InvalidIssuerError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token issuer.",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or malformed token.",
        )

    scopes = payload.get("scope")
    if not isinstance(scopes, list):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="'scope' claim must be a list.",
        )

    return AdminContext(username=str(payload["sub"]), scopes=scopes)


def require_scopes(*required_scopes: str) -> Callable:
    """
    Create a dependency enforcing that the admin token grants every scope.
    """

    def check_scopes(admin: AdminContext = Depends(verify_admin_jwt)) -> AdminContext:
        missing = [s for s in required_scopes if s not in admin.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scope(s): {', '.join(missing)}",
            )
        return admin

    return check_scopes


require_admin = require_scopes(ADMIN_SCOPE)


# ---------------------------------------------------------------------
# Shared-secret token
# ---------------------------------------------------------------------

def _same_site(origin: str, url: str) -> bool:
    try:
        return normalize_url(origin) == url
    except InvalidScopeError:
        return False


async def _site_for_token(
    token: Optional[str],
    settings: Settings,
    governing_settings: GoverningSettings,
    origin: Optional[str] = None,
) -> Optional[SiteContext]:
    if not token:
        return None

    if settings.is_governing:
        site = await governing_settings.find_site_by_token(token)
        if site is None:
            return None
        # A caller announcing its URL must be the site the token belongs to
        if origin and not _same_site(origin, site.url):
            return None
        return SiteContext(site_url=site.url, via="token")

    own_key = settings.api_key.get_secret_value()
    if own_key and hmac.compare_digest(own_key.encode(), token.encode()):
        return SiteContext(site_url=settings.governing_url or settings.site_url, via="token")
    return None


async def require_site_token(
    token: Optional[str] = Header(None, alias=TOKEN_HEADER),
    origin: Optional[str] = Header(None, alias=ORIGIN_HEADER),
    settings: Settings = Depends(get_app_settings),
    governing_settings: GoverningSettings = Depends(get_governing_settings),
) -> SiteContext:
    site = await _site_for_token(token, settings, governing_settings, origin)
    if site is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing OneSearch token.",
        )
    return site


async def require_token_or_admin(
    token: Optional[str] = Header(None, alias=TOKEN_HEADER),
    origin: Optional[str] = Header(None, alias=ORIGIN_HEADER),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_app_settings),
    governing_settings: GoverningSettings = Depends(get_governing_settings),
) -> SiteContext:
    """Accept either a valid peer token or an administrator JWT."""
    site = await _site_for_token(token, settings, governing_settings, origin)
    if site is not None:
        return site

    if creds is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing OneSearch token.",
        )

    admin = verify_admin_jwt(creds, settings)
    if ADMIN_SCOPE not in admin.scopes:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing required scope(s): {ADMIN_SCOPE}",
        )
    return SiteContext(site_url=settings.site_url, via="admin")
