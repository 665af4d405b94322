"""
JWT Utility Functions

Issues short-lived administrator tokens for the admin endpoints (used by
the admin UI backend, scripts and tests).
"""

from __future__ import annotations

import time
from typing import Any, Dict, List

import jwt

ADMIN_ISSUER = "onesearch-admin"
ADMIN_AUDIENCE = "onesearch"
ADMIN_SCOPE = "manage_options"


class JWTConfigurationError(RuntimeError):
    """Raised when JWT generation cannot proceed due to configuration issues."""


def create_admin_jwt(
    username: str,
    secret: str,
    scopes: List[str] = None,
    ttl_seconds: int = 300,
    algorithm: str = "HS256",
) -> str:
    """
    Generate a short-lived administrator JWT.

    Parameters
    ----------
    username : str
        Administrator the token is issued to.
    secret : str
        Signing secret (``ONESEARCH_JWT_ADMIN_SECRET``).
    scopes : List[str]
        Granted capabilities; defaults to ``["manage_options"]``.
    ttl_seconds : int
        Token lifetime.
    algorithm : str
        Signing algorithm.

    Returns
    -------
    str
        Encoded JWT for an ``Authorization: Bearer <token>`` header.

    Raises
    ------
    JWTConfigurationError
        If the secret or TTL is unusable.
    """
    if not secret:
        raise JWTConfigurationError("jwt_admin_secret is not configured. Cannot generate JWT.")
    if ttl_seconds <= 0:
        raise JWTConfigurationError(f"JWT TTL must be a positive integer; got {ttl_seconds}")

    now = int(time.time())
    payload: Dict[str, Any] = {
        "iss": ADMIN_ISSUER,
        "aud": ADMIN_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "sub": username,
        "scope": scopes if scopes is not None else [ADMIN_SCOPE],
    }

    try:
        return jwt.encode(payload, secret, algorithm=algorithm)
    except Exception as exc:
        raise JWTConfigurationError(
            f"Failed to generate JWT: {type(exc).__name__}: {str(exc)}"
        ) from exc
