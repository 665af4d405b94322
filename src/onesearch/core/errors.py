"""
Errors and Global Error Handling

This module defines the OneSearch exception hierarchy and the FastAPI
exception handlers that translate it into HTTP responses.

Design Goals
------------
- Backend and transport failures are re-raised as typed errors at the
  boundary where they happen (``raise ... from exc``)
- Typed errors map to deterministic ``{success, code, message}`` bodies
- Anything else is logged with its trace and answered with a generic 500
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("onesearch.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class OneSearchError(Exception):
    """Base class for every error the service raises on purpose."""

    code = "onesearch_error"
    status_code = 500

    def __init__(self, message: str = "", *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}


class CredentialsMissing(OneSearchError):
    """No index credentials are configured or they could not be obtained."""

    code = "credentials_missing"
    status_code = 503


class IndexUnavailable(OneSearchError):
    """The search backend rejected a request or could not be reached."""

    code = "index_unavailable"
    status_code = 502


class RemoteUnreachable(OneSearchError):
    """A peer site did not answer, timed out, or answered with an error status."""

    code = "remote_unreachable"
    status_code = 502


class RemoteInvalidResponse(OneSearchError):
    """A peer site answered with a body that is not the expected JSON shape."""

    code = "remote_invalid_response"
    status_code = 502


class RecordOverBudget(OneSearchError):
    """A content item's metadata alone exceeds the record size limit."""

    code = "record_over_budget"
    status_code = 422


class ScopeNotConfigured(OneSearchError):
    """The requesting scope is unknown to the governing site."""

    code = "scope_not_configured"
    status_code = 403


class InvalidScopeError(OneSearchError, ValueError):
    """A site URL could not be normalized into a scope key."""

    code = "invalid_scope"
    status_code = 400


class PartialFailure(OneSearchError):
    """Some parts of a multi-target operation failed."""

    code = "partial_failure"
    status_code = 500

    def __init__(self, message: str, results: Dict[str, Any]) -> None:
        super().__init__(message, details={"results": results})
        self.results = results


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def onesearch_error_handler(
    request: Request,
    exc: OneSearchError,
) -> JSONResponse:
    """
    Translate a typed OneSearch error into its JSON response.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : OneSearchError
        The raised error.

    Returns
    -------
    JSONResponse
        ``{success: false, code, message}`` with the error's status code.
    """
    logger.warning(
        "%s during %s %s: %s",
        exc.code,
        request.method,
        request.url.path,
        exc.message,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "code": exc.code, "message": exc.message},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full stack trace and returns a generic 500 with no internal
    details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "success": False,
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
