"""
FastAPI dependencies for API key authentication.
Provides require_api_key for protecting the /api routes.
"""

import secrets
from typing import Optional

from fastapi import Header, Request

from pdf_service.errors import UnauthorizedError


async def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> None:
    """
    Dependency that checks the API key of the request.

    The key is accepted from the ``X-API-Key`` header or as a bearer token:
        X-API-Key: <key>
        Authorization: Bearer <key>

    Raises:
        UnauthorizedError: 401 if the key is missing or wrong
    """
    api_key = x_api_key
    if not api_key and authorization:
        api_key = authorization.removeprefix("Bearer ").strip()

    if not api_key:
        raise UnauthorizedError(
            "API key is required. Provide it via X-API-Key header or Authorization header."
        )

    expected = request.app.state.services.settings.api_key
    if not secrets.compare_digest(api_key.encode(), expected.encode()):
        raise UnauthorizedError("Invalid API key provided.")
