"""Caller identity for the HTTP layer.

Devlink does not issue or verify credentials. An upstream authentication
gateway resolves the principal and forwards its user id in the header named
by ``SECURITY_IDENTITY_HEADER`` (``X-User-ID`` by default). When
``SECURITY_API_KEY`` is set, requests must also carry that key in
``X-API-Key`` so that only the gateway can assert identities.
"""

import secrets
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from .exceptions import AuthenticationError
from .settings import settings

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(api_key: Optional[str] = None) -> bool:
    """Verify if the provided API key is valid.

    Args:
        api_key: The API key to validate.

    Returns:
        bool: True if no key is configured or the key matches.
    """
    expected = settings.security.api_key
    if not expected:
        return True
    if not api_key:
        return False
    return secrets.compare_digest(api_key, expected)


async def get_current_user_id(
    request: Request, api_key: Optional[str] = Depends(api_key_header)
) -> str:
    """FastAPI dependency returning the authenticated caller's user id.

    Raises:
        AuthenticationError: If the API key is rejected or no identity was
            forwarded.
    """
    if not verify_api_key(api_key):
        raise AuthenticationError("Invalid API key", error_code="INVALID_API_KEY")

    user_id = request.headers.get(settings.security.identity_header, "").strip()
    if not user_id:
        raise AuthenticationError(
            "No caller identity, authorization denied",
            error_code="MISSING_IDENTITY",
        )
    return user_id
