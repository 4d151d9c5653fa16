"""Request identity for the API.

This service never sees a login.  The auth proxy in front of it validates
the member's session, then forwards the request with two headers:

  Authorization: Bearer <API_KEY>   proves the request came through the proxy
  X-User-Id: <user id>              the member the proxy signed in

``require_api_token`` checks the first on every /api route.  An empty
API_KEY means there is no proxy to trust: local development (DEBUG=true)
passes everything through, anything else refuses to serve.
``current_user_id`` reads the second.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from whiskeynight.config import settings

log = logging.getLogger("whiskeynight.auth")

_bearer_scheme = HTTPBearer(auto_error=False)


def _from_proxy(credentials: HTTPAuthorizationCredentials | None, secret: str) -> bool:
    if credentials is None:
        return False
    return hmac.compare_digest(credentials.credentials.encode(), secret.encode())


async def require_api_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> None:
    """Reject requests that did not come through the auth proxy."""
    secret = settings.api_key

    if not secret:
        if settings.debug:
            return
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Proxy secret not configured. Set API_KEY in .env.",
        )

    if not _from_proxy(credentials, secret):
        log.warning("Rejected request without a valid proxy secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def current_user_id(
    x_user_id: str | None = Header(default=None),
) -> str:
    """The member the proxy signed in."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return x_user_id.strip()
