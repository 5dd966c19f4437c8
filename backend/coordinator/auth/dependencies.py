"""FastAPI dependencies for sender authentication.

Every caller presents a token via `Authorization: Bearer` or `X-API-Key`. The
token is matched against a fixed allow-list mapping token -> identity; unknown
tokens are rejected before any store is touched.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from coordinator.config import Settings, get_settings
from coordinator.errors import AuthError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def resolve_sender(token: str | None, sender_tokens: dict[str, str]) -> str | None:
    """Return the identity for token, comparing every entry in constant time."""
    if not token:
        return None
    sender = None
    for known_token, identity in sender_tokens.items():
        if hmac.compare_digest(known_token.encode(), token.encode()):
            sender = identity
    return sender


async def get_current_sender(
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    api_key: str | None = Depends(api_key_header),
    settings: Settings = Depends(get_settings),
) -> str:
    token = bearer.credentials if bearer else api_key
    if not token:
        raise AuthError("Not authenticated")

    sender = resolve_sender(token, settings.sender_tokens)
    if sender is None:
        logger.warning("auth_rejected", extra={"token_prefix": token[:4]})
        raise AuthError("Unauthorized")
    return sender


# Type alias for dependency injection
CurrentSender = Annotated[str, Depends(get_current_sender)]
