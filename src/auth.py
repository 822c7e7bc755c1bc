"""
Bearer-token authentication for dashboard-facing routes.

The dashboard signs users in with Supabase Auth and sends the session
JWT as ``Authorization: Bearer <token>``; the token is exchanged for
the user id that scopes every store read and write.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Depends, Header, Request
from supabase import Client

from src.errors import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization`` header or raise 401."""
    if not authorization:
        raise AuthenticationError("Unauthorized")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Unauthorized")
    return token.strip()


class SupabaseAuthenticator:
    """Resolves session tokens through Supabase Auth."""

    def __init__(self, client: Client) -> None:
        self.client = client

    async def authenticate(self, authorization: Optional[str]) -> str:
        """
        Resolve the caller's user id.

        Raises:
            AuthenticationError: Header missing, malformed, or token rejected.
        """
        token = extract_bearer_token(authorization)
        try:
            response = await asyncio.to_thread(self.client.auth.get_user, token)
        except Exception as e:
            logger.warning(f"Token rejected by Supabase Auth: {e}")
            raise AuthenticationError("Unauthorized") from e

        user = getattr(response, "user", None)
        if user is None or not getattr(user, "id", None):
            raise AuthenticationError("Unauthorized")
        return str(user.id)


class UnavailableAuthenticator:
    """Used when the service runs on the local store and Supabase Auth is unreachable."""

    async def authenticate(self, authorization: Optional[str]) -> str:
        extract_bearer_token(authorization)
        raise ConfigurationError("Authentication backend is unavailable")


def get_services(request: Request):
    """Collaborators wired by the application factory."""
    return request.app.state.services


async def current_user(
    authorization: Optional[str] = Header(None),
    services=Depends(get_services),
) -> str:
    """FastAPI dependency: the authenticated caller's user id."""
    return await services.authenticator.authenticate(authorization)
