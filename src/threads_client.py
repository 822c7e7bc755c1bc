"""
Threads Client - Graph API access for post context and connection tests.

Only the two calls the auto-reply pipeline needs are implemented:

    GET /{media_id}?fields=id,text,username,timestamp   (post context)
    GET /me?access_token=...                            (connection test)

Configuration:
    THREADS_GRAPH_URL=https://graph.threads.net
    THREADS_ACCESS_TOKEN=...
    THREADS_TIMEOUT=10
"""

import logging
from typing import Optional

import httpx

from src.errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

POST_FIELDS = "id,text,username,timestamp"


class ThreadsClient:
    """Async client for the Threads graph API."""

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://graph.threads.net",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            access_token: Long-lived platform access token.
            base_url: Graph API root.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _get(self, path: str, params: dict, access_token: str) -> dict:
        if not access_token:
            raise ConfigurationError("Threads access token is not configured")

        params = {**params, "access_token": access_token}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(f"{self.base_url}/{path}", params=params)
        except httpx.TimeoutException as e:
            raise ExternalServiceError(f"Threads API timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Threads API request failed: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Threads API {path} returned {response.status_code}")
            raise ExternalServiceError(
                f"Threads API error: {response.status_code}",
                provider_status=response.status_code,
                raw_body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError("Threads API returned invalid JSON") from e

    async def get_post(self, media_id: str) -> dict:
        """
        Fetch the text and author of a post.

        Returns:
            Dict with ``id``, ``text``, ``username`` and ``timestamp`` keys
            (keys the platform omits are absent).

        Raises:
            ConfigurationError: No access token configured.
            ExternalServiceError: Non-200 response, invalid body, or timeout.
        """
        logger.debug(f"Fetching post context for {media_id}")
        return await self._get(media_id, {"fields": POST_FIELDS}, self.access_token)

    async def get_me(self, access_token: Optional[str] = None) -> dict:
        """Fetch the account behind a token; used to test dashboard credentials."""
        return await self._get("me", {}, access_token or self.access_token)
