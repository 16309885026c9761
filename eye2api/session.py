"""Share-id resolution against the upstream conversation API.

A share id names the upstream conversation context a WebSocket request
runs in. It is created from the latest user message text.
"""

import logging

import httpx

from .config import FALLBACK_TEXT, upstream_headers
from .errors import UpstreamError

logger = logging.getLogger(__name__)


class SessionResolver:
    """Obtains a share id with one POST to the upstream API."""

    def __init__(self, client: httpx.AsyncClient, config: dict):
        self.client = client
        self.url = f"{config['API_BASE']}/api/v1/conversation/share-id"
        self.headers = upstream_headers(config)

    async def resolve(self, text: str) -> str:
        """Create a share id for ``text``.

        Raises:
            UpstreamError: non-success status, network failure, or a body
                without a ``share_id`` field.
        """
        try:
            response = await self.client.post(self.url, headers=self.headers, json={"text": text})
        except httpx.HTTPError as e:
            raise UpstreamError(f"ShareID request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(f"ShareID Failed ({response.status_code})")

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("ShareID response is not JSON") from e

        share_id = data.get("share_id") if isinstance(data, dict) else None
        if not share_id or not isinstance(share_id, str):
            raise UpstreamError("Failed to obtain Share ID")

        logger.debug(f"Share id {share_id[:8]}... resolved")
        return share_id


async def resolve_share_id(resolver: SessionResolver, text: str) -> str:
    """Resolve a share id, retrying exactly once with the fallback text.

    The retry does not preserve the caller's message: it sends
    ``FALLBACK_TEXT`` ("Hello") as a liveness probe, and the share id it
    returns is bound to that text, so the upstream answers "Hello" rather
    than the original prompt. A second failure propagates.
    """
    try:
        return await resolver.resolve(text)
    except UpstreamError as e:
        logger.warning(f"[Retry] Fetching share id with fallback text ({e.message})")
        return await resolver.resolve(FALLBACK_TEXT)
