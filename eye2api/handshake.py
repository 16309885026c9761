"""Engine.IO polling handshake.

The upstream only upgrades a WebSocket that continues an existing polling
session, so every request first opens one over HTTP to learn the session
id (``sid``) and the cookie that binds the WebSocket to it.
"""

import json
import logging
import secrets
import string

import httpx

from .config import upstream_headers
from .errors import UpstreamError
from .models import TransportSession

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def _cache_buster() -> str:
    """Random base36 token for the ``t`` query parameter."""
    return "".join(secrets.choice(_BASE36) for _ in range(11))


def parse_polling_frame(body: str) -> dict:
    """Extract the JSON object from a polling frame such as ``0{"sid":...}``.

    Only the suffix starting at the first ``{`` is parsed; the length or
    packet-type prefix in front of it is ignored.
    """
    start = body.find("{")
    if start == -1:
        raise UpstreamError("Invalid Handshake Response")
    try:
        data = json.loads(body[start:])
    except json.JSONDecodeError as e:
        raise UpstreamError(f"Invalid Handshake Response: {e}") from e
    if not isinstance(data, dict):
        raise UpstreamError("Invalid Handshake Response")
    return data


class HandshakeClient:
    """Opens the Engine.IO polling session."""

    def __init__(self, client: httpx.AsyncClient, config: dict):
        self.client = client
        self.url = f"{config['API_BASE']}/socket.io/"
        self.headers = upstream_headers(config)

    async def handshake(self) -> TransportSession:
        """Perform the polling handshake.

        Returns:
            TransportSession with the sid and the verbatim ``set-cookie``
            header (None when the upstream sets no cookie).

        Raises:
            UpstreamError: non-success status, network failure or an
                unparseable frame.
        """
        params = {"EIO": "4", "transport": "polling", "t": _cache_buster()}
        try:
            response = await self.client.get(self.url, params=params, headers=self.headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Handshake request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(f"Handshake Failed ({response.status_code})")

        data = parse_polling_frame(response.text)
        sid = data.get("sid")
        if not sid or not isinstance(sid, str):
            raise UpstreamError("Handshake response has no sid")

        heartbeat = {}
        # Engine.IO reports its heartbeat settings in milliseconds
        ping_interval = data.get("pingInterval")
        ping_timeout = data.get("pingTimeout")
        if isinstance(ping_interval, (int, float)) and isinstance(ping_timeout, (int, float)):
            heartbeat = {"ping_interval": ping_interval / 1000, "ping_timeout": ping_timeout / 1000}

        session = TransportSession(
            transport_id=sid,
            cookie=response.headers.get("set-cookie"),
            **heartbeat,
        )

        logger.debug(f"Handshake ok: sid={sid[:8]}..., cookie={'yes' if session.cookie else 'no'}")
        return session
