"""WebSocket bridge to the upstream Socket.IO server.

This is the core of the proxy. For one request it:
1. Opens a WebSocket that continues the polling session from the handshake
2. Runs the Engine.IO probe/upgrade exchange
3. Connects the Socket.IO namespace with the share id
4. Emits the conversation request for one model
5. Yields decoded conversation events until the caller is done

Packets are plain text frames: an Engine.IO type digit, optionally
followed by a Socket.IO type digit and a JSON payload (``42[...]``).
"""

import asyncio
import json
import logging
from enum import Enum
from typing import AsyncIterator, Optional
from urllib.parse import urlencode, urlsplit

import websockets

from .errors import ParseError, TransportError
from .models import REQUEST_EVENT, ConversationEvent, TransportSession, decode_event

logger = logging.getLogger(__name__)

# Engine.IO packets
PING = "2"
PONG = "3"
PROBE = "2probe"
PROBE_ACK = "3probe"
UPGRADE = "5"
CLOSE = "1"

# Socket.IO packets (carried in Engine.IO "4" message packets)
SIO_CONNECT = "40"
SIO_DISCONNECT = "41"
SIO_EVENT = "42"
SIO_CONNECT_ERROR = "44"


class BridgeState(Enum):
    CONNECTING = "connecting"
    PROBING = "probing"
    UPGRADING = "upgrading"
    AUTHENTICATING = "authenticating"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"


def build_ws_url(api_base: str, transport_id: str) -> str:
    """WebSocket URL for upgrading the polling session ``transport_id``."""
    parts = urlsplit(api_base)
    scheme = "wss" if parts.scheme == "https" else "ws"
    query = urlencode({"EIO": "4", "transport": "websocket", "sid": transport_id})
    return f"{scheme}://{parts.netloc}{parts.path.rstrip('/')}/socket.io/?{query}"


def _dumps(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class TransportBridge:
    """
    Owns the upstream WebSocket for a single request.

    The connect and emit packets go out as ordered awaited sends right
    after the upgrade packet, so the upstream always sees
    ``5`` -> ``40{...}`` -> ``42[...]``. Heartbeat pings are answered in
    every state.
    """

    def __init__(
        self,
        session: TransportSession,
        config: dict,
        connector=None,
    ):
        self.session = session
        self.url = build_ws_url(config["API_BASE"], session.transport_id)
        self.origin = config["ORIGIN"]
        self.user_agent = config["USER_AGENT"]
        self.open_timeout = config["WS_OPEN_TIMEOUT"]
        self.send_timeout = config["SEND_TIMEOUT"]
        # Engine.IO closes a session that misses pingInterval + pingTimeout
        self.recv_timeout = config["RECV_TIMEOUT"] or (session.ping_interval + session.ping_timeout)

        self._connect = connector or websockets.connect
        self.ws = None
        self.state = BridgeState.CONNECTING

    async def __aenter__(self) -> "TransportBridge":
        try:
            await self.open()
        except BaseException:
            # The socket may be connected even though the probe failed
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def finished(self) -> bool:
        return self.state in (BridgeState.DONE, BridgeState.ERROR)

    async def open(self):
        """Connect the WebSocket and start the probe."""
        headers = {}
        if self.session.cookie:
            # Without the polling cookie the upstream does not recognise the session
            headers["Cookie"] = self.session.cookie

        try:
            self.ws = await self._connect(
                self.url,
                origin=self.origin,
                user_agent_header=self.user_agent,
                additional_headers=headers,
                open_timeout=self.open_timeout,
                # Engine.IO runs its own heartbeat at the packet level
                ping_interval=None,
            )
        except websockets.exceptions.InvalidStatus as e:
            self.state = BridgeState.ERROR
            raise TransportError(f"WS Error: upgrade rejected (HTTP {e.response.status_code})") from e
        except websockets.exceptions.InvalidURI as e:
            self.state = BridgeState.ERROR
            raise TransportError(f"WS Error: invalid upstream URL: {e}") from e
        except websockets.exceptions.InvalidHandshake as e:
            self.state = BridgeState.ERROR
            raise TransportError(f"WS Error: handshake failed: {e}") from e
        except (asyncio.TimeoutError, TimeoutError) as e:
            self.state = BridgeState.ERROR
            raise TransportError("WS Error: connection timed out") from e
        except OSError as e:
            self.state = BridgeState.ERROR
            raise TransportError(f"WS Error: {e}") from e

        logger.debug(f"WebSocket open for sid {self.session.transport_id[:8]}...")
        await self._send(PROBE)
        self.state = BridgeState.PROBING

    async def events(self, share_id: str, model: str) -> AsyncIterator[ConversationEvent]:
        """Drive the packet state machine and yield conversation events.

        Iteration ends when the caller marks the bridge done, or when the
        upstream closes the socket cleanly (state ERROR, no exception).

        Raises:
            TransportError: abnormal close, send failure, idle timeout or
                a Socket.IO connect error.
        """
        if self.ws is None:
            raise TransportError("WebSocket is not open")

        while not self.finished:
            packet = await self._recv()
            if packet is None:
                if self.state is not BridgeState.DONE:
                    logger.warning("Upstream closed the connection before the conversation ended")
                    self.state = BridgeState.ERROR
                return

            if packet == PING:
                await self._send(PONG)
                continue

            if self.state is BridgeState.PROBING:
                if packet == PROBE_ACK:
                    await self._upgrade(share_id, model)
                else:
                    logger.debug(f"Ignoring {packet[:20]!r} while probing")
                continue

            if packet.startswith(SIO_EVENT):
                try:
                    event = decode_event(packet)
                except ParseError as e:
                    logger.warning(f"WS Message Parse Error: {e.message}")
                    continue
                if event is not None:
                    yield event

            elif packet.startswith(SIO_CONNECT_ERROR):
                self.state = BridgeState.ERROR
                raise TransportError(f"Socket.IO connect rejected: {packet[2:][:200]}")

            elif packet == CLOSE or packet.startswith(SIO_DISCONNECT):
                logger.warning(f"Upstream sent disconnect packet {packet[:20]!r}")
                self.state = BridgeState.ERROR
                return

            else:
                logger.debug(f"Ignoring packet {packet[:20]!r}")

    def mark_done(self):
        """Record that the requested model's conversation has ended."""
        self.state = BridgeState.DONE

    async def close(self):
        """Close the WebSocket. Safe to call more than once."""
        ws, self.ws = self.ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (websockets.exceptions.WebSocketException, OSError) as e:
            logger.debug(f"Error closing WebSocket: {e}")

    async def _upgrade(self, share_id: str, model: str):
        self.state = BridgeState.UPGRADING
        await self._send(UPGRADE)

        self.state = BridgeState.AUTHENTICATING
        await self._send(SIO_CONNECT + _dumps({"shareId": share_id}))

        request = [REQUEST_EVENT, {"shareId": share_id, "llmList": [model]}]
        await self._send(SIO_EVENT + _dumps(request))
        self.state = BridgeState.STREAMING
        logger.debug(f"Conversation request sent for {model}")

    async def _recv(self) -> Optional[str]:
        """Next text frame, or None when the socket closed cleanly."""
        try:
            message = await asyncio.wait_for(self.ws.recv(), timeout=self.recv_timeout)
        except (asyncio.TimeoutError, TimeoutError) as e:
            self.state = BridgeState.ERROR
            raise TransportError(f"No upstream frame for {self.recv_timeout:.0f}s") from e
        except websockets.exceptions.ConnectionClosedOK:
            return None
        except websockets.exceptions.ConnectionClosed as e:
            self.state = BridgeState.ERROR
            raise TransportError(f"WS Error: connection lost ({e})") from e

        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        return message

    async def _send(self, packet: str):
        """Send one packet with timeout so a blocked socket cannot stall the request."""
        ws = self.ws
        if ws is None:
            raise TransportError("WebSocket is not open")
        try:
            await asyncio.wait_for(ws.send(packet), timeout=self.send_timeout)
        except (asyncio.TimeoutError, TimeoutError) as e:
            self.state = BridgeState.ERROR
            raise TransportError(f"WebSocket send timed out after {self.send_timeout}s") from e
        except (websockets.exceptions.WebSocketException, OSError) as e:
            self.state = BridgeState.ERROR
            raise TransportError(f"WS Error: send failed ({e})") from e
