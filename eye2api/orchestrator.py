"""Per-request pipeline: share id -> handshake -> WebSocket -> SSE chunks.

Each call to ``RequestOrchestrator.stream`` owns its own HTTP client and
WebSocket; nothing is shared between concurrent requests.
"""

import logging
import time
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Optional

import httpx

from .bridge import TransportBridge
from .config import load_config
from .errors import BridgeError, ClientError
from .handshake import HandshakeClient
from .models import parse_chat_request
from .session import SessionResolver, resolve_share_id
from .translator import SSE_DONE, StreamTranslator, format_sse

logger = logging.getLogger(__name__)


class RequestOrchestrator:
    """Runs one chat completion request against the upstream."""

    def __init__(
        self,
        config: Optional[dict] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        connector=None,
    ):
        self.config = config or load_config()
        self._client_factory = client_factory or self._default_client
        self._connector = connector

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config["HTTP_TIMEOUT"])

    async def stream(self, body: Any) -> AsyncIterator[str]:
        """Yield SSE frames for the decoded request ``body``.

        The last frame is either ``data: [DONE]`` after the terminal chunk,
        or a single error chunk. If the upstream drops the connection
        before the conversation ends, the stream just stops; callers must
        treat the end of the stream as completion.

        Closing the generator early (client disconnect) closes the upstream
        WebSocket and the HTTP client.
        """
        try:
            request = parse_chat_request(body)
        except ClientError as e:
            logger.warning(f"Rejected chat request: {e.message}")
            yield format_sse({"error": e.to_dict()})
            return

        rid = request.id[len("chatcmpl-"):][:8]
        translator = StreamTranslator(request.id, request.model)
        start_time = time.time()
        fragments = 0

        logger.info(f"[{rid}] Chat request for {request.model} ({len(request.messages)} messages)")

        try:
            async with self._client_factory() as client:
                share_id = await resolve_share_id(
                    SessionResolver(client, self.config), request.prompt_text
                )
                session = await HandshakeClient(client, self.config).handshake()

            async with TransportBridge(session, self.config, connector=self._connector) as bridge:
                async with aclosing(bridge.events(share_id, request.model)) as events:
                    async for event in events:
                        chunk = translator.translate(event)
                        if chunk is None:
                            continue
                        yield format_sse(chunk)
                        if translator.finished:
                            bridge.mark_done()
                            yield SSE_DONE
                            break
                        fragments += 1

            if translator.finished:
                elapsed_ms = int((time.time() - start_time) * 1000)
                logger.info(f"[{rid}] Completed: {fragments} fragments in {elapsed_ms}ms")
            else:
                logger.warning(f"[{rid}] Upstream closed before the conversation ended; closing stream")

        except BridgeError as e:
            logger.error(f"[{rid}] [Fatal] {e.kind}: {e.message}")
            chunk = translator.fail(e)
            if chunk is not None:
                yield format_sse(chunk)
        except Exception as e:
            logger.exception(f"[{rid}] [Fatal] Unexpected error")
            chunk = translator.fail(e)
            if chunk is not None:
                yield format_sse(chunk)
