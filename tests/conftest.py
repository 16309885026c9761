"""Shared fixtures: test configuration and a scripted upstream WebSocket."""

import asyncio
import json

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

CLOSE_OK = object()
CLOSE_ERROR = object()


class MockWebSocket:
    """Stub upstream Socket.IO server.

    Answers ``2probe`` with ``probe_reply`` frames and the conversation
    request emit with ``conversation`` frames. ``CLOSE_OK`` / ``CLOSE_ERROR``
    in a frame list end the connection cleanly / abnormally. With no
    frames left, recv() blocks like a silent upstream.
    """

    def __init__(self, conversation=(), probe_reply=("3probe",), fail_send: bool = False):
        self.conversation = list(conversation)
        self.probe_reply = list(probe_reply)
        self.fail_send = fail_send
        self.sent: list[str] = []
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.close_calls = 0

    def push(self, *frames):
        for frame in frames:
            self.inbox.put_nowait(frame)

    async def send(self, packet: str):
        if self.fail_send or self.closed:
            raise ConnectionClosedError(None, None)
        self.sent.append(packet)
        if packet == "2probe":
            self.push(*self.probe_reply)
        elif packet.startswith('42["llm:conversation:request"'):
            self.push(*self.conversation)

    async def recv(self):
        frame = await self.inbox.get()
        if frame is CLOSE_OK:
            raise ConnectionClosedOK(None, None)
        if frame is CLOSE_ERROR:
            raise ConnectionClosedError(None, None)
        return frame

    async def close(self):
        self.closed = True
        self.close_calls += 1


class MockConnector:
    """Stands in for websockets.connect and records how it was called."""

    def __init__(self, ws: MockWebSocket | None = None, error: Exception | None = None):
        self.ws = ws
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def __call__(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.ws


def response_event(llm: str, text: str) -> str:
    return "42" + json.dumps(["llm:conversation:response", {"llm": llm, "data": {"data": text}}])


def end_event(llm: str | None = None) -> str:
    payload = {"llm": llm} if llm else {}
    return "42" + json.dumps(["llm:conversation:end", payload])


def _copy(response: httpx.Response) -> httpx.Response:
    """Fresh response per call; httpx binds a response to one request."""
    return httpx.Response(response.status_code, headers=response.headers, content=response.content)


class MockUpstreamHTTP:
    """httpx handler for the share-id and polling handshake endpoints."""

    def __init__(self, share_responses=None, handshake_response=None):
        # One entry per expected share-id call
        self.share_responses = list(share_responses or [httpx.Response(200, json={"share_id": "share-1"})])
        self.handshake_response = handshake_response or httpx.Response(
            200, text='0{"sid":"abc123","pingInterval":25000,"pingTimeout":20000}',
            headers={"set-cookie": "io=abc123"},
        )
        self.share_texts: list[str] = []
        self.handshake_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v1/conversation/share-id":
            self.share_texts.append(json.loads(request.content)["text"])
            if len(self.share_responses) > 1:
                return _copy(self.share_responses.pop(0))
            return _copy(self.share_responses[0])
        if request.url.path == "/socket.io/":
            self.handshake_calls += 1
            return _copy(self.handshake_response)
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def config():
    return {
        "HOST": "127.0.0.1",
        "PORT": 3000,
        "API_MASTER_KEY": "1",
        "API_BASE": "https://sio.example.test",
        "ORIGIN": "https://www.example.test",
        "USER_AGENT": "test-agent",
        "HTTP_TIMEOUT": 5.0,
        "WS_OPEN_TIMEOUT": 5.0,
        "SEND_TIMEOUT": 1.0,
        "RECV_TIMEOUT": 1.0,
    }
