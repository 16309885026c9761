"""Request, session and upstream event types."""

import json
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import DEFAULT_MODEL, FALLBACK_TEXT, MODELS
from .errors import ClientError, ParseError


# =============================================================================
# Inbound request
# =============================================================================

class ChatMessage(BaseModel):
    """One OpenAI-style chat message."""
    model_config = ConfigDict(frozen=True)

    role: str
    # Plain text, or a list of OpenAI content parts
    content: Union[str, list[Any], None] = None

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            parts = [
                p.get("text", "")
                for p in self.content
                if isinstance(p, dict) and p.get("type") == "text"
            ]
            return "".join(parts)
        return ""


class ChatRequest(BaseModel):
    """Request body for /v1/chat/completions."""
    model_config = ConfigDict(frozen=True)

    messages: list[ChatMessage] = Field(default_factory=list)
    model: str = DEFAULT_MODEL
    id: str = Field(default_factory=lambda: f"chatcmpl-{uuid.uuid4()}")

    @field_validator("model", mode="before")
    @classmethod
    def _known_model(cls, value: Any) -> str:
        if value is None or value == "":
            return DEFAULT_MODEL
        if value not in MODELS:
            raise ValueError(f"Unknown model '{value}'. Available: {', '.join(MODELS)}")
        return value

    @property
    def prompt_text(self) -> str:
        """Text of the latest message, used to open the upstream conversation."""
        if not self.messages:
            return FALLBACK_TEXT
        return self.messages[-1].text or FALLBACK_TEXT


def parse_chat_request(body: Any) -> ChatRequest:
    """Validate a decoded JSON body, raising ClientError on any problem."""
    if not isinstance(body, dict):
        raise ClientError("Request body must be a JSON object")
    # Callers cannot choose the chunk id
    body = {k: v for k, v in body.items() if k in ("messages", "model")}
    try:
        return ChatRequest(**body)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        message = first.get("msg", "Invalid request body")
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ClientError(f"{loc}: {message}" if loc else message) from e


# =============================================================================
# Upstream transport session
# =============================================================================

@dataclass(frozen=True)
class TransportSession:
    """Engine.IO polling session obtained by the handshake."""
    transport_id: str
    cookie: Optional[str] = None
    ping_interval: float = 25.0  # seconds
    ping_timeout: float = 20.0   # seconds


# =============================================================================
# Conversation events
# =============================================================================

RESPONSE_EVENT = "llm:conversation:response"
END_EVENT = "llm:conversation:end"
REQUEST_EVENT = "llm:conversation:request"


@dataclass(frozen=True)
class ResponseEvent:
    """A text fragment produced by one upstream model."""
    llm: Optional[str]
    text: str


@dataclass(frozen=True)
class EndEvent:
    """End of a model's answer. ``llm`` is None when the upstream omits it."""
    llm: Optional[str] = None


ConversationEvent = Union[ResponseEvent, EndEvent]


def decode_event(packet: str) -> Optional[ConversationEvent]:
    """Decode a Socket.IO ``42`` event packet.

    Returns None for event names this bridge does not act on.
    Raises ParseError if the packet is not ``42`` followed by a JSON array
    whose first element is a string event name.
    """
    if not packet.startswith("42"):
        raise ParseError(f"Not an event packet: {packet[:20]!r}")

    try:
        decoded = json.loads(packet[2:])
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid event JSON: {e}") from e

    if not isinstance(decoded, list) or len(decoded) < 2 or not isinstance(decoded[0], str):
        raise ParseError("Event packet is not an [eventName, payload] array")

    name, payload = decoded[0], decoded[1]
    if not isinstance(payload, dict):
        payload = {}

    if name == RESPONSE_EVENT:
        data = payload.get("data")
        text = data.get("data") if isinstance(data, dict) else None
        return ResponseEvent(
            llm=payload.get("llm"),
            text=text if isinstance(text, str) else "",
        )
    if name == END_EVENT:
        return EndEvent(llm=payload.get("llm") or None)
    return None
