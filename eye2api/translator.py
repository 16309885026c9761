"""Translation of conversation events into OpenAI chat.completion.chunk frames."""

import json
import time
from typing import Optional

from .errors import BridgeError
from .models import ConversationEvent, EndEvent, ResponseEvent

SSE_DONE = "data: [DONE]\n\n"


def format_sse(chunk: dict) -> str:
    """Frame one chunk as a Server-Sent Event."""
    return f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n"


class StreamTranslator:
    """
    Turns events for one requested model into stream chunks.

    At most one closing chunk (terminal or error) is ever produced; after
    it, every call returns None.
    """

    def __init__(self, request_id: str, model: str):
        self.request_id = request_id
        self.model = model
        self.finished = False  # terminal chunk emitted
        self.failed = False    # error chunk emitted

    @property
    def closed(self) -> bool:
        return self.finished or self.failed

    def translate(self, event: ConversationEvent) -> Optional[dict]:
        """Chunk for ``event``, or None when the event does not concern us."""
        if self.closed:
            return None

        if isinstance(event, ResponseEvent):
            if event.llm == self.model and event.text:
                return self._chunk({"content": event.text}, None)
            return None

        if isinstance(event, EndEvent):
            if event.llm is None or event.llm == self.model:
                self.finished = True
                return self._chunk({}, "stop")
            return None

        return None

    def fail(self, error: Exception) -> Optional[dict]:
        """Error chunk for ``error``, unless the stream already closed."""
        if self.closed:
            return None
        self.failed = True

        if isinstance(error, BridgeError):
            return {"error": error.to_dict()}
        return {
            "error": {
                "message": str(error) or "Internal Server Error",
                "type": "internal_error",
                "code": 500,
            }
        }

    def _chunk(self, delta: dict, finish_reason: Optional[str]) -> dict:
        return {
            "id": self.request_id,
            "object": "chat.completion.chunk",
            "created": int(time.time()),
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
