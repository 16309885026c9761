"""
Tests for StreamTranslator.

Verifies model filtering, verbatim fragment forwarding and that at most
one closing chunk (terminal or error) is ever produced.
"""

import json

from eye2api.errors import TransportError, UpstreamError
from eye2api.models import EndEvent, ResponseEvent
from eye2api.translator import SSE_DONE, StreamTranslator, format_sse


def _translator() -> StreamTranslator:
    return StreamTranslator("chatcmpl-test", "chat_gpt")


class TestContentChunks:

    def test_matching_fragment_becomes_delta(self):
        chunk = _translator().translate(ResponseEvent(llm="chat_gpt", text="Hel"))

        assert chunk["id"] == "chatcmpl-test"
        assert chunk["object"] == "chat.completion.chunk"
        assert chunk["model"] == "chat_gpt"
        assert isinstance(chunk["created"], int)
        assert chunk["choices"] == [{"index": 0, "delta": {"content": "Hel"}, "finish_reason": None}]

    def test_fragments_are_not_merged_or_reordered(self):
        translator = _translator()
        chunks = [
            translator.translate(ResponseEvent(llm="chat_gpt", text="Hel")),
            translator.translate(ResponseEvent(llm="chat_gpt", text="lo")),
        ]
        assert [c["choices"][0]["delta"]["content"] for c in chunks] == ["Hel", "lo"]

    def test_fragment_is_forwarded_verbatim(self):
        text = "  line one\n\tline two  "
        chunk = _translator().translate(ResponseEvent(llm="chat_gpt", text=text))
        assert chunk["choices"][0]["delta"]["content"] == text

    def test_other_model_fragment_is_ignored(self):
        assert _translator().translate(ResponseEvent(llm="claude", text="Hi")) is None

    def test_empty_fragment_is_ignored(self):
        assert _translator().translate(ResponseEvent(llm="chat_gpt", text="")) is None


class TestTermination:

    def test_matching_end_gives_terminal_chunk(self):
        translator = _translator()
        chunk = translator.translate(EndEvent(llm="chat_gpt"))

        assert chunk["choices"] == [{"index": 0, "delta": {}, "finish_reason": "stop"}]
        assert translator.finished

    def test_end_without_model_terminates(self):
        translator = _translator()
        assert translator.translate(EndEvent(llm=None)) is not None
        assert translator.finished

    def test_other_model_end_does_not_terminate(self):
        """An end event naming another model is ignored; a later matching one ends."""
        translator = _translator()
        assert translator.translate(EndEvent(llm="claude")) is None
        assert not translator.finished

        assert translator.translate(EndEvent(llm="chat_gpt")) is not None
        assert translator.finished

    def test_nothing_after_terminal_chunk(self):
        translator = _translator()
        translator.translate(EndEvent(llm="chat_gpt"))

        assert translator.translate(ResponseEvent(llm="chat_gpt", text="late")) is None
        assert translator.translate(EndEvent(llm="chat_gpt")) is None
        assert translator.fail(TransportError("closed")) is None


class TestErrorChunks:

    def test_bridge_error_chunk(self):
        chunk = _translator().fail(UpstreamError("ShareID Failed (500)"))
        assert chunk == {"error": {"message": "ShareID Failed (500)", "type": "upstream_error", "code": 502}}

    def test_unexpected_error_chunk(self):
        chunk = _translator().fail(RuntimeError("boom"))
        assert chunk == {"error": {"message": "boom", "type": "internal_error", "code": 500}}

    def test_only_one_error_chunk(self):
        translator = _translator()
        assert translator.fail(TransportError("first")) is not None
        assert translator.fail(TransportError("second")) is None
        assert translator.translate(EndEvent()) is None


class TestSSEFraming:

    def test_format_sse(self):
        frame = format_sse({"a": "é"})
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {"a": "é"}

    def test_done_marker(self):
        assert SSE_DONE == "data: [DONE]\n\n"
