"""Error taxonomy for the request pipeline.

Every error that can end a request carries a ``kind`` tag and a numeric
``code`` so it can be rendered as a single error chunk on the stream.
``ParseError`` is the exception: it is recovered per frame by the bridge.
"""


class BridgeError(Exception):
    """Base class for pipeline errors."""

    kind = "internal_error"
    code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message, "type": self.kind, "code": self.code}


class UpstreamError(BridgeError):
    """Upstream HTTP call failed or returned a malformed body."""

    kind = "upstream_error"
    code = 502


class TransportError(BridgeError):
    """WebSocket connect, send, receive or close failed."""

    kind = "transport_error"
    code = 502


class ParseError(BridgeError):
    """Inbound frame could not be decoded."""

    kind = "parse_error"
    code = 400


class ClientError(BridgeError):
    """Request body is invalid."""

    kind = "invalid_request_error"
    code = 400
