"""eye2api - OpenAI-compatible streaming bridge to the eye2 Socket.IO chat backend."""

__version__ = "0.1.0"
