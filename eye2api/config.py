"""Configuration for the eye2 bridge.

Simple configuration loader from environment variables (a local .env file
is honoured). Upstream constants that never change per deployment live
here as module-level values.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


PROJECT_NAME = "eye2api"

# Models the upstream accepts in its llmList
MODELS = [
    "chat_gpt", "claude", "gemini", "grok_ai", "mistral_ai",
    "qwen", "deepseek", "llama", "ai21", "amazon_nova", "glm", "moonshot",
]
DEFAULT_MODEL = "chat_gpt"

# Text sent when the share-id call has to be retried
FALLBACK_TEXT = "Hello"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


# =============================================================================
# Environment Variable Configuration
# =============================================================================


@lru_cache(maxsize=1)
def load_config() -> dict:
    """
    Load application configuration from environment variables.

    Returns:
        dict with configuration values
    """
    return {
        # Server settings
        "HOST": os.getenv("HOST", "0.0.0.0"),
        "PORT": int(os.getenv("PORT", "3000")),

        # "1" (the default) disables bearer auth on /v1/*
        "API_MASTER_KEY": os.getenv("API_MASTER_KEY", "1"),

        # Upstream
        "API_BASE": os.getenv("EYE2_API_BASE", "https://sio.eye2.ai").rstrip("/"),
        "ORIGIN": os.getenv("EYE2_ORIGIN", "https://www.eye2.ai").rstrip("/"),
        "USER_AGENT": os.getenv("EYE2_USER_AGENT", DEFAULT_USER_AGENT),

        # Timeouts (seconds)
        "HTTP_TIMEOUT": float(os.getenv("HTTP_TIMEOUT", "30.0")),
        "WS_OPEN_TIMEOUT": float(os.getenv("WS_OPEN_TIMEOUT", "15.0")),
        "SEND_TIMEOUT": float(os.getenv("SEND_TIMEOUT", "5.0")),
        # 0 = derive from the Engine.IO ping settings of the handshake
        "RECV_TIMEOUT": float(os.getenv("RECV_TIMEOUT", "0")),
    }


def upstream_headers(config: dict) -> dict:
    """Browser-like headers the upstream HTTP API expects."""
    return {
        "Accept": "*/*",
        "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
        "Content-Type": "application/json",
        "Origin": config["ORIGIN"],
        "Referer": f"{config['ORIGIN']}/",
        "User-Agent": config["USER_AGENT"],
    }


def auth_enabled(config: dict) -> bool:
    """Bearer auth is on unless the master key is empty or the "1" placeholder."""
    key = config.get("API_MASTER_KEY") or ""
    return bool(key) and key != "1"
