"""eye2api HTTP server.

OpenAI-compatible front for the eye2 Socket.IO chat backend:
1. GET  /                      - health check with the model list
2. GET  /v1/models             - static model catalog
3. POST /v1/chat/completions   - streaming chat completion (SSE)

Every chat request gets its own upstream session and WebSocket; see
``orchestrator.RequestOrchestrator``.
"""

import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from rich.console import Console
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import MODELS, PROJECT_NAME, auth_enabled, load_config
from .orchestrator import RequestOrchestrator

console = Console()


def error_response(message: str, status: int, code) -> JSONResponse:
    """Non-streaming error in the OpenAI error shape."""
    return JSONResponse(
        status_code=status,
        content={"error": {"message": message, "type": "api_error", "code": code}},
    )


class BearerAuth:
    """Reject any /v1/ request without the master key, matched route or not."""

    def __init__(self, app, api_key: str):
        self.app = app
        self.expected = f"Bearer {api_key}"

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["path"].startswith("/v1/"):
            if Headers(scope=scope).get("authorization") != self.expected:
                response = error_response("Unauthorized", 401, "unauthorized")
                await response(scope, receive, send)
                return
        await self.app(scope, receive, send)


class OptionsNoContent:
    """Answer any OPTIONS request with 204, like a bare CORS preflight."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            await Response(status_code=204)(scope, receive, send)
            return
        await self.app(scope, receive, send)


def create_app(
    config: Optional[dict] = None,
    orchestrator: Optional[RequestOrchestrator] = None,
) -> FastAPI:
    """Build the FastAPI app. Arguments override environment configuration."""
    config = config or load_config()
    orchestrator = orchestrator or RequestOrchestrator(config)

    app = FastAPI(
        title=PROJECT_NAME,
        description="OpenAI-compatible bridge to the eye2 chat backend",
        version=__version__,
    )

    # Last added runs first: CORS -> OPTIONS 204 -> bearer auth -> routes
    if auth_enabled(config):
        app.add_middleware(BearerAuth, api_key=config["API_MASTER_KEY"])
    app.add_middleware(OptionsNoContent)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(f"Path not found: {request.url.path}", 404, "not_found")
        return error_response(str(exc.detail), exc.status_code, "api_error")

    @app.get("/")
    async def health():
        return {"status": "alive", "service": PROJECT_NAME, "models": MODELS}

    @app.get("/v1/models")
    async def list_models():
        created = int(time.time())
        return {
            "object": "list",
            "data": [
                {"id": model, "object": "model", "created": created, "owned_by": PROJECT_NAME}
                for model in MODELS
            ],
        }

    @app.post("/v1/chat/completions")
    async def chat_completions(request: Request):
        """Stream a chat completion.

        Always answers 200 with an event stream; failures arrive as a
        single ``{"error": {...}}`` chunk inside the stream.
        """
        try:
            body = await request.json()
        except ValueError:
            body = None

        return StreamingResponse(
            orchestrator.stream(body),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering
            },
        )

    return app


app = create_app()


def run(host: Optional[str] = None, port: Optional[int] = None, log_level: str = "info"):
    """Serve the app with uvicorn."""
    import uvicorn

    config = load_config()
    host = host or config["HOST"]
    port = port or config["PORT"]

    console.print(f"[bold green]{PROJECT_NAME}[/bold green] v{__version__}")
    console.print("=" * 40)
    console.print(f"Upstream: [cyan]{config['API_BASE']}[/cyan]")
    console.print(f"Auth: {'[green]bearer key[/green]' if auth_enabled(config) else '[yellow]disabled[/yellow]'}")
    console.print(f"Starting server at [cyan]http://{host}:{port}[/cyan]")
    console.print("Press Ctrl+C to stop\n")

    uvicorn.run(app, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    run()
