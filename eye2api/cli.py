#!/usr/bin/env python3
"""eye2api CLI.

Usage:
    eye2api                       Start the server (same as "serve")
    eye2api serve --port 3000     Start the server on a given port
    eye2api chat "Hi" --model claude
                                  Send one message upstream and print the reply
    eye2api models                List the model catalog

Environment variables (alternative to args):
    HOST, PORT          Server bind address (default: 0.0.0.0:3000)
    API_MASTER_KEY      Bearer key for /v1/* ("1" disables auth)
    EYE2_API_BASE       Upstream base URL (default: https://sio.eye2.ai)
"""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import aclosing

from rich.console import Console

from .config import DEFAULT_MODEL, MODELS, load_config

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("eye2api")
console = Console()


async def run_chat(message: str, model: str, orchestrator=None) -> int:
    """Stream one completion to the terminal. Returns exit code."""
    if orchestrator is None:
        from .orchestrator import RequestOrchestrator
        orchestrator = RequestOrchestrator(load_config())
    body = {"model": model, "messages": [{"role": "user", "content": message}]}

    exit_code = 1
    async with aclosing(orchestrator.stream(body)) as frames:
        async for frame in frames:
            payload = frame[len("data: "):].strip()
            if payload == "[DONE]":
                exit_code = 0
                break
            chunk = json.loads(payload)
            if "error" in chunk:
                console.print(f"\n[red]Error ({chunk['error']['type']}): {chunk['error']['message']}[/red]")
                return 1
            delta = chunk["choices"][0]["delta"]
            if delta.get("content"):
                console.print(delta["content"], end="", markup=False, highlight=False)

    console.print()
    if exit_code:
        log.warning("Stream ended without a terminal chunk")
    return exit_code


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="eye2api",
        description="OpenAI-compatible bridge to the eye2 chat backend",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP server (default)")
    serve.add_argument("--host", default=None, help="Bind address (default: $HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: $PORT or 3000)")

    chat = sub.add_parser("chat", help="Send one message and print the streamed reply")
    chat.add_argument("message", help="User message")
    chat.add_argument(
        "--model",
        default=DEFAULT_MODEL,
        choices=MODELS,
        help=f"Upstream model (default: {DEFAULT_MODEL})",
    )

    sub.add_parser("models", help="List available models")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "models":
        for model in MODELS:
            print(model)
        sys.exit(0)

    if args.command == "chat":
        try:
            exit_code = asyncio.run(run_chat(args.message, args.model))
        except KeyboardInterrupt:
            exit_code = 130
        sys.exit(exit_code)

    from .main import run
    run(
        host=getattr(args, "host", None),
        port=getattr(args, "port", None),
        log_level="debug" if args.verbose else "info",
    )


if __name__ == "__main__":
    main()
