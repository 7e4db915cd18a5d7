"""Terminal server: WebSocket sessions backed by sandboxed execution.

The container runtime is probed once at startup. If it is reachable, every
command runs in a throwaway container; otherwise sessions fall back to the
simulated shell for the lifetime of the process.

Usage:
    sandterm-server --host 0.0.0.0 --port 3000 --image node:alpine
"""

import argparse
import asyncio
import dataclasses
import logging
import weakref
from typing import Optional

from aiohttp import WSCloseCode, web

from sandterm.config import Settings
from sandterm.engine import ContainerEngine
from sandterm.models import RuntimeStatus
from sandterm.probe import probe_runtime
from sandterm.terminal import TerminalSession

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class TerminalServer:
    def __init__(
        self,
        runtime: RuntimeStatus,
        settings: Settings,
        engine: Optional[ContainerEngine] = None,
    ):
        self.runtime = runtime
        self.settings = settings
        if engine is None and runtime.available:
            engine = ContainerEngine(
                runtime.client,
                exec_timeout=settings.exec_timeout,
                stop_timeout=settings.stop_timeout,
            )
        self.engine = engine
        self._sockets: weakref.WeakSet = weakref.WeakSet()

    async def health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({"status": "ok", "mode": self.runtime.mode})

    async def terminal(self, request: web.Request) -> web.WebSocketResponse:
        """Serve one terminal session over a WebSocket."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        logger.info(f"WebSocket client connected from {request.remote}")

        self._sockets.add(ws)
        try:
            session = TerminalSession(ws, self.runtime, self.engine, self.settings.image)
            await session.run()
        finally:
            self._sockets.discard(ws)
            logger.info("WebSocket client disconnected")
        return ws

    async def _close_sockets(self, app: web.Application) -> None:
        for ws in set(self._sockets):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")

    async def _close_client(self, app: web.Application) -> None:
        if self.runtime.client is not None:
            await asyncio.get_event_loop().run_in_executor(None, self.runtime.client.close)

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_get("/health", self.health)
        app.router.add_get(self.settings.terminal_path, self.terminal)
        app.on_shutdown.append(self._close_sockets)
        app.on_cleanup.append(self._close_client)
        return app


def create_app(
    runtime: RuntimeStatus,
    settings: Optional[Settings] = None,
    engine: Optional[ContainerEngine] = None,
) -> web.Application:
    return TerminalServer(runtime, settings or Settings(), engine).create_app()


def main():
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Sandboxed terminal server")
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Host to bind to (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to listen on (default: {settings.port})",
    )
    parser.add_argument(
        "--image",
        default=settings.image,
        help=f"Sandbox image for command execution (default: {settings.image})",
    )
    parser.add_argument(
        "--docker-host",
        default=settings.docker_host,
        help="Docker daemon URL (default: DOCKER_HOST or the platform socket)",
    )
    args = parser.parse_args()

    settings = dataclasses.replace(
        settings,
        host=args.host,
        port=args.port,
        image=args.image,
        docker_host=args.docker_host,
    )

    runtime = probe_runtime(settings)
    app = create_app(runtime, settings)

    logger.info(
        f"Terminal server listening on {settings.host}:{settings.port}"
        f"{settings.terminal_path} ({runtime.mode} mode)"
    )
    web.run_app(app, host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
