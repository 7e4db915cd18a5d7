#!/usr/bin/env python3
"""
local_proxy - Trusted same-host command execution.

Runs commands directly on the host, without any sandbox. The only access
control is that the request must be addressed to the loopback host, which
makes this suitable for a local developer tool and nothing else. A short
blocklist guards against accidental self-harm; it is not a security boundary.

Endpoints:
    POST /exec      - Execute command, return {output, error}
    GET  /status    - Liveness probe

Usage:
    sandterm-proxy --host 127.0.0.1 --port 3030
"""

import argparse
import asyncio
import dataclasses
import json
import logging
from asyncio.subprocess import PIPE
from http import HTTPStatus
from typing import Optional

from aiohttp import web

from sandterm.config import Settings
from sandterm.errors import PolicyRejectedError
from sandterm.models import ProxyResult

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Recursive forced delete and privilege escalation
BLOCKED_SUBSTRINGS = ("rm -rf", "rm -fr", "sudo")

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})

NO_OUTPUT = "Command executed (no output)"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class OutputLimitExceeded(Exception):
    def __init__(self, stream: str, data: bytes):
        super().__init__(f"{stream} maxBuffer length exceeded")
        self.stream = stream
        self.data = data


def host_is_loopback(host_header: str) -> bool:
    """Check that a Host header names the loopback address (port ignored)."""
    host = host_header.strip().lower()
    if host.startswith("["):
        host = host[1:].split("]", 1)[0]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host in LOOPBACK_HOSTS


def check_command(command: str) -> None:
    """Refuse commands containing a blocked substring.

    Raises:
        PolicyRejectedError: if the command matches the blocklist.
    """
    for blocked in BLOCKED_SUBSTRINGS:
        if blocked in command:
            raise PolicyRejectedError(
                f"potentially dangerous command rejected (contains '{blocked}')"
            )


class LocalProxy:
    def __init__(
        self,
        max_buffer: int = 1024 * 1024,
        timeout: Optional[float] = 60.0,
    ):
        self.max_buffer = max_buffer
        self.timeout = timeout

    @web.middleware
    async def cors(self, request: web.Request, handler) -> web.StreamResponse:
        """Allow the browser client, served from another port, to call us."""
        if request.method == "OPTIONS":
            response = web.Response(status=HTTPStatus.NO_CONTENT)
        else:
            response = await handler(request)
        response.headers.update(CORS_HEADERS)
        return response

    @web.middleware
    async def loopback_only(self, request: web.Request, handler) -> web.StreamResponse:
        """Reject requests not addressed to the loopback host."""
        host = request.headers.get("Host", "")
        if not host_is_loopback(host):
            logger.warning(f"Rejected request addressed to {host!r}")
            return web.json_response(
                {"error": "Access denied - only localhost is allowed"},
                status=HTTPStatus.FORBIDDEN,
            )
        return await handler(request)

    async def status(self, request: web.Request) -> web.Response:
        """Liveness probe."""
        return web.json_response({"status": "Local proxy running"})

    async def exec_command(self, request: web.Request) -> web.Response:
        """Execute a command on the host and return its output."""
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response(
                {"error": "Invalid JSON"}, status=HTTPStatus.BAD_REQUEST
            )

        command = body.get("command") if isinstance(body, dict) else None
        if not command or not isinstance(command, str):
            return web.json_response(
                {"error": "Command is required"}, status=HTTPStatus.BAD_REQUEST
            )

        try:
            check_command(command)
        except PolicyRejectedError as e:
            logger.warning(f"Refused command {command!r}: {e}")
            return web.json_response(
                {"error": e.render()}, status=HTTPStatus.FORBIDDEN
            )

        logger.info(f"Executing command: {command}")
        result = await self.run(command)
        return web.json_response(dataclasses.asdict(result))

    async def run(self, command: str) -> ProxyResult:
        """Run a command in the host shell with capped output."""
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=PIPE,
                stderr=PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to spawn {command!r}: {e}")
            return ProxyResult(output="", error=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(
                self._collect(process), timeout=self.timeout
            )
        except OutputLimitExceeded as e:
            await self._kill(process)
            return ProxyResult(output=_decode(e.data), error=str(e))
        except asyncio.TimeoutError:
            await self._kill(process)
            return ProxyResult(
                output="", error=f"Command timed out after {self.timeout:g} seconds"
            )

        error = None
        if process.returncode != 0:
            error = f"Command failed with exit code {process.returncode}: {command}"
        return ProxyResult(
            output=_decode(stdout) or _decode(stderr) or NO_OUTPUT,
            error=error,
        )

    async def _collect(self, process: asyncio.subprocess.Process) -> tuple[bytes, bytes]:
        readers = [
            asyncio.ensure_future(self._read_capped(process.stdout, "stdout")),
            asyncio.ensure_future(self._read_capped(process.stderr, "stderr")),
        ]
        try:
            stdout, stderr = await asyncio.gather(*readers)
        finally:
            for reader in readers:
                reader.cancel()
        await process.wait()
        return stdout, stderr

    async def _read_capped(self, stream: asyncio.StreamReader, name: str) -> bytes:
        data = bytearray()
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                return bytes(data)
            if len(data) + len(chunk) > self.max_buffer:
                data.extend(chunk[: self.max_buffer - len(data)])
                raise OutputLimitExceeded(name, bytes(data))
            data.extend(chunk)

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application(middlewares=[self.cors, self.loopback_only])
        app.router.add_get("/status", self.status)
        app.router.add_post("/exec", self.exec_command)
        return app


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def main():
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Trusted local command proxy")
    parser.add_argument(
        "--host",
        default=settings.proxy_host,
        help=f"Host to bind to (default: {settings.proxy_host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.proxy_port,
        help=f"Port to listen on (default: {settings.proxy_port})",
    )
    parser.add_argument(
        "--max-buffer",
        type=int,
        default=settings.proxy_max_buffer,
        help=f"Output cap per stream in bytes (default: {settings.proxy_max_buffer})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.proxy_timeout,
        help="Per-command timeout in seconds (default: 60)",
    )
    args = parser.parse_args()

    proxy = LocalProxy(
        max_buffer=args.max_buffer,
        timeout=args.timeout if args.timeout and args.timeout > 0 else None,
    )
    app = proxy.create_app()

    logger.info(f"Local proxy server running on {args.host}:{args.port}")
    logger.info("IMPORTANT: Only requests addressed to localhost are accepted")

    web.run_app(app, host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()
