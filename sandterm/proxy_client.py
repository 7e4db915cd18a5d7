"""Client for the trusted local proxy.

Mirrors what the browser terminal does: probe ``/status`` with a short
timeout, then send the command to ``/exec``. Failures are reported in the
result instead of raised.
"""

import logging
from typing import Optional

import httpx

from sandterm.models import ProxyResult

logger = logging.getLogger(__name__)

DEFAULT_PROXY_URL = "http://localhost:3030"
STATUS_TIMEOUT = 1.0


class LocalProxyClient:
    def __init__(
        self,
        base_url: str = DEFAULT_PROXY_URL,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "LocalProxyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def is_available(self) -> bool:
        """Check whether the proxy is running."""
        try:
            response = await self._client.get("/status", timeout=STATUS_TIMEOUT)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Local proxy not available at {self.base_url}: {e}")
            return False

    async def execute(self, command: str) -> ProxyResult:
        """Run a command through the proxy."""
        if not await self.is_available():
            return ProxyResult(
                output="",
                error='Local proxy server not running. Start it with "sandterm-proxy".',
            )

        try:
            response = await self._client.post("/exec", json={"command": command})
        except httpx.HTTPError as e:
            logger.error(f"Error executing local command: {e}")
            return ProxyResult(output="", error=str(e) or type(e).__name__)

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            return ProxyResult(
                output="",
                error=data.get("error")
                or f"Proxy server error: {response.status_code} {response.reason_phrase}",
            )

        return ProxyResult(output=data.get("output", ""), error=data.get("error"))
