#!/usr/bin/env python3
"""Example Python client for the terminal server and the local proxy.

Usage:
    uv run python scripts/terminal_client_example.py [ws://localhost:3000/terminal]

Requires sandterm-server to be running; the local proxy part is skipped
when sandterm-proxy is not.
"""

import asyncio
import sys

import aiohttp

from sandterm.ansi import PROMPT
from sandterm.proxy_client import LocalProxyClient

COMMANDS = ["node -v", "echo hello from the sandbox", "ls /nonexistent", "pwd"]


async def read_cycle(ws: aiohttp.ClientWebSocketResponse) -> str:
    """Collect frames up to and including the next prompt."""
    frames = []
    while True:
        frame = await ws.receive_str(timeout=120)
        frames.append(frame)
        if frame == PROMPT:
            return "".join(frames)


async def main(url: str):
    print("=== Terminal Session Test ===\n")

    async with aiohttp.ClientSession() as session:
        async with session.ws_connect(url) as ws:
            print(await read_cycle(ws))

            for command in COMMANDS:
                print(f"\n>>> {command}")
                await ws.send_str(command)
                print(await read_cycle(ws), end="")

    print("\n\n=== Local Proxy Test ===\n")
    async with LocalProxyClient() as proxy:
        if not await proxy.is_available():
            print("  Local proxy not running, skipping")
        else:
            result = await proxy.execute("uname -a")
            print(f"  Output: {result.output.strip()}")
            print(f"  Error: {result.error}")

            result = await proxy.execute("sudo whoami")
            print(f"  Blocked command error: {result.error}")

    print("\nDone!")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:3000/terminal"))
