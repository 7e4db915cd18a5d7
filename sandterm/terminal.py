"""Terminal session protocol over a WebSocket.

Each inbound text frame is one command line. Output is written back frame by
frame as it is produced, and every response cycle ends with exactly one
prompt frame. Frames are handled strictly one at a time: the next command is
not read until the previous one's prompt has been sent, so input that arrives
early is queued by the transport and processed in order.
"""

import logging
import uuid
from contextlib import aclosing
from typing import Callable, Optional

from aiohttp import WSMsgType, web

from sandterm.ansi import BOLD_BLUE, PROMPT, color, error_line, notice, render_chunk
from sandterm.engine import ContainerEngine
from sandterm.errors import RuntimeUnavailableError, SandtermError, SessionClosedError
from sandterm.models import ChunkKind, RuntimeStatus, SessionState
from sandterm.simulator import simulate as default_simulate

logger = logging.getLogger(__name__)

WELCOME = "Welcome to the sandterm terminal!"


def banner(runtime: RuntimeStatus, image: str) -> str:
    """Welcome text, telling sandboxed and simulated mode apart."""
    text = f"{color(WELCOME, BOLD_BLUE)}\r\n"
    if runtime.available:
        return text + (
            f"Connected to sandboxed execution environment (Docker - {image} default).\r\n"
        )
    return text + notice(
        "Docker not available. Running in simulated mode (limited functionality)."
    )


class TerminalSession:
    """One client connection and its command loop."""

    def __init__(
        self,
        ws: web.WebSocketResponse,
        runtime: RuntimeStatus,
        engine: Optional[ContainerEngine],
        image: str,
        simulate: Callable[[str], str] = default_simulate,
    ):
        self.ws = ws
        self.runtime = runtime
        self.engine = engine
        self.image = image
        self.simulate = simulate
        self.session_id = uuid.uuid4().hex
        self.state = SessionState.OPEN

    async def run(self) -> None:
        """Serve the session until the transport closes."""
        logger.info(f"Terminal session {self.session_id} opened ({self.runtime.mode} mode)")
        try:
            await self.send(banner(self.runtime, self.image))
            await self.send(PROMPT)
            self.state = SessionState.AWAITING_INPUT

            async for msg in self.ws:
                if msg.type == WSMsgType.TEXT:
                    line = msg.data
                elif msg.type == WSMsgType.BINARY:
                    line = msg.data.decode("utf-8", errors="replace")
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(
                        f"Terminal session {self.session_id} transport error: "
                        f"{self.ws.exception()}"
                    )
                    break
                else:
                    continue

                self.state = SessionState.DISPATCHING
                await self.handle_command(line)
                self.state = SessionState.AWAITING_INPUT

        except SessionClosedError as e:
            logger.info(f"Terminal session {self.session_id} closed mid-response: {e}")
        finally:
            self.state = SessionState.CLOSED
            logger.info(f"Terminal session {self.session_id} closed")

    async def handle_command(self, line: str) -> None:
        """Run one response cycle: output or error, then the prompt."""
        command = line.strip()
        if command:
            try:
                if self.runtime.available:
                    await self._run_in_sandbox(command)
                else:
                    await self._run_simulated(command)
            except SessionClosedError:
                raise
            except SandtermError as e:
                logger.error(f"Execution error in session {self.session_id}: {e.render()}")
                await self.send(error_line(e.render()))
            except Exception as e:
                logger.exception(f"Unexpected execution error in session {self.session_id}")
                await self.send(error_line(f"Error: {e}"))

        await self.send(PROMPT)

    async def _run_in_sandbox(self, command: str) -> None:
        if self.engine is None:
            raise RuntimeUnavailableError("no container engine configured")

        # Closing the stream early still tears the sandbox down
        async with aclosing(self.engine.execute(command, self.image)) as chunks:
            async for chunk in chunks:
                if chunk.kind is ChunkKind.EXIT:
                    continue
                frame = render_chunk(chunk)
                if frame:
                    await self.send(frame)

    async def _run_simulated(self, command: str) -> None:
        logger.info(f"Simulating command execution: {command}")
        await self.send(notice(f"Simulating: {command}"))
        await self.send(self.simulate(command))

    async def send(self, frame: str) -> None:
        """Write one frame, raising SessionClosedError if the transport is gone."""
        if self.ws.closed:
            raise SessionClosedError("transport already closed")
        try:
            await self.ws.send_str(frame)
        except ConnectionError as e:
            raise SessionClosedError(str(e)) from e
