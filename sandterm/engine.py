import asyncio
import codecs
import logging
import uuid
from typing import Any, AsyncIterator, Callable, Optional, TypeVar

import docker
import requests
from docker.errors import DockerException, ImageNotFound, NotFound
from docker.models.containers import Container
from docker.utils.socket import read as read_socket

from sandterm.demux import FrameDemuxer, StreamType
from sandterm.errors import (
    CommandExecutionError,
    ExecutionTimeoutError,
    ImagePullError,
    ImageResolutionError,
    RuntimeUnavailableError,
    SandboxLifecycleError,
    SandtermError,
    StreamDemuxError,
)
from sandterm.models import ChunkKind, OutputChunk

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Keeps the sandbox running so commands can be exec'd into it
IDLE_COMMAND = ["/bin/sh", "-c", "while true; do sleep 1; done"]
READ_SIZE = 4096

_CHUNK_KINDS = {
    StreamType.STDIN: ChunkKind.STDOUT,
    StreamType.STDOUT: ChunkKind.STDOUT,
    StreamType.STDERR: ChunkKind.STDERR,
}


class ContainerEngine:
    """Runs each command in its own throwaway container.

    Every execution request gets a fresh sandbox: the image is resolved
    (pulled only when missing), an idle container is created with
    auto-removal enabled, the command runs as an exec instance, and the
    container is stopped when the request ends, on success or failure.

    The docker client is shared between concurrent requests. Each request
    only touches its own container and exec instance.
    """

    def __init__(
        self,
        client: docker.DockerClient,
        exec_timeout: Optional[float] = 120.0,
        stop_timeout: int = 0,
    ):
        self.client = client
        self.exec_timeout = exec_timeout
        self.stop_timeout = stop_timeout
        self._late_cleanups: set[asyncio.Task] = set()

    async def execute(self, command: str, image: str) -> AsyncIterator[OutputChunk]:
        """Execute a command in a fresh sandbox and stream its output.

        Yields STATUS and PULL notices, STDOUT/STDERR chunks as they are
        produced, and a final EXIT chunk with the exit code.

        Raises:
            SandtermError: on image, sandbox, exec or stream failures, or
                when the request exceeds ``exec_timeout``.
        """
        request_id = uuid.uuid4().hex[:12]
        loop = asyncio.get_event_loop()
        deadline = loop.time() + self.exec_timeout if self.exec_timeout else None

        logger.info(f"[{request_id}] Attempting to run in {image}: {command}")
        yield OutputChunk(ChunkKind.STATUS, f"Running in {image}: {command}")

        if not await self._call(
            lambda: self._image_present(image),
            deadline, ImageResolutionError, f"inspect image {image}",
        ):
            logger.info(f"[{request_id}] Image {image} not found locally, pulling...")
            yield OutputChunk(
                ChunkKind.PULL, f"Pulling image {image} (this might take a moment)..."
            )
            await self._call(
                lambda: self.client.images.pull(image),
                deadline, ImagePullError, f"pull image {image}",
            )
            logger.info(f"[{request_id}] Image {image} pulled successfully.")
            yield OutputChunk(ChunkKind.PULL, f"Image {image} pulled.")

        container: Optional[Container] = None
        started = False
        sock = None
        try:
            container = await self._call(
                lambda: self._create_container(image, request_id),
                deadline, SandboxLifecycleError, "create sandbox container",
                on_late_result=lambda late: self._schedule_teardown(late, request_id),
            )
            await self._call(
                container.start, deadline, SandboxLifecycleError, "start sandbox container"
            )
            started = True
            logger.info(f"[{request_id}] Container {container.short_id} started.")

            exec_id = await self._call(
                lambda: self.client.api.exec_create(
                    container.id,
                    ["/bin/sh", "-c", command],
                    stdout=True,
                    stderr=True,
                    stdin=False,
                    tty=False,
                )["Id"],
                deadline, CommandExecutionError, "create exec instance",
            )
            sock = await self._call(
                lambda: self.client.api.exec_start(exec_id, socket=True),
                deadline, CommandExecutionError, "start exec instance",
                on_late_result=lambda late: late.close(),
            )

            async for chunk in self._read_output(sock, deadline):
                yield chunk

            exit_code = await self._call(
                lambda: self.client.api.exec_inspect(exec_id).get("ExitCode"),
                deadline, CommandExecutionError, "inspect exec instance",
            )
            logger.info(f"[{request_id}] Command exit code: {exit_code}")
            yield OutputChunk(ChunkKind.EXIT, exit_code=exit_code)

        finally:
            # Runs on errors and when the consumer goes away mid-stream
            try:
                if container is not None:
                    await asyncio.shield(self._teardown(container, started, request_id))
            finally:
                if sock is not None:
                    sock.close()

    def _image_present(self, image: str) -> bool:
        """Inspect the image locally (sync, runs in executor)."""
        try:
            self.client.images.get(image)
            return True
        except ImageNotFound:
            return False

    def _create_container(self, image: str, request_id: str) -> Container:
        """Create the idle sandbox container (sync, runs in executor)."""
        return self.client.containers.create(
            image,
            command=IDLE_COMMAND,
            tty=False,
            working_dir="/",
            auto_remove=True,
            labels={
                "sandterm": "true",
                "sandterm.request": request_id,
            },
        )

    async def _read_output(
        self, sock, deadline: Optional[float]
    ) -> AsyncIterator[OutputChunk]:
        """Demultiplex the raw exec socket into stdout/stderr chunks."""
        demuxer = FrameDemuxer()
        decoders = {
            ChunkKind.STDOUT: codecs.getincrementaldecoder("utf-8")(errors="replace"),
            ChunkKind.STDERR: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        }

        while True:
            data = await self._call(
                lambda: read_socket(sock, READ_SIZE),
                deadline, StreamDemuxError, "read exec output",
            )
            if not data:
                break
            for stream, payload in demuxer.feed(data):
                kind = _CHUNK_KINDS[stream]
                text = decoders[kind].decode(payload)
                if text:
                    yield OutputChunk(kind, text)

        demuxer.close()
        for kind, decoder in decoders.items():
            tail = decoder.decode(b"", final=True)
            if tail:
                yield OutputChunk(kind, tail)

    async def _call(
        self,
        func: Callable[[], T],
        deadline: Optional[float],
        error_cls: type[SandtermError],
        action: str,
        on_late_result: Optional[Callable[[T], None]] = None,
    ) -> T:
        """Run a blocking SDK call in the executor, mapping its failures.

        The executor thread cannot be interrupted, so on timeout the call is
        left to finish and its result, if any, goes to ``on_late_result``.
        """
        loop = asyncio.get_event_loop()
        future = loop.run_in_executor(None, func)
        try:
            if deadline is None:
                return await asyncio.shield(future)
            return await asyncio.wait_for(
                asyncio.shield(future), timeout=max(deadline - loop.time(), 0)
            )
        except asyncio.CancelledError:
            future.add_done_callback(
                lambda done: self._handle_late_result(done, action, on_late_result)
            )
            raise
        except asyncio.TimeoutError:
            future.add_done_callback(
                lambda done: self._handle_late_result(done, action, on_late_result)
            )
            raise ExecutionTimeoutError(
                f"could not {action} within {self.exec_timeout:g}s"
            ) from None
        except requests.exceptions.ConnectionError as e:
            raise RuntimeUnavailableError(
                f"lost connection to the container runtime while trying to {action}: {e}"
            ) from e
        except (DockerException, requests.exceptions.RequestException, OSError) as e:
            raise error_cls(f"could not {action}: {e}") from e

    def _handle_late_result(
        self,
        future: asyncio.Future,
        action: str,
        on_late_result: Optional[Callable[[Any], None]],
    ) -> None:
        """Dispose of the result of a call that finished after its timeout."""
        if future.cancelled() or future.exception() is not None:
            return
        if on_late_result is None:
            return
        logger.warning(f"Call to {action} finished after the request timed out, cleaning up")
        try:
            on_late_result(future.result())
        except Exception as e:
            logger.warning(f"Error cleaning up after late {action}: {e}")

    def _schedule_teardown(self, container: Container, request_id: str) -> None:
        """Tear down a container whose creation outlived the request."""
        task = asyncio.ensure_future(self._teardown(container, False, request_id))
        self._late_cleanups.add(task)
        task.add_done_callback(self._late_cleanups.discard)

    async def _teardown(self, container: Container, started: bool, request_id: str) -> None:
        """Stop the sandbox; auto-removal reclaims it once stopped.

        Failures here are logged and swallowed so they never mask the
        original error of the request.
        """
        loop = asyncio.get_event_loop()
        short_id = container.short_id
        try:
            await loop.run_in_executor(
                None, lambda: container.stop(timeout=self.stop_timeout)
            )
            logger.info(f"[{request_id}] Container {short_id} stopped.")
        except NotFound:
            logger.debug(f"[{request_id}] Container {short_id} already gone")
        except Exception as e:
            logger.warning(f"[{request_id}] Error during container cleanup: {e}")

        if started:
            return

        # Auto-removal only fires for containers that ran
        try:
            await loop.run_in_executor(None, lambda: container.remove(force=True))
        except NotFound:
            pass
        except Exception as e:
            logger.warning(f"[{request_id}] Error removing unstarted container {short_id}: {e}")
