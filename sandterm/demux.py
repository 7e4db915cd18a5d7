"""Demultiplexing of container exec output streams.

Without a TTY the runtime sends stdout and stderr over one connection. Each
frame starts with an 8 byte header: one byte for the stream type, three
zero bytes, and the payload length as a big-endian uint32.
"""

import struct
from enum import IntEnum
from typing import Iterable, Iterator

from sandterm.errors import StreamDemuxError

HEADER = struct.Struct(">BxxxL")


class StreamType(IntEnum):
    STDIN = 0
    STDOUT = 1
    STDERR = 2


class FrameDemuxer:
    """Incremental splitter for a multiplexed byte stream.

    Feed it bytes as they arrive from the socket, in chunks of any size, and
    it returns the complete frames seen so far.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a complete frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[tuple[StreamType, bytes]]:
        self._buffer.extend(data)
        frames = []
        while len(self._buffer) >= HEADER.size:
            stream_byte, length = HEADER.unpack_from(self._buffer)
            try:
                stream = StreamType(stream_byte)
            except ValueError:
                raise StreamDemuxError(
                    f"unknown stream type {stream_byte} in exec output"
                ) from None
            end = HEADER.size + length
            if len(self._buffer) < end:
                break
            payload = bytes(self._buffer[HEADER.size:end])
            del self._buffer[:end]
            if payload:
                frames.append((stream, payload))
        return frames

    def close(self) -> None:
        """Signal end of stream; a dangling partial frame is an error."""
        if self._buffer:
            raise StreamDemuxError(
                f"exec output ended inside a frame ({len(self._buffer)} bytes left)"
            )


def demux_stream(chunks: Iterable[bytes]) -> Iterator[tuple[StreamType, bytes]]:
    """Split an iterable of raw chunks into (stream, payload) pairs."""
    demuxer = FrameDemuxer()
    for chunk in chunks:
        yield from demuxer.feed(chunk)
    demuxer.close()


def encode_frame(stream: StreamType, payload: bytes) -> bytes:
    """Build one multiplexed frame."""
    return HEADER.pack(stream, len(payload)) + payload
