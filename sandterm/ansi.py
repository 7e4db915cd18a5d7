"""ANSI framing for terminal output frames."""

from typing import Optional

from sandterm.models import ChunkKind, OutputChunk

RESET = "\x1b[0m"
RED = "\x1b[31m"
YELLOW = "\x1b[33m"
CYAN = "\x1b[36m"
BOLD_BLUE = "\x1b[1;34m"

PROMPT = "\r\n$ "


def color(text: str, code: str) -> str:
    return f"{code}{text}{RESET}"


def notice(text: str, code: str = YELLOW) -> str:
    """A full colored line."""
    return f"{color(text, code)}\r\n"


def error_line(message: str) -> str:
    return f"\r\n{color(message, RED)}\r\n"


def render_chunk(chunk: OutputChunk) -> Optional[str]:
    """Render an output chunk as a transport frame.

    Returns None for chunks that are not forwarded (the exit status).
    """
    if chunk.kind is ChunkKind.STDOUT:
        return chunk.data
    if chunk.kind is ChunkKind.STDERR:
        return color(chunk.data, RED)
    if chunk.kind is ChunkKind.STATUS:
        return notice(chunk.data, YELLOW)
    if chunk.kind is ChunkKind.PULL:
        return notice(chunk.data, CYAN)
    return None
