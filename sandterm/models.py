"""Internal models for the execution engine."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ChunkKind(str, Enum):
    """Kind of output chunk produced during an execution request."""
    STDOUT = "stdout"
    STDERR = "stderr"
    STATUS = "status"  # Informational notice (yellow)
    PULL = "pull"  # Image pull progress (cyan)
    EXIT = "exit"  # Terminal exit status, never forwarded to the client


class SessionState(str, Enum):
    """Lifecycle state of a terminal session."""
    OPEN = "open"
    AWAITING_INPUT = "awaiting_input"
    DISPATCHING = "dispatching"
    CLOSED = "closed"


@dataclass(frozen=True)
class OutputChunk:
    """A tagged piece of output from one execution request."""
    kind: ChunkKind
    data: str = ""
    exit_code: Optional[int] = None


@dataclass(frozen=True)
class RuntimeStatus:
    """Result of the one-time container runtime probe."""
    available: bool
    client: Any = None
    detail: str = ""

    @property
    def mode(self) -> str:
        return "sandboxed" if self.available else "simulated"


@dataclass
class ProxyResult:
    """Response from the trusted local proxy."""
    output: str
    error: Optional[str] = None
