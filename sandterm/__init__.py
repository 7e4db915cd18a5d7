# sandterm - a terminal for your editor, backed by throwaway containers
"""
sandterm - Sandboxed remote command execution.

Run shell commands from a remote terminal session inside ephemeral containers,
with a simulated shell when no container runtime is available and a trusted
local proxy for same-host use.
"""

from sandterm.engine import ContainerEngine
from sandterm.models import ChunkKind, OutputChunk, ProxyResult, RuntimeStatus
from sandterm.probe import probe_runtime
from sandterm.simulator import simulate

__all__ = [
    "ContainerEngine",
    "ChunkKind",
    "OutputChunk",
    "ProxyResult",
    "RuntimeStatus",
    "probe_runtime",
    "simulate",
]

__version__ = "0.1.0"
