"""Process configuration, read once from the environment."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_IMAGE = "node:alpine"
DEFAULT_TERMINAL_PORT = 3000
DEFAULT_PROXY_PORT = 3030
DEFAULT_PROXY_MAX_BUFFER = 1024 * 1024


def _optional_seconds(value: Optional[str], default: Optional[float]) -> Optional[float]:
    """Parse a timeout in seconds; empty or non-positive disables it."""
    if value is None:
        return default
    value = value.strip()
    if not value:
        return None
    seconds = float(value)
    return seconds if seconds > 0 else None


@dataclass(frozen=True)
class Settings:
    """Settings for the terminal server and the trusted local proxy."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_TERMINAL_PORT
    terminal_path: str = "/terminal"
    image: str = DEFAULT_IMAGE
    docker_host: Optional[str] = None
    exec_timeout: Optional[float] = 120.0
    stop_timeout: int = 0
    proxy_host: str = "127.0.0.1"
    proxy_port: int = DEFAULT_PROXY_PORT
    proxy_max_buffer: int = DEFAULT_PROXY_MAX_BUFFER
    proxy_timeout: Optional[float] = 60.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("TERMINAL_HOST", cls.host),
            port=int(env.get("TERMINAL_PORT", str(cls.port))),
            terminal_path=env.get("TERMINAL_PATH", cls.terminal_path),
            image=env.get("SANDBOX_IMAGE", cls.image),
            docker_host=env.get("DOCKER_HOST") or None,
            exec_timeout=_optional_seconds(env.get("EXEC_TIMEOUT"), cls.exec_timeout),
            stop_timeout=int(env.get("STOP_TIMEOUT", str(cls.stop_timeout))),
            proxy_host=env.get("PROXY_HOST", cls.proxy_host),
            proxy_port=int(env.get("PROXY_PORT", str(cls.proxy_port))),
            proxy_max_buffer=int(env.get("PROXY_MAX_BUFFER", str(cls.proxy_max_buffer))),
            proxy_timeout=_optional_seconds(env.get("PROXY_TIMEOUT"), cls.proxy_timeout),
        )
