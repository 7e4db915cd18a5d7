"""One-time container runtime probe."""

import logging
import os
import sys
from pathlib import Path
from typing import Callable, Optional

import docker
import requests
from docker.errors import DockerException

from sandterm.config import Settings
from sandterm.models import RuntimeStatus

logger = logging.getLogger(__name__)


def default_docker_url(platform: str = sys.platform) -> str:
    """Docker Desktop on macOS serves its socket from the user's home."""
    if platform == "darwin":
        return f"unix://{Path.home() / '.docker' / 'run' / 'docker.sock'}"
    return "unix:///var/run/docker.sock"


def connect(docker_host: Optional[str] = None) -> docker.DockerClient:
    """Create a docker client for the configured or default socket."""
    if docker_host:
        return docker.DockerClient(base_url=docker_host)
    if os.getenv("DOCKER_HOST"):
        return docker.from_env()
    return docker.DockerClient(base_url=default_docker_url())


def probe_runtime(
    settings: Settings,
    client_factory: Callable[[Optional[str]], docker.DockerClient] = connect,
) -> RuntimeStatus:
    """Check once whether the container runtime is reachable.

    A missing runtime is a supported condition, so this never raises.
    """
    client = None
    try:
        client = client_factory(settings.docker_host)
        client.ping()
    except (DockerException, requests.exceptions.RequestException, OSError) as e:
        if client is not None:
            client.close()
        logger.warning(f"Docker not available: {e}")
        logger.warning("Using simulated runtime environment instead.")
        return RuntimeStatus(available=False, detail=str(e))

    logger.info("Docker connection established successfully!")
    return RuntimeStatus(available=True, client=client)
