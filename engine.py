"""
Engine Module

Creates docker SDK clients. Components never build a client at import time;
one is injected into them, or created here on first use.
"""

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from utils import EngineUnavailableError, logger


def get_docker_client(timeout: int = None) -> docker.DockerClient:
    """Connect to the engine described by DOCKER_HOST and friends"""
    kwargs = {}
    if timeout is not None:
        kwargs["timeout"] = timeout
    try:
        return docker.from_env(**kwargs)
    except DockerException as e:
        logger.warning("Docker is not available", error=str(e))
        raise EngineUnavailableError(f"Docker is not available: {e}") from e


def docker_available(client: docker.DockerClient = None) -> bool:
    """Check whether an engine answers a ping"""
    try:
        if client is None:
            client = get_docker_client()
        return bool(client.ping())
    except (EngineUnavailableError, DockerException, RequestException) as e:
        logger.info("Docker ping failed", error=str(e))
        return False
