"""
Port Allocator Module

Turns a requested port map into engine port bindings.

Free ports come from asking the OS for an unused TCP port. Nothing holds the
port between the lookup and the container bind, so another process can take
it in between; that race is accepted for short-lived test containers.
"""

import socket
from typing import Dict, List, Tuple

from models import ANY_PORT
from utils import logger

DEFAULT_PROTOCOL = "tcp"


def normalize_port(container_port: str) -> str:
    """5432 -> 5432/tcp; ports that already carry a protocol are unchanged"""
    if "/" in container_port:
        return container_port
    return f"{container_port}/{DEFAULT_PROTOCOL}"


def exposed_ports(requested: Dict[str, str]) -> List[str]:
    return [normalize_port(container_port) for container_port in requested]


def get_free_port() -> int:
    """Ask the OS for a currently unused TCP port"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.listen(1)
        return s.getsockname()[1]


def _is_port_available(port):
    """Check if a port is actually available"""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("", port))
            return True
    except OSError:
        return False


def resolve_port_bindings(
    requested: Dict[str, str], host_ip: str = "0.0.0.0"
) -> Tuple[Dict[str, Tuple[str, str]], Dict[str, str]]:
    """Resolve requested ports into (engine bindings, resolved port map).

    The bindings are keyed by protocol-qualified container port, as the docker
    SDK expects. The resolved map keeps the caller's original keys and holds the
    host port each one ended up bound to.
    """
    bindings = {}
    resolved = {}

    for container_port, host_port in requested.items():
        if host_port == ANY_PORT:
            host_port = str(get_free_port())
        elif host_port.isdigit() and not _is_port_available(int(host_port)):
            logger.warning(
                "Requested host port already in use",
                container_port=container_port,
                host_port=host_port,
            )

        bindings[normalize_port(container_port)] = (host_ip, host_port)
        resolved[container_port] = host_port

    return bindings, resolved
