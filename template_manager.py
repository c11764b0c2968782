"""
Template Manager Module

Predefined container configurations for the services integration tests
usually need: relational databases, caches and vector stores.
"""

import time
from typing import Dict, Tuple

import docker

from config import HarnessSettings
from lifecycle import HarnessContainer
from models import ANY_PORT, ContainerConfig
from port_allocator import normalize_port
from readiness import wait_for_port
from utils import HarnessException, TemplateNotFoundError, logger

DEFAULT_USER = "harness"
DEFAULT_PASSWORD = "harness"
DEFAULT_DATABASE = "harness"

# Template configurations for different services
TEMPLATE_CONFIGS = {
    "postgres": {
        "image": "postgres",
        "tag": "latest",
        "service_port": "5432",
        "env": {
            "POSTGRES_USER": DEFAULT_USER,
            "POSTGRES_PASSWORD": DEFAULT_PASSWORD,
            "POSTGRES_DB": DEFAULT_DATABASE,
        },
        "description": "PostgreSQL relational database",
    },
    "pgvector": {
        "image": "ankane/pgvector",
        "tag": "latest",
        "service_port": "5432",
        "env": {
            "POSTGRES_USER": DEFAULT_USER,
            "POSTGRES_PASSWORD": DEFAULT_PASSWORD,
            "POSTGRES_DB": DEFAULT_DATABASE,
        },
        "description": "PostgreSQL with the pgvector extension for vector search",
    },
    "mysql": {
        "image": "mysql",
        "tag": "latest",
        "service_port": "3306",
        "env": {
            "MYSQL_USER": DEFAULT_USER,
            "MYSQL_PASSWORD": DEFAULT_PASSWORD,
            "MYSQL_ROOT_PASSWORD": DEFAULT_PASSWORD,
            "MYSQL_DATABASE": DEFAULT_DATABASE,
        },
        "description": "MySQL relational database",
    },
    "redis": {
        "image": "redis",
        "tag": "latest",
        "service_port": "6379",
        "env": {},
        "description": "Redis key-value store",
    },
    "memcached": {
        "image": "memcached",
        "tag": "latest",
        "service_port": "11211",
        "env": {},
        "description": "Memcached in-memory cache",
    },
    "milvus": {
        "image": "milvusdb/milvus",
        "tag": "latest",
        "service_port": "19530",
        "env": {},
        "description": "Milvus vector database",
    },
}


def get_available_templates():
    """Get list of available template names"""
    return list(TEMPLATE_CONFIGS.keys())


def get_template_config(template: str) -> Dict:
    """Get configuration for a specific template

    Args:
        template (str): Template name

    Returns:
        dict: A copy of the template configuration

    Raises:
        TemplateNotFoundError: if no template has that name
    """
    if template not in TEMPLATE_CONFIGS:
        available = ", ".join(get_available_templates())
        raise TemplateNotFoundError(
            f"Template '{template}' not found. Available templates: {available}"
        )

    config = dict(TEMPLATE_CONFIGS[template])
    config["env"] = dict(config["env"])
    return config


def create_template_container(
    template: str,
    name: str = "",
    tag: str = "",
    env: Dict[str, str] = None,
    ports: Dict[str, str] = None,
    client: docker.DockerClient = None,
    settings: HarnessSettings = None,
) -> HarnessContainer:
    """Build (but do not start) a container from a template

    Args:
        template (str): Template name (e.g., 'postgres', 'redis')
        name (str, optional): Container name; blank lets the engine pick one
        tag (str, optional): Image tag; blank uses the template's tag
        env (dict, optional): Overrides merged over the template environment
        ports (dict, optional): Extra or fixed port bindings; a binding for the
            service port replaces its default any-free-port binding

    Returns:
        HarnessContainer: the unstarted container, service port bound to any free host port
    """
    config = get_template_config(template)
    merged_env = config["env"]
    merged_env.update(env or {})

    service_port = config["service_port"]
    merged_ports = {service_port: ANY_PORT}
    for container_port, host_port in (ports or {}).items():
        # Keep the service binding under its template key, whatever the spelling
        if normalize_port(container_port) == normalize_port(service_port):
            container_port = service_port
        merged_ports[container_port] = host_port

    container_config = ContainerConfig(
        name=name,
        image=config["image"],
        tag=tag or config["tag"],
        ports=merged_ports,
        env=merged_env,
    )
    return HarnessContainer(container_config, client=client, settings=settings)


def service_address(container: HarnessContainer, template: str) -> Tuple[str, str]:
    """Host and host port where a started template container's service listens"""
    config = get_template_config(template)
    host = container.settings.host_ip
    if host in ("0.0.0.0", ""):
        host = "127.0.0.1"
    return host, container.get_ports()[config["service_port"]]


def get_service_port(container: HarnessContainer, template: str) -> str:
    return service_address(container, template)[1]


def launch_template_container(
    template: str,
    name: str = "",
    tag: str = "",
    env: Dict[str, str] = None,
    ports: Dict[str, str] = None,
    timeout: float = 30.0,
    client: docker.DockerClient = None,
    settings: HarnessSettings = None,
) -> HarnessContainer:
    """Start a template container and wait until its service port accepts connections

    Docker's userland proxy can accept a connection before the service
    inside listens, so connectors should still retry their first session.
    The container is cleaned up if any step fails.
    """
    container = create_template_container(
        template,
        name=name,
        tag=tag,
        env=env,
        ports=ports,
        client=client,
        settings=settings,
    )
    started = time.monotonic()

    try:
        container.start()
        container.wait_until_running(timeout)
        host, port = service_address(container, template)
        remaining = max(timeout - (time.monotonic() - started), 0.0)
        wait_for_port(host, port, remaining)
    except HarnessException as e:
        logger.error("Failed to launch template", template=template, error=str(e))
        try:
            container.cleanup()
        except HarnessException as cleanup_error:
            logger.error(
                "Cleanup after failed launch also failed",
                template=template,
                container_id=container.get_container_id(),
                error=str(cleanup_error),
            )
        raise

    logger.info(
        "Template launched successfully",
        template=template,
        container_id=container.get_container_id(),
        host=host,
        port=port,
    )
    return container
