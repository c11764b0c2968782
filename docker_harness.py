"""
Docker Harness - Main API Interface

Disposable containers for integration tests. This module re-exports the
public API of the specialized modules:

- lifecycle.py: HarnessContainer start/stop/kill/cleanup
- image_manager.py: image existence, pull, delete
- port_allocator.py: free port lookup and port binding resolution
- collision_resolver.py: teardown of stale same-named containers
- readiness.py: bounded waits for services inside containers
- template_manager.py: predefined database, cache and vector store containers
"""

from config import HarnessSettings, get_settings, load_settings, reset_settings
from engine import docker_available, get_docker_client
from lifecycle import HarnessContainer, new_container
from models import (
    ANY_PORT,
    CollisionPolicy,
    ContainerConfig,
    ContainerState,
    StopTimeoutPolicy,
)
from image_manager import (
    delete_image,
    ensure_image,
    image_exists,
    image_reference,
    pull_image,
)
from port_allocator import get_free_port, normalize_port, resolve_port_bindings
from collision_resolver import (
    cleanup_and_kill_container,
    find_container_by_name,
    resolve_name_collision,
)
from readiness import retry_until, wait_for_port
from template_manager import (
    create_template_container,
    get_available_templates,
    get_service_port,
    get_template_config,
    launch_template_container,
)
from utils import (
    ContainerException,
    ContainerNotFoundError,
    ContainerRemovedError,
    ContainerStopError,
    EngineError,
    EngineUnavailableError,
    HarnessException,
    ImagePullError,
    NameConflictError,
    TemplateNotFoundError,
    VolumeRemovalError,
    WaitTimeoutError,
    get_metrics,
)

# Public API exports
__all__ = [
    # Configuration and engine access
    "HarnessSettings",
    "load_settings",
    "get_settings",
    "reset_settings",
    "get_docker_client",
    "docker_available",
    # Containers
    "HarnessContainer",
    "new_container",
    "ContainerConfig",
    "ContainerState",
    "CollisionPolicy",
    "StopTimeoutPolicy",
    "ANY_PORT",
    # Images
    "image_exists",
    "pull_image",
    "ensure_image",
    "delete_image",
    "image_reference",
    # Ports
    "get_free_port",
    "normalize_port",
    "resolve_port_bindings",
    # Name collisions
    "find_container_by_name",
    "cleanup_and_kill_container",
    "resolve_name_collision",
    # Readiness
    "wait_for_port",
    "retry_until",
    # Templates
    "get_available_templates",
    "get_template_config",
    "create_template_container",
    "launch_template_container",
    "get_service_port",
    # Errors
    "HarnessException",
    "EngineError",
    "EngineUnavailableError",
    "ContainerException",
    "ContainerNotFoundError",
    "ContainerRemovedError",
    "ContainerStopError",
    "NameConflictError",
    "VolumeRemovalError",
    "ImagePullError",
    "TemplateNotFoundError",
    "WaitTimeoutError",
    # Metrics
    "get_metrics",
]
