"""
Name Collision Resolver Module

Test suites reuse fixed container names across runs. A run that crashed
before cleaning up leaves a container holding the name, and every later
create under that name would fail with a conflict. Before a named create we
look for such a container and, under the destroy policy, tear it down along
with its volumes. That destroys whatever holds the name, including a
container another process is using, so the fail policy exists for shared
engines.
"""

from typing import List, Optional

import docker
from docker.models.containers import Container

from models import CollisionPolicy
from utils import NameConflictError, handle_engine_errors, log_container_operation, logger


def mounted_volumes(container: Container) -> List[str]:
    """Names of the engine-managed volumes mounted into a container"""
    return [
        mount["Name"]
        for mount in container.attrs.get("Mounts") or []
        if mount.get("Name")
    ]


@handle_engine_errors("find_container")
def find_container_by_name(
    client: docker.DockerClient, name: str
) -> Optional[Container]:
    """Return the container (running or not) named exactly `name`"""
    for container in client.containers.list(all=True, ignore_removed=True):
        if container.name == name:
            return container
    return None


@handle_engine_errors("destroy_container")
def destroy_container(client: docker.DockerClient, container: Container):
    """Kill, remove and strip the volumes of a container.

    The removal is forced, so a container that is restarting or paused goes
    too. The first failing step aborts the teardown and propagates.
    """
    volumes = mounted_volumes(container)

    container.reload()
    if container.status == "running":
        container.kill(signal="SIGKILL")
    container.remove(force=True)

    for volume in volumes:
        client.api.remove_volume(volume, force=True)

    log_container_operation(
        "destroy", container.id, "success", {"name": container.name, "volumes": volumes}
    )


def cleanup_and_kill_container(client: docker.DockerClient, name: str) -> bool:
    """Destroy the container named `name`, if any. Returns True if one was found"""
    container = find_container_by_name(client, name)
    if container is None:
        return False
    destroy_container(client, container)
    return True


def resolve_name_collision(
    client: docker.DockerClient,
    name: Optional[str],
    policy: CollisionPolicy = CollisionPolicy.DESTROY,
):
    """Make `name` available for a new container according to `policy`"""
    if not name:
        return

    existing = find_container_by_name(client, name)
    if existing is None:
        return

    if policy == CollisionPolicy.FAIL:
        raise NameConflictError(name, existing.id)

    logger.warning(
        "Destroying stale container holding requested name",
        name=name,
        container_id=existing.id,
        status=existing.status,
    )
    destroy_container(client, existing)
