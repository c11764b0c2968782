"""
Lifecycle Module

HarnessContainer manages one disposable container: start (name collision
handling, image pull, port binding, create, start, volume discovery), graceful
or forced stop, and cleanup of the container and its volumes.

A Start whose create succeeds but whose engine start fails leaves a created,
never-started container behind. The descriptor keeps its id, and callers must
still call cleanup() after a failed start() to release it.
"""

import threading
import time
from typing import Dict, List, Optional

import docker
from docker.errors import APIError, DockerException, NotFound
from requests.exceptions import RequestException

from collision_resolver import destroy_container, mounted_volumes, resolve_name_collision
from config import HarnessSettings, get_settings
from engine import get_docker_client
from image_manager import delete_image, ensure_image, image_exists
from models import ContainerConfig, ContainerState, StopTimeoutPolicy
from port_allocator import resolve_port_bindings
from utils import (
    ACTIVE_CONTAINERS,
    ContainerNotFoundError,
    ContainerRemovedError,
    ContainerStopError,
    VolumeRemovalError,
    WaitTimeoutError,
    handle_engine_errors,
    log_container_operation,
    logger,
)


class HarnessContainer:
    """A single container owned by the test (or wrapper) that created it"""

    def __init__(
        self,
        config: ContainerConfig,
        client: docker.DockerClient = None,
        settings: HarnessSettings = None,
    ):
        self.config = config
        self.settings = settings or get_settings()
        self._client = client
        self._id = ""
        self._ports = dict(config.ports)
        self._volumes: List[str] = []
        self._removed = False
        self._tracked = False
        self._lock = threading.RLock()
        self._log = logger.bind(name=config.name, image=config.image_ref)

    def __repr__(self):
        return (
            f"HarnessContainer(name={self.config.name!r}, "
            f"image={self.config.image_ref!r}, id={self._id[:12]!r})"
        )

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = get_docker_client(timeout=self.settings.docker_timeout)
        return self._client

    @property
    def name(self) -> Optional[str]:
        return self.config.name

    @property
    def image(self) -> str:
        return self.config.image

    @property
    def tag(self) -> str:
        return self.config.tag

    @property
    def state(self) -> ContainerState:
        with self._lock:
            if self._removed:
                return ContainerState.REMOVED
            if not self._id:
                return ContainerState.UNSTARTED
            if self.is_running():
                return ContainerState.RUNNING
            return ContainerState.STOPPED

    def get_container_id(self) -> str:
        return self._id

    def get_ports(self) -> Dict[str, str]:
        """Container port -> host port. Holds resolved bindings once started"""
        return dict(self._ports)

    def get_volumes(self) -> List[str]:
        return list(self._volumes)

    def image_exists(self) -> bool:
        return image_exists(self.client, self.config.image, self.config.tag)

    def delete_image(self):
        delete_image(self.client, self.config.image, self.config.tag)

    @handle_engine_errors("is_running")
    def is_running(self) -> bool:
        with self._lock:
            # Never created, so never running
            if not self._id:
                return False
            try:
                container = self.client.containers.get(self._id)
            except NotFound:
                return False
            return bool(container.attrs["State"]["Running"])

    @handle_engine_errors("start")
    def start(self) -> Dict[str, str]:
        """Start the container unless it is already running.

        Returns the resolved port map: requested container port -> host port.
        """
        with self._lock:
            if self._removed:
                raise ContainerRemovedError(self._id)
            if self.is_running():
                return dict(self._ports)

            if self._id:
                self._discard_previous()

            resolve_name_collision(
                self.client, self.config.name, self.settings.collision_policy
            )
            ensure_image(self.client, self.config.image, self.config.tag)

            bindings, resolved = resolve_port_bindings(
                self.config.ports, self.settings.host_ip
            )
            self._ports = resolved

            container = self.client.containers.create(
                self.config.image_ref,
                name=self.config.name,
                environment=self.config.env_list(),
                ports=bindings,
            )
            self._id = container.id
            if not self._tracked:
                self._tracked = True
                ACTIVE_CONTAINERS.inc()
            self._log.info("Container created", container_id=self._id, ports=resolved)

            container.start()
            self._volumes = self._discover_volumes()

            log_container_operation(
                "start",
                self._id,
                "success",
                {"ports": resolved, "volumes": self._volumes},
            )
            return dict(self._ports)

    @handle_engine_errors("stop")
    def stop(self, wait_seconds: Optional[int] = None):
        """Stop gracefully within wait_seconds, then kill.

        wait_seconds <= 0 skips the graceful phase; None uses the configured
        stop timeout.
        """
        if wait_seconds is None:
            wait_seconds = self.settings.stop_timeout

        with self._lock:
            if not self.is_running():
                return

            container = self.client.containers.get(self._id)
            if wait_seconds > 0:
                self._graceful_stop(container, wait_seconds)
                if not self.is_running():
                    log_container_operation(
                        "stop", self._id, "success", {"wait_seconds": wait_seconds}
                    )
                    return

            self._force_kill(container)

    def kill(self):
        """Terminate immediately, without a graceful shutdown period"""
        self.stop(0)

    @handle_engine_errors("cleanup")
    def cleanup(self):
        """Kill and remove the container, then force-remove its volumes.

        The descriptor cannot be started again afterwards.
        """
        with self._lock:
            if self._removed:
                return
            if not self._id:
                self._removed = True
                return

            if self.is_running():
                self.kill()

            try:
                engine_side = self.client.containers.get(self._id)
            except NotFound:
                self._log.info("Container already removed", container_id=self._id)
            else:
                # Volumes of a container whose start failed were never recorded
                for volume in mounted_volumes(engine_side):
                    if volume not in self._volumes:
                        self._volumes.append(volume)
                engine_side.remove(force=True)

            self._remove_volumes()

            self._removed = True
            if self._tracked:
                self._tracked = False
                ACTIVE_CONTAINERS.dec()
            log_container_operation("cleanup", self._id, "success")

    def wait_until_running(self, timeout: float):
        if not self._wait_for_running_state(True, timeout):
            raise WaitTimeoutError(
                f"container {self._id or self.config.name} not running after {timeout}s",
                timeout,
            )

    def wait_until_stopped(self, timeout: float):
        if not self._wait_for_running_state(False, timeout):
            raise WaitTimeoutError(
                f"container {self._id} still running after {timeout}s", timeout
            )

    def _wait_for_running_state(self, expected: bool, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            if self.is_running() == expected:
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.settings.poll_interval)

    def _graceful_stop(self, container, wait_seconds: int):
        started = time.monotonic()
        try:
            container.stop(timeout=wait_seconds)
        except (DockerException, RequestException) as e:
            elapsed = time.monotonic() - started
            if (
                self.settings.stop_timeout_policy == StopTimeoutPolicy.PROPAGATE
                or elapsed < wait_seconds
            ):
                raise
            self._log.warning(
                "Ignoring stop error raised after the stop deadline",
                container_id=self._id,
                wait_seconds=wait_seconds,
                elapsed=round(elapsed, 3),
                error=str(e),
            )

    def _force_kill(self, container):
        self._log.info("Killing container", container_id=self._id)
        try:
            container.kill(signal="SIGKILL")
        except APIError:
            # It may have exited on its own since the last check
            if self.is_running():
                raise

        if not self._wait_for_running_state(False, self.settings.kill_confirm_timeout):
            raise ContainerStopError(self._id)
        log_container_operation("kill", self._id, "success")

    def _discard_previous(self):
        """Destroy the stopped container left by an earlier start of this descriptor"""
        try:
            previous = self.client.containers.get(self._id)
        except NotFound:
            previous = None
        if previous is not None:
            self._log.info("Discarding previous container", container_id=self._id)
            destroy_container(self.client, previous)

        self._id = ""
        self._volumes = []
        self._ports = dict(self.config.ports)

    def _discover_volumes(self) -> List[str]:
        for container in self.client.containers.list(all=True, ignore_removed=True):
            if container.id == self._id:
                return mounted_volumes(container)
        raise ContainerNotFoundError(
            f"could not find container {self._id} after creating it"
        )

    def _remove_volumes(self):
        removed = []
        for volume in list(self._volumes):
            try:
                self.client.api.remove_volume(volume, force=True)
            except NotFound:
                self._log.info("Volume already removed", volume=volume)
            except (DockerException, RequestException) as e:
                raise VolumeRemovalError(
                    volume, removed, list(self._volumes), str(e)
                ) from e
            removed.append(volume)
            self._volumes.remove(volume)


def new_container(
    name: str,
    image: str,
    tag: str = "",
    ports: Dict[str, str] = None,
    env: Dict[str, str] = None,
    client: docker.DockerClient = None,
    settings: HarnessSettings = None,
) -> HarnessContainer:
    """Build a HarnessContainer from plain arguments. No engine calls are made"""
    config = ContainerConfig(
        name=name, image=image, tag=tag, ports=ports or {}, env=env or {}
    )
    return HarnessContainer(config, client=client, settings=settings)
