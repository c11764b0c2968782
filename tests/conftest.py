"""Shared fixtures: an in-memory stand-in for docker.DockerClient"""

import itertools

import pytest
from docker.errors import APIError, ImageNotFound, NotFound

from config import HarnessSettings


class FakeClock:
    """Replacement for the time module where a test controls elapsed time"""

    def __init__(self):
        self.now = 1000.0

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds

    advance = sleep


class FakeContainer:
    def __init__(self, engine, container_id, name, image, environment, ports, mounts):
        self.engine = engine
        self.id = container_id
        self.name = name
        self.image_ref = image
        self.environment = environment
        self.ports = ports
        self.mounts = mounts
        self.running = False
        self.started = False
        self.status_override = None  # e.g. "restarting" or "paused"
        self.start_error = None
        self.stop_hook = None
        self.ignores_stop = False
        self.ignores_kill = False
        self.calls = []

    @property
    def attrs(self):
        return {
            "Id": self.id,
            "Name": f"/{self.name}",
            "State": {"Running": self.running},
            "Mounts": [dict(mount) for mount in self.mounts],
            "Config": {"Env": list(self.environment)},
            "HostConfig": {
                "PortBindings": {
                    port: [{"HostIp": binding[0], "HostPort": binding[1]}]
                    for port, binding in self.ports.items()
                }
            },
        }

    @property
    def status(self):
        if self.status_override is not None:
            return self.status_override
        if self.running:
            return "running"
        return "exited" if self.started else "created"

    def reload(self):
        if self.id not in self.engine.containers_by_id:
            raise NotFound(f"No such container: {self.id}")

    def start(self):
        self.calls.append(("start",))
        if self.start_error is not None:
            raise self.start_error
        self.running = True
        self.started = True

    def stop(self, timeout=None):
        self.calls.append(("stop", timeout))
        if self.stop_hook is not None:
            self.stop_hook(timeout)
        if not self.ignores_stop:
            self.running = False

    def kill(self, signal=None):
        self.calls.append(("kill", signal))
        if not self.running:
            raise APIError(f"Container {self.id} is not running")
        if not self.ignores_kill:
            self.running = False

    def remove(self, **kwargs):
        self.calls.append(("remove", kwargs))
        if not kwargs.get("force"):
            if self.running:
                raise APIError("You cannot remove a running container")
            if self.status_override in ("restarting", "paused"):
                raise APIError(
                    f"You cannot remove a {self.status_override} container {self.id}"
                )
        self.running = False
        self.engine.containers_by_id.pop(self.id)


class FakeContainerCollection:
    def __init__(self, engine):
        self.engine = engine

    def get(self, container_id):
        if self.engine.get_error is not None:
            raise self.engine.get_error
        container = self.engine.containers_by_id.get(container_id)
        if container is None:
            raise NotFound(f"No such container: {container_id}")
        return container

    def list(self, all=False, **kwargs):
        self.engine.list_calls += 1
        return [
            container
            for container in self.engine.containers_by_id.values()
            if all or container.running
        ]

    def create(self, image, name=None, environment=None, ports=None, **kwargs):
        self.engine.create_calls.append(
            {"image": image, "name": name, "environment": environment, "ports": ports}
        )
        if image not in self.engine.image_store:
            raise ImageNotFound(f"No such image: {image}")
        if name and any(c.name == name for c in self.engine.containers_by_id.values()):
            raise APIError(f'Conflict. The container name "/{name}" is already in use')

        number = next(self.engine.counter)
        container_id = f"{number:012x}" + "f" * 52
        mounts = []
        for index in range(self.engine.image_volumes.get(image, 0)):
            volume = f"{container_id[:12]}-vol{index}"
            self.engine.volume_store.add(volume)
            mounts.append(
                {"Type": "volume", "Name": volume, "Destination": f"/data{index}"}
            )

        container = FakeContainer(
            self.engine,
            container_id,
            name or f"auto_{number}",
            image,
            environment or [],
            ports or {},
            mounts,
        )
        container.start_error = self.engine.start_error
        self.engine.containers_by_id[container_id] = container
        return container


class FakeImage:
    def __init__(self, reference):
        self.tags = [reference]


class FakeImageCollection:
    def __init__(self, engine):
        self.engine = engine

    def get(self, reference):
        if self.engine.image_get_error is not None:
            raise self.engine.image_get_error
        if reference not in self.engine.image_store:
            raise ImageNotFound(f"No such image: {reference}")
        return FakeImage(reference)

    def remove(self, image=None, **kwargs):
        self.engine.removed_images.append(image)
        self.engine.image_store.discard(image)


class FakeVolume:
    def __init__(self, name):
        self.name = name


class FakeVolumeCollection:
    def __init__(self, engine):
        self.engine = engine

    def list(self, filters=None):
        return [FakeVolume(name) for name in sorted(self.engine.volume_store)]


class FakeAPI:
    def __init__(self, engine):
        self.engine = engine

    def pull(self, repository, tag=None, stream=False, decode=False):
        reference = f"{repository}:{tag}"
        self.engine.pull_calls.append(reference)
        if reference in self.engine.missing_remote:
            raise NotFound(f"manifest for {reference} not found")
        return self._stream(reference)

    def _stream(self, reference):
        yield {"status": f"Pulling from {reference}"}
        yield {"status": "Downloading", "progress": "[=>   ]", "id": "abc123"}
        if reference in self.engine.pull_stream_errors:
            yield {"error": self.engine.pull_stream_errors[reference]}
        if reference not in self.engine.silent_pulls:
            self.engine.image_store.add(reference)
        yield {"status": f"Status: Downloaded newer image for {reference}"}
        self.engine.drained.append(reference)

    def remove_volume(self, name, force=False):
        self.engine.volume_remove_calls.append((name, force))
        if name in self.engine.failing_volumes:
            raise APIError(f"remove {name}: volume is in use")
        if name not in self.engine.volume_store:
            raise NotFound(f"get {name}: no such volume")
        self.engine.volume_store.discard(name)


class FakeDockerClient:
    """Just enough of docker.DockerClient for the harness"""

    def __init__(self, images=None, image_volumes=None):
        self.image_store = set(images or [])
        self.volume_store = set()
        self.image_volumes = dict(image_volumes or {})
        self.containers_by_id = {}
        self.counter = itertools.count(1)

        self.create_calls = []
        self.pull_calls = []
        self.drained = []
        self.removed_images = []
        self.volume_remove_calls = []
        self.list_calls = 0

        self.missing_remote = set()
        self.silent_pulls = set()
        self.pull_stream_errors = {}
        self.failing_volumes = set()
        self.start_error = None
        self.get_error = None
        self.image_get_error = None

        self.containers = FakeContainerCollection(self)
        self.images = FakeImageCollection(self)
        self.volumes = FakeVolumeCollection(self)
        self.api = FakeAPI(self)

    def ping(self):
        return True

    def add_container(self, name, image="redis:latest", running=True, volumes=0):
        """Plant a container as if an earlier test run had left it behind"""
        self.image_store.add(image)
        saved = self.image_volumes.get(image)
        self.image_volumes[image] = volumes
        container = self.containers.create(image, name=name)
        if saved is None:
            del self.image_volumes[image]
        else:
            self.image_volumes[image] = saved
        container.running = running
        container.started = True
        return container


@pytest.fixture
def fake_client():
    return FakeDockerClient(
        images={"redis:latest", "postgres:latest"},
        image_volumes={"postgres:latest": 2, "redis:latest": 1},
    )


@pytest.fixture
def settings():
    return HarnessSettings(stop_timeout=5, kill_confirm_timeout=0.05, poll_interval=0.001)


@pytest.fixture
def fake_clock():
    return FakeClock()
