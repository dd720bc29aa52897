"""Shared fixtures: a fake /dev tree, a fixed identity and a stub daemon client."""

from __future__ import annotations

import io
import itertools
from pathlib import Path

import pytest
from docker.errors import ImageNotFound, NotFound

from hackerosteam.config import SessionConfig, default_session
from hackerosteam.runtimes import SessionController
from hackerosteam.utils import Identity

# ---------------------------------------------------------------------------
# Host helpers (plain functions, importable by test files)
# ---------------------------------------------------------------------------


def make_dev(root: Path, *names: str) -> Path:
    """Create a fake /dev tree containing the given entries."""
    dev = root / "dev"
    dev.mkdir(parents=True, exist_ok=True)
    for name in names:
        path = dev / name
        if name in ("dri", "snd", "input"):
            path.mkdir(exist_ok=True)
        else:
            path.touch()
    return dev


def found(*helpers: str):
    """A `which` replacement that only knows the given executables."""
    return lambda name: f"/usr/bin/{name}" if name in helpers else None


# ---------------------------------------------------------------------------
# Stub daemon
# ---------------------------------------------------------------------------


class FakeContainer:
    def __init__(self, client, container_id, name, status="created"):
        self.client = client
        self.id = container_id
        self.name = name
        self.status = status
        self.pid = 0

    @property
    def attrs(self):
        return {"State": {"Status": self.status, "Pid": self.pid}}

    def _record(self, op):
        self.client.calls.append((f"container.{op}", self.name))

    def start(self):
        self._record("start")
        self.status = "running"
        self.pid = 4242

    def stop(self):
        self._record("stop")
        if self.client.fail_stop:
            raise NotFound("stop failed")
        self.status = "exited"
        self.pid = 0

    def kill(self):
        self._record("kill")
        self.status = "exited"
        self.pid = 0

    def restart(self):
        self._record("restart")
        self.status = "running"
        self.pid = 4343

    def remove(self, force=False):
        self._record("remove")
        assert force
        del self.client.containers.registry[self.name]


class FakeContainers:
    def __init__(self, client):
        self.client = client
        self.registry = {}

    def get(self, key):
        self.client.calls.append(("containers.get", key))
        for container in self.registry.values():
            if key in (container.name, container.id):
                return container
        raise NotFound(f"no such container: {key}")


class FakeImages:
    def __init__(self, client):
        self.client = client
        self.present = set()

    def get(self, ref):
        self.client.calls.append(("images.get", ref))
        if ref not in self.present:
            raise ImageNotFound(f"no such image: {ref}")
        return ref

    def pull(self, ref):
        self.client.calls.append(("images.pull", ref))
        self.present.add(ref)
        return ref


class FakeAPI:
    def __init__(self, client):
        self.client = client
        self.ids = itertools.count(1)
        self.created = []
        self.execs = {}
        self.exec_chunks = [b"installing\n", b"done\n"]
        self.exec_exit_code = 0

    def create_host_config(self, **kwargs):
        return dict(kwargs)

    def create_container(self, image, command=None, name=None, **kwargs):
        self.client.calls.append(("api.create_container", name))
        container_id = f"c{next(self.ids)}"
        self.created.append(
            {"image": image, "command": command, "name": name, **kwargs}
        )
        container = FakeContainer(self.client, container_id, name)
        self.client.containers.registry[name] = container
        return {"Id": container_id}

    def exec_create(self, container, cmd, user="", tty=False, **kwargs):
        self.client.calls.append(("api.exec_create", container))
        exec_id = f"e{next(self.ids)}"
        self.execs[exec_id] = {"container": container, "cmd": cmd, "user": user, "tty": tty}
        return {"Id": exec_id}

    def exec_start(self, exec_id, stream=False, tty=False):
        self.client.calls.append(("api.exec_start", exec_id))
        return iter(list(self.exec_chunks))

    def exec_inspect(self, exec_id):
        return {"ExitCode": self.exec_exit_code, "Running": False}


class FakeClient:
    """Just enough of docker.DockerClient, recording every call."""

    def __init__(self):
        self.calls = []
        self.fail_stop = False
        self.containers = FakeContainers(self)
        self.images = FakeImages(self)
        self.api = FakeAPI(self)

    def mutations(self):
        return [c for c in self.calls if c[0] not in ("containers.get", "images.get")]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config():
    return SessionConfig.from_data(default_session())


@pytest.fixture
def identity(tmp_path):
    return Identity(
        uid=1000,
        gid=1000,
        name="gamer",
        home=tmp_path / "home",
        runtime_dir=Path("/run/user/1000"),
    )


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def make_controller(tmp_path, config, identity, client):
    """Build a controller against the stub daemon and a fake host."""

    def _make(dev_names=("dri", "snd", "input"), helpers=(), environ=None, **kwargs):
        dev = make_dev(tmp_path, *dev_names)
        if environ is None:
            environ = {"WAYLAND_DISPLAY": "wayland-0"}
        kwargs.setdefault("output", io.StringIO())
        kwargs.setdefault("stream_output", io.BytesIO())
        return SessionController(
            config,
            identity,
            client=client,
            environ=environ,
            dev_path=dev,
            host_root=tmp_path / "root",
            which=found(*helpers),
            data_root=tmp_path / "data",
            **kwargs,
        )

    return _make
