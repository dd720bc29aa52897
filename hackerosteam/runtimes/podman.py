import os
import sys
import shutil
from pathlib import Path

import docker
import requests
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.types import DriverConfig, Mount as DockerMount

from hackerosteam.errors import InstallFailed, RuntimeUnreachable
from hackerosteam.host import detect_capabilities
from hackerosteam.storage import resolve_layout, ensure_overlay_initialized
from hackerosteam.utils import write_log, warn_log, debug_log
from . import spec as spec_lib

ROOT_SOCKET = Path('/run/podman/podman.sock')


def runtime_socket(identity):
    if identity.uid:
        return Path(identity.runtime_dir) / 'podman' / 'podman.sock'
    return ROOT_SOCKET

def connect(identity, environ=None):
    if environ is None:
        environ = os.environ

    socket_path = runtime_socket(identity)
    if socket_path.exists():
        address = f"unix://{socket_path}"
    else:
        # No podman socket, so whatever the environment points at
        address = environ.get('DOCKER_HOST') or 'unix:///var/run/docker.sock'

    try:
        client = docker.DockerClient(base_url=address, version='auto')
        client.ping()
    except (DockerException, OSError) as e:
        raise RuntimeUnreachable(address) from e

    debug_log(f"Connected to container runtime at {address}")
    return client


class ExecStream(object):

    def __init__(self, api, exec_id, chunks):
        self.exec_id = exec_id
        self._api = api
        self._chunks = chunks
        self._consumed = False
        self._closed = False
        self._exit_code = None

    def __repr__(self):
        return (
            f"<{self.__class__.__name__} exec_id={self.exec_id!r} "
            f"closed={self._closed!r}>"
        )

    def __iter__(self):
        if self._consumed:
            raise RuntimeError('Exec stream already consumed')
        self._consumed = True
        return self._drain()

    def _drain(self):
        try:
            for chunk in self._chunks:
                if chunk:
                    yield chunk
        finally:
            self.close()

    @property
    def closed(self):
        return self._closed

    @property
    def exit_code(self):
        if not self._closed:
            return None
        if self._exit_code is None:
            info = self._api.exec_inspect(self.exec_id)
            self._exit_code = info.get('ExitCode')
        return self._exit_code

    def close(self):
        if self._closed:
            return
        self._closed = True
        close = getattr(self._chunks, 'close', None)
        if close:
            close()


def launch_session(client, container_id, command, user=None, tty=True,
                   environment=None):
    api = client.api
    exec_info = api.exec_create(
        container_id, list(command),
        stdout=True, stderr=True, stdin=False,
        tty=tty, user=user or '', environment=environment,
    )
    chunks = api.exec_start(exec_info['Id'], stream=True, tty=tty)
    return ExecStream(api, exec_info['Id'], chunks)

def forward(stream, output=None):
    if output is None:
        output = sys.stdout.buffer

    for chunk in stream:
        output.write(chunk)
        output.flush()

    return stream.exit_code

def _docker_mount(mount):
    if mount.type == 'volume':
        return DockerMount(
            mount.target, mount.source, type='volume',
            read_only=mount.read_only,
            driver_config=DriverConfig(
                mount.driver, dict(mount.driver_options)
            ),
        )
    return DockerMount(
        mount.target, mount.source, type=mount.type,
        read_only=mount.read_only, propagation=mount.propagation,
    )

def create_container(api, spec):
    host_config = api.create_host_config(
        mounts=[_docker_mount(m) for m in spec.mounts],
        device_cgroup_rules=list(spec.device_cgroup_rules),
        cap_drop=list(spec.cap_drop),
        cap_add=list(spec.cap_add),
        ipc_mode=spec.ipc_mode,
        pid_mode=spec.pid_mode,
        uts_mode=spec.uts_mode,
        network_mode=spec.network_mode,
        cpu_period=spec.cpu_period,
        cpu_quota=spec.cpu_quota,
        mem_limit=spec.memory,
        pids_limit=spec.pids_limit,
        blkio_weight=spec.blkio_weight,
        security_opt=list(spec.security_opt),
        runtime=spec.runtime,
    )
    # Not accepted by create_host_config, which only allows 'host'
    host_config['UsernsMode'] = spec.userns_mode

    return api.create_container(
        spec.image,
        command=list(spec.command),
        name=spec.name,
        tty=spec.tty,
        environment=dict(spec.environment),
        host_config=host_config,
    )


class SessionController(object):

    def __init__(self, config, identity, client=None, environ=None,
                 dev_path='/dev', host_root='/', which=shutil.which,
                 data_root=None, output=None, stream_output=None):
        self.config = config
        self.identity = identity
        self.environ = os.environ if environ is None else environ
        self.dev_path = dev_path
        self.host_root = host_root
        self.which = which
        self.data_root = data_root
        self.output = output
        self.stream_output = stream_output
        self._client = client

    def __repr__(self):
        return (
            f"<{self.__class__.__name__} name={self.name!r} "
            f"uid={self.identity.uid!r}>"
        )

    @property
    def name(self):
        return self.config.name

    @property
    def client(self):
        # Deferred so host checks fail before touching the daemon
        if self._client is None:
            self._client = connect(self.identity, environ=self.environ)
        return self._client

    def _write_output(self, message):
        print(message, file=self.output or sys.stdout, flush=True)

    def _inspect(self):
        try:
            return self.client.containers.get(self.name)
        except NotFound:
            return None

    def _ensure_image(self):
        try:
            self.client.images.get(self.config.image)
        except ImageNotFound:
            write_log(f"Pulling image {self.config.image}")
            self.client.images.pull(self.config.image)

    def _stream(self, container_id, command, user):
        stream = launch_session(
            self.client, container_id, ['/bin/bash', '-c', command],
            user=user, tty=True,
        )
        return forward(stream, output=self.stream_output)

    # Pipeline steps

    def prepare(self):
        caps = detect_capabilities(
            self.config, environ=self.environ, dev_path=self.dev_path,
            host_root=self.host_root, which=self.which,
        )
        layout = resolve_layout(
            self.identity, data_root=self.data_root, environ=self.environ
        )
        ensure_overlay_initialized(layout)
        return spec_lib.build_spec(self.config, caps, layout, self.identity)

    def _provision(self, spec):
        self._ensure_image()

        write_log('Creating the Steam session container...')
        created = create_container(self.client.api, spec)
        container = self.client.containers.get(created['Id'])
        write_log(f"Session {self.name} created")

        # First boot, install packages and the session user
        try:
            container.start()
            exit_code = self._stream(
                container.id, self.config.install_command(self.identity),
                'root',
            )
            container.stop()
            if exit_code:
                raise InstallFailed(self.name, exit_code)
        except BaseException:
            # Leave nothing half-provisioned behind, next create retries
            self._discard(container)
            raise

        return container

    def _discard(self, container):
        try:
            container.remove(force=True)
        except (DockerException, requests.exceptions.RequestException) as e:
            warn_log(f"Could not remove session {self.name}: {e}")

    # Lifecycle commands

    def create(self):
        spec = self.prepare()
        debug_log(f"Execution spec:\n{spec_lib.spec_json(spec)}")

        if self._inspect() is not None:
            write_log(f"Session {self.name} already exists")
            return spec

        self._provision(spec)
        return spec

    def run(self, profile=None):
        self.create()

        container = self._inspect()
        if container is None:
            raise NotFound(f"Session {self.name} vanished after create")
        if container.status != 'running':
            container.start()

        command = self.config.session_command(profile)
        write_log(f"Launching: {command}")
        return self._stream(container.id, command, self.config.user)

    def update(self):
        write_log('Updating the base image...')
        image = self.client.images.pull(self.config.image)
        write_log(
            f"Image {self.config.image} updated. Run `remove` and `create` "
            f"to rebuild the session on it"
        )
        return image

    def kill(self):
        container = self._inspect()
        if container is None:
            write_log(f"Session {self.name} does not exist")
            return False
        if container.status != 'running':
            write_log(f"Session {self.name} is not running")
            return False

        container.kill()
        write_log('Steam stopped')
        return True

    def restart(self):
        container = self._inspect()
        if container is None:
            write_log(f"Session {self.name} does not exist")
            return False

        container.restart()
        warn_log('Session restarted, overlay data preserved')
        return True

    def remove(self):
        container = self._inspect()
        if container is None:
            write_log(f"Session {self.name} does not exist")
            return False

        try:
            container.stop()
        except (DockerException, requests.exceptions.RequestException) as e:
            # Forced delete follows anyway
            debug_log(f"Ignoring stop failure: {e}")

        container.remove(force=True)
        write_log(f"Session {self.name} removed")
        return True

    def status(self):
        try:
            container = self._inspect()
        except APIError as e:
            debug_log(f"Inspect failed: {e}")
            container = None
        if container is None:
            self._write_output(f"Session {self.name} does not exist.")
            return None

        state = container.attrs.get('State', {})
        status = state.get('Status', container.status)
        pid = state.get('Pid') or 0
        self._write_output(f"Status: {status} | PID: {pid}")
        return status, pid
