import json
from collections import namedtuple

from hackerosteam.errors import InvalidIdentity, NvidiaToolkitMissing
from hackerosteam.host import GPU_NVIDIA, DISPLAY_X11, DISPLAY_WAYLAND
from hackerosteam.storage import overlay_options

NAMESPACE_HOST = 'host'
USERNS_KEEP_ID = 'keep-id'

SECURITY_OPTS = ('label=disable', 'no-new-privileges')


Mount = namedtuple('Mount', [
    'type', 'source', 'target', 'read_only', 'propagation',
    'driver', 'driver_options',
], defaults=(False, None, None, ()))

ExecutionSpec = namedtuple('ExecutionSpec', [
    'image', 'name', 'command', 'tty',
    'mounts', 'device_cgroup_rules',
    'cap_drop', 'cap_add',
    'userns_mode', 'ipc_mode', 'pid_mode', 'uts_mode', 'network_mode',
    'cpu_period', 'cpu_quota', 'memory', 'pids_limit', 'blkio_weight',
    'environment', 'security_opt', 'runtime',
])


def _bind(source, target=None, read_only=False, propagation=None):
    return Mount(
        type='bind',
        source=str(source),
        target=str(target or source),
        read_only=read_only,
        propagation=propagation,
    )

def _overlay_mount(config, layout):
    # Named volume on the local driver, so the kernel does the layering
    return Mount(
        type='volume',
        source=f"{config.name}-home",
        target=config.home,
        driver='local',
        driver_options=(
            ('device', 'overlay'),
            ('o', overlay_options(layout)),
            ('type', 'overlay'),
        ),
    )

def _cgroup_rule(major):
    return f"c {major}:* rwm"

def _check_identity(identity):
    for value in (identity.uid, identity.gid):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InvalidIdentity(identity.uid, identity.gid)

def _environment(config, caps, identity):
    rundir = str(identity.runtime_dir)
    env_vars = {
        'XDG_RUNTIME_DIR': rundir,
        'PULSE_SERVER': f"unix:{rundir}/pulse/native",
        'DBUS_SESSION_BUS_ADDRESS': f"unix:path={rundir}/bus",
    }
    env_vars.update(config.env)

    # Only the transport actually in use, with its real address
    if caps.display_transport == DISPLAY_X11:
        env_vars['DISPLAY'] = caps.display_address
    elif caps.display_transport == DISPLAY_WAYLAND:
        env_vars['WAYLAND_DISPLAY'] = caps.display_address

    if caps.gpu_vendor == GPU_NVIDIA:
        env_vars.update(config.nvidia_env)

    return tuple(sorted(env_vars.items()))

def _mounts(config, caps, layout, identity):
    mounts = [
        _bind(config.x11_socket, read_only=True),
        _bind(identity.runtime_dir, propagation='private'),
        _overlay_mount(config, layout),
    ]
    mounts.extend(_bind(f"/dev/{name}") for name in config.device_dirs)

    if caps.gpu_vendor == GPU_NVIDIA:
        for dev in caps.nvidia_devices:
            name = dev.rstrip('/').rsplit('/', 1)[-1]
            mounts.append(_bind(dev, f"/dev/{name}"))

    mounts.extend(_bind(path, read_only=True) for path in caps.shared_dirs)

    return tuple(mounts)

def build_spec(config, caps, layout, identity):
    _check_identity(identity)

    majors = list(config.device_majors)
    runtime = None
    if caps.gpu_vendor == GPU_NVIDIA:
        if not caps.nvidia_toolkit:
            raise NvidiaToolkitMissing(
                caps.nvidia_devices[0] if caps.nvidia_devices else '',
                config.nvidia_helpers,
            )
        majors.extend(config.nvidia_majors)
        runtime = config.nvidia_runtime

    return ExecutionSpec(
        image=config.image,
        name=config.name,
        command=tuple(config.keepalive),
        tty=True,
        mounts=_mounts(config, caps, layout, identity),
        device_cgroup_rules=tuple(_cgroup_rule(m) for m in majors),
        cap_drop=tuple(config.cap_drop),
        cap_add=tuple(config.cap_add),
        userns_mode=USERNS_KEEP_ID,
        ipc_mode=NAMESPACE_HOST,
        pid_mode=NAMESPACE_HOST,
        uts_mode=NAMESPACE_HOST,
        network_mode=NAMESPACE_HOST,
        cpu_period=config.cpu_period,
        cpu_quota=config.cpu_quota,
        memory=config.memory,
        pids_limit=config.pids_limit,
        blkio_weight=config.blkio_weight,
        environment=_environment(config, caps, identity),
        security_opt=SECURITY_OPTS,
        runtime=runtime,
    )

def spec_data(spec):
    data = spec._asdict()
    data['mounts'] = [
        {**m._asdict(), 'driver_options': dict(m.driver_options)}
        for m in spec.mounts
    ]
    data['environment'] = dict(spec.environment)
    return data

def spec_json(spec):
    return json.dumps(spec_data(spec), indent='\t', sort_keys=True)
