'''
Read-only probing of the host: GPU vendor, Nvidia toolkit, display transport
'''

import os
import shutil
from pathlib import Path
from collections import namedtuple

from hackerosteam.errors import NoGpuDevice, NoDisplaySession, NvidiaToolkitMissing
from hackerosteam.utils import debug_log, write_log

GPU_NONE = 'none'
GPU_MESA = 'mesa'
GPU_NVIDIA = 'nvidia'

DISPLAY_NONE = 'none'
DISPLAY_X11 = 'x11'
DISPLAY_WAYLAND = 'wayland'

# Checked in order, first one set wins
DISPLAY_SIGNALS = (
    (DISPLAY_WAYLAND, 'WAYLAND_DISPLAY'),
    (DISPLAY_X11, 'DISPLAY'),
)


HostCapabilities = namedtuple('HostCapabilities', [
    'gpu_vendor',
    'nvidia_toolkit',
    'display_transport',
    'display_address',
    'nvidia_devices',
    'shared_dirs',
])


def detect_display_transport(environ=None):
    if environ is None:
        environ = os.environ

    for transport, var in DISPLAY_SIGNALS:
        value = environ.get(var)
        if value:
            return transport, value

    return DISPLAY_NONE, None

def detect_gpu(config, dev_path='/dev', which=shutil.which):
    dev_path = Path(dev_path)

    dri_path = dev_path / 'dri'
    if not dri_path.exists():
        raise NoGpuDevice(str(dri_path))

    nvidia_path = dev_path / config.nvidia_devices[0]
    if not nvidia_path.exists():
        return GPU_MESA, False

    for helper in config.nvidia_helpers:
        found = which(helper)
        if found:
            debug_log(f"Found Nvidia toolkit helper at {found}")
            return GPU_NVIDIA, True

    raise NvidiaToolkitMissing(str(nvidia_path), config.nvidia_helpers)

def detect_nvidia_devices(config, dev_path='/dev'):
    dev_path = Path(dev_path)
    return tuple(
        str(dev_path / name) for name in config.nvidia_devices
        if (dev_path / name).exists()
    )

def detect_shared_dirs(config, host_root='/'):
    host_root = Path(host_root)
    return tuple(
        path for path in config.shared_dirs
        if (host_root / path.lstrip('/')).is_dir()
    )

def detect_capabilities(config, environ=None, dev_path='/dev',
                        host_root='/', which=shutil.which):
    gpu_vendor, toolkit = detect_gpu(config, dev_path=dev_path, which=which)

    transport, address = detect_display_transport(environ)
    if transport == DISPLAY_NONE:
        raise NoDisplaySession()

    if gpu_vendor == GPU_NVIDIA:
        nvidia_devices = detect_nvidia_devices(config, dev_path=dev_path)
        write_log('NVIDIA detected, using the nvidia container runtime')
    else:
        nvidia_devices = ()
        write_log('GPU: Intel/AMD (Mesa), full acceleration')

    caps = HostCapabilities(
        gpu_vendor=gpu_vendor,
        nvidia_toolkit=toolkit,
        display_transport=transport,
        display_address=address,
        nvidia_devices=nvidia_devices,
        shared_dirs=detect_shared_dirs(config, host_root=host_root),
    )
    debug_log(f"Host capabilities: {caps!r}")

    return caps
