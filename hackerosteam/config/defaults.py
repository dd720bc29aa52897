import os
import pwd
from pathlib import Path

from hackerosteam.utils import probably_root

# Allowed blkio weight range, per the runtime's API
BLKIO_WEIGHT_MIN = 10
BLKIO_WEIGHT_MAX = 1000

INSTALL_SCRIPT = '''\
dnf install -y \
  https://download1.rpmfusion.org/free/fedora/rpmfusion-free-release-$(rpm -E %fedora).noarch.rpm \
  https://download1.rpmfusion.org/nonfree/fedora/rpmfusion-nonfree-release-$(rpm -E %fedora).noarch.rpm &&
dnf install -y steam gamescope vulkan-tools mesa-vulkan-drivers \
  pipewire-pulseaudio gamemode glibc-langpack-en util-linux shadow-utils &&
if getent passwd {uid} >/dev/null; then
  userdel "$(getent passwd {uid} | cut -d: -f1)" || true
fi &&
if getent group {gid} >/dev/null; then
  groupdel "$(getent group {gid} | cut -d: -f1)" || true
fi &&
groupadd -g {gid} {group} &&
useradd -M -d {home} -u {uid} -g {gid} {user} &&
mkdir -p {home}/.steam &&
chown -R {uid}:{gid} {home} &&
echo "Session {name} ready"
'''

CONFIG_DIRNAME = '.hackerosteam'
SYSTEM_CONFIG_DIR = Path('/etc/hackerosteam')

def config_dir(uid=None, rootless=None):
    if rootless is None:
        rootless = not probably_root()
    if not rootless:
        return SYSTEM_CONFIG_DIR

    if uid is None or uid == os.geteuid():
        return Path.home() / CONFIG_DIRNAME
    # Another user's config, HOME points at ours
    return Path(pwd.getpwuid(uid).pw_dir) / CONFIG_DIRNAME

def default_session(name='hackerosteam', image=None):
    if image is None:
        image = 'registry.fedoraproject.org/fedora:41'

    return {
        'session': {
            'name': name,
            'image': image,
            'home': '/home/steam',
            'user': 'steam',
            'group': 'steamgroup',
            'keepalive': ['sleep', 'infinity'],
        },
        'display': {
            'x11_socket': '/tmp/.X11-unix',
        },
        'devices': {
            # graphics, sound, input
            'dirs': ['dri', 'snd', 'input'],
            'majors': [226, 116, 13],
            'shared': [
                '/usr/share/vulkan',
                '/usr/share/glvnd',
                '/usr/share/drirc.d',
            ],
        },
        'nvidia': {
            'devices': [
                'nvidia0',
                'nvidiactl',
                'nvidia-modeset',
                'nvidia-uvm',
                'nvidia-uvm-tools',
            ],
            'majors': [195, 235],
            'helpers': [
                'nvidia-container-toolkit',
                'nvidia-container-runtime',
                'nvidia-ctk',
            ],
            'runtime': 'nvidia',
            'env': {
                'NVIDIA_VISIBLE_DEVICES': 'all',
                'NVIDIA_DRIVER_CAPABILITIES': 'all',
            },
        },
        'limits': {
            'cpu_period': 100000,
            # 90% of one period
            'cpu_quota': 90000,
            'memory': 16 * 1024 ** 3,
            'pids': 4096,
            'blkio_weight': (BLKIO_WEIGHT_MIN + BLKIO_WEIGHT_MAX) // 2,
        },
        'caps': {
            'drop': ['ALL'],
            'add': ['SYS_NICE', 'IPC_LOCK'],
        },
        'env': {
            'STEAMOS': '1',
            'STEAM_RUNTIME': '1',
        },
        'profiles': {
            'default': 'steam -silent || steam',
            'gamescope-session-steam': 'gamescope -e -- steam -gamepadui',
            'deck': 'gamescope -e -- steam -gamepadui',
        },
        'launch': {
            'prelaunch': 'rm -f ~/.steam/steam.pid ~/.steam/.crash',
            'install': INSTALL_SCRIPT,
        },
    }
