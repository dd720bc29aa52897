import copy
import toml
from pathlib import Path
from collections import namedtuple

from hackerosteam.utils import probably_root
from .defaults import (
    CONFIG_DIRNAME, config_dir, default_session,
    BLKIO_WEIGHT_MIN, BLKIO_WEIGHT_MAX,
)

CONFIG_FILENAME = 'hackerosteam.toml'

_FIELDS = [
    'name', 'image', 'home', 'user', 'group', 'keepalive',
    'x11_socket',
    'device_dirs', 'device_majors', 'shared_dirs',
    'nvidia_devices', 'nvidia_majors', 'nvidia_helpers', 'nvidia_runtime',
    'nvidia_env',
    'cpu_period', 'cpu_quota', 'memory', 'pids_limit', 'blkio_weight',
    'cap_drop', 'cap_add',
    'env', 'profiles', 'prelaunch', 'install_script',
    'path',
]


def _pairs(mapping):
    return tuple(sorted((str(k), str(v)) for k, v in mapping.items()))


class SessionConfig(namedtuple('SessionConfig', _FIELDS)):

    __slots__ = ()

    def __repr__(self):
        path = str(self.path) if self.path else None
        return (
            f"<{self.__class__.__name__} name={self.name!r} "
            f"image={self.image!r} path={path!r}>"
        )

    @classmethod
    def from_data(cls, data, path=None):
        session = data['session']
        devices = data['devices']
        nvidia = data['nvidia']
        limits = data['limits']
        launch = data['launch']

        blkio_weight = int(limits['blkio_weight'])
        if not BLKIO_WEIGHT_MIN <= blkio_weight <= BLKIO_WEIGHT_MAX:
            raise ValueError(
                f'blkio_weight must be within {BLKIO_WEIGHT_MIN}..'
                f'{BLKIO_WEIGHT_MAX}, got {blkio_weight}'
            )
        if len(devices['dirs']) != len(devices['majors']):
            raise ValueError('devices.dirs and devices.majors differ in length')

        return cls(
            name=session['name'],
            image=session['image'],
            home=session['home'],
            user=session['user'],
            group=session['group'],
            keepalive=tuple(session['keepalive']),
            x11_socket=data['display']['x11_socket'],
            device_dirs=tuple(devices['dirs']),
            device_majors=tuple(int(m) for m in devices['majors']),
            shared_dirs=tuple(devices['shared']),
            nvidia_devices=tuple(nvidia['devices']),
            nvidia_majors=tuple(int(m) for m in nvidia['majors']),
            nvidia_helpers=tuple(nvidia['helpers']),
            nvidia_runtime=nvidia['runtime'],
            nvidia_env=_pairs(nvidia['env']),
            cpu_period=int(limits['cpu_period']),
            cpu_quota=int(limits['cpu_quota']),
            memory=int(limits['memory']),
            pids_limit=int(limits['pids']),
            blkio_weight=blkio_weight,
            cap_drop=tuple(data['caps']['drop']),
            cap_add=tuple(data['caps']['add']),
            env=_pairs(data['env']),
            profiles=_pairs(data['profiles']),
            prelaunch=launch['prelaunch'],
            install_script=launch['install'],
            path=Path(path) if path else None,
        )

    def session_command(self, profile=None):
        profiles = dict(self.profiles)
        command = profiles.get(profile) if profile else None
        if command is None:
            command = profiles['default']
        if self.prelaunch:
            # Keep the fallback intact by grouping the launch command
            command = f"{self.prelaunch}; {{ {command}; }}"
        return command

    def install_command(self, identity):
        return self.install_script.format(
            uid=identity.uid,
            gid=identity.gid,
            user=self.user,
            group=self.group,
            home=self.home,
            name=self.name,
        )


def merge_config(base, override, source='config'):
    merged = copy.deepcopy(base)

    for section, values in override.items():
        if section not in merged:
            raise ValueError(f'Unknown section {section!r} in {source}')
        if not isinstance(values, dict):
            raise ValueError(f'Section {section!r} in {source} must be a table')
        current = merged[section]
        for key, value in values.items():
            # Free-form sections accept new keys
            if key not in current and section not in ('env', 'profiles'):
                raise ValueError(
                    f'Unknown key {section}.{key} in {source}'
                )
            current[key] = value

    return merged

def find_config_file(dirs=None, rootless=None, uid=None):
    if rootless is None:
        rootless = not probably_root()

    if dirs is None:
        cwd_base = Path.cwd() / CONFIG_DIRNAME
        dirs = [cwd_base, config_dir(uid, rootless=rootless)]

    for dirp in dirs:
        config_path = Path(dirp) / CONFIG_FILENAME
        if config_path.exists():
            return config_path

    return None

def load_config(dirs=None, rootless=None, uid=None):
    data = default_session()

    config_path = find_config_file(dirs, rootless=rootless, uid=uid)
    if config_path:
        data = merge_config(
            data, toml.load(config_path), source=str(config_path)
        )

    return SessionConfig.from_data(data, path=config_path)
