import os
from pathlib import Path

def ensure_private_dirs(*paths, mode=0o700):
    created = []
    for path in map(Path, paths):
        if path.is_dir():
            continue
        path.mkdir(parents=True, exist_ok=True)
        # Exact mode regardless of umask
        path.chmod(mode)
        created.append(path)
    return created

def is_empty_dir(path):
    try:
        with os.scandir(path) as entries:
            for _ in entries:
                return False
    except FileNotFoundError:
        pass
    return True

def get_runtime_dir(uid=None, environ=None):
    if environ is None:
        environ = os.environ

    # Give priority to XDG_RUNTIME_DIR
    xdg_dir = environ.get('XDG_RUNTIME_DIR')
    if xdg_dir:
        return Path(xdg_dir)

    if uid is None:
        uid = os.geteuid()
    if uid:
        return Path('/run/user') / str(uid)
    return Path('/run')

def get_data_dir(uid=None, home=None, environ=None):
    if environ is None:
        environ = os.environ

    if uid is None:
        uid = os.geteuid()
    if not uid:
        return Path('/var/lib/hackerosteam')

    xdg_dir = environ.get('XDG_DATA_HOME')
    if xdg_dir:
        base = Path(xdg_dir)
    else:
        if home is None:
            home = environ.get('HOME') or Path.home()
        base = Path(home) / '.local/share'

    return base / 'hackerosteam'
