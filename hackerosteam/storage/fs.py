import os
import fcntl
import shutil
from pathlib import Path
from collections import namedtuple
from contextlib import contextmanager

from hackerosteam.utils import (
    ensure_private_dirs, is_empty_dir, get_data_dir, write_log, debug_log,
)

LOCK_FILENAME = '.lock'


StorageLayout = namedtuple('StorageLayout', ['base', 'upper', 'work', 'lower'])


def layout_paths(base):
    base = Path(base)
    return StorageLayout(
        base=base,
        upper=base / 'upper',
        work=base / 'work',
        # Read-only floor of the overlay, always empty
        lower=base / 'empty',
    )

def resolve_layout(identity, data_root=None, environ=None):
    if data_root is None:
        data_root = get_data_dir(
            identity.uid, home=identity.home, environ=environ
        )

    layout = layout_paths(data_root)

    created = ensure_private_dirs(
        layout.base, layout.lower, layout.upper, layout.work
    )
    for path in created:
        debug_log(f"Created {path}")

    return layout

@contextmanager
def overlay_lock(layout):
    ensure_private_dirs(layout.base)
    lock_path = Path(layout.base) / LOCK_FILENAME

    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
    try:
        # Blocks while another invocation holds it
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            yield lock_path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)

def ensure_overlay_initialized(layout):
    with overlay_lock(layout):
        upper = Path(layout.upper)
        work = Path(layout.work)

        if is_empty_dir(upper):
            # First boot: fresh writable layer
            write_log('Initializing overlay storage...')
            if work.exists():
                shutil.rmtree(work)
            ensure_private_dirs(upper, work)
            return True

        # Restoring prior session state, leave upper alone
        debug_log(f"Found existing overlay data at {upper}")
        ensure_private_dirs(work)
        return False

def overlay_options(layout):
    return (
        f"lowerdir={layout.lower},"
        f"upperdir={layout.upper},"
        f"workdir={layout.work}"
    )
