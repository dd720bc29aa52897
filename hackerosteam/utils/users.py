import os
import pwd
from collections import namedtuple
from pathlib import Path

from hackerosteam.errors import InvalidIdentity
from .files import get_runtime_dir


Identity = namedtuple('Identity', ['uid', 'gid', 'name', 'home', 'runtime_dir'])


def probably_root():
    return os.geteuid() == 0

def user_ids(uid=None, gid=None, environ=None):
    if environ is None:
        environ = os.environ
    if uid is None:
        uid = os.getuid()
    if gid is None:
        gid = os.getgid()

    if not isinstance(uid, int) or not isinstance(gid, int):
        raise InvalidIdentity(uid, gid)
    if uid < 0 or gid < 0:
        raise InvalidIdentity(uid, gid)

    try:
        entry = pwd.getpwuid(uid)
    except KeyError:
        raise InvalidIdentity(uid, gid) from None

    # Prefer $HOME for the current user, passwd entry otherwise
    home = environ.get('HOME') if uid == os.getuid() else None
    home = Path(home or entry.pw_dir)

    return Identity(
        uid=uid,
        gid=gid,
        name=entry.pw_name,
        home=home,
        runtime_dir=get_runtime_dir(uid, environ=environ),
    )
