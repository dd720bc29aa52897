'''
Fatal conditions, one class per condition

Each error carries the context needed to print a diagnosis, and knows how
to render itself in the languages listed in MESSAGES.
'''

import os

DEFAULT_LANGUAGE = 'en'

MESSAGES = {
    'en': {
        'NoGpuDevice': 'No GPU drivers found (missing {path})',
        'NoDisplaySession': 'No graphical session found (X11/Wayland)',
        'NvidiaToolkitMissing': (
            'NVIDIA GPU detected at {device}, but no container toolkit '
            'found on PATH (looked for: {helpers})'
        ),
        'RuntimeUnreachable': 'Cannot reach the container runtime at {address}',
        'InvalidIdentity': 'Cannot resolve user/group id {uid}:{gid}',
        'InstallFailed': (
            'First-boot install in {name} failed with exit code {exit_code}'
        ),
    },
    'pl': {
        'NoGpuDevice': 'Brak sterowników GPU (brak {path})',
        'NoDisplaySession': 'Nie znaleziono sesji graficznej (X11/Wayland)',
        'NvidiaToolkitMissing': (
            'NVIDIA wykryte ({device}), ale brak sterowników '
            '(szukano: {helpers})'
        ),
        'RuntimeUnreachable': 'Brak połączenia z usługą kontenerów ({address})',
        'InvalidIdentity': 'Nie można ustalić użytkownika/grupy {uid}:{gid}',
        'InstallFailed': (
            'Instalacja w kontenerze {name} nie powiodła się '
            '(kod wyjścia {exit_code})'
        ),
    },
}

HINTS = {
    'en': {
        'RuntimeUnreachable': (
            'Start it with: systemctl --user enable --now podman.socket'
        ),
        'NvidiaToolkitMissing': 'Install nvidia-container-toolkit',
    },
    'pl': {
        'RuntimeUnreachable': (
            'Uruchom: systemctl --user enable --now podman.socket'
        ),
        'NvidiaToolkitMissing': 'Zainstaluj nvidia-container-toolkit',
    },
}

def get_language(environ=None):
    if environ is None:
        environ = os.environ

    for var in ('LC_ALL', 'LC_MESSAGES', 'LANG'):
        value = environ.get(var)
        if value:
            lang = value.split('_', 1)[0].split('.', 1)[0].lower()
            return lang if lang in MESSAGES else DEFAULT_LANGUAGE

    return DEFAULT_LANGUAGE


class SessionError(Exception):

    exit_code = 1

    def __init__(self, **context):
        self.context = context
        super().__init__(self.localize(DEFAULT_LANGUAGE))

    def __repr__(self):
        info = [self.kind]
        info.extend(f"{k}={v!r}" for k, v in self.context.items())
        return '<{}>'.format(' '.join(info))

    @property
    def kind(self):
        return self.__class__.__name__

    def localize(self, lang=None):
        if lang is None:
            lang = get_language()
        messages = MESSAGES.get(lang, MESSAGES[DEFAULT_LANGUAGE])
        return messages[self.kind].format(**self.context)

    def hint(self, lang=None):
        if lang is None:
            lang = get_language()
        hints = HINTS.get(lang, HINTS[DEFAULT_LANGUAGE])
        return hints.get(self.kind)


class NoGpuDevice(SessionError):

    exit_code = 2

    def __init__(self, path):
        self.path = path
        super().__init__(path=path)


class NoDisplaySession(SessionError):

    exit_code = 3

    def __init__(self):
        super().__init__()


class NvidiaToolkitMissing(SessionError):

    exit_code = 4

    def __init__(self, device, helpers=()):
        self.device = device
        self.helpers = tuple(helpers)
        super().__init__(device=device, helpers=', '.join(self.helpers))


class RuntimeUnreachable(SessionError):

    exit_code = 5

    def __init__(self, address):
        self.address = address
        super().__init__(address=address)


class InvalidIdentity(SessionError):

    exit_code = 6

    def __init__(self, uid, gid):
        self.uid = uid
        self.gid = gid
        super().__init__(uid=uid, gid=gid)


class InstallFailed(SessionError):

    exit_code = 7

    def __init__(self, name, exit_code):
        self.name = name
        self.install_exit_code = exit_code
        super().__init__(name=name, exit_code=exit_code)
