#!/usr/bin/env python3

'''
hackerosteam - run Steam in a hardened, persistent container session
'''

__version__ = '0.2.0'

import sys
import argparse

from docker.errors import DockerException

from hackerosteam.errors import SessionError, get_language
from hackerosteam.config import load_config
from hackerosteam.runtimes import SessionController
from hackerosteam.utils import user_ids, write_log

def make_controller(args):
    identity = user_ids()
    config = load_config(uid=identity.uid)
    return SessionController(config, identity)

def create_cmd(args):
    make_controller(args).create()
    return 0

def run_cmd(args):
    return make_controller(args).run(args.session) or 0

def update_cmd(args):
    make_controller(args).update()
    return 0

def kill_cmd(args):
    make_controller(args).kill()
    return 0

def restart_cmd(args):
    make_controller(args).restart()
    return 0

def remove_cmd(args):
    make_controller(args).remove()
    return 0

def status_cmd(args):
    make_controller(args).status()
    return 0

COMMANDS = {
    'create': (create_cmd, 'Create the session container'),
    'run': (run_cmd, 'Run Steam (optionally as gamescope-session-steam)'),
    'update': (update_cmd, 'Pull the latest base image'),
    'kill': (kill_cmd, 'Force-stop Steam'),
    'restart': (restart_cmd, 'Restart the session (overlay data is kept)'),
    'remove': (remove_cmd, 'Remove the session container'),
    'status': (status_cmd, 'Show session state and PID'),
}

def make_parser():
    parser = argparse.ArgumentParser(
        prog='hackerosteam',
        description='Steam in a hardened, persistent container',
    )
    subparsers = parser.add_subparsers(dest='command', metavar='command')
    subparsers.required = True

    for name, (func, help_text) in COMMANDS.items():
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.set_defaults(func=func)
        if name == 'run':
            subparser.add_argument('session', nargs='?', default=None)

    return parser

def report_error(exc, lang=None):
    if lang is None:
        lang = get_language()

    write_log(f"error: {exc.localize(lang)}")
    hint = exc.hint(lang)
    if hint:
        write_log(hint)

def main(argv=None):
    args = make_parser().parse_args(argv)

    try:
        returncode = args.func(args)
    except SessionError as e:
        report_error(e)
        returncode = e.exit_code
    except DockerException as e:
        write_log(f"error: container runtime: {e}")
        returncode = 1

    return returncode

if __name__ == '__main__':
    sys.exit(main())
