import os
import sys

_debug = bool(os.environ.get('HACKEROSTEAM_DEBUG'))

def write_log(message, file=None, flush=True):
    if file is None:
        file = sys.stderr
    print(message, file=file, flush=flush)

def warn_log(message, file=None, flush=True):
    write_log(f"warning: {message}", file=file, flush=flush)

def debug_log(message, file=None, flush=True):
    if _debug:
        write_log(f"debug: {message}", file=file, flush=flush)
