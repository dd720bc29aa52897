from .files import ensure_private_dirs, is_empty_dir, get_runtime_dir, get_data_dir
from .log import write_log, warn_log, debug_log
from .users import Identity, probably_root, user_ids
