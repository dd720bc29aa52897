from .defaults import config_dir, default_session
from .session import SessionConfig, load_config, merge_config
