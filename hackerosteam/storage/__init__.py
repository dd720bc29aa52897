from .fs import (
    StorageLayout, layout_paths, resolve_layout, overlay_lock,
    ensure_overlay_initialized, overlay_options,
)
