from .detect import (
    HostCapabilities, detect_capabilities, detect_display_transport,
    detect_gpu, detect_nvidia_devices, detect_shared_dirs,
    GPU_NONE, GPU_MESA, GPU_NVIDIA,
    DISPLAY_NONE, DISPLAY_X11, DISPLAY_WAYLAND,
)
