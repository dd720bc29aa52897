from .spec import ExecutionSpec, Mount, build_spec, spec_data, spec_json
from .podman import (
    SessionController, ExecStream, connect, launch_session, forward,
    create_container,
)
