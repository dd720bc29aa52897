"""Tests for execution spec construction: mounts, device rules, policy, environment."""

from __future__ import annotations

import pytest

from hackerosteam.errors import InvalidIdentity, NvidiaToolkitMissing
from hackerosteam.host import (
    DISPLAY_WAYLAND,
    DISPLAY_X11,
    GPU_MESA,
    GPU_NVIDIA,
    HostCapabilities,
)
from hackerosteam.runtimes import build_spec, spec_json
from hackerosteam.storage import layout_paths


def make_caps(**overrides):
    values = {
        "gpu_vendor": GPU_MESA,
        "nvidia_toolkit": False,
        "display_transport": DISPLAY_WAYLAND,
        "display_address": "wayland-1",
        "nvidia_devices": (),
        "shared_dirs": (),
    }
    values.update(overrides)
    return HostCapabilities(**values)


def nvidia_caps(*devices):
    return make_caps(
        gpu_vendor=GPU_NVIDIA,
        nvidia_toolkit=True,
        nvidia_devices=tuple(f"/dev/{d}" for d in devices),
    )


@pytest.fixture
def layout(tmp_path):
    return layout_paths(tmp_path / "data")


def targets(spec):
    return [m.target for m in spec.mounts]


# ---------------------------------------------------------------------------
# Mounts
# ---------------------------------------------------------------------------


class TestMounts:
    def test_base_mounts(self, config, layout, identity):
        spec = build_spec(config, make_caps(), layout, identity)
        assert targets(spec) == [
            "/tmp/.X11-unix",
            "/run/user/1000",
            "/home/steam",
            "/dev/dri",
            "/dev/snd",
            "/dev/input",
        ]

    def test_x11_socket_read_only(self, config, layout, identity):
        x11 = build_spec(config, make_caps(), layout, identity).mounts[0]
        assert x11.type == "bind"
        assert x11.read_only is True

    def test_runtime_dir_private_propagation(self, config, layout, identity):
        rundir = build_spec(config, make_caps(), layout, identity).mounts[1]
        assert rundir.source == "/run/user/1000"
        assert rundir.propagation == "private"

    def test_overlay_home(self, config, layout, identity):
        home = build_spec(config, make_caps(), layout, identity).mounts[2]
        assert home.type == "volume"
        assert home.source == "hackerosteam-home"
        assert home.driver == "local"
        options = dict(home.driver_options)
        assert options["type"] == "overlay"
        assert options["o"] == (
            f"lowerdir={layout.lower},upperdir={layout.upper},workdir={layout.work}"
        )

    def test_nvidia_binds_only_present_nodes(self, config, layout, identity):
        spec = build_spec(config, nvidia_caps("nvidia0", "nvidia-modeset"), layout, identity)
        nvidia = [t for t in targets(spec) if t.startswith("/dev/nvidia")]
        assert nvidia == ["/dev/nvidia0", "/dev/nvidia-modeset"]

    def test_mesa_never_binds_nvidia(self, config, layout, identity):
        caps = make_caps(nvidia_devices=("/dev/nvidia0",))
        spec = build_spec(config, caps, layout, identity)
        assert not [t for t in targets(spec) if t.startswith("/dev/nvidia")]

    def test_shared_dirs_read_only(self, config, layout, identity):
        caps = make_caps(shared_dirs=("/usr/share/vulkan",))
        mount = build_spec(config, caps, layout, identity).mounts[-1]
        assert mount.target == "/usr/share/vulkan"
        assert mount.read_only is True


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class TestPolicy:
    def test_device_cgroup_rules_mesa(self, config, layout, identity):
        spec = build_spec(config, make_caps(), layout, identity)
        assert spec.device_cgroup_rules == ("c 226:* rwm", "c 116:* rwm", "c 13:* rwm")
        assert spec.runtime is None

    def test_device_cgroup_rules_nvidia(self, config, layout, identity):
        spec = build_spec(config, nvidia_caps("nvidia0"), layout, identity)
        assert spec.device_cgroup_rules[-2:] == ("c 195:* rwm", "c 235:* rwm")
        assert spec.runtime == "nvidia"

    def test_capabilities(self, config, layout, identity):
        spec = build_spec(config, make_caps(), layout, identity)
        assert spec.cap_drop == ("ALL",)
        assert spec.cap_add == ("SYS_NICE", "IPC_LOCK")

    def test_namespaces(self, config, layout, identity):
        spec = build_spec(config, make_caps(), layout, identity)
        assert spec.userns_mode == "keep-id"
        assert (spec.ipc_mode, spec.pid_mode, spec.uts_mode, spec.network_mode) == (
            "host",
            "host",
            "host",
            "host",
        )

    def test_limits(self, config, layout, identity):
        spec = build_spec(config, make_caps(), layout, identity)
        assert spec.cpu_quota == 90000
        assert spec.cpu_period == 100000
        assert spec.memory == 16 * 1024**3
        assert spec.pids_limit == 4096
        assert spec.blkio_weight == 505

    def test_security_options(self, config, layout, identity):
        spec = build_spec(config, make_caps(), layout, identity)
        assert spec.security_opt == ("label=disable", "no-new-privileges")


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


class TestEnvironment:
    def test_always_set(self, config, layout, identity):
        env = dict(build_spec(config, make_caps(), layout, identity).environment)
        assert env["XDG_RUNTIME_DIR"] == "/run/user/1000"
        assert env["PULSE_SERVER"] == "unix:/run/user/1000/pulse/native"
        assert env["STEAMOS"] == "1"
        assert env["STEAM_RUNTIME"] == "1"

    def test_wayland_only(self, config, layout, identity):
        env = dict(build_spec(config, make_caps(), layout, identity).environment)
        assert env["WAYLAND_DISPLAY"] == "wayland-1"
        assert "DISPLAY" not in env

    def test_x11_only_with_real_address(self, config, layout, identity):
        caps = make_caps(display_transport=DISPLAY_X11, display_address=":2")
        env = dict(build_spec(config, caps, layout, identity).environment)
        assert env["DISPLAY"] == ":2"
        assert "WAYLAND_DISPLAY" not in env

    def test_nvidia_visibility(self, config, layout, identity):
        env = dict(build_spec(config, nvidia_caps("nvidia0"), layout, identity).environment)
        assert env["NVIDIA_VISIBLE_DEVICES"] == "all"
        assert env["NVIDIA_DRIVER_CAPABILITIES"] == "all"

    def test_no_nvidia_vars_on_mesa(self, config, layout, identity):
        env = dict(build_spec(config, make_caps(), layout, identity).environment)
        assert "NVIDIA_VISIBLE_DEVICES" not in env


# ---------------------------------------------------------------------------
# Validation and determinism
# ---------------------------------------------------------------------------


class TestBuildSpec:
    def test_negative_uid_rejected(self, config, layout, identity):
        with pytest.raises(InvalidIdentity):
            build_spec(config, make_caps(), layout, identity._replace(uid=-1))

    def test_non_int_gid_rejected(self, config, layout, identity):
        with pytest.raises(InvalidIdentity):
            build_spec(config, make_caps(), layout, identity._replace(gid="1000"))

    def test_nvidia_requires_toolkit_flag(self, config, layout, identity):
        caps = nvidia_caps("nvidia0")._replace(nvidia_toolkit=False)
        with pytest.raises(NvidiaToolkitMissing):
            build_spec(config, caps, layout, identity)

    def test_deterministic(self, config, layout, identity):
        first = build_spec(config, nvidia_caps("nvidia0", "nvidiactl"), layout, identity)
        second = build_spec(config, nvidia_caps("nvidia0", "nvidiactl"), layout, identity)
        assert first == second
        assert spec_json(first) == spec_json(second)

    def test_immutable(self, config, layout, identity):
        spec = build_spec(config, make_caps(), layout, identity)
        with pytest.raises(AttributeError):
            spec.image = "other"
