"""Tests for the sysctl step"""

import pytest

from iprouter.errors import CommandError
from iprouter.installer import sysctl
from iprouter.installer.sysctl import SYSCTL_SETTINGS, apply_sysctl, setup_sysctl, strip_legacy


@pytest.fixture
def restarts(monkeypatch):
    """Record systemctl invocations instead of running them"""
    calls = []
    monkeypatch.setattr(sysctl, "systemctl", lambda *args: calls.append(args))
    return calls


def activate(config):
    """Pretend systemd-sysctl applied the policy to the kernel"""
    for key, value in SYSCTL_SETTINGS:
        path = config.paths.proc_sys / key.replace(".", "/")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(value + "\n")


class TestStripLegacy:
    def test_removes_forwarding_lines(self):
        text = "kernel.panic=10\nnet.ipv4.ip_forward = 0\nnet.ipv4.conf.all.rp_filter=1\nvm.swappiness=10\n"

        assert strip_legacy(text) == "kernel.panic=10\nvm.swappiness=10\n"

    def test_word_boundary(self):
        """Only whole words match"""
        text = "net.ipv4.ip_forwarding_extra=1\n# rp_filters are noisy\n"

        assert strip_legacy(text) == text


class TestSetupSysctl:
    """Test policy file installation and idempotence"""

    def test_first_run(self, config, restarts):
        """ip_forward is removed from sysctl.conf and the policy holds all five keys"""
        config.paths.sysctl_legacy.write_text("kernel.panic=10\nnet.ipv4.ip_forward=0\n")

        assert setup_sysctl(config)

        assert config.paths.sysctl_legacy.read_text() == "kernel.panic=10\n"
        policy = config.paths.sysctl_policy.read_text()
        for key, value in SYSCTL_SETTINGS:
            assert f"{key}={value}\n" in policy
        assert len(policy.splitlines()) == 5
        assert restarts == [("restart", "systemd-sysctl.service")]

    def test_file_mode(self, config, restarts):
        setup_sysctl(config)

        assert config.paths.sysctl_policy.stat().st_mode & 0o777 == 0o644

    def test_second_run_is_noop(self, config, restarts):
        """Nothing to change and kernel already configured: no restart"""
        config.paths.sysctl_legacy.write_text("net.ipv4.conf.all.rp_filter=1\n")
        assert apply_sysctl(config) is True
        activate(config)
        legacy_before = config.paths.sysctl_legacy.read_text()

        assert apply_sysctl(config) is False

        assert config.paths.sysctl_legacy.read_text() == legacy_before
        assert len(restarts) == 1

    def test_restarts_when_kernel_differs(self, config, restarts):
        """Files are clean but the live values drifted"""
        apply_sysctl(config)
        activate(config)
        (config.paths.proc_sys / "net" / "ipv4" / "ip_forward").write_text("0\n")

        assert apply_sysctl(config) is True
        assert len(restarts) == 2

    def test_legacy_file_with_latin1_bytes(self, config, restarts):
        """Bytes that are not UTF-8 are kept as they were"""
        config.paths.sysctl_legacy.write_bytes(b"# caf\xe9 settings\nnet.ipv4.ip_forward=0\nkernel.panic=10\n")

        assert setup_sysctl(config)

        assert config.paths.sysctl_legacy.read_bytes() == b"# caf\xe9 settings\nkernel.panic=10\n"
        assert restarts == [("restart", "systemd-sysctl.service")]

    def test_missing_legacy_file(self, config, restarts):
        """A missing sysctl.conf is treated as clean"""
        assert setup_sysctl(config)
        assert not config.paths.sysctl_legacy.exists()

    def test_restart_failure(self, config, monkeypatch):
        """A failing systemctl fails the step"""

        def fail(*args):
            raise CommandError(["systemctl", *args], 1, "unit not found")

        monkeypatch.setattr(sysctl, "systemctl", fail)

        assert setup_sysctl(config) is False
