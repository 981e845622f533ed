"""Kernel IP forwarding via sysctl.

Values are written to /etc/sysctl.d/50-ip-router.conf so they take precedence
over /etc/sysctl.d/11-gce-network-security.conf installed by the guest
environment. Matching entries in /etc/sysctl.conf always win, so they are
removed.
"""

import difflib
import logging
import re
from pathlib import Path

from iprouter.config.settings import RouterConfig
from iprouter.errors import CommandError
from iprouter.installer.commands import install_file, systemctl

logger = logging.getLogger(__name__)

SYSCTL_SETTINGS = (
    ("net.ipv4.ip_forward", "1"),
    ("net.ipv4.conf.default.forwarding", "1"),
    ("net.ipv4.conf.all.forwarding", "1"),
    ("net.ipv4.conf.default.rp_filter", "0"),
    ("net.ipv4.conf.all.rp_filter", "0"),
)

LEGACY_PATTERN = re.compile(r"\b(ip_forward|rp_filter)\b")

ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"


def render_policy() -> str:
    return "".join(f"{key}={value}\n" for key, value in SYSCTL_SETTINGS)


def strip_legacy(text: str) -> str:
    """Drop every line mentioning ip_forward or rp_filter."""
    return "".join(line for line in text.splitlines(keepends=True) if not LEGACY_PATTERN.search(line))


def read_config(path: Path) -> str:
    """Read a sysctl file, keeping bytes that are not UTF-8 so they are written back unchanged."""
    if not path.exists():
        return ""
    return path.read_bytes().decode(ENCODING, ENCODING_ERRORS)


def write_config(path: Path, text: str, owner) -> None:
    install_file(path, text.encode(ENCODING, ENCODING_ERRORS), 0o644, owner)


def live_values_match(config: RouterConfig) -> bool:
    """Check the running kernel against SYSCTL_SETTINGS."""
    for key, value in SYSCTL_SETTINGS:
        proc_path = config.paths.proc_sys / key.replace(".", "/")
        try:
            if proc_path.read_text().strip() != value:
                return False
        except OSError:
            return False
    return True


def apply_sysctl(config: RouterConfig) -> bool:
    """Write the policy file and clean the legacy file.

    Returns True when the sysctl service was restarted.
    """
    paths = config.paths
    changed = False

    policy = render_policy()
    if read_config(paths.sysctl_policy) != policy:
        paths.sysctl_policy.parent.mkdir(parents=True, exist_ok=True)
        write_config(paths.sysctl_policy, policy, config.file_owner)
        logger.info("Wrote %s", paths.sysctl_policy)
        changed = True

    legacy = read_config(paths.sysctl_legacy)
    cleaned = strip_legacy(legacy)
    if cleaned == legacy:
        logger.debug("No changes made to %s", paths.sysctl_legacy)
    else:
        logger.info("Patching %s with changes for IP forwarding...", paths.sysctl_legacy)
        diff = difflib.unified_diff(
            legacy.splitlines(keepends=True),
            cleaned.splitlines(keepends=True),
            fromfile=str(paths.sysctl_legacy),
            tofile=str(paths.sysctl_legacy),
            n=2,
        )
        text = "".join(diff).encode(ENCODING, ENCODING_ERRORS).decode(ENCODING, "replace")
        logger.info("%s", text.rstrip())
        write_config(paths.sysctl_legacy, cleaned, config.file_owner)
        changed = True

    if not changed and live_values_match(config):
        logger.debug("Kernel forwarding settings already active")
        return False

    # Activate changes (enables IP routing)
    systemctl("restart", "systemd-sysctl.service")
    return True


def setup_sysctl(config: RouterConfig) -> bool:
    """Enable IP forwarding and disable reverse path filtering."""
    try:
        apply_sysctl(config)
    except (OSError, CommandError) as e:
        logger.error("sysctl configuration failed: %s", e)
        return False

    logger.info("IP Forwarding enabled via %s", config.paths.sysctl_policy)
    return True
