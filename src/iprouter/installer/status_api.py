"""Expose a static /bridge/status.json endpoint through httpd."""

import json
import logging
import os
import time

import httpx

from iprouter.config.settings import RouterConfig
from iprouter.errors import CommandError, StatusApiError
from iprouter.installer.commands import install_dir, install_file, systemctl, yum_install

logger = logging.getLogger(__name__)

STATUS_PAYLOAD = {"status": "OK"}


def wait_for_network(url: str, attempts: int = 600, interval: float = 1.0, timeout: float = 5.0, sleep=time.sleep) -> int:
    """Poll ``url`` until it answers. ``attempts=0`` waits forever.

    The probe target only tells us outbound networking works, nothing more.
    Returns the number of attempts used.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            httpx.get(url, timeout=timeout)
            return attempt
        except httpx.HTTPError as e:
            logger.debug("Probe of %s failed: %s", url, e)

        if attempts and attempt >= attempts:
            raise StatusApiError(f"Network not available after {attempt} attempts to reach {url}")

        logger.info("Cannot reach %s, sleeping %g second...", url, interval)
        sleep(interval)


def ensure_httpd(config: RouterConfig) -> None:
    if os.access(config.paths.httpd_binary, os.X_OK):
        logger.debug("httpd already installed")
        return
    logger.info("Installing httpd")
    yum_install(["httpd"])


def write_status_file(config: RouterConfig) -> None:
    status_file = config.paths.status_file
    install_dir(status_file.parent, 0o755, config.file_owner)
    install_file(status_file, json.dumps(STATUS_PAYLOAD) + "\n", 0o644, config.file_owner)
    logger.info("Installed %s", status_file)


def setup_status_api(config: RouterConfig, sleep=time.sleep) -> bool:
    """Install httpd and publish the status payload."""
    try:
        wait_for_network(
            config.network_probe_url,
            attempts=config.network_wait_attempts,
            interval=config.network_wait_interval,
            sleep=sleep,
        )
        ensure_httpd(config)
        write_status_file(config)
        systemctl("enable", "httpd")
        systemctl("start", "httpd")
    except (StatusApiError, CommandError, OSError) as e:
        logger.error("Status API setup failed: %s", e)
        return False

    return True
