"""Nice-to-have packages and the kpanic fault-injection unit.

Nothing here is fatal. Start the panic trigger with:
    gcloud compute ssh <instance> -- sudo systemctl start kpanic --no-block
"""

import logging

from iprouter.config.settings import RouterConfig
from iprouter.errors import CommandError
from iprouter.installer.commands import install_file, systemctl, yum_install

logger = logging.getLogger(__name__)

KPANIC_UNIT = """\
[Unit]
Description=Triggers a kernel panic 1 second after being started

[Service]
Type=oneshot
ExecStart=/bin/bash -c 'sleep 1; echo c > /proc/sysrq-trigger'
RemainAfterExit=true
"""


def install_packages(config: RouterConfig) -> bool:
    if not config.packages:
        return True
    try:
        yum_install(config.packages)
    except CommandError as e:
        logger.warning("Could not install %s: %s", " ".join(config.packages), e.stderr.strip() or e)
        return False
    logger.info("Installed %s", " ".join(config.packages))
    return True


def install_kpanic_service(config: RouterConfig) -> bool:
    try:
        install_file(config.paths.kpanic_unit, KPANIC_UNIT, 0o644, config.file_owner)
        systemctl("daemon-reload")
    except (CommandError, OSError) as e:
        logger.warning("Could not install kpanic service: %s", e)
        return False
    logger.info("Installed %s", config.paths.kpanic_unit)
    return True


def install_auxiliary(config: RouterConfig) -> bool:
    """Returns True only if everything installed; callers do not gate on it."""
    packages_ok = install_packages(config)
    kpanic_ok = install_kpanic_service(config)
    return packages_ok and kpanic_ok
