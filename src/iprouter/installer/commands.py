"""Thin wrappers over the system commands the startup steps rely on."""

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from iprouter.errors import CommandError

logger = logging.getLogger(__name__)


def run_command(cmd: list[str], check: bool = True, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    """Run a command and return the result."""
    logger.debug("Running: %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False, timeout=timeout)
    except FileNotFoundError as e:
        raise CommandError(cmd, 127, str(e)) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(cmd, -1, f"timed out after {timeout}s") from e

    if check and result.returncode != 0:
        logger.error("Command failed with code %d: %s", result.returncode, result.stderr.strip())
        raise CommandError(cmd, result.returncode, result.stderr)

    return result


def systemctl(*args: str) -> subprocess.CompletedProcess:
    return run_command(["systemctl", *args])


def yum_install(packages: Iterable[str]) -> subprocess.CompletedProcess:
    return run_command(["yum", "-y", "install", *packages])


def install_file(
    path: Path,
    content: Union[str, bytes],
    mode: int = 0o644,
    owner: Optional[Tuple[int, int]] = (0, 0),
) -> None:
    """Atomically write ``content`` to ``path`` with fixed permissions, like install(1)."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content.encode() if isinstance(content, str) else content)
        os.chmod(tmp, mode)
        if owner is not None:
            os.chown(tmp, *owner)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise


def install_dir(path: Path, mode: int = 0o755, owner: Optional[Tuple[int, int]] = (0, 0)) -> None:
    """Create ``path`` (and parents) with fixed permissions, like install -d."""
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, mode)
    if owner is not None:
        os.chown(path, *owner)
