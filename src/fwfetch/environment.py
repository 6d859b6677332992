"""
Environment detection helpers.

The download core never probes the environment itself; the CLI calls these
helpers and passes the result in as the primary-format capability flag.
"""

from __future__ import annotations

import shutil
import subprocess

from fwfetch.constants import FWUP_COMMAND, FWUP_PROBE_TIMEOUT
from fwfetch.log_utils import logger


def fwup_available(command: str = FWUP_COMMAND) -> bool:
    """
    Return True if the fwup tool is on PATH and answers `--version` successfully.
    """
    executable = shutil.which(command)
    if executable is None:
        logger.debug("%s not found on PATH", command)
        return False

    try:
        result = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=FWUP_PROBE_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Failed to run %s --version: %s", executable, e)
        return False

    if result.returncode != 0:
        logger.debug("%s --version exited with %d", executable, result.returncode)
        return False

    logger.debug("Found %s %s", command, result.stdout.strip())
    return True
