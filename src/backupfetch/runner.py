"""Thin subprocess wrapper shared by every component that shells out."""

from __future__ import annotations

import logging
import subprocess
from typing import Optional, Sequence

logger = logging.getLogger("backupfetch.runner")


class CommandRunner:
    """Runs external tools as blocking calls and returns their result.

    Never raises on a non-zero exit; callers inspect ``returncode``.
    OSError (tool missing) and subprocess.TimeoutExpired propagate so each
    component can translate them into its own error.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(
        self,
        args: Sequence[str],
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """Run a command to completion.

        Args:
            args: Program and arguments.
            timeout: Seconds before the call is abandoned.

        Returns:
            subprocess.CompletedProcess with text stdout/stderr.
        """
        cmd = [str(a) for a in args]
        logger.debug("Running: %s", " ".join(cmd))
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout if timeout is not None else self.timeout,
        )
        if result.returncode != 0:
            logger.debug("%s exited %d: %s", cmd[0], result.returncode, result.stderr.strip())
        return result
