"""
Remote channel -- where the artifacts live.

Two pipes to the backup host: a remote-command channel over ssh for
listing and hashing, and a secure-copy channel over scp for pulling
bytes. Both are blocking subprocess calls; nothing here retries.
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from pathlib import Path

from .config import FetchConfig
from .errors import RemoteCommandError, TransferFailed
from .models import RemoteArtifact
from .runner import CommandRunner

logger = logging.getLogger("backupfetch.remote")

_SHA256_RE = re.compile(r"^([0-9a-fA-F]{64})\b")


class RemoteHost:
    """The backup host as seen through ssh and scp."""

    def __init__(self, config: FetchConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner

    @property
    def host(self) -> str:
        return self.config.remote_host

    def _ssh(self, remote_command: str) -> subprocess.CompletedProcess:
        cmd = [
            self.config.ssh_bin,
            *self.config.ssh_options,
            self.host,
            remote_command,
        ]
        try:
            return self.runner.run(cmd, timeout=self.config.command_timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise RemoteCommandError(f"Cannot run remote command on {self.host}: {exc}") from exc

    def artifact(self, filename: str) -> RemoteArtifact:
        return RemoteArtifact(
            host=self.host,
            remote_dir=self.config.remote_dir,
            filename=filename,
        )

    def list_artifacts(self) -> list[RemoteArtifact]:
        """List remote artifacts matching the configured prefix, newest first.

        Returns:
            list[RemoteArtifact]: Possibly empty, ordered by recency.

        Raises:
            RemoteCommandError: If the listing command fails.
        """
        result = self._ssh(f"ls -1t -- {shlex.quote(self.config.remote_dir)}")
        if result.returncode != 0:
            raise RemoteCommandError(
                f"Listing {self.config.remote_dir} on {self.host} failed "
                f"(exit {result.returncode}): {result.stderr.strip()}"
            )

        artifacts = [
            self.artifact(line.strip()) for line in result.stdout.splitlines() if line.strip()
        ]
        artifacts = [a for a in artifacts if a.matches_pattern(self.config.prefix)]
        logger.info(
            "Found %d remote artifact(s) matching %s", len(artifacts), self.config.artifact_pattern,
        )
        return artifacts

    def digest(self, artifact: RemoteArtifact) -> str:
        """Compute the SHA-256 of an artifact on the remote host.

        Raises:
            RemoteCommandError: If the command fails or prints no digest.
        """
        result = self._ssh(f"sha256sum -- {shlex.quote(artifact.remote_path)}")
        if result.returncode != 0:
            raise RemoteCommandError(
                f"Remote digest of {artifact.filename} failed "
                f"(exit {result.returncode}): {result.stderr.strip()}"
            )

        match = _SHA256_RE.match(result.stdout.strip())
        if not match:
            raise RemoteCommandError(
                f"Unparseable digest output for {artifact.filename}: {result.stdout.strip()[:80]!r}"
            )
        return match.group(1).lower()

    def copy(self, artifact: RemoteArtifact, dest: Path) -> None:
        """Copy an artifact to a local path with scp.

        Raises:
            TransferFailed: On non-zero exit, missing tool, or timeout.
        """
        source = f"{self.host}:{shlex.quote(artifact.remote_path)}"
        cmd = [self.config.scp_bin, *self.config.ssh_options, "-q", source, str(dest)]
        try:
            result = self.runner.run(cmd, timeout=self.config.command_timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise TransferFailed(f"Cannot run scp for {artifact.filename}: {exc}") from exc

        if result.returncode != 0:
            raise TransferFailed(
                f"scp of {artifact.filename} exited {result.returncode}: {result.stderr.strip()}"
            )
        logger.info("Copied %s -> %s", artifact.remote_path, dest)
