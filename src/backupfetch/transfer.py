"""
Transfer Manager -- pull the newest artifact only when it changed.

The encrypted-backups store is append-mostly: a local copy is never
overwritten. When the remote bytes under a known name change, the new
bytes land next to the old ones under a timestamped name.

    odoo_full_backup_20250101_0000.tar.gz.gpg
    odoo_full_backup_20250101_0000_20250102_081500.tar.gz.gpg
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .config import FetchConfig
from .errors import NoArtifactFound, TransferVerificationError
from .fingerprint import FingerprintComparator, digests_match, sha256_file
from .models import (
    ARTIFACT_SUFFIX,
    LocalEncryptedCopy,
    RemoteArtifact,
    TransferAction,
    TransferOutcome,
)
from .remote import RemoteHost
from .retry import wait_until

logger = logging.getLogger("backupfetch.transfer")

PARTIAL_SUFFIX = ".part"


def split_artifact_name(filename: str) -> tuple[str, str]:
    """Split an artifact filename into (stem, suffix).

    >>> split_artifact_name("odoo_full_backup_1.tar.gz.gpg")
    ('odoo_full_backup_1', '.tar.gz.gpg')
    """
    if filename.endswith(ARTIFACT_SUFFIX):
        return filename[: -len(ARTIFACT_SUFFIX)], ARTIFACT_SUFFIX
    path = Path(filename)
    return path.stem, path.suffix


class TransferManager:
    """Fetches remote artifacts into the encrypted-backups store."""

    def __init__(
        self,
        config: FetchConfig,
        remote: RemoteHost,
        comparator: Optional[FingerprintComparator] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.remote = remote
        self.comparator = comparator or FingerprintComparator(remote)
        self._sleep = sleep
        self._clock = clock

    @property
    def store(self) -> Path:
        return self.config.encrypted_store

    def discover_latest(self) -> RemoteArtifact:
        """Return the most recent remote artifact.

        Raises:
            NoArtifactFound: If nothing matches the configured pattern.
            RemoteCommandError: If the listing fails.
        """
        candidates = self.remote.list_artifacts()
        if not candidates:
            raise NoArtifactFound(
                f"No {self.config.artifact_pattern} in "
                f"{self.config.remote_host}:{self.config.remote_dir}"
            )
        latest = candidates[0]
        logger.info("Latest remote artifact: %s", latest.filename)
        return latest

    def local_candidates(self, filename: str) -> list[Path]:
        """Existing local copies of a name: the exact file, then disambiguated siblings."""
        stem, suffix = split_artifact_name(filename)
        exact = self.store / filename
        found = [exact] if exact.is_file() else []
        siblings = sorted(
            p for p in self.store.glob(f"{stem}_*{suffix}")
            if p.is_file() and p != exact
        )
        return found + siblings

    def disambiguated_path(self, filename: str) -> Path:
        """A new, unused name with an inserted timestamp."""
        stem, suffix = split_artifact_name(filename)
        stamp = self._clock().strftime("%Y%m%d_%H%M%S")
        candidate = self.store / f"{stem}_{stamp}{suffix}"
        counter = 1
        while candidate.exists():
            candidate = self.store / f"{stem}_{stamp}_{counter}{suffix}"
            counter += 1
        return candidate

    def fetch(self, artifact: Optional[RemoteArtifact] = None) -> TransferOutcome:
        """Bring an artifact into the encrypted store if it is not already there.

        Args:
            artifact: Explicit artifact. Defaults to the most recent one.

        Returns:
            TransferOutcome describing what was done.

        Raises:
            NoArtifactFound, RemoteCommandError: Discovery or digest failed.
            TransferFailed: The copy subprocess failed.
            TransferVerificationError: The copy never appeared or differs.
        """
        if artifact is None:
            artifact = self.discover_latest()

        synced = self.find_synchronized(artifact)
        if synced is not None:
            return self.skipped(artifact, synced)
        return self.transfer(artifact)

    def find_synchronized(self, artifact: RemoteArtifact) -> Optional[Path]:
        """Return a local copy holding the artifact's exact bytes, if any.

        Raises:
            RemoteCommandError: If the remote digest cannot be obtained.
        """
        for local_path in self.local_candidates(artifact.filename):
            if self.comparator.is_synchronized(artifact, local_path):
                return local_path
        return None

    def skipped(self, artifact: RemoteArtifact, local_path: Path) -> TransferOutcome:
        logger.info("Skipped %s: synchronized with %s", artifact.filename, local_path)
        return TransferOutcome(
            artifact=artifact,
            action=TransferAction.SKIPPED,
            local_path=local_path,
            fingerprint=artifact.fingerprint,
        )

    def transfer(self, artifact: RemoteArtifact) -> TransferOutcome:
        """Copy an artifact in, never overwriting an existing local copy.

        The bytes land in a ``.part`` file first and are renamed into place
        only after their digest matches; on any failure the ``.part`` file
        is removed and the store is left as it was.

        Raises:
            TransferFailed: The copy subprocess failed.
            TransferVerificationError: The copy never appeared or differs.
        """
        self.store.mkdir(parents=True, exist_ok=True)
        existing = self.local_candidates(artifact.filename)
        if existing:
            dest = self.disambiguated_path(artifact.filename)
            action = TransferAction.DISAMBIGUATED
            logger.warning(
                "Remote content of %s changed; keeping existing copy, saving as %s",
                artifact.filename, dest.name,
            )
        else:
            dest = self.store / artifact.filename
            action = TransferAction.TRANSFERRED

        # scp writes in place; only a verified copy may carry the artifact name
        part = dest.with_name(dest.name + PARTIAL_SUFFIX)
        part.unlink(missing_ok=True)
        try:
            self.remote.copy(artifact, part)
            self._verify(artifact, part)
        except BaseException:
            part.unlink(missing_ok=True)
            raise
        os.replace(part, dest)
        logger.info("Stored %s", dest.name)

        return TransferOutcome(
            artifact=artifact,
            action=action,
            local_path=dest,
            fingerprint=artifact.fingerprint,
        )

    def _verify(self, artifact: RemoteArtifact, dest: Path) -> None:
        """Wait for the destination to appear, then check its digest."""
        appeared = wait_until(
            dest.is_file,
            attempts=self.config.poll_attempts,
            delay=self.config.poll_delay,
            sleep=self._sleep,
        )
        if not appeared:
            raise TransferVerificationError(
                f"{dest} did not appear after {self.config.poll_attempts} checks"
            )

        expected = self.comparator.remote_digest(artifact)
        actual = sha256_file(dest)
        if not digests_match(expected, actual):
            raise TransferVerificationError(
                f"Digest mismatch for {dest.name}: remote {expected}, local {actual}"
            )
        logger.info("Verified %s (sha256 %s)", dest.name, actual[:12])

    def list_local(self) -> list[LocalEncryptedCopy]:
        """Local encrypted artifacts, newest first."""
        if not self.store.exists():
            return []
        files = sorted(
            (p for p in self.store.glob(f"*{ARTIFACT_SUFFIX}") if p.is_file()),
            key=lambda p: (p.stat().st_mtime, p.name),
            reverse=True,
        )
        return [LocalEncryptedCopy(path=p) for p in files]
