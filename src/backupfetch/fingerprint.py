"""Content fingerprints -- decide whether a transfer is needed at all.

The remote digest is computed by the remote host and trusted as
reported; see DESIGN.md for the trust-model note.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional

from .models import RemoteArtifact
from .remote import RemoteHost

logger = logging.getLogger("backupfetch.fingerprint")


def sha256_file(path: Path) -> str:
    """Compute SHA-256 hex digest of a file.

    Args:
        path: File to hash.

    Returns:
        Hex-encoded SHA-256 digest.
    """
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def digests_match(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive hex comparison; False when either side is missing."""
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


class FingerprintComparator:
    """Compares a remote artifact with a local copy by SHA-256."""

    def __init__(self, remote: RemoteHost):
        self.remote = remote

    def remote_digest(self, artifact: RemoteArtifact) -> str:
        """Return (and cache on the artifact) the remote digest.

        Raises:
            RemoteCommandError: Propagated from the remote channel.
        """
        if artifact.fingerprint is None:
            artifact.fingerprint = self.remote.digest(artifact)
            logger.debug("Remote digest %s: %s", artifact.filename, artifact.fingerprint)
        return artifact.fingerprint

    def local_digest(self, path: Path) -> Optional[str]:
        """SHA-256 of a local file, or None if it does not exist."""
        if not path.is_file():
            return None
        return sha256_file(path)

    def is_synchronized(self, artifact: RemoteArtifact, local_path: Path) -> bool:
        """Whether the local file holds exactly the remote artifact's bytes."""
        local = self.local_digest(local_path)
        if local is None:
            return False
        synced = digests_match(self.remote_digest(artifact), local)
        logger.info(
            "%s vs %s: %s",
            artifact.filename, local_path.name,
            "synchronized" if synced else "differs",
        )
        return synced
