"""Error taxonomy for the retrieval, decryption and disposal pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class BackupFetchError(Exception):
    """Base class for every fatal pipeline error."""


class ConfigurationError(BackupFetchError):
    """Raised when the configuration is missing or invalid."""


class RemoteCommandError(BackupFetchError):
    """Raised when a remote listing or digest command fails."""


class NoArtifactFound(RemoteCommandError):
    """Raised when the remote listing has no matching artifact."""


class TransferFailed(BackupFetchError):
    """Raised when the copy subprocess exits non-zero or cannot run."""


class TransferVerificationError(BackupFetchError):
    """Raised when a transferred file never appears or its digest differs."""


class DecryptionFailed(BackupFetchError):
    """Raised when gpg cannot decrypt the selected artifact."""


class ExpansionFailed(BackupFetchError):
    """Raised when an archive expansion stage fails."""


class DisposalIncomplete(BackupFetchError):
    """A single disposal attempt left the target behind."""

    def __init__(self, path: Path, detail: str = ""):
        self.path = path
        self.detail = detail
        super().__init__(f"Disposal incomplete for {path}: {detail}".rstrip(": "))


class ManualInterventionRequired(BackupFetchError):
    """Raised when disposal retries are exhausted.

    Attributes:
        paths: Paths that could not be confirmed absent.
    """

    def __init__(self, message: str, paths: Optional[list[Path]] = None):
        self.paths = list(paths or [])
        super().__init__(message)


class OperationCancelled(BackupFetchError):
    """Raised when the operator declines a confirmation prompt."""


class SelectionError(BackupFetchError):
    """Raised when no artifact can be selected for decryption."""
