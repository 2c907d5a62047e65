"""
Pydantic models for artifacts, disposal results and pipeline state.
"""

from __future__ import annotations

import fnmatch
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .errors import DisposalIncomplete

ARTIFACT_SUFFIX = ".tar.gz.gpg"


class RemoteArtifact(BaseModel):
    """An encrypted backup as it exists on the remote host."""

    host: str
    remote_dir: str
    filename: str
    fingerprint: Optional[str] = None

    @property
    def remote_path(self) -> str:
        return f"{self.remote_dir.rstrip('/')}/{self.filename}"

    def matches_pattern(self, prefix: str) -> bool:
        """Whether the filename looks like <prefix>*.tar.gz.gpg."""
        return fnmatch.fnmatchcase(self.filename, f"{prefix}*{ARTIFACT_SUFFIX}")


class LocalEncryptedCopy(BaseModel):
    """A retained encrypted artifact in the encrypted-backups store."""

    path: Path
    fingerprint: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    @property
    def modified(self) -> datetime:
        return datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)


class WipeTarget(BaseModel):
    """A path nominated for secure destruction."""

    path: Path
    passes: int = 3
    retry_budget: int = 3


class DisposalStatus(str, Enum):
    """What the secure-delete tool claimed, as opposed to what is true."""

    TOOL_SUCCEEDED = "tool_succeeded"
    TOOL_FAILED = "tool_failed"
    UNVERIFIABLE = "unverifiable"


class DisposalResult(BaseModel):
    """Outcome of one disposal attempt.

    ``complete`` is derived from the post-condition check only, so a
    result can never read as successful while the path still exists.
    """

    target: Path
    status: DisposalStatus
    exists_after: bool
    detail: str = ""

    @property
    def complete(self) -> bool:
        return not self.exists_after

    @property
    def incomplete(self) -> bool:
        return self.exists_after

    def raise_if_incomplete(self) -> None:
        """Raise DisposalIncomplete if the target survived."""
        if self.exists_after:
            raise DisposalIncomplete(self.target, self.detail)


class TransferAction(str, Enum):
    """What the transfer manager did with a remote artifact."""

    TRANSFERRED = "transferred"
    SKIPPED = "skipped"
    DISAMBIGUATED = "disambiguated"


class TransferOutcome(BaseModel):
    """Result of a default-mode fetch."""

    artifact: RemoteArtifact
    action: TransferAction
    local_path: Path
    fingerprint: Optional[str] = None

    @property
    def transferred(self) -> bool:
        return self.action != TransferAction.SKIPPED


class ExpansionResult(BaseModel):
    """Files produced by fully unwrapping a decrypted archive."""

    source: Path
    working_dir: Path
    files: list[Path] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class WipeEntryResult(BaseModel):
    """Per-entry outcome of a bulk wipe."""

    path: Path
    complete: bool
    attempts: int = 0
    detail: str = ""


class WipeReport(BaseModel):
    """Aggregate outcome of wiping the working store."""

    working_dir: Path
    entries: list[WipeEntryResult] = Field(default_factory=list)

    @property
    def all_clean(self) -> bool:
        return all(e.complete for e in self.entries)

    @property
    def failed(self) -> list[WipeEntryResult]:
        return [e for e in self.entries if not e.complete]


class PipelineState(str, Enum):
    """Lifecycle controller states."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    COMPARING = "comparing"
    SKIPPED = "skipped"
    TRANSFERRING = "transferring"
    DECRYPTING = "decrypting"
    EXPANDING_OUTER = "expanding_outer"
    EXPANDING_INNER = "expanding_inner"
    DISPOSING = "disposing"
    WIPE_REQUESTED = "wipe_requested"
    CONFIRMING = "confirming"
    WIPING = "wiping"
