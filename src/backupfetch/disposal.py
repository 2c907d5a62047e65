"""
Secure Disposal Engine -- overwrite, delete, then check.

Two layers:
    dispose()           one shred attempt, never raises on tool failure,
                        reports whether the path is actually gone
    dispose_verified()  retries dispose() until the path is gone, and
                        escalates to ManualInterventionRequired otherwise

The tool's exit status is recorded but never trusted on its own; the
post-condition (path absent) is what makes a result complete.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional

from .config import FetchConfig
from .errors import DisposalIncomplete, ManualInterventionRequired, OperationCancelled
from .models import (
    DisposalResult,
    DisposalStatus,
    WipeEntryResult,
    WipeReport,
    WipeTarget,
)
from .prompts import Prompter
from .retry import retry_call
from .runner import CommandRunner

logger = logging.getLogger("backupfetch.disposal")

FLASH_STORAGE_CAVEAT = (
    "Overwrite-based deletion is not reliable on SSD/flash storage or on "
    "journaling and copy-on-write filesystems: wear levelling and snapshots "
    "may keep physical copies of overwritten blocks. Use full-disk "
    "encryption for the working store where that matters."
)


class SecureDisposalEngine:
    """Destroys files and directory trees with a multi-pass overwrite."""

    def __init__(
        self,
        config: FetchConfig,
        runner: CommandRunner,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.runner = runner
        self._sleep = sleep

    def target(self, path: Path) -> WipeTarget:
        return WipeTarget(
            path=path,
            passes=self.config.shred_passes,
            retry_budget=self.config.cleanup_attempts,
        )

    def _shred_file(self, path: Path, passes: int) -> Optional[str]:
        """Shred one file. Returns an error description, or None."""
        cmd = [self.config.shred_bin, "-n", str(passes), "-z", "-u", "--", str(path)]
        try:
            result = self.runner.run(cmd, timeout=self.config.command_timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            return f"{path.name}: {exc}"
        if result.returncode != 0:
            return f"{path.name}: exit {result.returncode} {result.stderr.strip()}".strip()
        return None

    def dispose(self, target: WipeTarget) -> DisposalResult:
        """Make one attempt at destroying a file or directory tree.

        Directories are shredded file by file, then the emptied tree is
        removed. Symlinks are unlinked, never followed.

        Returns:
            DisposalResult: ``complete`` only if the path no longer exists.
        """
        path = target.path
        if not os.path.lexists(path):
            return DisposalResult(
                target=path, status=DisposalStatus.TOOL_SUCCEEDED,
                exists_after=False, detail="already absent",
            )

        errors: list[str] = []
        if path.is_symlink():
            try:
                path.unlink()
            except OSError as exc:
                errors.append(f"unlink: {exc}")
        elif path.is_dir():
            for root, _dirs, files in os.walk(path):
                for name in files:
                    file_path = Path(root) / name
                    if file_path.is_symlink():
                        file_path.unlink(missing_ok=True)
                        continue
                    err = self._shred_file(file_path, target.passes)
                    if err:
                        errors.append(err)
            if not errors:
                try:
                    shutil.rmtree(path)
                except OSError as exc:
                    errors.append(f"rmtree: {exc}")
        else:
            err = self._shred_file(path, target.passes)
            if err:
                errors.append(err)

        exists_after = os.path.lexists(path)
        if errors:
            status = DisposalStatus.TOOL_FAILED
        elif exists_after:
            status = DisposalStatus.UNVERIFIABLE
        else:
            status = DisposalStatus.TOOL_SUCCEEDED

        detail = "; ".join(errors)
        if exists_after:
            detail = detail or "path still exists after secure delete"
            logger.warning("Disposal possibly incomplete for %s: %s", path, detail)
        elif errors:
            logger.warning("Secure delete reported errors for %s but path is gone: %s", path, detail)
        else:
            logger.info("Securely disposed of %s (%d passes)", path, target.passes)

        return DisposalResult(target=path, status=status, exists_after=exists_after, detail=detail)

    def dispose_with_retries(self, path: Path) -> tuple[DisposalResult, int]:
        """Retry dispose() with backoff until the path is gone or the budget runs out."""
        target = self.target(path)
        return retry_call(
            lambda: self.dispose(target),
            lambda r: r.complete,
            attempts=target.retry_budget,
            delay=self.config.cleanup_delay,
            sleep=self._sleep,
        )

    def dispose_verified(self, path: Path) -> DisposalResult:
        """Dispose of a path and guarantee it is gone.

        Raises:
            ManualInterventionRequired: If the path survives every attempt.
        """
        result, attempts = self.dispose_with_retries(path)
        try:
            result.raise_if_incomplete()
        except DisposalIncomplete as exc:
            logger.error("Could not dispose of %s after %d attempts", path, attempts)
            raise ManualInterventionRequired(
                f"{path} still exists after {attempts} secure-delete attempts: {result.detail}",
                paths=[path],
            ) from exc
        return result

    def confidential_entries(self, working_dir: Optional[Path] = None) -> list[Path]:
        """Everything in the working store except the run log."""
        store = working_dir or self.config.working_store
        if not store.exists():
            return []
        return sorted(p for p in store.iterdir() if p.name != self.config.run_log_name)

    def confirm_wipe(self, prompter: Prompter, entries: list[Path], store: Path) -> None:
        """Ask once before destroying anything.

        Raises:
            OperationCancelled: If the operator declines.
        """
        if not prompter.confirm(
            f"Securely destroy {len(entries)} item(s) in {store}? This cannot be undone."
        ):
            raise OperationCancelled("Wipe cancelled by operator")

    def wipe_entries(self, entries: list[Path], store: Path) -> WipeReport:
        """Dispose of each entry with the retry budget and report per entry."""
        report = WipeReport(working_dir=store)
        for entry in entries:
            result, attempts = self.dispose_with_retries(entry)
            report.entries.append(WipeEntryResult(
                path=entry,
                complete=result.complete,
                attempts=attempts,
                detail=result.detail,
            ))

        logger.info(
            "Wipe finished: %d/%d entries disposed",
            len(report.entries) - len(report.failed), len(report.entries),
        )
        logger.warning(FLASH_STORAGE_CAVEAT)
        return report

    def wipe_confidential(
        self,
        prompter: Prompter,
        working_dir: Optional[Path] = None,
    ) -> WipeReport:
        """Securely dispose of every confidential entry in the working store.

        Args:
            prompter: Asked once for confirmation before anything is touched.
            working_dir: Store to wipe. Defaults to the configured one.

        Returns:
            WipeReport with per-entry results.

        Raises:
            OperationCancelled: If the operator declines.
        """
        store = working_dir or self.config.working_store
        entries = self.confidential_entries(store)
        if not entries:
            logger.info("Working store %s holds no confidential entries", store)
            return WipeReport(working_dir=store)

        self.confirm_wipe(prompter, entries, store)
        return self.wipe_entries(entries, store)
