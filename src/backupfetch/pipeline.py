"""
Decrypt-Expand Pipeline -- one encrypted artifact in, plaintext files out.

    <name>.tar.gz.gpg
        -- gpg --decrypt -->   working/decrypted_backup.tar.gz   (DecryptedArchive)
        -- gzip -d -k -->      working/decrypted_backup.tar      (intermediate)
        -- tar -xf -->         working/<expanded contents>
        -- shred -->           intermediate and DecryptedArchive destroyed

Every stage runs inside one try block. Whatever a failing stage leaves
behind is shredded before the error propagates, and if that cannot be
confirmed the failure becomes ManualInterventionRequired.
"""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional

from .config import FetchConfig
from .disposal import SecureDisposalEngine
from .errors import (
    DecryptionFailed,
    ExpansionFailed,
    ManualInterventionRequired,
    OperationCancelled,
)
from .models import ExpansionResult, LocalEncryptedCopy, PipelineState
from .prompts import Prompter
from .retry import wait_until
from .runner import CommandRunner

logger = logging.getLogger("backupfetch.pipeline")

INTERMEDIATE_EXTENSION = ".tar"

StageCallback = Callable[[PipelineState], None]


def intermediate_name(archive_name: str) -> str:
    """Name gzip gives the decompressed container: strip the outer suffix."""
    if archive_name.endswith(".gz"):
        return archive_name[: -len(".gz")]
    if archive_name.endswith(".tgz"):
        return archive_name[: -len(".tgz")] + INTERMEDIATE_EXTENSION
    return archive_name + INTERMEDIATE_EXTENSION


class DecryptExpandPipeline:
    """Turns a LocalEncryptedCopy into expanded plaintext in the working store."""

    def __init__(
        self,
        config: FetchConfig,
        runner: CommandRunner,
        disposal: SecureDisposalEngine,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.runner = runner
        self.disposal = disposal
        self._sleep = sleep
        self._intermediate: Optional[Path] = None

    @property
    def working_dir(self) -> Path:
        return self.config.working_store

    @property
    def archive_path(self) -> Path:
        return self.config.decrypted_path

    @property
    def expected_intermediate(self) -> Path:
        return self.working_dir / intermediate_name(self.archive_path.name)

    def _run(self, cmd: list[str], error: type[Exception], what: str) -> None:
        try:
            result = self.runner.run(cmd, timeout=self.config.command_timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise error(f"{what}: cannot run {cmd[0]}: {exc}") from exc
        if result.returncode != 0:
            raise error(f"{what} failed (exit {result.returncode}): {result.stderr.strip()}")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def decrypt(self, source: Path) -> Path:
        """Decrypt source into the DecryptedArchive path.

        Raises:
            DecryptionFailed: Missing key, wrong recipient, corrupt input.
        """
        if not source.is_file():
            raise DecryptionFailed(f"Encrypted artifact not found: {source}")

        target = self.archive_path
        self._run(
            [self.config.gpg_bin, "--batch", "--yes",
             "--output", str(target), "--decrypt", str(source)],
            DecryptionFailed,
            f"Decryption of {source.name}",
        )
        if not target.is_file():
            raise DecryptionFailed(f"gpg reported success but {target} was not written")
        logger.info("Decrypted %s -> %s", source.name, target.name)
        return target

    def expand_outer(self, archive: Path) -> Path:
        """Decompress the archive into its single-file intermediate container.

        Returns:
            Path to the intermediate container.

        Raises:
            ExpansionFailed: If gzip fails or no intermediate can be found.
        """
        self._run(
            [self.config.gzip_bin, "-d", "-k", "-f", "--", str(archive)],
            ExpansionFailed,
            f"Decompression of {archive.name}",
        )

        expected = self.expected_intermediate
        if wait_until(
            expected.is_file,
            attempts=self.config.poll_attempts,
            delay=self.config.poll_delay,
            sleep=self._sleep,
        ):
            self._intermediate = expected
            return expected

        strays = self.stray_intermediates()
        if not strays:
            raise ExpansionFailed(
                f"Expected {expected.name} after decompression, found no {INTERMEDIATE_EXTENSION} file"
            )
        adopted = strays[0]
        logger.warning(
            "Inconsistent decompression output: expected %s, adopting %s",
            expected.name, adopted.name,
        )
        self._intermediate = adopted
        return adopted

    def expand_inner(self, intermediate: Path) -> list[Path]:
        """Unpack the intermediate container into the working store.

        Returns:
            Regular files named by the archive's member list, whether or
            not an earlier run had already expanded them.

        Raises:
            ExpansionFailed: If tar fails.
        """
        self._run(
            [self.config.tar_bin, "--no-same-owner", "-xf", str(intermediate),
             "-C", str(self.working_dir)],
            ExpansionFailed,
            f"Extraction of {intermediate.name}",
        )
        files = [
            path for path in (self.working_dir / name for name in self.list_members(intermediate))
            if path.is_file() and not path.is_symlink()
        ]
        logger.info("Expanded %d file(s) from %s", len(files), intermediate.name)
        return files

    def list_members(self, intermediate: Path) -> list[str]:
        """Relative member names of a tar container, as ``tar -tf`` prints them.

        Raises:
            ExpansionFailed: If the listing fails.
        """
        cmd = [self.config.tar_bin, "-tf", str(intermediate)]
        try:
            result = self.runner.run(cmd, timeout=self.config.command_timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ExpansionFailed(f"Listing {intermediate.name}: cannot run {cmd[0]}: {exc}") from exc
        if result.returncode != 0:
            raise ExpansionFailed(
                f"Listing {intermediate.name} failed (exit {result.returncode}): {result.stderr.strip()}"
            )

        names: set[str] = set()
        for line in result.stdout.splitlines():
            # tar strips leading "/" and refuses ".." on extraction; mirror that
            name = line.strip().lstrip("/")
            if not name or ".." in Path(name).parts:
                continue
            names.add(str(Path(name)))
        return sorted(names)

    # ------------------------------------------------------------------
    # Disposal
    # ------------------------------------------------------------------

    def stray_intermediates(self) -> list[Path]:
        """Intermediate containers lying in the working store, newest first."""
        if not self.working_dir.exists():
            return []
        return sorted(
            (p for p in self.working_dir.glob(f"*{INTERMEDIATE_EXTENSION}") if p.is_file()),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )

    def transient_paths(self) -> list[Path]:
        """DecryptedArchive and intermediate container, if they exist."""
        paths = [self.archive_path, self.expected_intermediate]
        if self._intermediate is not None and self._intermediate not in paths:
            paths.append(self._intermediate)
        return [p for p in paths if p.exists()]

    def emergency_cleanup(self, cause: Optional[BaseException] = None) -> None:
        """Shred every decrypted leftover after a failed stage.

        Known transient paths go first, then any stray intermediate
        containers found by re-scanning the working store.

        Raises:
            ManualInterventionRequired: If anything survives its retry budget.
        """
        logger.warning("Emergency cleanup of %s after failure: %s", self.working_dir, cause)
        survivors: list[Path] = []
        for path in self.transient_paths():
            result, _ = self.disposal.dispose_with_retries(path)
            if result.incomplete:
                survivors.append(path)

        for path in self.stray_intermediates():
            if path in survivors:
                continue
            result, _ = self.disposal.dispose_with_retries(path)
            if result.incomplete:
                survivors.append(path)

        self._intermediate = None
        if survivors:
            names = ", ".join(str(p) for p in survivors)
            logger.error("Plaintext left behind after emergency cleanup: %s", names)
            raise ManualInterventionRequired(
                f"Could not securely dispose of: {names}", paths=survivors,
            )
        logger.info("Emergency cleanup complete")

    def ensure_disposed(self) -> None:
        """Final disposal step: no DecryptedArchive or intermediate may remain.

        Raises:
            ManualInterventionRequired: If a transient path cannot be removed.
        """
        survivors: list[Path] = []
        for path in self.transient_paths():
            try:
                self.disposal.dispose_verified(path)
            except ManualInterventionRequired as exc:
                survivors.extend(exc.paths)
        self._intermediate = None
        if survivors:
            raise ManualInterventionRequired(
                "Could not securely dispose of: " + ", ".join(str(p) for p in survivors),
                paths=survivors,
            )

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(
        self,
        copy: LocalEncryptedCopy,
        prompter: Prompter,
        on_stage: Optional[StageCallback] = None,
    ) -> ExpansionResult:
        """Decrypt and fully expand one encrypted artifact.

        Args:
            copy: The local encrypted artifact to open.
            prompter: Asked before replacing a DecryptedArchive or intermediate
                left by an earlier run.
            on_stage: Called with each PipelineState as it is entered.

        Returns:
            ExpansionResult listing the expanded files.

        Raises:
            OperationCancelled: Overwrite declined; nothing was touched.
            DecryptionFailed, ExpansionFailed: After emergency cleanup.
            ManualInterventionRequired: If cleanup could not be confirmed.
        """
        stage = on_stage or (lambda _state: None)
        self.working_dir.mkdir(parents=True, exist_ok=True)
        warnings: list[str] = []

        # gzip -f and gpg --yes would free these blocks without an overwrite
        stale = [p for p in (self.archive_path, self.expected_intermediate) if p.exists()]
        if stale:
            names = ", ".join(p.name for p in stale)
            if not prompter.confirm(
                f"{names} already in {self.working_dir} (plaintext from an earlier run). Overwrite?"
            ):
                raise OperationCancelled(f"Refused to overwrite {names}; clear them with backupfetch --wipe")
            for path in stale:
                self.disposal.dispose_verified(path)

        try:
            stage(PipelineState.DECRYPTING)
            archive = self.decrypt(copy.path)

            stage(PipelineState.EXPANDING_OUTER)
            intermediate = self.expand_outer(archive)
            if intermediate != self.expected_intermediate:
                warnings.append(
                    f"adopted {intermediate.name} instead of {self.expected_intermediate.name}"
                )

            stage(PipelineState.EXPANDING_INNER)
            files = self.expand_inner(intermediate)
        except BaseException as exc:
            try:
                self.emergency_cleanup(cause=exc)
            except ManualInterventionRequired as cleanup_exc:
                raise cleanup_exc from exc
            raise

        stage(PipelineState.DISPOSING)
        self.ensure_disposed()
        files = [f for f in files if f.exists()]

        logger.info("Opened %s: %d file(s) in %s", copy.filename, len(files), self.working_dir)
        return ExpansionResult(
            source=copy.path,
            working_dir=self.working_dir,
            files=files,
            warnings=warnings,
        )
