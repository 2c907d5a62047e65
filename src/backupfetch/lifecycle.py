"""
Lifecycle Controller -- sequences one invocation and owns its exit paths.

Three modes, one at a time:

    fetch    IDLE -> DISCOVERING -> COMPARING -> SKIPPED | TRANSFERRING -> IDLE
    decrypt  IDLE -> DECRYPTING -> EXPANDING_OUTER -> EXPANDING_INNER -> DISPOSING -> IDLE
    wipe     IDLE -> WIPE_REQUESTED -> CONFIRMING -> WIPING -> IDLE

In decrypt mode the DISPOSING step sits in a finally block, so it runs
after success, after any stage failure, and after KeyboardInterrupt.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .config import FetchConfig
from .disposal import SecureDisposalEngine
from .errors import BackupFetchError, ManualInterventionRequired, SelectionError
from .models import (
    ExpansionResult,
    LocalEncryptedCopy,
    PipelineState,
    TransferOutcome,
    WipeReport,
)
from .pipeline import DecryptExpandPipeline
from .prompts import Prompter
from .remote import RemoteHost
from .runner import CommandRunner
from .transfer import TransferManager

logger = logging.getLogger("backupfetch.lifecycle")

_DECRYPT_STAGES = {
    PipelineState.DECRYPTING,
    PipelineState.EXPANDING_OUTER,
    PipelineState.EXPANDING_INNER,
}


class LifecycleController:
    """Runs fetch, decrypt and wipe invocations against one config.

    Components are built from the config unless injected.
    """

    def __init__(
        self,
        config: FetchConfig,
        prompter: Prompter,
        runner: Optional[CommandRunner] = None,
        sleep: Callable[[float], None] = time.sleep,
        transfer: Optional[TransferManager] = None,
        disposal: Optional[SecureDisposalEngine] = None,
        pipeline: Optional[DecryptExpandPipeline] = None,
    ):
        self.config = config
        self.prompter = prompter
        self.runner = runner or CommandRunner(timeout=config.command_timeout)
        self.transfer = transfer or TransferManager(
            config, RemoteHost(config, self.runner), sleep=sleep,
        )
        self.disposal = disposal or SecureDisposalEngine(config, self.runner, sleep=sleep)
        self.pipeline = pipeline or DecryptExpandPipeline(
            config, self.runner, self.disposal, sleep=sleep,
        )
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]

    def _transition(self, state: PipelineState) -> None:
        if state == self.state:
            return
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _begin(self) -> None:
        if self.state != PipelineState.IDLE:
            raise BackupFetchError(f"Another operation is in progress ({self.state.value})")
        self.history = [PipelineState.IDLE]

    # ------------------------------------------------------------------
    # Default mode
    # ------------------------------------------------------------------

    def run_fetch(self) -> TransferOutcome:
        """Fetch the newest remote artifact if it is not already held locally."""
        self._begin()
        try:
            self._transition(PipelineState.DISCOVERING)
            artifact = self.transfer.discover_latest()

            self._transition(PipelineState.COMPARING)
            synced = self.transfer.find_synchronized(artifact)
            if synced is not None:
                self._transition(PipelineState.SKIPPED)
                return self.transfer.skipped(artifact, synced)

            self._transition(PipelineState.TRANSFERRING)
            outcome = self.transfer.transfer(artifact)
            logger.info("Fetched %s -> %s", artifact.filename, outcome.local_path)
            return outcome
        finally:
            self._transition(PipelineState.IDLE)

    # ------------------------------------------------------------------
    # Explicit-decrypt mode
    # ------------------------------------------------------------------

    def local_copies(self) -> list[LocalEncryptedCopy]:
        return self.transfer.list_local()

    def select_copy(self, selection: Optional[int] = None) -> LocalEncryptedCopy:
        """Pick a local encrypted artifact by 1-based number.

        Raises:
            SelectionError: If nothing is available or the number is out of range.
        """
        copies = self.local_copies()
        if not copies:
            raise SelectionError(f"No encrypted backups in {self.config.encrypted_store}")

        if selection is None:
            labels = [
                f"{c.filename}  ({c.size / 1024 / 1024:.1f} MB, {c.modified:%Y-%m-%d %H:%M})"
                for c in copies
            ]
            selection = self.prompter.choose("Select a backup to decrypt", labels)

        if not 1 <= selection <= len(copies):
            raise SelectionError(f"Selection {selection} out of range 1-{len(copies)}")
        return copies[selection - 1]

    def run_decrypt(self, selection: Optional[int] = None) -> ExpansionResult:
        """Decrypt and expand a chosen local artifact into the working store."""
        self._begin()
        entered_stages = False

        def on_stage(state: PipelineState) -> None:
            nonlocal entered_stages
            if state in _DECRYPT_STAGES:
                entered_stages = True
            self._transition(state)

        try:
            copy = self.select_copy(selection)
            logger.info("Decrypting %s", copy.filename)
            try:
                return self.pipeline.run(copy, self.prompter, on_stage=on_stage)
            finally:
                if entered_stages:
                    self._transition(PipelineState.DISPOSING)
                    self.pipeline.ensure_disposed()
        finally:
            self._transition(PipelineState.IDLE)

    # ------------------------------------------------------------------
    # Wipe-all mode
    # ------------------------------------------------------------------

    def run_wipe(self) -> WipeReport:
        """Confirm, then securely dispose of everything in the working store.

        Raises:
            OperationCancelled: If the operator declines.
            ManualInterventionRequired: If any entry survives its retries.
        """
        self._begin()
        try:
            self._transition(PipelineState.WIPE_REQUESTED)
            store = self.config.working_store
            entries = self.disposal.confidential_entries(store)
            if not entries:
                logger.info("Nothing to wipe in %s", store)
                return WipeReport(working_dir=store)

            self._transition(PipelineState.CONFIRMING)
            self.disposal.confirm_wipe(self.prompter, entries, store)

            self._transition(PipelineState.WIPING)
            report = self.disposal.wipe_entries(entries, store)
            if not report.all_clean:
                failed = [e.path for e in report.failed]
                raise ManualInterventionRequired(
                    f"{len(failed)} item(s) in {store} could not be securely disposed of",
                    paths=failed,
                )
            return report
        finally:
            self._transition(PipelineState.IDLE)
