"""Tests for the lifecycle controller: state sequences and exit paths."""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import ARTIFACT, BACKUP_FILES, FakeRunner, no_sleep, produce_artifact

from backupfetch.errors import (
    BackupFetchError,
    DecryptionFailed,
    ManualInterventionRequired,
    OperationCancelled,
    SelectionError,
)
from backupfetch.lifecycle import LifecycleController
from backupfetch.models import PipelineState as S
from backupfetch.models import TransferAction
from backupfetch.prompts import AutoPrompter


def _controller(config, runner=None, prompter=None) -> LifecycleController:
    return LifecycleController(
        config,
        prompter or AutoPrompter(assume_yes=True),
        runner=runner or FakeRunner(),
        sleep=no_sleep,
    )


class TestFetchMode:
    """Default mode."""

    def test_transfer_then_skip(self, controller, remote_dir: Path) -> None:
        produce_artifact(remote_dir, ARTIFACT, BACKUP_FILES)

        first = controller.run_fetch()
        assert first.action == TransferAction.TRANSFERRED
        assert controller.history == [S.IDLE, S.DISCOVERING, S.COMPARING, S.TRANSFERRING, S.IDLE]

        second = controller.run_fetch()
        assert second.action == TransferAction.SKIPPED
        assert controller.history == [S.IDLE, S.DISCOVERING, S.COMPARING, S.SKIPPED, S.IDLE]
        assert controller.state == S.IDLE

    def test_failure_returns_to_idle(self, controller) -> None:
        with pytest.raises(BackupFetchError):
            controller.run_fetch()
        assert controller.state == S.IDLE
        assert controller.history[-2] == S.DISCOVERING

    def test_busy_guard(self, controller) -> None:
        controller.state = S.TRANSFERRING
        with pytest.raises(BackupFetchError, match="in progress"):
            controller.run_fetch()


class TestSelection:
    """Choosing a local encrypted artifact."""

    def test_nothing_to_select(self, controller) -> None:
        with pytest.raises(SelectionError, match="No encrypted backups"):
            controller.select_copy()

    def test_out_of_range(self, controller, config) -> None:
        produce_artifact(config.encrypted_store, ARTIFACT, BACKUP_FILES)
        with pytest.raises(SelectionError, match="out of range"):
            controller.select_copy(2)

    def test_prompter_is_asked(self, config) -> None:
        produce_artifact(config.encrypted_store, ARTIFACT, BACKUP_FILES)
        prompter = AutoPrompter(assume_yes=True)
        controller = _controller(config, prompter=prompter)

        copy = controller.select_copy()

        assert copy.filename == ARTIFACT
        assert prompter.asked == ["Select a backup to decrypt"]

    def test_explicit_selection_skips_prompt(self, config) -> None:
        produce_artifact(config.encrypted_store, ARTIFACT, BACKUP_FILES)
        prompter = AutoPrompter(assume_yes=True)
        controller = _controller(config, prompter=prompter)

        controller.select_copy(1)

        assert prompter.asked == []


class TestDecryptMode:
    """Explicit-decrypt mode."""

    def test_full_sequence(self, controller, config) -> None:
        produce_artifact(config.encrypted_store, ARTIFACT, BACKUP_FILES)

        result = controller.run_decrypt(1)

        assert len(result.files) == len(BACKUP_FILES)
        assert controller.history == [
            S.IDLE, S.DECRYPTING, S.EXPANDING_OUTER, S.EXPANDING_INNER, S.DISPOSING, S.IDLE,
        ]
        assert not config.decrypted_path.exists()

    def test_failure_still_disposes(self, config) -> None:
        (config.encrypted_store / ARTIFACT).write_bytes(b"garbage")
        controller = _controller(config)

        with pytest.raises(DecryptionFailed):
            controller.run_decrypt(1)

        assert controller.history == [S.IDLE, S.DECRYPTING, S.DISPOSING, S.IDLE]
        assert controller.state == S.IDLE

    def test_declined_overwrite_skips_disposal(self, config) -> None:
        produce_artifact(config.encrypted_store, ARTIFACT, BACKUP_FILES)
        config.decrypted_path.write_bytes(b"earlier plaintext")
        runner = FakeRunner()
        controller = _controller(config, runner=runner, prompter=AutoPrompter(assume_yes=False))

        with pytest.raises(OperationCancelled):
            controller.run_decrypt(1)

        assert controller.history == [S.IDLE]
        assert config.decrypted_path.read_bytes() == b"earlier plaintext"
        assert runner.tool_calls("shred") == []

    def test_stubborn_leftover_escalates(self, config) -> None:
        produce_artifact(config.encrypted_store, ARTIFACT, BACKUP_FILES)
        runner = FakeRunner(stubborn={config.decrypted_path})
        controller = _controller(config, runner=runner)

        with pytest.raises(ManualInterventionRequired) as excinfo:
            controller.run_decrypt(1)

        assert config.decrypted_path in excinfo.value.paths
        assert controller.state == S.IDLE


class TestWipeMode:
    """Wipe-all mode."""

    def test_full_sequence(self, controller, config) -> None:
        (config.working_store / "odoo_db_dump.sql").write_text("dump")

        report = controller.run_wipe()

        assert report.all_clean
        assert controller.history == [S.IDLE, S.WIPE_REQUESTED, S.CONFIRMING, S.WIPING, S.IDLE]

    def test_nothing_to_wipe(self, controller) -> None:
        report = controller.run_wipe()

        assert report.entries == []
        assert controller.history == [S.IDLE, S.WIPE_REQUESTED, S.IDLE]

    def test_declined(self, config) -> None:
        dump = config.working_store / "odoo_db_dump.sql"
        dump.write_text("dump")
        controller = _controller(config, prompter=AutoPrompter(assume_yes=False))

        with pytest.raises(OperationCancelled):
            controller.run_wipe()

        assert dump.exists()
        assert controller.history == [S.IDLE, S.WIPE_REQUESTED, S.CONFIRMING, S.IDLE]

    def test_incomplete_wipe_escalates(self, config) -> None:
        dump = config.working_store / "odoo_db_dump.sql"
        dump.write_text("dump")
        controller = _controller(config, runner=FakeRunner(stubborn={dump}))

        with pytest.raises(ManualInterventionRequired) as excinfo:
            controller.run_wipe()

        assert excinfo.value.paths == [dump]
