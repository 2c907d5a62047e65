"""Shared test fixtures for backupfetch."""

from __future__ import annotations

from pathlib import Path

import pytest

from backupfetch.config import FetchConfig
from backupfetch.disposal import SecureDisposalEngine
from backupfetch.lifecycle import LifecycleController
from backupfetch.pipeline import DecryptExpandPipeline
from backupfetch.prompts import AutoPrompter
from backupfetch.remote import RemoteHost
from backupfetch.transfer import TransferManager

from fakes import PREFIX, FakeRunner, no_sleep


@pytest.fixture
def remote_dir(tmp_path: Path) -> Path:
    """Directory standing in for the remote backup directory."""
    d = tmp_path / "remote"
    d.mkdir()
    return d


@pytest.fixture
def config(tmp_path: Path, remote_dir: Path) -> FetchConfig:
    """Config pointing both stores into tmp_path, with no polling delay."""
    cfg = FetchConfig(
        remote_host="backup@db1.test",
        remote_dir=str(remote_dir),
        prefix=PREFIX,
        home=tmp_path / ".backupfetch",
        poll_attempts=3,
        poll_delay=0,
        cleanup_attempts=3,
        cleanup_delay=0,
    )
    cfg.ensure_dirs()
    return cfg


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def transfer(config: FetchConfig, runner: FakeRunner) -> TransferManager:
    return TransferManager(config, RemoteHost(config, runner), sleep=no_sleep)


@pytest.fixture
def disposal(config: FetchConfig, runner: FakeRunner) -> SecureDisposalEngine:
    return SecureDisposalEngine(config, runner, sleep=no_sleep)


@pytest.fixture
def pipeline(config: FetchConfig, runner: FakeRunner, disposal: SecureDisposalEngine) -> DecryptExpandPipeline:
    return DecryptExpandPipeline(config, runner, disposal, sleep=no_sleep)


@pytest.fixture
def prompter() -> AutoPrompter:
    return AutoPrompter(assume_yes=True)


@pytest.fixture
def controller(config: FetchConfig, runner: FakeRunner, prompter: AutoPrompter) -> LifecycleController:
    return LifecycleController(config, prompter, runner=runner, sleep=no_sleep)
