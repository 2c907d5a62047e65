"""
Configuration loading -- one explicit value built at startup.

The config file is a flat YAML mapping. Only the remote coordinates
are required; everything else has a working default. The loaded
FetchConfig is handed to every component instead of living in a
module-level global.

Example ~/.backupfetch/config.yaml:

    remote_host: backup@db1.example.org
    remote_dir: /var/backups/odoo
    prefix: odoo_full_backup_
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import BACKUPFETCH_HOME
from .errors import ConfigurationError
from .models import ARTIFACT_SUFFIX

logger = logging.getLogger("backupfetch.config")

CONFIG_FILENAME = "config.yaml"

REQUIRED_KEYS = {
    "remote_host": "Remote host (user@host) holding the backups",
    "remote_dir": "Backup directory on the remote host",
    "prefix": "Artifact filename prefix",
}


class FetchConfig(BaseModel):
    """Complete configuration for one pipeline run."""

    model_config = ConfigDict(extra="forbid")

    remote_host: str
    remote_dir: str
    prefix: str

    home: Path = Field(default_factory=lambda: Path(BACKUPFETCH_HOME).expanduser())
    encrypted_dir: Optional[Path] = None
    working_dir: Optional[Path] = None

    ssh_bin: str = "ssh"
    scp_bin: str = "scp"
    ssh_options: list[str] = Field(default_factory=lambda: ["-o", "BatchMode=yes"])
    gpg_bin: str = "gpg"
    gzip_bin: str = "gzip"
    tar_bin: str = "tar"
    shred_bin: str = "shred"

    command_timeout: float = 600.0
    shred_passes: int = Field(default=3, ge=1)
    poll_attempts: int = Field(default=5, ge=1)
    poll_delay: float = Field(default=1.0, ge=0)
    cleanup_attempts: int = Field(default=3, ge=1)
    cleanup_delay: float = Field(default=0.5, ge=0)

    decrypted_name: str = "decrypted_backup.tar.gz"
    run_log_name: str = "backupfetch.log"

    @field_validator("remote_host", "remote_dir", "prefix")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("decrypted_name")
    @classmethod
    def _gzip_name(cls, value: str) -> str:
        if not value.endswith(".tar.gz") or "/" in value:
            raise ValueError("must be a bare filename ending in .tar.gz")
        return value

    @property
    def encrypted_store(self) -> Path:
        """Durable directory holding retained encrypted artifacts."""
        return (self.encrypted_dir or self.home / "encrypted").expanduser()

    @property
    def working_store(self) -> Path:
        """Transient directory holding decrypted material and the run log."""
        return (self.working_dir or self.home / "working").expanduser()

    @property
    def decrypted_path(self) -> Path:
        """The single well-known DecryptedArchive location."""
        return self.working_store / self.decrypted_name

    @property
    def run_log_path(self) -> Path:
        return self.working_store / self.run_log_name

    @property
    def artifact_pattern(self) -> str:
        """Glob pattern matched by producer artifacts."""
        return f"{self.prefix}*{ARTIFACT_SUFFIX}"

    def ensure_dirs(self) -> None:
        """Create both stores. The working store is kept owner-only."""
        self.encrypted_store.mkdir(parents=True, exist_ok=True)
        self.working_store.mkdir(parents=True, exist_ok=True)
        self.working_store.chmod(0o700)


def default_config_path(home: Optional[Path] = None) -> Path:
    """Return the config file path under the given (or default) home."""
    return (home or Path(BACKUPFETCH_HOME)).expanduser() / CONFIG_FILENAME


def load_config(
    path: Optional[Path] = None,
    home: Optional[Path] = None,
) -> FetchConfig:
    """Load and validate the configuration file.

    Args:
        path: Explicit config file. Defaults to <home>/config.yaml.
        home: Base directory for the default stores.

    Returns:
        FetchConfig: The validated configuration.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not a
            mapping, or lacks required keys.
    """
    config_file = (path or default_config_path(home)).expanduser()
    if not config_file.exists():
        raise ConfigurationError(f"Config file not found: {config_file}")

    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read {config_file}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_file} must contain a key-value mapping")

    missing = [key for key in REQUIRED_KEYS if not str(data.get(key) or "").strip()]
    if missing:
        details = ", ".join(f"'{key}' ({REQUIRED_KEYS[key]})" for key in missing)
        raise ConfigurationError(f"Required setting(s) missing in {config_file}: {details}")

    if home is not None and "home" not in data:
        data["home"] = home

    try:
        config = FetchConfig(**data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid config in {config_file}: {problems}") from exc

    logger.debug("Loaded config from %s (host=%s)", config_file, config.remote_host)
    return config


def save_config(
    path: Path,
    remote_host: str,
    remote_dir: str,
    prefix: str,
) -> Path:
    """Write a starter config file with the required keys.

    Args:
        path: Where to write the file.
        remote_host: Remote host, optionally user@host.
        remote_dir: Backup directory on the remote host.
        prefix: Artifact filename prefix.

    Returns:
        Path: The written file.
    """
    path = path.expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {"remote_host": remote_host, "remote_dir": remote_dir, "prefix": prefix}
    path.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    logger.info("Config written: %s", path)
    return path
