"""Shared utilities for all CLI command modules.

Provides the Rich console instance and config loading that turns a
ConfigurationError into a clean exit.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from rich.console import Console

from ..config import FetchConfig, load_config
from ..errors import ConfigurationError

console = Console()


def load_or_exit(config_path: Optional[Path], home: Optional[Path]) -> FetchConfig:
    """Load the config or print the error and exit 1."""
    try:
        return load_config(path=config_path, home=home)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/] {exc}")
        raise SystemExit(1)


def format_size(size: int) -> str:
    """Human-readable size in MB."""
    return f"{size / 1024 / 1024:.1f} MB"
