"""
Preflight system checks -- are the external tools actually there?

Checks, from the configured paths:
  - ssh / scp  (remote listing, digest and copy)
  - gpg        (decryption)
  - gzip / tar (expansion)
  - shred      (secure disposal)

Each check returns whether the tool is installed, its version line,
and a platform-specific install hint when it is missing.
"""

from __future__ import annotations

import platform
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .config import FetchConfig


class ToolStatus(str, Enum):
    """Status of a system tool."""
    INSTALLED = "installed"
    MISSING = "missing"


@dataclass
class ToolCheck:
    """Result of checking a single system tool."""

    name: str
    binary: str
    status: ToolStatus
    purpose: str = ""
    version: str = ""
    install_cmd: str = ""

    @property
    def installed(self) -> bool:
        """Whether the tool is installed."""
        return self.status == ToolStatus.INSTALLED


@dataclass
class PreflightResult:
    """Combined result of all preflight checks."""

    checks: list[ToolCheck] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        """True if every tool was found."""
        return all(c.installed for c in self.checks)

    @property
    def missing(self) -> list[ToolCheck]:
        return [c for c in self.checks if not c.installed]


# Debian package names; other managers mostly agree
_PACKAGES = {
    "ssh": "openssh-client",
    "scp": "openssh-client",
    "gpg": "gnupg",
    "gzip": "gzip",
    "tar": "tar",
    "shred": "coreutils",
}

_VERSION_FLAGS = {
    "ssh": "-V",
}


def _detect_linux_pkg_manager() -> Optional[str]:
    """Detect the Linux package manager."""
    for mgr in ("apt", "dnf", "pacman", "zypper", "apk"):
        if shutil.which(mgr):
            return mgr
    return None


def install_hint(name: str) -> str:
    """Platform-specific install command for a tool, or ''."""
    package = _PACKAGES.get(name, name)
    system = platform.system()
    if system == "Linux":
        mgr = _detect_linux_pkg_manager()
        cmds = {
            "apt": f"sudo apt install -y {package}",
            "dnf": f"sudo dnf install -y {package}",
            "pacman": f"sudo pacman -S --noconfirm {package}",
            "zypper": f"sudo zypper install -y {package}",
            "apk": f"sudo apk add {package}",
        }
        return cmds.get(mgr, f"sudo apt install -y {package}")
    if system == "Darwin":
        if name == "shred":
            return "brew install coreutils  # provides gshred; set shred_bin: gshred"
        return f"brew install {'gnupg' if name == 'gpg' else package}"
    return ""


def check_tool(name: str, binary: str, purpose: str = "") -> ToolCheck:
    """Check that a tool resolves on PATH and report its version.

    Args:
        name: Canonical tool name (ssh, gpg, ...).
        binary: Configured binary name or path.
        purpose: What the pipeline uses it for.

    Returns:
        ToolCheck for the tool.
    """
    if not shutil.which(binary):
        return ToolCheck(
            name=name,
            binary=binary,
            status=ToolStatus.MISSING,
            purpose=purpose,
            install_cmd=install_hint(name),
        )

    version = ""
    try:
        result = subprocess.run(
            [binary, _VERSION_FLAGS.get(name, "--version")],
            capture_output=True, text=True, timeout=5,
        )
        output = (result.stdout or result.stderr).strip()
        if output:
            version = output.split("\n")[0][:60]
    except (OSError, subprocess.TimeoutExpired):
        pass

    return ToolCheck(
        name=name,
        binary=binary,
        status=ToolStatus.INSTALLED,
        purpose=purpose,
        version=version,
    )


def run_preflight(config: FetchConfig) -> PreflightResult:
    """Check every external tool the pipeline invokes.

    Args:
        config: Supplies the configured binary paths.

    Returns:
        PreflightResult with one ToolCheck per tool.
    """
    tools = [
        ("ssh", config.ssh_bin, "remote listing and digest"),
        ("scp", config.scp_bin, "artifact transfer"),
        ("gpg", config.gpg_bin, "decryption"),
        ("gzip", config.gzip_bin, "outer expansion"),
        ("tar", config.tar_bin, "inner expansion"),
        ("shred", config.shred_bin, "secure disposal"),
    ]
    return PreflightResult(checks=[check_tool(*t) for t in tools])
