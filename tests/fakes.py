"""In-process stand-ins for ssh, scp, gpg, gzip, tar and shred.

The "remote host" is a local directory: the config's remote_dir points
at it, so ``ls -1t`` and ``sha256sum`` are answered from real files.
"Encryption" is a fixed header in front of the plaintext, which the
fake gpg strips again.
"""

from __future__ import annotations

import gzip
import hashlib
import io
import os
import shlex
import shutil
import subprocess
import tarfile
from pathlib import Path
from typing import Optional, Sequence

FAKE_GPG_HEADER = b"-----FAKE GPG MESSAGE-----\n"
PREFIX = "odoo_full_backup_"
ARTIFACT = "odoo_full_backup_20250101_0000.tar.gz.gpg"

BACKUP_FILES = {
    "odoo_db_dump_20250101_0000.sql": b"-- PostgreSQL database dump\nCREATE TABLE res_partner ();\n",
    "odoo_filestore_20250101_0000.tar.gz": b"\x1f\x8bfilestore-bytes",
    "odoo_config_20250101_0000.tar.gz": b"\x1f\x8bconfig-bytes",
    "odoo_addons_20250101_0000.tar.gz": b"\x1f\x8baddons-bytes",
    "addons/custom_sale/__init__.py": b"from . import models\n",
    "filestore/odoo/ab/abcdef0123456789": b"\x89PNG attachment",
}


def no_sleep(_seconds: float) -> None:
    """Sleep replacement so polling tests run instantly."""


def fake_encrypt(plaintext: bytes) -> bytes:
    return FAKE_GPG_HEADER + plaintext


def build_archive(files: dict[str, bytes]) -> bytes:
    """gzip-compressed tar holding the given relative paths and their parent directories."""
    dirs = sorted({str(parent) for name in files for parent in Path(name).parents if str(parent) != "."})
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name in dirs:
            info = tarfile.TarInfo(name=name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            info.mtime = 1735689600
            tar.addfile(info)
        for name, data in sorted(files.items()):
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            info.mtime = 1735689600
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def produce_artifact(remote_dir: Path, name: str, files: dict[str, bytes]) -> Path:
    """Write an encrypted backup the way the producer would."""
    remote_dir.mkdir(parents=True, exist_ok=True)
    path = remote_dir / name
    path.write_bytes(fake_encrypt(build_archive(files)))
    return path


def _done(args: Sequence[str], code: int = 0, out: str = "", err: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(list(args), code, stdout=out, stderr=err)


class FakeRunner:
    """Drop-in for CommandRunner.

    Args:
        fail: Tool name -> (returncode, stderr) to return instead of running.
        stubborn: Paths the fake shred reports success for but leaves in place.
        gzip_output_name: Force gzip to write under this name instead.
        scp_writes: If False, scp reports success without writing anything.
        scp_partial: Bytes scp writes before the connection drops (exit 1).
        gzip_extra: Name of one more ``.tar`` gzip leaves beside its output.
    """

    def __init__(
        self,
        fail: Optional[dict[str, tuple[int, str]]] = None,
        stubborn: Optional[set[Path]] = None,
        gzip_output_name: Optional[str] = None,
        scp_writes: bool = True,
        scp_partial: Optional[bytes] = None,
        gzip_extra: Optional[str] = None,
    ):
        self.fail = dict(fail or {})
        self.stubborn = set(stubborn or ())
        self.gzip_output_name = gzip_output_name
        self.scp_writes = scp_writes
        self.scp_partial = scp_partial
        self.gzip_extra = gzip_extra
        self.calls: list[list[str]] = []
        self.remote_digest_override: Optional[str] = None

    def tool_calls(self, tool: str) -> list[list[str]]:
        return [c for c in self.calls if Path(c[0]).name == tool]

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        args = [str(a) for a in args]
        self.calls.append(args)
        tool = Path(args[0]).name
        if tool in self.fail:
            code, err = self.fail[tool]
            return _done(args, code, err=err)
        handler = getattr(self, f"_{tool}", None)
        if handler is None:
            raise FileNotFoundError(f"No such tool: {args[0]}")
        return handler(args)

    # -- remote ---------------------------------------------------------

    def _ssh(self, args: list[str]) -> subprocess.CompletedProcess:
        remote = shlex.split(args[-1])
        if remote[0] == "ls":
            directory = Path(remote[-1])
            if not directory.is_dir():
                return _done(args, 2, err=f"ls: cannot access '{directory}': No such file or directory")
            entries = sorted(directory.iterdir(), key=lambda p: p.stat().st_mtime, reverse=True)
            return _done(args, out="".join(f"{p.name}\n" for p in entries))
        if remote[0] == "sha256sum":
            path = Path(remote[-1])
            if not path.is_file():
                return _done(args, 1, err=f"sha256sum: {path}: No such file or directory")
            digest = self.remote_digest_override or hashlib.sha256(path.read_bytes()).hexdigest()
            return _done(args, out=f"{digest}  {path}\n")
        return _done(args, 127, err=f"{remote[0]}: command not found")

    def _scp(self, args: list[str]) -> subprocess.CompletedProcess:
        source, dest = args[-2], Path(args[-1])
        remote_path = Path(shlex.split(source.split(":", 1)[1])[0])
        if not remote_path.is_file():
            return _done(args, 1, err=f"scp: {remote_path}: No such file or directory")
        if self.scp_partial is not None:
            dest.write_bytes(self.scp_partial)
            return _done(args, 1, err="Connection reset by peer\nlost connection")
        if self.scp_writes:
            shutil.copyfile(remote_path, dest)
        return _done(args)

    # -- local tools ----------------------------------------------------

    def _gpg(self, args: list[str]) -> subprocess.CompletedProcess:
        target = Path(args[args.index("--output") + 1])
        source = Path(args[args.index("--decrypt") + 1])
        data = source.read_bytes()
        if not data.startswith(FAKE_GPG_HEADER):
            return _done(args, 2, err="gpg: decryption failed: No secret key")
        target.write_bytes(data[len(FAKE_GPG_HEADER):])
        return _done(args)

    def _gzip(self, args: list[str]) -> subprocess.CompletedProcess:
        archive = Path(args[-1])
        name = self.gzip_output_name or archive.name[: -len(".gz")]
        try:
            with gzip.open(archive, "rb") as src:
                data = src.read()
        except (OSError, EOFError) as exc:
            return _done(args, 1, err=f"gzip: {archive}: {exc}")
        (archive.parent / name).write_bytes(data)
        if self.gzip_extra:
            (archive.parent / self.gzip_extra).write_bytes(data)
        return _done(args)

    def _tar(self, args: list[str]) -> subprocess.CompletedProcess:
        if "-tf" in args:
            source = Path(args[args.index("-tf") + 1])
            try:
                with tarfile.open(source, "r:") as tar:
                    names = [m.name + ("/" if m.isdir() else "") for m in tar.getmembers()]
            except tarfile.TarError as exc:
                return _done(args, 2, err=f"tar: {exc}")
            return _done(args, out="".join(f"{n}\n" for n in names))
        source = Path(args[args.index("-xf") + 1])
        target = Path(args[args.index("-C") + 1])
        try:
            with tarfile.open(source, "r:") as tar:
                tar.extractall(path=target, filter="data")
        except tarfile.TarError as exc:
            return _done(args, 2, err=f"tar: {exc}")
        return _done(args)

    def _shred(self, args: list[str]) -> subprocess.CompletedProcess:
        path = Path(args[-1])
        if path in self.stubborn:
            return _done(args)
        if not path.exists():
            return _done(args, 1, err=f"shred: {path}: failed to open for writing: No such file or directory")
        os.unlink(path)
        return _done(args)
