"""Default, decrypt and wipe modes of the main command."""

from __future__ import annotations

import logging
from typing import Optional

from rich.panel import Panel
from rich.table import Table

from ..config import FetchConfig
from ..disposal import FLASH_STORAGE_CAVEAT
from ..errors import BackupFetchError, ManualInterventionRequired
from ..lifecycle import LifecycleController
from ..models import TransferAction
from ..prompts import AutoPrompter, ClickPrompter
from ..runlog import attach_console_log, attach_run_log, detach
from ._common import console

logger = logging.getLogger("backupfetch.cli")


def run_mode(
    config: FetchConfig,
    decrypt: bool = False,
    wipe: bool = False,
    selection: Optional[int] = None,
    assume_yes: bool = False,
    verbose: bool = False,
) -> None:
    """Run one pipeline mode; exit 1 on any fatal error."""
    mode = "decrypt" if decrypt else "wipe" if wipe else "fetch"
    handlers: list[logging.Handler] = []

    try:
        config.ensure_dirs()
        handlers.append(attach_run_log(config.run_log_path))
        if verbose:
            handlers.append(attach_console_log())

        prompter = AutoPrompter(assume_yes=True) if assume_yes else ClickPrompter()
        controller = LifecycleController(config, prompter)
        logger.info("=== backupfetch %s started ===", mode)

        if decrypt:
            _decrypt(controller, selection)
        elif wipe:
            _wipe(controller)
        else:
            _fetch(controller)
        logger.info("=== backupfetch %s finished ===", mode)
    except ManualInterventionRequired as exc:
        logger.error("Manual intervention required: %s", exc)
        console.print(Panel(
            f"[bold red]Manual intervention required[/]\n{exc}\n\n"
            + "\n".join(f"  [red]{p}[/]" for p in exc.paths)
            + "\n\nRemove these paths securely by hand, then run [cyan]backupfetch --wipe[/].",
            title="Plaintext Left Behind",
            border_style="red",
        ))
        raise SystemExit(1)
    except (BackupFetchError, OSError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        console.print(f"[red]{type(exc).__name__}:[/] {exc}")
        raise SystemExit(1)
    except KeyboardInterrupt:
        logger.error("Interrupted by operator")
        console.print("\n[yellow]Interrupted.[/]")
        raise SystemExit(1)
    finally:
        for handler in handlers:
            detach(handler)


def _fetch(controller: LifecycleController) -> None:
    console.print(f"\n[cyan]Checking {controller.config.remote_host} for new backups...[/]")
    outcome = controller.run_fetch()

    if outcome.action == TransferAction.SKIPPED:
        console.print(Panel(
            f"[bold green]Skipped, synchronized[/]\n"
            f"Remote: {outcome.artifact.filename}\n"
            f"Local: [cyan]{outcome.local_path}[/]",
            title="Up To Date",
            border_style="green",
        ))
        return

    note = ""
    if outcome.action == TransferAction.DISAMBIGUATED:
        note = "\n[yellow]Remote content changed under the same name; previous copy kept.[/]"
    console.print(Panel(
        f"[bold green]Backup transferred[/]\n"
        f"Remote: {outcome.artifact.filename}\n"
        f"SHA-256: {outcome.fingerprint or 'unknown'}\n"
        f"Local: [cyan]{outcome.local_path}[/]{note}",
        title="Fetch Complete",
        border_style="green",
    ))


def _decrypt(controller: LifecycleController, selection: Optional[int]) -> None:
    result = controller.run_decrypt(selection)

    body = (
        f"[bold green]Backup decrypted and expanded[/]\n"
        f"Source: {result.source.name}\n"
        f"Files: {len(result.files)}\n"
        f"Location: [cyan]{result.working_dir}[/]"
    )
    for warning in result.warnings:
        body += f"\n[yellow]Warning: {warning}[/]"
    console.print(Panel(body, title="Decrypt Complete", border_style="green"))

    for path in result.files:
        console.print(f"  {path.relative_to(result.working_dir)}")
    console.print(
        "\n[yellow]The working store now holds confidential plaintext. "
        "Run [cyan]backupfetch --wipe[/] when you are done.[/]"
    )
    console.print(f"[dim]{FLASH_STORAGE_CAVEAT}[/]\n")


def _wipe(controller: LifecycleController) -> None:
    report = controller.run_wipe()
    if not report.entries:
        console.print(f"\n[dim]Nothing to wipe in {report.working_dir}.[/]\n")
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Entry", style="cyan")
    table.add_column("Result")
    table.add_column("Attempts", justify="right")

    for entry in report.entries:
        status = "[green]DESTROYED[/]" if entry.complete else "[red]INCOMPLETE[/]"
        table.add_row(entry.path.name, status, str(entry.attempts))

    console.print(f"\n[bold]{len(report.entries)}[/] item(s) wiped:\n")
    console.print(table)
    console.print(f"\n[dim]{FLASH_STORAGE_CAVEAT}[/]\n")
