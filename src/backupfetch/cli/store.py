"""Local store commands: list, init."""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from ..config import default_config_path, save_config
from ..remote import RemoteHost
from ..runner import CommandRunner
from ..transfer import TransferManager
from ._common import console, format_size, load_or_exit


def register_store_commands(main: click.Group) -> None:
    """Register the list and init commands."""

    @main.command("list")
    @click.pass_context
    def list_cmd(ctx: click.Context):
        """List encrypted backups held locally, newest first.

        The numbers match the --select option of --decrypt.

        Examples:

            backupfetch list
        """
        config = load_or_exit(ctx.obj.get("config_path"), ctx.obj.get("home"))
        manager = TransferManager(config, RemoteHost(config, CommandRunner()))
        copies = manager.list_local()

        if not copies:
            console.print(f"\n[dim]No encrypted backups in {config.encrypted_store}.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("#", justify="right")
        table.add_column("Filename", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Modified", style="dim")

        for i, copy in enumerate(copies, start=1):
            table.add_row(str(i), copy.filename, format_size(copy.size), copy.modified.isoformat()[:19])

        console.print(f"\n[bold]{len(copies)}[/] encrypted backup(s):\n")
        console.print(table)
        console.print()

    @main.command("init")
    @click.option("--host", "remote_host", required=True, help="Remote host, e.g. backup@db1.")
    @click.option("--dir", "remote_dir", required=True, help="Backup directory on the remote host.")
    @click.option("--prefix", default="odoo_full_backup_", show_default=True,
                  help="Artifact filename prefix.")
    @click.option("--force", is_flag=True, help="Overwrite an existing config file.")
    @click.pass_context
    def init_cmd(ctx: click.Context, remote_host: str, remote_dir: str, prefix: str, force: bool):
        """Write a starter config file.

        Examples:

            backupfetch init --host backup@db1 --dir /var/backups/odoo
        """
        path: Path = ctx.obj.get("config_path") or default_config_path(ctx.obj.get("home"))
        if path.expanduser().exists() and not force:
            console.print(f"[red]{path} already exists.[/] Use --force to overwrite.")
            raise SystemExit(1)

        written = save_config(path, remote_host, remote_dir, prefix)
        console.print(f"[green]Config written:[/] [cyan]{written}[/]")
