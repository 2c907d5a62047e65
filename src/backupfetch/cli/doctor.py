"""Doctor command: check the external tools the pipeline depends on."""

from __future__ import annotations

import click
from rich.table import Table

from ..preflight import run_preflight
from ._common import console, load_or_exit


def register_doctor_commands(main: click.Group) -> None:
    """Register the doctor command."""

    @main.command("doctor")
    @click.pass_context
    def doctor(ctx: click.Context):
        """Check that ssh, scp, gpg, gzip, tar and shred are installed.

        Examples:

            backupfetch doctor
        """
        config = load_or_exit(ctx.obj.get("config_path"), ctx.obj.get("home"))
        result = run_preflight(config)

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Tool", style="cyan")
        table.add_column("Status")
        table.add_column("Used for", style="dim")
        table.add_column("Version / install")

        for check in result.checks:
            if check.installed:
                table.add_row(check.binary, "[green]OK[/]", check.purpose, check.version)
            else:
                table.add_row(check.binary, "[red]MISSING[/]", check.purpose, check.install_cmd)

        console.print()
        console.print(table)
        console.print()

        if not result.all_ok:
            console.print(f"[red]{len(result.missing)} required tool(s) missing.[/]\n")
            raise SystemExit(1)
        console.print("[green]All tools present.[/]\n")
