"""
backupfetch CLI: fetch, decrypt and dispose of confidential backups.

The main Click group is defined here. With no subcommand it runs one
pipeline mode chosen by flag; extra commands are registered from the
modular files below.

Entry point: backupfetch.cli:main
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from .. import __version__
from ._common import load_or_exit
from .run import run_mode


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="backupfetch")
@click.option("--config", "config_path", default=None, type=click.Path(path_type=Path),
              help="Config file (default: <home>/config.yaml).")
@click.option("--home", default=None, type=click.Path(path_type=Path),
              help="Base directory (default: $BACKUPFETCH_HOME or ~/.backupfetch).")
@click.option("--decrypt", is_flag=True, help="Decrypt and expand a local encrypted backup.")
@click.option("--wipe", is_flag=True, help="Securely destroy everything in the working store.")
@click.option("--select", "selection", default=None, type=int,
              help="Backup number to decrypt (skips the interactive prompt).")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Answer yes to every confirmation.")
@click.option("--verbose", "-v", is_flag=True, help="Mirror the run log to stderr.")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Optional[Path],
    home: Optional[Path],
    decrypt: bool,
    wipe: bool,
    selection: Optional[int],
    assume_yes: bool,
    verbose: bool,
):
    """backupfetch: confidential backup retrieval.

    With no arguments, fetches the newest remote backup if it changed.

    Examples:

        backupfetch

        backupfetch --decrypt

        backupfetch --wipe
    """
    ctx.ensure_object(dict)
    ctx.obj.update(config_path=config_path, home=home, verbose=verbose)
    if ctx.invoked_subcommand is not None:
        return

    if decrypt and wipe:
        raise click.UsageError("--decrypt and --wipe are mutually exclusive.")

    config = load_or_exit(config_path, home)
    run_mode(
        config,
        decrypt=decrypt,
        wipe=wipe,
        selection=selection,
        assume_yes=assume_yes,
        verbose=verbose,
    )


# ---------------------------------------------------------------------------
# Register additional commands from modular files
# ---------------------------------------------------------------------------

from .store import register_store_commands
from .doctor import register_doctor_commands

register_store_commands(main)
register_doctor_commands(main)
