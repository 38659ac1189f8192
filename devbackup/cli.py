"""Command line entry point: back up the configured device, no arguments."""
import sys

import click

from devbackup import configure_logging
from devbackup.config import load_config
from devbackup.backup.executor import BackupExecutor, handle_termination_signals


def run(config_name=None, **overrides) -> int:
    """
    Run one backup with logging and signal handling set up.

    Returns:
        Process exit code
    """
    config = load_config(config_name, **overrides)
    configure_logging(config)

    with handle_termination_signals():
        result = BackupExecutor(config).execute()

    return result.exit_code


@click.command()
def main():
    """Back up the configured block device to a compressed image.

    The profile is selected with DEVBACKUP_PROFILE (rpi, dc01).
    """
    try:
        exit_code = run()
    except ValueError as e:
        raise click.ClickException(str(e))

    sys.exit(exit_code)
