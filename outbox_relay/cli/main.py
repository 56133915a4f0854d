"""Main CLI entry point for outbox-relay operator commands."""

import click

from outbox_relay import __version__
from outbox_relay.cli.commands import outbox
from outbox_relay.infra.logging.config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="outbox-relay")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Outbox Relay CLI - operate the transactional outbox.

    \b
    Commands:
      run       Start the relay (drain + retention jobs) until interrupted
      drain     Run a single drain cycle
      sweep     Delete delivered records past retention
      stats     Show record counts by status
      requeue   Move FAILED records back to PENDING
      init-db   Create the outbox table if missing

    \b
    Quick Start:
      outbox-relay init-db
      outbox-relay stats --format json
      outbox-relay run
    """
    ctx.ensure_object(dict)
    setup_logging()


cli.add_command(outbox.run)
cli.add_command(outbox.drain)
cli.add_command(outbox.sweep)
cli.add_command(outbox.stats)
cli.add_command(outbox.requeue)
cli.add_command(outbox.init_db)


def main() -> None:
    """Entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
