"""Continuum CLI main entry point.

This module provides the main CLI interface for Continuum.
"""

import click

from continuum import __version__


class DefaultCommandGroup(click.Group):
    """Group that runs ``start`` when given options but no command."""

    default_command = "start"

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if args and args[0].startswith("-") and args[0] not in ("--help", "--version"):
            args = [self.default_command, *args]
        return super().parse_args(ctx, args)


@click.group(cls=DefaultCommandGroup)
@click.version_option(version=__version__, prog_name="continuum")
def cli() -> None:
    """Continuum - migrate CouchDB databases to new q/n/placement settings.

    Each database is copied into a replica created with the new settings,
    then destroyed, recreated and filled back from the replica.
    """
    pass


# Import and register subcommands
from continuum.cli.migrate import (  # noqa: E402
    create_replica,
    migrate_all,
    replace_primary,
    start,
)

cli.add_command(start)
cli.add_command(create_replica)
cli.add_command(replace_primary)
cli.add_command(migrate_all)

# Short aliases
cli.add_command(create_replica, "create")
cli.add_command(create_replica, "replica")
cli.add_command(replace_primary, "replace")
cli.add_command(replace_primary, "primary")
cli.add_command(migrate_all, "all")
