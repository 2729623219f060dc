"""Continuum migration CLI commands."""

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Any

import click

from continuum.bulk import create_replicas, get_remaining_dbs, replace_primaries
from continuum.checkpoint import FileCheckpointStore
from continuum.config import settings
from continuum.engine import Continuum
from continuum.exceptions import (
    ConfigurationError,
    DatabaseInUseError,
    MismatchError,
    NotFoundError,
    ReplicationTimeoutError,
    TransportFailure,
    UnauthorizedError,
)
from continuum.logging import configure_logging
from continuum.transport import CouchClient

CONSENT_PROMPT = "Ready to replace the primary with the replica. Continue?"
BULK_CONSENT_PROMPT = "Ready to replace primaries with replicas. Continue?"


@dataclass(frozen=True)
class MigrationArgs:
    """Options shared by every migration command."""

    couch_url: str
    interval: int
    q: int | None
    n: int | None
    placement: str | None
    filter_tombstones: bool
    replicate_security: bool
    allow_replications: bool
    continuous: bool
    yes: bool

    def build(self, client: CouchClient, source: str, target: str | None = None) -> Continuum:
        return Continuum(
            source=source,
            target=target,
            couch_url=self.couch_url,
            q=self.q,
            n=self.n,
            placement=self.placement,
            filter_tombstones=self.filter_tombstones,
            replicate_security=self.replicate_security,
            allow_replications=self.allow_replications,
            continuous=self.continuous,
            interval=self.interval,
            client=client,
            settle_seconds=settings.settle_seconds,
            replication_timeout=settings.replication_timeout,
        )


_MIGRATION_OPTIONS = [
    click.option(
        "--couch-url",
        "-u",
        default=None,
        help="URL of the CouchDB cluster to act upon (default: $COUCH_URL)",
    ),
    click.option(
        "--interval",
        "-i",
        type=click.IntRange(min=1),
        default=None,
        help="How often (in milliseconds) to check replication tasks for progress",
    ),
    click.option("--q", "q", type=click.IntRange(min=1), help="Desired shard count (q)"),
    click.option("--n", "n", type=click.IntRange(min=1), help="Desired replica count (n)"),
    click.option("--placement", "-p", help="Placement rule for the affected database(s)"),
    click.option(
        "--filter-tombstones",
        "-f",
        is_flag=True,
        help="Leave deleted documents out of the replica",
    ),
    click.option(
        "--replicate-security",
        "-r",
        is_flag=True,
        help="Copy the _security object along with documents",
    ),
    click.option(
        "--allow-replications",
        is_flag=True,
        help="Skip the check for tasks and jobs using the database",
    ),
    click.option(
        "--continuous",
        is_flag=True,
        help="Keep replicating primary to replica until the primary is replaced",
    ),
    click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging"),
    click.option("--yes", "-y", is_flag=True, help="Replace primaries without asking"),
]


def migration_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the shared migration options and pass them as MigrationArgs."""

    @wraps(func)
    def wrapper(
        *,
        couch_url: str | None,
        interval: int | None,
        q: int | None,
        n: int | None,
        placement: str | None,
        filter_tombstones: bool,
        replicate_security: bool,
        allow_replications: bool,
        continuous: bool,
        verbose: bool,
        yes: bool,
        **kwargs: Any,
    ) -> Any:
        configure_logging(
            "INFO" if verbose else settings.log_level,
            settings.log_format,
        )
        args = MigrationArgs(
            couch_url=couch_url or settings.couch_url,
            interval=interval or settings.interval,
            q=q,
            n=n,
            placement=placement,
            filter_tombstones=filter_tombstones,
            replicate_security=replicate_security,
            allow_replications=allow_replications,
            continuous=continuous,
            yes=yes,
        )
        return func(args, **kwargs)

    for option in reversed(_MIGRATION_OPTIONS):
        wrapper = option(wrapper)
    return wrapper


def database_options(func: Callable[..., Any]) -> Callable[..., Any]:
    func = click.option(
        "--target",
        "--copy-name",
        "-t",
        "-c",
        "target",
        help="Name or URL of the replica (default: temp_copy_{source})",
    )(func)
    func = click.option(
        "--source",
        "-s",
        required=True,
        help="Name or URL of the database to migrate",
    )(func)
    return func


def describe_error(error: BaseException) -> str:
    """Translate an error into a message for the terminal."""
    if isinstance(error, NotFoundError):
        return f"Database does not exist ({error.url}). There is nothing to migrate."
    if isinstance(error, UnauthorizedError):
        return "Could not authenticate with CouchDB. Are the credentials correct?"
    if isinstance(error, PermissionError):
        return "Could not access the checkpoint file. Are you running as a different user?"
    if isinstance(error, TransportFailure):
        return f"Could not reach CouchDB: {error.reason}"
    if isinstance(
        error,
        (ConfigurationError, DatabaseInUseError, MismatchError, ReplicationTimeoutError),
    ):
        return str(error)
    return f"Unexpected error: {error}"


def _run(coro: Coroutine[Any, Any, None]) -> None:
    try:
        asyncio.run(coro)
    except (click.ClickException, click.Abort):
        raise
    except Exception as e:
        raise click.ClickException(describe_error(e)) from e


def _get_consent(args: MigrationArgs, prompt: str) -> bool:
    if args.yes:
        return True
    return click.confirm(prompt, default=False)


def _client() -> CouchClient:
    return CouchClient(timeout=settings.request_timeout)


@click.command()
@migration_options
@database_options
def start(args: MigrationArgs, source: str, target: str | None) -> None:
    """Migrate a database to new settings."""

    async def run() -> None:
        async with _client() as client:
            continuum = args.build(client, source, target)
            click.echo(f"Migrating {continuum.source} via {continuum.target}...")
            await continuum.create_replica()
            if not _get_consent(args, CONSENT_PROMPT):
                click.echo("Could not acquire consent. Exiting...")
                return
            await continuum.replace_primary()
            click.echo(f"Migrated database: {continuum.source.name}.")

    _run(run())


@click.command("create-replica")
@migration_options
@database_options
def create_replica(args: MigrationArgs, source: str, target: str | None) -> None:
    """Create a replica of the given primary."""

    async def run() -> None:
        async with _client() as client:
            continuum = args.build(client, source, target)
            click.echo(f"Creating replica of {continuum.source} at {continuum.target}...")
            await continuum.create_replica()
            click.echo(f"Created replica of {continuum.source.name}.")

    _run(run())


@click.command("replace-primary")
@migration_options
@database_options
def replace_primary(args: MigrationArgs, source: str, target: str | None) -> None:
    """Replace the given primary with the indicated replica."""

    async def run() -> None:
        async with _client() as client:
            continuum = args.build(client, source, target)
            click.echo(f"Replacing primary {continuum.source} with {continuum.target}...")
            if not _get_consent(args, CONSENT_PROMPT):
                click.echo("Could not acquire consent. Exiting...")
                return
            await continuum.replace_primary()
            click.echo(f"Successfully replaced {continuum.source.name}.")

    _run(run())


@click.command("migrate-all")
@migration_options
@click.option(
    "--checkpoint",
    "checkpoint_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="File recording the last migrated database (default: ~/.continuum/checkpoint)",
)
def migrate_all(args: MigrationArgs, checkpoint_path: Path | None) -> None:
    """Migrate all non-special databases to new settings.

    Progress is checkpointed after every database, so an interrupted run
    resumes with the first database that was not fully migrated.
    """

    async def run() -> None:
        store = FileCheckpointStore(checkpoint_path or settings.checkpoint_path)
        async with _client() as client:
            names = await get_remaining_dbs(client, args.couch_url, store)
            if not names:
                await store.remove_checkpoint()
                click.echo("No databases left to migrate.")
                return

            continuums = [args.build(client, name) for name in names]
            click.echo(f"Creating replicas for {len(continuums)} database(s)...")
            await create_replicas(continuums)
            if not _get_consent(args, BULK_CONSENT_PROMPT):
                click.echo("Could not acquire consent. Exiting...")
                return

            click.echo("Replacing primaries...")
            await replace_primaries(continuums, store)
            await store.remove_checkpoint()
            click.echo(f"Successfully migrated {', '.join(names)}.")

    _run(run())
