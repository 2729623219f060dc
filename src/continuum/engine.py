"""The migration engine.

A database's q, n and placement are fixed when it is created. Continuum
changes them in two phases:

``create_replica``
    copies the primary into a replica created with the new settings and
    verifies the copy. Nothing is destroyed.

``replace_primary``
    destroys the primary, recreates it with the new settings and replicates
    the replica back into it, with the primary marked unavailable meanwhile.

Arbitrary time may pass between the phases (the CLI asks for consent), so
``replace_primary`` repeats the usage and consistency checks before it
destroys anything. Steps are never retried and nothing is rolled back: once
the primary is destroyed, a failure needs an operator.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import structlog

from continuum.availability import set_available, set_unavailable
from continuum.config import settings
from continuum.exceptions import ConfigurationError, DatabaseExistsError, PrimaryChangedError
from continuum.identity import (
    DatabaseIdentity,
    parse_location,
    replica_identity,
    resolve_identity,
)
from continuum.replication import TOMBSTONE_SELECTOR, ProgressCallback, Replicator
from continuum.transport import CouchClient
from continuum.usage import check_not_in_use
from continuum.verify import get_update_seq, seq_changed, verify_replica


@dataclass(frozen=True)
class MigrationOptions:
    """Settings a migration applies. Fixed for the life of an engine."""

    q: int | None = None
    n: int | None = None
    placement: str | None = None
    filter_tombstones: bool = False
    replicate_security: bool = False
    allow_replications: bool = False
    continuous: bool = False
    interval: int = 1000

    @property
    def create_params(self) -> dict[str, Any]:
        """Query parameters for ``PUT /{db}``."""
        return {"q": self.q, "n": self.n, "placement": self.placement}

    @property
    def selector(self) -> dict[str, Any] | None:
        return TOMBSTONE_SELECTOR if self.filter_tombstones else None


class Continuum:
    """Migrates one database to new settings via a temporary replica."""

    def __init__(
        self,
        *,
        source: str,
        couch_url: str | None = None,
        target: str | None = None,
        q: int | None = None,
        n: int | None = None,
        placement: str | None = None,
        filter_tombstones: bool = False,
        replicate_security: bool = False,
        allow_replications: bool = False,
        continuous: bool = False,
        interval: int = 1000,
        client: CouchClient | None = None,
        logger: Any = None,
        settle_seconds: float | None = None,
        replication_timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Initialize the engine and resolve source and target once.

        Args:
            source: Name or full URL of the primary
            couch_url: Root URL of the cluster; required for bare names
            target: Name or URL of the replica (default: temp_copy_<source>)
            q: Desired shard count
            n: Desired replica count
            placement: Desired placement rule
            filter_tombstones: Leave deleted documents out of the replica
            replicate_security: Copy ``_security`` along with documents
            allow_replications: Skip the usage guard
            continuous: Keep replicating primary to replica after the copy
            interval: Milliseconds between replication polls
            client: Shared Couch client; the engine creates (and owns) one if omitted
            logger: structlog logger for progress events
            settle_seconds: Pause after recreating the primary (default from settings)
            replication_timeout: Seconds to wait for replications (default from settings)
            on_progress: Callback receiving (current, total) during replication

        Raises:
            ConfigurationError: If source is missing, a bare name has no
                cluster URL, or source and target are the same database
        """
        if not source:
            raise ConfigurationError("The Continuum requires a source database.")

        self.source: DatabaseIdentity = resolve_identity(parse_location(source), couch_url)
        if target:
            self.target: DatabaseIdentity = resolve_identity(parse_location(target), couch_url)
        else:
            self.target = replica_identity(self.source)

        if self.source.key == self.target.key:
            raise ConfigurationError(
                f"Source and target are the same database: {self.source.display}"
            )

        # Replications run on the cluster being administered
        self.url = couch_url.rstrip("/") if couch_url else self.source.base_url

        self.options = MigrationOptions(
            q=q,
            n=n,
            placement=placement,
            filter_tombstones=filter_tombstones,
            replicate_security=replicate_security,
            allow_replications=allow_replications,
            continuous=continuous,
            interval=interval,
        )

        self._owns_client = client is None
        self.client = client if client is not None else CouchClient(
            timeout=settings.request_timeout
        )
        self.settle_seconds = (
            settings.settle_seconds if settle_seconds is None else settle_seconds
        )
        self.replicator = Replicator(
            self.client,
            self.url,
            interval=interval,
            timeout=(
                settings.replication_timeout
                if replication_timeout is None
                else replication_timeout
            ),
        )
        self.on_progress = on_progress
        self.log = (logger or structlog.get_logger(__name__)).bind(
            source=self.source.display,
            target=self.target.display,
        )

    def __repr__(self) -> str:
        return f"Continuum(source={self.source.display!r}, target={self.target.display!r})"

    async def __aenter__(self) -> Continuum:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this engine created it."""
        if self._owns_client:
            await self.client.aclose()

    # === Steps ===

    async def _check_in_use(self) -> None:
        if self.options.allow_replications:
            self.log.warning("usage_check.skipped", reason="allow_replications")
            return
        await check_not_in_use(self.client, self.source.base_url, self.source.name)

    async def _create_db(self, identity: DatabaseIdentity) -> None:
        await self.client.put(identity.url, params=self.options.create_params)

    async def _destroy_db(self, identity: DatabaseIdentity) -> None:
        await self.client.delete(identity.url)

    async def _replicate(
        self,
        source: DatabaseIdentity,
        target: DatabaseIdentity,
        *,
        selector: dict[str, Any] | None = None,
        continuous: bool = False,
    ) -> None:
        await self.replicator.replicate(
            source,
            target,
            selector=selector,
            replicate_security=self.options.replicate_security,
            continuous=continuous,
            on_progress=self.on_progress,
        )

    # === Phases ===

    async def create_replica(self) -> None:
        """Copy the primary into a verified replica with the new settings.

        Safe to repeat: an existing replica is reused and re-verified.

        Raises:
            DatabaseInUseError: If the primary is in use
            PrimaryChangedError: If the primary was written to during the copy
            ReplicaMismatchError: If document counts differ afterwards
            CouchServerError: On any other server error
        """
        self.log.info("create_replica.start")

        if self.options.continuous:
            # A previous run leaves its own replication standing
            await self.replicator.cancel_continuous(
                self.source, self.target, self.options.selector
            )

        self.log.info("create_replica.check_in_use", step="0/5")
        await self._check_in_use()
        seq_before = await get_update_seq(self.client, self.source.url)

        self.log.info("create_replica.create_db", step="1/5")
        try:
            await self._create_db(self.target)
        except DatabaseExistsError:
            self.log.info("create_replica.replica_exists")

        self.log.info("create_replica.replicate", step="2/5")
        await self._replicate(
            self.source,
            self.target,
            selector=self.options.selector,
            continuous=self.options.continuous,
        )

        self.log.info("create_replica.check_primary_unchanged", step="3/5")
        seq_after = await get_update_seq(self.client, self.source.url)
        if seq_changed(seq_before, seq_after):
            raise PrimaryChangedError(self.source.name, seq_before, seq_after)

        self.log.info("create_replica.verify", step="4/5")
        await verify_replica(self.client, self.source.url, self.target.url)

        self.log.info("create_replica.done", step="5/5")

    async def replace_primary(self) -> None:
        """Recreate the primary with the new settings from its replica.

        Consent for this destructive phase is the caller's responsibility.

        Raises:
            DatabaseInUseError: If the primary is in use
            ReplicaMismatchError: If primary and replica no longer match
            CouchServerError: On any other server error
        """
        self.log.info("replace_primary.start")

        if self.options.continuous:
            await self.replicator.cancel_continuous(
                self.source, self.target, self.options.selector
            )

        self.log.info("replace_primary.check_in_use", step="0/8")
        await self._check_in_use()

        self.log.info("replace_primary.verify", step="1/8")
        await verify_replica(self.client, self.source.url, self.target.url)

        self.log.warning("replace_primary.destroy_primary", step="2/8")
        await self._destroy_db(self.source)

        self.log.info("replace_primary.recreate_primary", step="3/8")
        await self._create_db(self.source)
        # Let the cluster settle after the rapid delete and create
        await asyncio.sleep(self.settle_seconds)

        self.log.info("replace_primary.set_unavailable", step="4/8")
        await set_unavailable(self.client, self.source.url)

        self.log.info("replace_primary.replicate", step="5/8")
        await self._replicate(self.target, self.source)

        self.log.info("replace_primary.destroy_replica", step="6/8")
        await self._destroy_db(self.target)

        self.log.info("replace_primary.set_available", step="7/8")
        await set_available(self.client, self.source.url)

        self.log.info("replace_primary.done", step="8/8")
