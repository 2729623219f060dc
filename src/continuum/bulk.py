"""Sequential migration of many databases, resumable by checkpoint.

Databases are handled one at a time. Running them concurrently would
multiply cluster load during an already disruptive operation and make the
checkpoint order ambiguous.
"""

from collections.abc import Sequence

import structlog

from continuum.checkpoint import CheckpointStore
from continuum.engine import Continuum
from continuum.identity import REPLICA_PREFIX
from continuum.transport import CouchClient

logger = structlog.get_logger(__name__)


async def all_dbs(client: CouchClient, couch_url: str) -> list[str]:
    """List the cluster's databases, leaving out system databases (``_*``)."""
    names = await client.get(f"{couch_url.rstrip('/')}/_all_dbs")
    return [name for name in names if not name.startswith("_")]


async def get_remaining_dbs(
    client: CouchClient, couch_url: str, store: CheckpointStore
) -> list[str]:
    """Databases still to migrate: those sorting after the checkpoint.

    Replicas left behind by an interrupted run are not migration candidates.
    """
    names = [
        name
        for name in await all_dbs(client, couch_url)
        if not name.startswith(REPLICA_PREFIX)
    ]
    remaining = await store.get_remaining(names)
    logger.info("bulk.remaining", count=len(remaining))
    return remaining


async def create_replicas(continuums: Sequence[Continuum]) -> None:
    """Create a replica for each engine, in order."""
    for continuum in continuums:
        await continuum.create_replica()


async def replace_primaries(
    continuums: Sequence[Continuum], store: CheckpointStore
) -> None:
    """Replace each primary in order, checkpointing after every success.

    A checkpoint always names a fully migrated database: it is written only
    once ``replace_primary`` has returned.
    """
    for continuum in continuums:
        await continuum.replace_primary()
        await store.make_checkpoint(continuum.source.name)
        logger.info("bulk.checkpoint", db=continuum.source.name)
