"""Availability sentinel for databases under migration.

A local document at ``{db}/_local/in-maintenance`` tells consumers a database
is mid-migration. Absent, or ``down: false``, means available.

The set operations read the current revision before writing, which races
with concurrent writers under CouchDB's optimistic concurrency. A conflict
re-reads the revision and retries once.
"""

from typing import Any

import structlog

from continuum.exceptions import ConflictError, NotFoundError
from continuum.identity import redact_url
from continuum.transport import CouchClient

logger = structlog.get_logger(__name__)

SENTINEL_PATH = "_local/in-maintenance"

# Writes attempted per set operation: the first try plus one retry on conflict
_WRITE_ATTEMPTS = 2


def sentinel_url(db_url: str) -> str:
    return f"{db_url}/{SENTINEL_PATH}"


async def _get_sentinel(client: CouchClient, db_url: str) -> dict[str, Any] | None:
    try:
        return await client.get(sentinel_url(db_url))
    except NotFoundError:
        return None


async def is_available(client: CouchClient, db_url: str) -> bool:
    """Check whether a database is safe to use.

    Args:
        client: Couch client
        db_url: Full URL of the database

    Returns:
        False only if the sentinel exists with ``down: true``
    """
    sentinel = await _get_sentinel(client, db_url)
    if sentinel is None:
        return True
    return not sentinel.get("down", False)


async def set_unavailable(client: CouchClient, db_url: str) -> None:
    """Ensure the sentinel exists with ``down: true``. Idempotent."""
    for attempt in range(_WRITE_ATTEMPTS):
        sentinel = await _get_sentinel(client, db_url)
        if sentinel is not None and sentinel.get("down") is True:
            return

        doc: dict[str, Any] = {"down": True}
        if sentinel is not None:
            doc["_rev"] = sentinel["_rev"]

        try:
            await client.put(sentinel_url(db_url), json=doc)
            return
        except ConflictError:
            if attempt + 1 == _WRITE_ATTEMPTS:
                raise
            logger.warning(
                "availability.conflict", db=redact_url(db_url), operation="set_unavailable"
            )


async def set_available(client: CouchClient, db_url: str) -> None:
    """Ensure the sentinel is absent. Idempotent."""
    for attempt in range(_WRITE_ATTEMPTS):
        sentinel = await _get_sentinel(client, db_url)
        if sentinel is None:
            return

        try:
            await client.delete(sentinel_url(db_url), params={"rev": sentinel["_rev"]})
            return
        except NotFoundError:
            return
        except ConflictError:
            if attempt + 1 == _WRITE_ATTEMPTS:
                raise
            logger.warning(
                "availability.conflict", db=redact_url(db_url), operation="set_available"
            )
