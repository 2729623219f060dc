"""Detection of concurrent activity against a database.

Migrating a database that is still written to or replicated produces a
silently inconsistent copy, so the engine refuses to touch a database that
any active task or scheduled replication job references.
"""

import re
from typing import Any
from urllib.parse import unquote, urlsplit

import structlog

from continuum.exceptions import DatabaseInUseError, NotFoundError
from continuum.transport import CouchClient

logger = structlog.get_logger(__name__)

REFERENCE_FIELDS = ("source", "target", "database")

# Shard files look like shards/00000000-1fffffff/dbname.1600000000
_SHARD_PATH = re.compile(r"^shards/[0-9a-f]+-[0-9a-f]+/(?P<name>.+)\.\d+$")


def references(value: Any, db_name: str) -> bool:
    """Check whether a task field names the given database.

    Matches a bare name, a URL ending in the (escaped) name, or a shard path.
    Replication tasks may carry the endpoint as ``{"url": ...}``.
    """
    if isinstance(value, dict):
        value = value.get("url")
    if not isinstance(value, str) or not value:
        return False
    if value == db_name:
        return True

    split = urlsplit(value)
    if split.scheme in ("http", "https"):
        last = split.path.rstrip("/").rpartition("/")[2]
        return unquote(last) == db_name

    match = _SHARD_PATH.match(value)
    return match is not None and match.group("name") == db_name


async def list_activity(client: CouchClient, base_url: str) -> list[dict[str, Any]]:
    """Fetch active tasks and scheduled replication jobs for a cluster."""
    active_tasks = await client.get(f"{base_url}/_active_tasks")
    try:
        jobs_response = await client.get(f"{base_url}/_scheduler/jobs")
        jobs = jobs_response.get("jobs", [])
    except NotFoundError:
        # CouchDB 1.x has no scheduler
        jobs = []
    return list(jobs) + list(active_tasks)


async def check_not_in_use(client: CouchClient, base_url: str, db_name: str) -> None:
    """Assert that nothing on the cluster references a database.

    Args:
        client: Couch client
        base_url: Root URL of the cluster holding the database
        db_name: Unescaped database name

    Raises:
        DatabaseInUseError: If a task or job names the database as its
            source, target, or database
    """
    for entry in await list_activity(client, base_url):
        for field in REFERENCE_FIELDS:
            if references(entry.get(field), db_name):
                logger.warning(
                    "usage.in_use",
                    db=db_name,
                    field=field,
                    task_type=entry.get("type"),
                )
                raise DatabaseInUseError(db_name)
