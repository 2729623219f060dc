"""Consistency checks between a primary and its replica.

Equal document counts are necessary but not sufficient for equal content;
the engine relies on the usage guard and the update-sequence check to rule
out writes during the copy.
"""

from typing import Any

import structlog

from continuum.exceptions import ReplicaMismatchError
from continuum.transport import CouchClient

logger = structlog.get_logger(__name__)


async def get_doc_count(client: CouchClient, db_url: str) -> int:
    body = await client.get(db_url)
    return int(body["doc_count"])


async def get_update_seq(client: CouchClient, db_url: str) -> Any:
    """Retrieve the update sequence for a database.

    Returns:
        An int on CouchDB 1.x, an opaque string on 2.x and later
    """
    body = await client.get(db_url)
    return body["update_seq"]


def _seq_number(seq: Any) -> int | None:
    if isinstance(seq, int):
        return seq
    if isinstance(seq, str):
        prefix = seq.split("-", 1)[0]
        if prefix.isdigit():
            return int(prefix)
    return None


def seq_changed(before: Any, after: Any) -> bool:
    """Compare two update sequences of the same database.

    Clustered sequences are opaque strings that can differ between reads
    depending on which shard copies answered, but their numeric prefix is
    the total number of updates. Prefixes are compared when both exist.
    """
    before_number = _seq_number(before)
    after_number = _seq_number(after)
    if before_number is not None and after_number is not None:
        return before_number != after_number
    return before != after


async def verify_replica(client: CouchClient, source_url: str, target_url: str) -> None:
    """Verify that two databases hold the same number of documents.

    Raises:
        ReplicaMismatchError: If the counts differ
    """
    source_count = await get_doc_count(client, source_url)
    target_count = await get_doc_count(client, target_url)
    logger.debug("verify.counts", source=source_count, target=target_count)
    if source_count != target_count:
        raise ReplicaMismatchError(source_count, target_count)
