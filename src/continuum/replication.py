"""One-shot replication between two databases, with progress polling.

The initiating ``POST /_replicate`` is not trusted as the completion signal,
since replication runs asynchronously on the server. After it returns, the
driver polls ``_active_tasks`` until no replication for the same pair is
still behind.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

import structlog

from continuum.exceptions import ContinuumError, NotFoundError, ReplicationTimeoutError
from continuum.identity import DatabaseIdentity
from continuum.transport import CouchClient
from continuum.usage import references
from continuum.verify import get_doc_count

logger = structlog.get_logger(__name__)

# Receives (documents in target, documents in source)
ProgressCallback = Callable[[int, int], None]

# Excludes deleted documents from a replication
TOMBSTONE_SELECTOR: dict[str, Any] = {"_deleted": {"$exists": False}}


def is_lagging(task: dict[str, Any], source: DatabaseIdentity, target: DatabaseIdentity) -> bool:
    """Whether an active task is a replication of this pair that is still behind."""
    if task.get("type") != "replication":
        return False
    if not references(task.get("source"), source.name):
        return False
    if not references(task.get("target"), target.name):
        return False
    missing = task.get("missing_revisions_found", 0) or 0
    written = task.get("docs_written", 0) or 0
    return missing > written


class Replicator:
    """Drives replications through one cluster's ``_replicate`` endpoint."""

    def __init__(
        self,
        client: CouchClient,
        base_url: str,
        interval: int = 1000,
        timeout: float | None = None,
    ) -> None:
        """Initialize the replicator.

        Args:
            client: Couch client
            base_url: Root URL of the cluster that runs the replications
            interval: Milliseconds between polls
            timeout: Seconds to wait for a replication to catch up, or None
        """
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.poll_seconds = interval / 1000
        self.timeout = timeout

    @property
    def replicate_url(self) -> str:
        return f"{self.base_url}/_replicate"

    def _replication_doc(
        self,
        source: DatabaseIdentity,
        target: DatabaseIdentity,
        selector: dict[str, Any] | None,
    ) -> dict[str, Any]:
        doc: dict[str, Any] = {"source": source.url, "target": target.url}
        if selector is not None:
            doc["selector"] = selector
        return doc

    async def replicate(
        self,
        source: DatabaseIdentity,
        target: DatabaseIdentity,
        *,
        selector: dict[str, Any] | None = None,
        replicate_security: bool = False,
        continuous: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Replicate source into target.

        Nothing is rolled back on failure; a partial copy stays in place
        for the caller's verification to catch.

        Args:
            source: Database to copy from
            target: Database to copy into (must exist)
            selector: Optional Mango selector restricting replicated documents
            replicate_security: Copy the ``_security`` object afterwards
            continuous: Leave a continuous replication running afterwards
            on_progress: Optional callback receiving (current, total)
        """
        total = await get_doc_count(self.client, source.url)
        if total == 0:
            logger.info("replication.skipped", source=source.display, reason="empty")
        else:
            await self._replicate_once(source, target, total, selector, on_progress)

        if replicate_security:
            await self.copy_security(source, target)

        if continuous:
            doc = self._replication_doc(source, target, selector)
            doc["continuous"] = True
            await self.client.post(self.replicate_url, json=doc)
            logger.info(
                "replication.continuous_started",
                source=source.display,
                target=target.display,
            )

    async def _replicate_once(
        self,
        source: DatabaseIdentity,
        target: DatabaseIdentity,
        total: int,
        selector: dict[str, Any] | None,
        on_progress: ProgressCallback | None,
    ) -> None:
        logger.info(
            "replication.start",
            source=source.display,
            target=target.display,
            total=total,
        )
        watcher = asyncio.create_task(self._watch_progress(target, total, on_progress))
        try:
            await self.client.post(
                self.replicate_url,
                json=self._replication_doc(source, target, selector),
            )
            await self._wait_for_completion(source, target)
        finally:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher

        if on_progress is not None:
            on_progress(total, total)
        logger.info("replication.complete", source=source.display, target=target.display)

    async def _watch_progress(
        self,
        target: DatabaseIdentity,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        """Report the target's document count until it reaches the total."""
        while True:
            try:
                current = await get_doc_count(self.client, target.url)
            except ContinuumError as e:
                logger.debug("replication.progress_unavailable", error=str(e))
                return
            logger.debug("replication.progress", current=current, total=total)
            if on_progress is not None:
                on_progress(current, total)
            if current >= total:
                return
            await asyncio.sleep(self.poll_seconds)

    async def _wait_for_completion(
        self, source: DatabaseIdentity, target: DatabaseIdentity
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = None if self.timeout is None else loop.time() + self.timeout

        while True:
            tasks = await self.client.get(f"{self.base_url}/_active_tasks")
            if not any(is_lagging(task, source, target) for task in tasks):
                return
            if deadline is not None and loop.time() >= deadline:
                raise ReplicationTimeoutError(
                    f"Replication {source.display} -> {target.display} "
                    f"did not finish within {self.timeout}s"
                )
            await asyncio.sleep(self.poll_seconds)

    async def copy_security(self, source: DatabaseIdentity, target: DatabaseIdentity) -> None:
        """Copy the ``_security`` object from source to target."""
        security = await self.client.get(f"{source.url}/_security")
        await self.client.put(f"{target.url}/_security", json=security)
        logger.info("replication.security_copied", target=target.display)

    async def cancel_continuous(
        self,
        source: DatabaseIdentity,
        target: DatabaseIdentity,
        selector: dict[str, Any] | None = None,
    ) -> None:
        """Cancel a continuous replication started by :meth:`replicate`.

        The selector must match the one used to start it, since CouchDB
        derives the replication ID from the full request.
        """
        doc = self._replication_doc(source, target, selector)
        doc["continuous"] = True
        doc["cancel"] = True
        try:
            await self.client.post(self.replicate_url, json=doc)
        except NotFoundError:
            logger.debug("replication.cancel_noop", source=source.display)
            return
        logger.info("replication.continuous_cancelled", source=source.display)
