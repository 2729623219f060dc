"""Checkpoints for resumable bulk migrations.

A checkpoint is the name of the last database whose migration completed.
Database names sort lexicographically, so the remaining work after a crash
is every database sorting after the checkpoint.
"""

import os
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

import aiofiles
import structlog

logger = structlog.get_logger(__name__)

# Sorts before every database name
DEFAULT_CHECKPOINT = ""


def get_remaining(all_keys: Iterable[str], checkpoint: str) -> list[str]:
    """Keys sorting strictly after the checkpoint, in their original order."""
    return [key for key in all_keys if key > checkpoint]


class CheckpointStore(ABC):
    """Abstract base class for checkpoint persistence."""

    @abstractmethod
    async def get_checkpoint(self) -> str:
        """Return the stored checkpoint, or DEFAULT_CHECKPOINT if there is none."""
        ...

    @abstractmethod
    async def make_checkpoint(self, key: str) -> None:
        """Persist a checkpoint, replacing any previous one."""
        ...

    @abstractmethod
    async def remove_checkpoint(self) -> None:
        """Forget the checkpoint. Removing a missing checkpoint is a no-op."""
        ...

    async def get_remaining(self, all_keys: Iterable[str]) -> list[str]:
        return get_remaining(all_keys, await self.get_checkpoint())


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoint store that lives only as long as the process."""

    def __init__(self, key: str | None = None) -> None:
        self._key = key

    async def get_checkpoint(self) -> str:
        return DEFAULT_CHECKPOINT if self._key is None else self._key

    async def make_checkpoint(self, key: str) -> None:
        self._key = key

    async def remove_checkpoint(self) -> None:
        self._key = None


class FileCheckpointStore(CheckpointStore):
    """Checkpoint store backed by a single file.

    The file holds the key and nothing else. Writes go through a temporary
    file and an atomic rename, so an interrupted write leaves the previous
    checkpoint intact.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()

    async def get_checkpoint(self) -> str:
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError:
            return DEFAULT_CHECKPOINT

    async def make_checkpoint(self, key: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(key)
                await f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except Exception:
            if temp_path.exists():
                os.unlink(temp_path)
            raise
        logger.debug("checkpoint.saved", key=key, path=str(self.path))

    async def remove_checkpoint(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.debug("checkpoint.removed", path=str(self.path))
