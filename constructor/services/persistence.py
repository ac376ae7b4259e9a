# constructor/services/persistence.py
import asyncio
import logging
from typing import Awaitable, Callable, Hashable

from constructor.models.project import Project

logger = logging.getLogger(__name__)

SaveFn = Callable[[str, Project], Awaitable[None]]


class DebouncedSaver:
    """
    Collapses bursts of graph edits into one write per project.

    Every `schedule` restarts the quiet timer for its key and replaces the
    pending snapshot, so only the last state of a burst is written
    (last writer wins, no merging).

    Writes for one project never overlap: each runs under that project's lock,
    and a write started after another always carries the newer snapshot.
    Callers that write or delete the project directly hold `lock()` as well.
    """

    def __init__(self, save: SaveFn, delay: float = 1.0):
        self._save = save
        self.delay = delay
        self._tasks: dict[Hashable, asyncio.Task] = {}
        self._pending: dict[Hashable, tuple[str, Project]] = {}
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def lock(self, user_id: str, project_id: str) -> asyncio.Lock:
        key = (user_id, project_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def schedule(self, user_id: str, project: Project) -> None:
        key = (user_id, project.id)
        self._pending[key] = (user_id, project)
        task = self._tasks.pop(key, None)
        if task is not None:
            task.cancel()
        self._tasks[key] = asyncio.create_task(self._save_after_delay(key))

    def has_pending(self, user_id: str, project_id: str) -> bool:
        return (user_id, project_id) in self._pending

    def discard(self, user_id: str, project_id: str) -> None:
        """Drops the pending snapshot. A write already under way is not affected; hold `lock()` to wait for it."""
        key = (user_id, project_id)
        self._pending.pop(key, None)
        task = self._tasks.pop(key, None)
        if task is not None:
            task.cancel()

    async def flush(self, user_id: str | None = None, project_id: str | None = None) -> None:
        """
        Writes pending snapshots now and waits for writes already under way.
        With no arguments, flushes everything.
        """
        keys = [
            key for key in {**self._pending, **self._locks}
            if (user_id is None or key[0] == user_id) and (project_id is None or key[1] == project_id)
        ]
        for key in keys:
            task = self._tasks.pop(key, None)
            if task is not None:
                task.cancel()
            await self._write(key)

    async def _save_after_delay(self, key: Hashable) -> None:
        await asyncio.sleep(self.delay)
        # Past this point the task is no longer cancellable through schedule/discard.
        self._tasks.pop(key, None)
        await self._write(key)

    async def _write(self, key: Hashable) -> None:
        async with self.lock(*key):
            # Taken under the lock, so a write queued behind another sees the latest snapshot.
            pending = self._pending.pop(key, None)
            if pending is None:
                return
            user_id, project = pending
            try:
                await self._save(user_id, project)
            except Exception:
                logger.exception(
                    "Failed to save project %s for user %s", project.id, user_id,
                    extra={"user_id": user_id, "project_id": project.id},
                )
