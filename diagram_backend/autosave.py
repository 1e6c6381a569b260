"""
Debounced autosave for the open diagram.

Every change calls `schedule()`, which restarts a quiet-period timer; the
document is written once changes stop for `debounce_seconds`. A periodic
backstop writes every `backup_interval_seconds` while there are unsaved
changes, so a steady stream of edits is still persisted.

Writes never overlap and always persist the latest state: the snapshot is
taken when the write starts, not when the change was scheduled.
"""

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from .diagram_manager import write_document

if TYPE_CHECKING:
    from .config import PersistenceSettings
    from .diagram_manager import DiagramManager

logger = logging.getLogger(__name__)


class AutoSaver:
    """
    Debounced writer for one diagram document.

    Must be used from a running event loop. The file itself is written in a
    worker thread so the loop is not blocked on disk I/O.
    """

    def __init__(
        self,
        snapshot: Callable[[], dict],
        path: str | Path,
        debounce_seconds: float = 2.0,
        backup_interval_seconds: float = 30.0,
        indent: Optional[int] = 2,
    ):
        self._snapshot = snapshot
        self._path = Path(path)
        self._debounce_seconds = debounce_seconds
        self._backup_interval_seconds = backup_interval_seconds
        self._indent = indent
        self._lock = asyncio.Lock()
        self._generation = 0        # Bumped on every scheduled change
        self._saved_generation = 0  # Generation covered by the last write
        self._debounce_task: Optional[asyncio.Task] = None
        self._backup_task: Optional[asyncio.Task] = None
        self.save_count = 0

    @classmethod
    def for_manager(
        cls,
        manager: "DiagramManager",
        path: str | Path,
        settings: Optional["PersistenceSettings"] = None,
        **options,
    ) -> "AutoSaver":
        """Autosaver fed by a manager's change notifications; explicit options override `settings`."""
        if settings is not None:
            options = {
                "debounce_seconds": settings.debounce_seconds,
                "backup_interval_seconds": settings.backup_interval_seconds,
                "indent": settings.indent,
                **options,
            }
        saver = cls(manager.export, path, **options)

        def _changed():
            if manager.is_dirty:
                saver.schedule()

        manager.on_change(_changed)
        return saver

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        return self._generation != self._saved_generation

    def start(self):
        """Start the periodic backstop."""
        if self._backup_task is None or self._backup_task.done():
            self._backup_task = asyncio.get_running_loop().create_task(self._backup_loop())

    def schedule(self):
        """Record a change and restart the quiet-period timer."""
        self._generation += 1
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounced_save())

    async def flush(self) -> bool:
        """
        Write pending changes now.

        Returns True if a write happened. A failed snapshot or write is logged
        and leaves the saver dirty so the next timer retries it.
        """
        async with self._lock:
            generation = self._generation
            if generation == self._saved_generation:
                return False
            try:
                document = self._snapshot()
            except Exception:
                # Timer tasks are never awaited, so this is the only report
                logger.exception("Autosave snapshot for %s failed", self._path)
                return False
            try:
                await asyncio.to_thread(write_document, self._path, document, self._indent)
            except OSError:
                logger.exception("Autosave to %s failed", self._path)
                return False
            self._saved_generation = generation
            self.save_count += 1
            logger.debug("Autosaved diagram to %s", self._path)
            return True

    async def stop(self) -> bool:
        """Cancel the timers and write whatever is still pending."""
        for task in (self._debounce_task, self._backup_task):
            if task is None or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._debounce_task = None
        self._backup_task = None
        return await self.flush()

    async def _debounced_save(self):
        await asyncio.sleep(self._debounce_seconds)
        # A newer schedule() cancels the timer, never a write in progress
        await asyncio.shield(self.flush())

    async def _backup_loop(self):
        while True:
            await asyncio.sleep(self._backup_interval_seconds)
            if self.dirty:
                await asyncio.shield(self.flush())
