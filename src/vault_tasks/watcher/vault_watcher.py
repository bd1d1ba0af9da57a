"""
Polling vault change watcher.

Docker volume mounts and network shares often do not forward filesystem
events, so the watcher compares mtime snapshots instead of relying on
inotify.

The watcher runs as an asyncio task that:
1. Snapshots the vault every POLL_INTERVAL seconds (in a worker thread)
2. Reports new or modified documents via cache.on_modified
3. Reports a document that vanished while its inode reappeared under a new
   path via cache.on_renamed
4. Reports any other vanished document via cache.on_deleted
"""

import asyncio
import logging
import os
from typing import Dict, Optional

from vault_tasks.store.document_store import Snapshot, VaultStore

log = logging.getLogger(__name__)

# Default polling interval in seconds (configurable via POLL_INTERVAL env var)
_DEFAULT_POLL_INTERVAL = 5.0


class VaultWatcher:
    """
    Polling-based vault watcher.

    Usage:
        watcher = VaultWatcher(cache, store)
        watcher.start()      # inside a running event loop
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        cache,
        store: VaultStore,
        poll_interval: Optional[float] = None,
    ) -> None:
        self._cache = cache
        self._store = store
        self._poll_interval = poll_interval or float(
            os.environ.get("POLL_INTERVAL", _DEFAULT_POLL_INTERVAL)
        )
        self._task: Optional[asyncio.Task] = None
        self._known: Snapshot = {}

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Seed the snapshot and start polling on the running loop."""
        log.info("Starting vault watcher (polling every %.1fs)", self._poll_interval)
        self._known = self._store.snapshot()
        self._task = asyncio.get_running_loop().create_task(
            self._poll_loop(), name="vault-watcher"
        )

    async def stop(self) -> None:
        log.info("Stopping vault watcher")
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.check_for_changes()
            except Exception:
                log.exception("Error during poll cycle")

    async def check_for_changes(self) -> None:
        """Single poll cycle: compare the current snapshot with the last one."""
        current = await asyncio.to_thread(self._store.snapshot)
        previous, self._known = self._known, current

        appeared = [p for p in current if p not in previous]
        vanished = [p for p in previous if p not in current]
        by_inode: Dict[int, str] = {current[p][1]: p for p in appeared}

        for path in vanished:
            inode = previous[path][1]
            new_path = by_inode.pop(inode, None)
            if new_path is not None:
                log.debug("Renamed document: %s -> %s", path, new_path)
                await self._cache.on_renamed(path, new_path)
            else:
                log.debug("Deleted document: %s", path)
                await self._cache.on_deleted(path)

        for path in by_inode.values():
            log.debug("New document: %s", path)
            await self._cache.on_created(path)

        for path, (mtime, _) in current.items():
            old = previous.get(path)
            if old is not None and mtime > old[0]:
                log.debug("Modified document: %s", path)
                await self._cache.on_modified(path)
