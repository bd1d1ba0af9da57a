"""
In-memory task cache over a document store.

Design:
    Primary store:  Dict[str, List[TaskRecord]]   (document path → tasks in line order)
    Listeners:      List[Callable[[], None]]       (fired after the cached view changes)

The cache runs on a single asyncio event loop. Suspension happens only at
store I/O, so per-document entries are replaced atomically and no lock is
needed. A full scan is guarded by an in-flight flag: a second initialize()
while one is running returns immediately.

Entries are never empty lists; a document without matching lines has no
entry at all.
"""

import asyncio
import logging
import time
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional

from vault_tasks.models.task import DATE_FIELDS, DocumentRef, TaskRecord, TaskSettings
from vault_tasks.parsers.task_parser import parse_content
from vault_tasks.store.document_store import DocumentStore

log = logging.getLogger(__name__)

Listener = Callable[[], None]

DEFAULT_BATCH_SIZE = 50
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 0.5


def _sort_key(task: TaskRecord):
    return (task.display_name.casefold(), task.display_name, task.line_number, task.document_path)


class TaskCache:
    """
    Task index keyed by document path.

    Call initialize() once the store is reachable, wire the store's change
    notifications to on_modified / on_deleted / on_renamed, and read with
    get_all_tasks(). clear() tears the index down.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        settings: Optional[TaskSettings] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._store = store
        self._settings = settings or TaskSettings()
        self._batch_size = batch_size
        self._retry_attempts = max(0, retry_attempts)
        self._retry_delay = retry_delay
        self._files: Dict[str, List[TaskRecord]] = {}
        self._listeners: List[Listener] = []
        self._ready = False
        self._initializing = False
        self._last_full_scan: Optional[datetime] = None
        self._scan_done: Optional[asyncio.Event] = None

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def settings(self) -> TaskSettings:
        return self._settings

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def initializing(self) -> bool:
        return self._initializing

    # ------------------------------------------------------------------
    # Full scan
    # ------------------------------------------------------------------

    async def initialize(
        self,
        tag: Optional[str] = None,
        dialects: Optional[Iterable[object]] = None,
    ) -> None:
        """
        Clear the cache and re-extract every document in the store.

        tag / dialects replace the active settings when given; omitted
        values keep the current ones. Re-entrant calls while a scan is in
        flight are no-ops.
        """
        if self._initializing:
            log.info("Task scan already in progress, skipping")
            return

        self._initializing = True
        self._scan_done = asyncio.Event()
        try:
            self._settings = TaskSettings.create(
                self._settings.tag if tag is None else tag,
                self._settings.dialects if dialects is None else dialects,
            )
            self._files.clear()

            documents = await self._enumerate()
            log.info(
                "Starting task scan: %d documents (tag=%r, dialects=%s)",
                len(documents),
                self._settings.tag,
                self._settings.to_dict()["dialects"],
            )
            started = time.monotonic()

            for i in range(0, len(documents), self._batch_size):
                batch = documents[i:i + self._batch_size]
                await asyncio.gather(*(self._load(doc) for doc in batch))
                # Hand control back to the loop between batches
                await asyncio.sleep(0)

            self._ready = True
            self._last_full_scan = datetime.now()
            log.info(
                "Task scan complete: %d tasks in %d documents (%.2fs)",
                self.task_count,
                len(self._files),
                time.monotonic() - started,
            )
        finally:
            self._initializing = False
            self._scan_done.set()

        self._notify()

    async def _enumerate(self) -> List[DocumentRef]:
        """
        List documents, retrying a bounded number of times while the store
        still reports nothing (it may not be enumerable yet at startup).
        """
        documents: List[DocumentRef] = []
        for attempt in range(self._retry_attempts + 1):
            try:
                documents = await self._store.list_text_documents()
            except OSError:
                log.exception("Failed to enumerate documents")
                documents = []
            if documents or attempt == self._retry_attempts:
                break
            log.info(
                "Document store not ready (0 documents), retrying in %.1fs (%d/%d)",
                self._retry_delay,
                attempt + 1,
                self._retry_attempts,
            )
            await asyncio.sleep(self._retry_delay)
        return documents

    async def _load(self, doc: DocumentRef) -> bool:
        """
        Re-read and re-extract one document. Returns True if its entry changed.

        Read failures drop the entry and are logged, never raised.
        """
        try:
            content = await self._store.read(doc.path)
        except Exception:
            log.exception("Failed to read %s", doc.path)
            return self._files.pop(doc.path, None) is not None

        tasks = parse_content(doc.path, doc.display_name, content, self._settings)
        old = self._files.get(doc.path)
        if tasks:
            self._files[doc.path] = tasks
        else:
            self._files.pop(doc.path, None)
        return old != (tasks or None)

    # ------------------------------------------------------------------
    # Incremental updates
    # ------------------------------------------------------------------

    async def update_file_cache(self, path: str) -> None:
        """Re-extract one document; drops its entry if it has no tasks left."""
        doc = DocumentRef(path=path, display_name=self._store.display_name(path))
        if await self._load(doc):
            self._notify()

    def remove_file_cache(self, path: str) -> None:
        if self._files.pop(path, None) is not None:
            self._notify()

    async def on_modified(self, path: str) -> None:
        if self._store.is_tracked(path):
            await self.update_file_cache(path)

    async def on_created(self, path: str) -> None:
        await self.on_modified(path)

    async def on_deleted(self, path: str) -> None:
        self.remove_file_cache(path)

    async def on_renamed(self, old_path: str, new_path: str) -> None:
        changed = self._files.pop(old_path, None) is not None
        if self._store.is_tracked(new_path):
            doc = DocumentRef(path=new_path, display_name=self._store.display_name(new_path))
            changed = await self._load(doc) or changed
        if changed:
            self._notify()

    # ------------------------------------------------------------------
    # Settings / teardown
    # ------------------------------------------------------------------

    async def update_settings(
        self,
        tag: Optional[str],
        dialects: Optional[Iterable[object]],
    ) -> bool:
        """
        Apply new settings, rescanning only if the tag or dialect set changed.

        A scan already in flight is allowed to finish first; the new
        settings are then compared against the ones it used.

        Returns True if a rescan was triggered.
        """
        new = TaskSettings.create(tag, dialects)
        while self._initializing and self._scan_done is not None:
            log.info("Task scan in progress, deferring settings change")
            await self._scan_done.wait()
        if new == self._settings:
            return False
        log.info("Task settings changed (%s -> %s), rescanning", self._settings.to_dict(), new.to_dict())
        await self.initialize(new.tag, new.dialects)
        return True

    def clear(self) -> None:
        had_entries = bool(self._files)
        self._files.clear()
        self._ready = False
        log.info("Task cache cleared")
        if had_entries:
            self._notify()

    async def when_ready(self, timeout: Optional[float] = None, poll_interval: float = 0.05) -> bool:
        """Wait until the first full scan completes. False on timeout."""

        async def _wait() -> None:
            while not self._ready:
                await asyncio.sleep(poll_interval)

        try:
            await asyncio.wait_for(_wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_update(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def off_update(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                log.exception("Task cache listener failed")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all_tasks(self) -> List[TaskRecord]:
        """All cached tasks ordered by (display name, line number)."""
        tasks = [task for entries in self._files.values() for task in entries]
        tasks.sort(key=_sort_key)
        return tasks

    def get_file_tasks(self, path: str) -> List[TaskRecord]:
        return list(self._files.get(path, ()))

    def find_task(self, path: str, line_number: int) -> Optional[TaskRecord]:
        for task in self._files.get(path, ()):
            if task.line_number == line_number:
                return task
        return None

    def query_tasks(
        self,
        *,
        completed: Optional[bool] = None,
        date_field: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        document_path: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[TaskRecord]:
        """
        Filtered view over get_all_tasks().

        Args:
            completed: Only completed (True) or open (False) tasks
            date_field: One of DATE_FIELDS; restricts to tasks with that date set
            start: Inclusive lower bound on date_field
            end: Inclusive upper bound on date_field
            document_path: Restrict to one document
            limit: Max results

        Returns:
            Matching tasks in get_all_tasks() order
        """
        if (start or end) and not date_field:
            raise ValueError("start/end require date_field")
        if date_field and date_field not in DATE_FIELDS:
            raise ValueError(f"Unknown date field '{date_field}'")

        source = self.get_all_tasks() if document_path is None else self.get_file_tasks(document_path)
        result: List[TaskRecord] = []
        for task in source:
            if completed is not None and task.completed != completed:
                continue
            if date_field:
                value = task.date_for(date_field)
                if value is None:
                    continue
                if start and value < start:
                    continue
                if end and value > end:
                    continue
            result.append(task)
            if limit is not None and len(result) >= limit:
                break
        return result

    # ------------------------------------------------------------------
    # Status / diagnostics
    # ------------------------------------------------------------------

    @property
    def task_count(self) -> int:
        return sum(len(tasks) for tasks in self._files.values())

    def status(self) -> dict:
        return {
            "ready": self._ready,
            "initializing": self._initializing,
            "file_count": len(self._files),
            "task_count": self.task_count,
            "last_full_scan": self._last_full_scan.isoformat() if self._last_full_scan else None,
            **self._settings.to_dict(),
        }
