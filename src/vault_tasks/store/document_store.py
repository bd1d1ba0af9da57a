"""
Document store: the narrow interface the task index uses to reach the host's
documents, plus a filesystem implementation rooted at a vault directory.

Paths handed across this interface are vault-relative POSIX strings
("projects/Plan.md"), the same identity Obsidian uses for its files.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from vault_tasks.models.task import DocumentRef
from vault_tasks.parsers.task_parser import display_name_for

log = logging.getLogger(__name__)

DEFAULT_EXCLUDE_DIRS: FrozenSet[str] = frozenset({".git", ".obsidian", "node_modules", ".trash"})
TEXT_SUFFIXES: FrozenSet[str] = frozenset({".md"})

# path -> (mtime, inode), used by the polling watcher
Snapshot = Dict[str, Tuple[float, int]]


class DocumentStore(ABC):
    """
    Abstract document store.

    Any method may raise OSError; callers decide whether that is fatal.
    """

    @abstractmethod
    async def list_text_documents(self) -> List[DocumentRef]:
        """Enumerate every text document currently in the store."""

    @abstractmethod
    async def read(self, path: str) -> str:
        """Return the full text of a document. FileNotFoundError if missing."""

    @abstractmethod
    async def write(self, path: str, text: str) -> None:
        """Replace the full text of an existing document."""

    def display_name(self, path: str) -> str:
        return display_name_for(path)

    def is_tracked(self, path: str) -> bool:
        """True if change notifications for path concern the task index."""
        return True


class VaultStore(DocumentStore):
    """
    Markdown files under a vault root directory.

    Reads and writes are byte-exact UTF-8 (no newline translation) and run in
    a worker thread so the event loop is never blocked on disk I/O.
    """

    def __init__(
        self,
        vault_root: Path,
        exclude_dirs: Optional[Iterable[str]] = None,
        suffixes: Iterable[str] = TEXT_SUFFIXES,
    ) -> None:
        self._vault_root = Path(vault_root)
        self._exclude_dirs: Set[str] = set(
            DEFAULT_EXCLUDE_DIRS if exclude_dirs is None else exclude_dirs
        )
        self._suffixes = frozenset(suffixes)

    @property
    def vault_root(self) -> Path:
        return self._vault_root

    @property
    def exclude_dirs(self) -> Set[str]:
        return set(self._exclude_dirs)

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        """Map a vault-relative path to a file under the vault root."""
        full = (self._vault_root / path).resolve()
        root = self._vault_root.resolve()
        if full != root and root not in full.parents:
            raise ValueError(f"Path escapes the vault: {path}")
        return full

    def relative(self, full: Path) -> str:
        return full.relative_to(self._vault_root).as_posix()

    def is_tracked(self, path: str) -> bool:
        """True if path names a text document outside the excluded dirs."""
        parts = Path(path).parts
        if not parts or Path(path).suffix not in self._suffixes:
            return False
        return not any(part in self._exclude_dirs for part in parts[:-1])

    def _walk(self) -> Iterator[Path]:
        """Yield every tracked document path, pruning excluded directories."""
        for dirpath, dirnames, filenames in os.walk(self._vault_root):
            dirnames[:] = sorted(d for d in dirnames if d not in self._exclude_dirs)
            for name in sorted(filenames):
                if Path(name).suffix in self._suffixes:
                    yield Path(dirpath) / name

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def list_text_documents(self) -> List[DocumentRef]:
        if not self._vault_root.is_dir():
            log.warning("Vault root is not available: %s", self._vault_root)
            return []
        paths = await asyncio.to_thread(lambda: list(self._walk()))
        refs = []
        for full in paths:
            rel = self.relative(full)
            refs.append(DocumentRef(path=rel, display_name=self.display_name(rel)))
        return refs

    async def read(self, path: str) -> str:
        full = self.resolve(path)
        data = await asyncio.to_thread(full.read_bytes)
        return data.decode("utf-8")

    async def write(self, path: str, text: str) -> None:
        full = self.resolve(path)
        if not full.is_file():
            raise FileNotFoundError(f"No such document: {path}")
        await asyncio.to_thread(full.write_bytes, text.encode("utf-8"))

    # ------------------------------------------------------------------
    # Change detection support
    # ------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        """Return {path: (mtime, inode)} for all tracked documents (blocking)."""
        snap: Snapshot = {}
        try:
            for full in self._walk():
                try:
                    st = full.stat()
                except OSError:
                    continue
                snap[self.relative(full)] = (st.st_mtime, st.st_ino)
        except OSError:
            log.exception("Error walking vault for documents")
        return snap
