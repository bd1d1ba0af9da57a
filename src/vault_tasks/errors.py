"""
Exceptions raised by the update engine.

Extraction never raises these: read failures during a scan are logged and
the affected document is dropped from the cache instead.
"""


class VaultTaskError(Exception):
    """Base class for task index errors."""


class DocumentNotFoundError(VaultTaskError):
    """The document a task points at no longer exists."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Document not found: {path}")
        self.path = path


class StaleLocationError(VaultTaskError):
    """A cached line number no longer points at the task's line."""

    def __init__(self, path: str, line_number: int, reason: str) -> None:
        super().__init__(f"Stale location {path}:{line_number}: {reason}")
        self.path = path
        self.line_number = line_number
