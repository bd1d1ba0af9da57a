from .document_store import DEFAULT_EXCLUDE_DIRS, DocumentStore, VaultStore

__all__ = ["DEFAULT_EXCLUDE_DIRS", "DocumentStore", "VaultStore"]
