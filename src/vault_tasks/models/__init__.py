from .task import (
    DATE_FIELDS,
    METADATA_FIELDS,
    Dialect,
    DocumentRef,
    Priority,
    TaskRecord,
    TaskSettings,
    TaskWarning,
    parse_dialects,
)

__all__ = [
    "DATE_FIELDS",
    "METADATA_FIELDS",
    "Dialect",
    "DocumentRef",
    "Priority",
    "TaskRecord",
    "TaskSettings",
    "TaskWarning",
    "parse_dialects",
]
