"""
Core task data models.

A TaskRecord is a derived value: it only ever comes out of extraction and
is never edited in place. To change a task, the update engine rewrites the
underlying markdown line and a fresh extraction replaces the record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple


class Priority(str, Enum):
    HIGHEST = "highest"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    LOWEST = "lowest"


class Dialect(str, Enum):
    """Metadata grammar a task line uses: emoji markers or `[name:: value]` fields."""

    MARKER = "marker"
    FIELD = "field"


class TaskWarning(str, Enum):
    MIXED_DIALECTS = "mixed-dialects"
    NO_SCHEDULE = "no-schedule"


# Order matters: it is the order metadata is appended on write-back.
DATE_FIELDS: Tuple[str, ...] = (
    "created",
    "start",
    "scheduled",
    "due",
    "cancelled",
    "completion",
)

METADATA_FIELDS: Tuple[str, ...] = ("priority",) + DATE_FIELDS


@dataclass(frozen=True)
class TaskRecord:
    """
    One recognised checkbox line.

    line_number is 1-based and only valid as of the last extraction of
    document_path.
    """

    document_path: str
    display_name: str
    line_number: int
    raw_content: str
    description: str
    completed: bool = False
    priority: Optional[Priority] = None
    created: Optional[date] = None
    start: Optional[date] = None
    scheduled: Optional[date] = None
    due: Optional[date] = None
    cancelled: Optional[date] = None
    completion: Optional[date] = None
    dialect: Optional[Dialect] = None
    warning: Optional[TaskWarning] = None

    @property
    def ref(self) -> str:
        """Task reference in 'path:line' format."""
        return f"{self.document_path}:{self.line_number}"

    @property
    def has_schedule(self) -> bool:
        return self.priority is not None or any(
            self.date_for(name) is not None for name in DATE_FIELDS
        )

    def date_for(self, field_name: str) -> Optional[date]:
        if field_name not in DATE_FIELDS:
            raise ValueError(f"Unknown date field '{field_name}'")
        return getattr(self, field_name)

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict (dates as ISO strings)."""
        d = {
            "document_path": self.document_path,
            "display_name": self.display_name,
            "line_number": self.line_number,
            "ref": self.ref,
            "raw_content": self.raw_content,
            "description": self.description,
            "completed": self.completed,
            "priority": self.priority.value if self.priority else None,
            "dialect": self.dialect.value if self.dialect else None,
            "warning": self.warning.value if self.warning else None,
        }
        for name in DATE_FIELDS:
            value = self.date_for(name)
            d[name] = value.isoformat() if value else None
        return d


def parse_dialects(raw: str) -> FrozenSet[Dialect]:
    """Parse a comma-separated dialect list, e.g. "marker,field"."""
    return frozenset(Dialect(part.strip().lower()) for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class TaskSettings:
    """Active extraction configuration: required tag prefix and enabled dialects."""

    tag: str = ""
    dialects: FrozenSet[Dialect] = frozenset({Dialect.MARKER, Dialect.FIELD})

    @classmethod
    def create(
        cls,
        tag: Optional[str] = "",
        dialects: Optional[Iterable[object]] = None,
    ) -> TaskSettings:
        """
        Build normalised settings.

        The tag is trimmed; dialects may be given as Dialect members or their
        string values. None enables both dialects.
        """
        if dialects is None:
            enabled = frozenset(Dialect)
        else:
            enabled = frozenset(Dialect(d) for d in dialects)
        return cls(tag=(tag or "").strip(), dialects=enabled)

    def enabled(self, dialect: Dialect) -> bool:
        return dialect in self.dialects

    def to_dict(self) -> dict:
        return {"tag": self.tag, "dialects": sorted(d.value for d in self.dialects)}


@dataclass(frozen=True)
class DocumentRef:
    """A text document known to the document store."""

    path: str
    display_name: str
