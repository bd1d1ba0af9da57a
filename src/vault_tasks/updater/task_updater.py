"""
Read-modify-write updates of task lines.

The document is always re-read from the store (never trusted from the
cache), only the target line is rewritten, and on that line only the
fields named in the TaskChanges are touched:

    UNSET  → field left exactly as it is (no strip, no re-append)
    CLEAR  → every occurrence of the field removed
    value  → existing occurrences removed, canonical text appended in the
             line's dialect

Everything else in the document is written back byte for byte.
"""

import logging
import re
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from vault_tasks.errors import DocumentNotFoundError, StaleLocationError
from vault_tasks.models.task import (
    DATE_FIELDS,
    METADATA_FIELDS,
    Dialect,
    Priority,
    TaskRecord,
    TaskSettings,
)
from vault_tasks.parsers.dialects import GRAMMARS
from vault_tasks.parsers.task_parser import CHECKBOX_LINE, scan_dialects, strip_tag
from vault_tasks.store.document_store import DocumentStore
from vault_tasks.utils.dates import parse_date
from vault_tasks.utils.dates import today as _today

log = logging.getLogger(__name__)


class _Sentinel:
    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


UNSET = _Sentinel("UNSET")
CLEAR = _Sentinel("CLEAR")

DateChange = Union[date, _Sentinel]

# Priority values that mean "no priority" in incoming requests.
_NO_PRIORITY = {"", "none", "normal"}


@dataclass(frozen=True)
class TaskChanges:
    """
    A partial update. Every field defaults to UNSET; metadata fields also
    accept CLEAR.
    """

    completed: Union[bool, _Sentinel] = UNSET
    priority: Union[Priority, _Sentinel] = UNSET
    created: DateChange = UNSET
    start: DateChange = UNSET
    scheduled: DateChange = UNSET
    due: DateChange = UNSET
    cancelled: DateChange = UNSET
    completion: DateChange = UNSET
    description: Union[str, _Sentinel] = UNSET

    def __post_init__(self) -> None:
        if self.completed is not UNSET and not isinstance(self.completed, bool):
            raise ValueError("completed must be a bool")
        if self.description is not UNSET:
            if not isinstance(self.description, str) or not self.description.strip():
                raise ValueError("description must be a non-empty string")
            if "\n" in self.description or "\r" in self.description:
                raise ValueError("description must be a single line")
        if self.priority not in (UNSET, CLEAR):
            object.__setattr__(self, "priority", Priority(self.priority))
        for name in DATE_FIELDS:
            value = getattr(self, name)
            if value in (UNSET, CLEAR):
                continue
            if not isinstance(value, date):
                raise ValueError(f"{name} must be a date, got {value!r}")
            if isinstance(value, datetime):
                # datetime → calendar date; no time component is ever written
                object.__setattr__(self, name, value.date())

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not UNSET

    @property
    def requested(self) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(self) if self.is_set(f.name))

    @property
    def empty(self) -> bool:
        return not self.requested

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TaskChanges":
        """
        Build changes from loosely typed input (JSON bodies, tool arguments).

        A missing key leaves the field untouched; None or "" clears it.
        Dates may be date objects or date strings.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")

        kwargs: Dict[str, Any] = {}
        for name, value in data.items():
            if name in ("completed", "description"):
                kwargs[name] = value
            elif name == "priority":
                if value is None or str(value).strip().lower() in _NO_PRIORITY:
                    kwargs[name] = CLEAR
                else:
                    kwargs[name] = Priority(str(value).strip().lower())
            elif value is None or value == "":
                kwargs[name] = CLEAR
            elif isinstance(value, date):
                kwargs[name] = value
            else:
                parsed = parse_date(str(value))
                if parsed is None:
                    raise ValueError(f"Invalid date for '{name}': {value!r}")
                kwargs[name] = parsed
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Line rewriting
# ---------------------------------------------------------------------------

def choose_dialect(content: str, settings: TaskSettings) -> Dialect:
    """
    Dialect to write new metadata in.

    The dialect already on the line wins. Otherwise: the only enabled
    dialect; with both enabled, field if the content already holds a '['
    and marker if not; with nothing enabled, marker.
    """
    scan = scan_dialects(content)
    if scan.mixed:
        return Dialect.FIELD if settings.enabled(Dialect.FIELD) else Dialect.MARKER
    if scan.dialect is not None:
        return scan.dialect
    if len(settings.dialects) == 1:
        return next(iter(settings.dialects))
    if len(settings.dialects) == 2:
        return Dialect.FIELD if "[" in content else Dialect.MARKER
    return Dialect.MARKER


def _append(content: str, rendered: str) -> str:
    stripped = content.rstrip()
    return f"{stripped} {rendered}" if stripped else rendered


def rewrite_line(
    line: str,
    task: TaskRecord,
    changes: TaskChanges,
    settings: TaskSettings,
    *,
    today: date,
) -> str:
    """
    Apply changes to one task line and return the new line.

    Raises:
        StaleLocationError: the line is no longer a checkbox item
    """
    body, eol = (line[:-1], "\r") if line.endswith("\r") else (line, "")
    m = CHECKBOX_LINE.match(body)
    if not m:
        raise StaleLocationError(task.document_path, task.line_number, "line is not a task")

    prefix, content = m.group(1), m.group(3)
    original_content = content
    was_completed = m.group(2).lower() == "x"
    dialect = choose_dialect(content, settings)

    values: Dict[str, Any] = {
        name: getattr(changes, name) for name in METADATA_FIELDS if changes.is_set(name)
    }

    if changes.is_set("completed") and changes.completed != was_completed:
        prefix = re.sub(r"\[[ xX]\]", "[x]" if changes.completed else "[ ]", prefix, count=1)
        if "completion" not in values:
            values["completion"] = today if changes.completed else CLEAR

    if changes.is_set("description"):
        tag = settings.tag
        has_tag = bool(tag) and content.strip().startswith(tag)
        new_text = changes.description.strip()
        if has_tag:
            new_text = strip_tag(new_text, tag) or new_text
        if new_text != task.description:
            content = (f"{tag} " if has_tag else "") + new_text
            # The old metadata went with the old description; carry it over.
            for name in METADATA_FIELDS:
                prior = getattr(task, name)
                if name not in values and prior is not None:
                    values[name] = prior

    grammar = GRAMMARS[dialect]
    for name in METADATA_FIELDS:
        if name not in values:
            continue
        for g in GRAMMARS.values():
            content = g.strip(content, name)
        if values[name] is not CLEAR:
            content = _append(content, grammar.render(name, values[name]))

    if content != original_content and content and not prefix[-1:].isspace():
        prefix += " "
    return prefix + content + eol


# ---------------------------------------------------------------------------
# TaskUpdater
# ---------------------------------------------------------------------------

class TaskUpdater:
    """
    Writes task changes back into their documents.

    When a cache is given, its settings are used for dialect selection and
    its entry for the document is refreshed after each write.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache=None,
        *,
        settings: Optional[TaskSettings] = None,
        clock: Callable[[], date] = _today,
    ) -> None:
        self._store = store
        self._cache = cache
        self._settings = settings
        self._clock = clock

    @property
    def settings(self) -> TaskSettings:
        if self._settings is not None:
            return self._settings
        if self._cache is not None:
            return self._cache.settings
        return TaskSettings()

    async def apply_update(self, task: TaskRecord, changes: TaskChanges) -> None:
        """
        Rewrite task's line with changes and persist the document.

        Raises:
            DocumentNotFoundError: the document no longer exists
            StaleLocationError: task.line_number no longer points at a task line
        """
        path = task.document_path
        try:
            text = await self._store.read(path)
        except FileNotFoundError as e:
            raise DocumentNotFoundError(path) from e

        lines = text.split("\n")
        index = task.line_number - 1
        if index < 0 or index >= len(lines):
            raise StaleLocationError(
                path, task.line_number, f"document has {len(lines)} lines"
            )

        old_line = lines[index]
        new_line = rewrite_line(old_line, task, changes, self.settings, today=self._clock())
        if new_line == old_line:
            log.debug("No change for %s", task.ref)
            return

        lines[index] = new_line
        try:
            await self._store.write(path, "\n".join(lines))
        except FileNotFoundError as e:
            raise DocumentNotFoundError(path) from e
        log.info("Updated %s (%s)", task.ref, ", ".join(changes.requested))

        if self._cache is not None:
            await self._cache.update_file_cache(path)

    # ------------------------------------------------------------------
    # Shortcuts used by the tool surfaces
    # ------------------------------------------------------------------

    async def complete(self, task: TaskRecord) -> None:
        await self.apply_update(task, TaskChanges(completed=True))

    async def reopen(self, task: TaskRecord) -> None:
        await self.apply_update(task, TaskChanges(completed=False))

    async def cancel(self, task: TaskRecord, on: Optional[date] = None) -> None:
        """Stamp the cancelled date (today unless given)."""
        await self.apply_update(task, TaskChanges(cancelled=on or self._clock()))

    async def reschedule(self, task: TaskRecord, field_name: str, new_date: date) -> None:
        """Move one date field, e.g. after a drag on the calendar."""
        if field_name not in DATE_FIELDS:
            raise ValueError(f"Unknown date field '{field_name}'")
        await self.apply_update(task, TaskChanges(**{field_name: new_date}))
