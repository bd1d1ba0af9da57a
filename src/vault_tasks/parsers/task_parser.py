"""
Checkbox task extraction.

Main API:
    parse_line(line, settings)  → TaskRecord | None
    extract(path, name, lines, settings)  → List[TaskRecord]
    parse_content(path, name, content, settings)  → List[TaskRecord]

Every line is scanned against both metadata grammars. The enabled dialect
set only decides which grammar's values are applied; a line carrying
markers of both dialects is flagged as mixed and none of its values are
used, so the two encodings are never merged.
"""

import re
from dataclasses import dataclass, replace
from pathlib import PurePosixPath
from typing import List, Optional, Sequence

from vault_tasks.models.task import (
    Dialect,
    TaskRecord,
    TaskSettings,
    TaskWarning,
)
from vault_tasks.parsers.dialects import GRAMMARS, ExtractedFields, strip_metadata

# indent, bullet, checkbox, trailing blanks | content
CHECKBOX_LINE = re.compile(r"^(\s*[-*]\s*\[([ xX])\]\s*)(.*)$")


@dataclass(frozen=True)
class LineScan:
    """Which dialects have at least one marker on a line."""

    marker: bool = False
    field: bool = False

    @property
    def mixed(self) -> bool:
        return self.marker and self.field

    @property
    def dialect(self) -> Optional[Dialect]:
        """The single dialect present, or None when there are zero or two."""
        if self.mixed:
            return None
        if self.marker:
            return Dialect.MARKER
        if self.field:
            return Dialect.FIELD
        return None

    def found(self, dialect: Dialect) -> bool:
        return self.marker if dialect is Dialect.MARKER else self.field


def scan_dialects(text: str) -> LineScan:
    return LineScan(
        marker=GRAMMARS[Dialect.MARKER].detect(text),
        field=GRAMMARS[Dialect.FIELD].detect(text),
    )


def strip_eol(line: str) -> str:
    """Drop a trailing carriage return left over from CRLF documents."""
    return line[:-1] if line.endswith("\r") else line


def strip_tag(content: str, tag: str) -> Optional[str]:
    """
    Remove the required tag prefix from task content.

    Returns None when a tag is required and the content does not start with
    it.
    """
    if not tag:
        return content
    if not content.strip().startswith(tag):
        return None
    return re.sub(rf"^\s*{re.escape(tag)}\s*", "", content, count=1)


def display_name_for(document_path: str) -> str:
    """Document base name without extension, e.g. 'notes/Daily.md' → 'Daily'."""
    return PurePosixPath(document_path).stem


def parse_line(
    line: str,
    settings: TaskSettings,
    *,
    document_path: str = "",
    display_name: str = "",
    line_number: int = 0,
) -> Optional[TaskRecord]:
    """
    Parse one markdown line into a TaskRecord.

    Args:
        line: A single line of the document (no trailing newline)
        settings: Required tag and enabled dialects
        document_path: Source document, stored on the record
        display_name: Document display name, stored on the record
        line_number: 1-based line number, stored on the record

    Returns:
        TaskRecord, or None if the line is not a (tagged) checkbox item
    """
    m = CHECKBOX_LINE.match(strip_eol(line))
    if not m:
        return None

    content = strip_tag(m.group(3), settings.tag)
    if content is None:
        return None

    scan = scan_dialects(content)
    values = ExtractedFields()
    dialect: Optional[Dialect] = None
    warning: Optional[TaskWarning] = None

    if scan.mixed:
        warning = TaskWarning.MIXED_DIALECTS
    elif scan.dialect is not None and settings.enabled(scan.dialect):
        dialect = scan.dialect
        values = GRAMMARS[dialect].extract(content)

    task = TaskRecord(
        document_path=document_path,
        display_name=display_name,
        line_number=line_number,
        raw_content=content,
        description=strip_metadata(content),
        completed=m.group(2).lower() == "x",
        priority=values.priority,
        dialect=dialect,
        warning=warning,
        **values.dates,
    )
    if warning is None and not task.has_schedule:
        task = replace(task, warning=TaskWarning.NO_SCHEDULE)
    return task


def extract(
    document_path: str,
    display_name: str,
    lines: Sequence[str],
    settings: TaskSettings,
) -> List[TaskRecord]:
    """Parse every line of one document, keeping tasks in line order."""
    tasks: List[TaskRecord] = []
    for line_number, line in enumerate(lines, start=1):
        task = parse_line(
            line,
            settings,
            document_path=document_path,
            display_name=display_name,
            line_number=line_number,
        )
        if task is not None:
            tasks.append(task)
    return tasks


def parse_content(
    document_path: str,
    display_name: str,
    content: str,
    settings: TaskSettings,
) -> List[TaskRecord]:
    """
    Parse a whole document.

    Lines are split on '\\n' only so that line numbers agree with the way the
    update engine rewrites the document.
    """
    return extract(document_path, display_name, content.split("\n"), settings)
