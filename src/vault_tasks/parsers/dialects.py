"""
Metadata grammars for task lines.

Two dialects can carry task metadata inside the same checkbox line:

    marker  Obsidian Tasks plugin style emoji markers
            priority:  🔺 highest, ⏫ high, 🔼 medium, 🔽 low, ⏬ lowest
            dates:     ➕ created, 🛫 start, ⏳ scheduled, 📅 due,
                       ❌ cancelled, ✅ completion  (each followed by YYYY-MM-DD)

    field   Dataview inline fields
            [priority:: high] [due:: 2026-02-15] ...

Each grammar knows how to detect, extract, strip and render its own
syntax, and nothing about the line around it. Line assembly lives in
parsers.task_parser and updater.task_updater.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional, Pattern, Union

from vault_tasks.models.task import METADATA_FIELDS, Dialect, Priority
from vault_tasks.utils.dates import format_date, parse_date, parse_iso_date

# Precedence order: the first symbol present wins.
PRIORITY_TO_SYMBOL: Dict[Priority, str] = {
    Priority.HIGHEST: "🔺",
    Priority.HIGH: "⏫",
    Priority.MEDIUM: "🔼",
    Priority.LOW: "🔽",
    Priority.LOWEST: "⏬",
}

DATE_TO_SYMBOL: Dict[str, str] = {
    "created": "➕",
    "start": "🛫",
    "scheduled": "⏳",
    "due": "📅",
    "cancelled": "❌",
    "completion": "✅",
}

SYMBOL_TO_DATE: Dict[str, str] = {v: k for k, v in DATE_TO_SYMBOL.items()}

# Emoji are sometimes followed by a U+FE0F variation selector.
_VS = "\ufe0f?"
_ISO_VALUE = r"[0-9]{4}-[0-9]{2}-[0-9]{2}(?![0-9])"


def _alternation(symbols) -> str:
    return "|".join(re.escape(s) for s in symbols)


_MARKER_DATE = re.compile(
    rf"({_alternation(SYMBOL_TO_DATE)}){_VS}[ \t]*({_ISO_VALUE})"
)
_MARKER_PRIORITY = re.compile(rf"(?:{_alternation(PRIORITY_TO_SYMBOL.values())}){_VS}")

_FIELD = re.compile(rf"\[({'|'.join(METADATA_FIELDS)})::\s*([^\]]+)\]")


def excise(pattern: Pattern, text: str) -> str:
    """
    Remove every match of pattern (which should swallow its own leading
    blanks) without gluing the neighbouring words together.
    """

    def _repl(m: re.Match) -> str:
        before = m.string[: m.start()]
        after = m.string[m.end():]
        if before and after and not before[-1].isspace() and not after[0].isspace():
            return " "
        return ""

    return pattern.sub(_repl, text)


@dataclass
class ExtractedFields:
    """Metadata values one grammar found on a line."""

    priority: Optional[Priority] = None
    dates: Dict[str, date] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return self.priority is None and not self.dates


FieldValue = Union[Priority, date]


class DialectGrammar(ABC):
    """Match / extract / strip / render for one metadata dialect."""

    dialect: Dialect

    @abstractmethod
    def detect(self, text: str) -> bool:
        """True if at least one marker of this dialect appears in text."""

    @abstractmethod
    def extract(self, text: str) -> ExtractedFields:
        """Return the usable priority and date values; bad values are skipped."""

    @abstractmethod
    def strip(self, text: str, field_name: str) -> str:
        """Remove every occurrence of one metadata field from text."""

    @abstractmethod
    def render(self, field_name: str, value: FieldValue) -> str:
        """Canonical text for one metadata field."""

    def strip_all(self, text: str) -> str:
        for name in METADATA_FIELDS:
            text = self.strip(text, name)
        return text


class MarkerGrammar(DialectGrammar):
    dialect = Dialect.MARKER

    def __init__(self) -> None:
        self._strip_patterns: Dict[str, Pattern] = {
            "priority": re.compile(rf"[ \t]*{_MARKER_PRIORITY.pattern}"),
        }
        for name, symbol in DATE_TO_SYMBOL.items():
            self._strip_patterns[name] = re.compile(
                rf"[ \t]*{re.escape(symbol)}{_VS}[ \t]*{_ISO_VALUE}"
            )

    def detect(self, text: str) -> bool:
        return bool(_MARKER_DATE.search(text) or _MARKER_PRIORITY.search(text))

    def extract(self, text: str) -> ExtractedFields:
        found = ExtractedFields()
        for priority, symbol in PRIORITY_TO_SYMBOL.items():
            if symbol in text:
                found.priority = priority
                break
        for m in _MARKER_DATE.finditer(text):
            value = parse_iso_date(m.group(2))
            if value:
                found.dates[SYMBOL_TO_DATE[m.group(1)]] = value
        return found

    def strip(self, text: str, field_name: str) -> str:
        return excise(self._strip_patterns[field_name], text)

    def render(self, field_name: str, value: FieldValue) -> str:
        if field_name == "priority":
            return PRIORITY_TO_SYMBOL[Priority(value)]
        return f"{DATE_TO_SYMBOL[field_name]} {format_date(value)}"


class FieldGrammar(DialectGrammar):
    dialect = Dialect.FIELD

    def __init__(self) -> None:
        self._strip_patterns: Dict[str, Pattern] = {
            name: re.compile(rf"[ \t]*\[{name}::\s*[^\]]+\]") for name in METADATA_FIELDS
        }

    def detect(self, text: str) -> bool:
        return bool(_FIELD.search(text))

    def extract(self, text: str) -> ExtractedFields:
        found = ExtractedFields()
        for m in _FIELD.finditer(text):
            name, raw = m.group(1), m.group(2).strip()
            if name == "priority":
                try:
                    found.priority = Priority(raw.lower())
                except ValueError:
                    continue
            else:
                value = parse_date(raw)
                if value:
                    found.dates[name] = value
        return found

    def strip(self, text: str, field_name: str) -> str:
        return excise(self._strip_patterns[field_name], text)

    def render(self, field_name: str, value: FieldValue) -> str:
        if field_name == "priority":
            return f"[priority:: {Priority(value).value}]"
        return f"[{field_name}:: {format_date(value)}]"


GRAMMARS: Dict[Dialect, DialectGrammar] = {
    Dialect.MARKER: MarkerGrammar(),
    Dialect.FIELD: FieldGrammar(),
}


def grammar_for(dialect: Dialect) -> DialectGrammar:
    return GRAMMARS[dialect]


def strip_metadata(text: str) -> str:
    """Remove the metadata of both dialects and collapse whitespace."""
    for grammar in GRAMMARS.values():
        text = grammar.strip_all(text)
    return " ".join(text.split())
