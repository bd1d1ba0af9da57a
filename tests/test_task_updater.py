"""
Tests for updater/task_updater.py.

Covers:
- TaskChanges: three-state fields, validation, from_dict
- rewrite_line: completion toggling, set / clear of single fields,
  description replacement, dialect choice, CRLF lines
- TaskUpdater.apply_update: byte-exact document rewrite, stale locations,
  missing documents, cache refresh
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import asyncio
from datetime import date, datetime

import pytest

from fakes import MemoryStore
from vault_tasks.cache.task_cache import TaskCache
from vault_tasks.errors import DocumentNotFoundError, StaleLocationError
from vault_tasks.models.task import Dialect, Priority, TaskSettings
from vault_tasks.parsers.task_parser import parse_line
from vault_tasks.updater.task_updater import (
    CLEAR,
    UNSET,
    TaskChanges,
    TaskUpdater,
    choose_dialect,
    rewrite_line,
)

TODAY = date(2024, 5, 2)
BOTH = TaskSettings.create("", None)
MARKER_ONLY = TaskSettings.create("", ["marker"])
FIELD_ONLY = TaskSettings.create("", ["field"])


def _setup(text: str, settings: TaskSettings = BOTH, path: str = "Inbox.md"):
    store = MemoryStore({path: text})
    cache = TaskCache(store, settings=settings, retry_delay=0)
    asyncio.run(cache.initialize())
    updater = TaskUpdater(store, cache, clock=lambda: TODAY)
    return store, cache, updater


def _rewrite(line: str, changes: TaskChanges, settings: TaskSettings = BOTH) -> str:
    task = parse_line(line, settings, document_path="Inbox.md", line_number=1)
    return rewrite_line(line, task, changes, settings, today=TODAY)


# ---------------------------------------------------------------------------
# TaskChanges
# ---------------------------------------------------------------------------

class TestTaskChanges:
    def test_defaults_unset(self):
        changes = TaskChanges()
        assert changes.empty
        assert changes.due is UNSET

    def test_requested(self):
        changes = TaskChanges(completed=True, due=CLEAR)
        assert changes.requested == ("completed", "due")

    def test_datetime_reduced_to_date(self):
        changes = TaskChanges(due=datetime(2024, 5, 1, 14, 30))
        assert changes.due == date(2024, 5, 1)
        assert not isinstance(changes.due, datetime)

    def test_priority_coerced(self):
        assert TaskChanges(priority="high").priority is Priority.HIGH

    def test_rejects_bad_values(self):
        with pytest.raises(ValueError):
            TaskChanges(completed="yes")
        with pytest.raises(ValueError):
            TaskChanges(description="   ")
        with pytest.raises(ValueError):
            TaskChanges(due="2024-05-01")
        with pytest.raises(ValueError):
            TaskChanges(priority="urgent")

    def test_from_dict(self):
        changes = TaskChanges.from_dict(
            {"due": "2024-05-01", "scheduled": "", "start": None, "priority": "High"}
        )
        assert changes.due == date(2024, 5, 1)
        assert changes.scheduled is CLEAR
        assert changes.start is CLEAR
        assert changes.priority is Priority.HIGH
        assert changes.created is UNSET

    def test_from_dict_clears_priority(self):
        assert TaskChanges.from_dict({"priority": "none"}).priority is CLEAR
        assert TaskChanges.from_dict({"priority": ""}).priority is CLEAR

    def test_from_dict_rejects_unknown_field(self):
        with pytest.raises(ValueError, match="deadline"):
            TaskChanges.from_dict({"deadline": "2024-05-01"})

    def test_from_dict_rejects_bad_date(self):
        with pytest.raises(ValueError):
            TaskChanges.from_dict({"due": "someday"})

    def test_rejects_multiline_description(self):
        with pytest.raises(ValueError, match="single line"):
            TaskChanges(description="Buy\n- [ ] injected")
        with pytest.raises(ValueError):
            TaskChanges.from_dict({"description": "Buy\r\nmore"})


# ---------------------------------------------------------------------------
# Line rewriting
# ---------------------------------------------------------------------------

class TestRewriteLine:
    def test_complete_stamps_completion(self):
        line = "- [ ] Buy milk 📅 2024-05-01"
        assert _rewrite(line, TaskChanges(completed=True), MARKER_ONLY) == (
            "- [x] Buy milk 📅 2024-05-01 ✅ 2024-05-02"
        )

    def test_reopen_clears_completion(self):
        line = "- [x] Buy milk 📅 2024-05-01 ✅ 2024-05-02"
        assert _rewrite(line, TaskChanges(completed=False)) == "- [ ] Buy milk 📅 2024-05-01"

    def test_complete_already_complete_is_noop(self):
        line = "- [x] Buy milk ✅ 2024-04-01"
        assert _rewrite(line, TaskChanges(completed=True)) == line

    def test_explicit_completion_wins(self):
        line = "- [ ] Buy milk 📅 2024-05-01"
        changes = TaskChanges(completed=True, completion=date(2024, 4, 30))
        assert _rewrite(line, changes) == "- [x] Buy milk 📅 2024-05-01 ✅ 2024-04-30"

    def test_clear_field_keeps_others(self):
        line = "- [x] Write report [priority:: high] [due:: 2024-06-10]"
        assert _rewrite(line, TaskChanges(due=CLEAR), FIELD_ONLY) == (
            "- [x] Write report [priority:: high]"
        )

    def test_replace_field_value(self):
        line = "- [ ] Write report [priority:: high] [due:: 2024-06-10]"
        assert _rewrite(line, TaskChanges(priority=Priority.LOW)) == (
            "- [ ] Write report [due:: 2024-06-10] [priority:: low]"
        )

    def test_replace_marker_date(self):
        line = "- [ ] Ship ⏫ 📅 2024-05-01 #work"
        assert _rewrite(line, TaskChanges(due=date(2024, 6, 1))) == (
            "- [ ] Ship ⏫ #work 📅 2024-06-01"
        )

    def test_empty_changes_leave_line(self):
        for line in (
            "- [ ] Buy milk 📅 2024-05-01",
            "  * [X] Write report [priority:: high]",
            "- [ ] Pay rent 📅 2024-05-01 [due:: 2024-05-03]",
            "- [ ]",
        ):
            assert _rewrite(line, TaskChanges()) == line

    def test_description_keeps_metadata(self):
        line = "- [ ] Buy milk 🔼 📅 2024-05-01"
        assert _rewrite(line, TaskChanges(description="Buy oat milk")) == (
            "- [ ] Buy oat milk 🔼 📅 2024-05-01"
        )

    def test_description_keeps_tag(self):
        settings = TaskSettings.create("#task", None)
        line = "- [ ] #task Buy milk 📅 2024-05-01"
        assert _rewrite(line, TaskChanges(description="Buy oat milk"), settings) == (
            "- [ ] #task Buy oat milk 📅 2024-05-01"
        )

    def test_same_description_is_noop(self):
        line = "- [ ] Buy  milk 📅 2024-05-01"
        assert _rewrite(line, TaskChanges(description="Buy milk")) == line

    def test_crlf_preserved(self):
        line = "- [ ] Buy milk 📅 2024-05-01\r"
        assert _rewrite(line, TaskChanges(due=CLEAR)) == "- [ ] Buy milk\r"

    def test_bare_checkbox_gets_space(self):
        line = "- [ ]"
        assert _rewrite(line, TaskChanges(due=date(2024, 5, 1)), MARKER_ONLY) == (
            "- [ ] 📅 2024-05-01"
        )

    def test_description_with_tag_not_doubled(self):
        settings = TaskSettings.create("#task", None)
        line = "- [ ] #task Buy milk 📅 2024-05-01"
        assert _rewrite(line, TaskChanges(description="#task Buy oat milk"), settings) == (
            "- [ ] #task Buy oat milk 📅 2024-05-01"
        )
        assert _rewrite(line, TaskChanges(description="#task Buy milk"), settings) == line

    def test_multiline_description_leaves_document(self):
        text = "- [ ] Buy milk 📅 2024-05-01\nother line\n"
        store, cache, updater = _setup(text)
        with pytest.raises(ValueError):
            TaskChanges.from_dict({"description": "Buy\n- [ ] injected"})
        assert store.docs["Inbox.md"] == text
        assert store.writes == 0
        assert len(cache.get_all_tasks()) == 1

    def test_not_a_task_line(self):
        task = parse_line("- [ ] Buy milk", BOTH, document_path="Inbox.md", line_number=3)
        with pytest.raises(StaleLocationError):
            rewrite_line("# Heading", task, TaskChanges(completed=True), BOTH, today=TODAY)


class TestChooseDialect:
    def test_existing_dialect_wins(self):
        assert choose_dialect("Ship 📅 2024-05-01", FIELD_ONLY) == Dialect.MARKER
        assert choose_dialect("Ship [due:: 2024-05-01]", MARKER_ONLY) == Dialect.FIELD

    def test_single_enabled(self):
        assert choose_dialect("Ship", FIELD_ONLY) == Dialect.FIELD
        assert choose_dialect("Ship", MARKER_ONLY) == Dialect.MARKER

    def test_both_enabled_bracket_heuristic(self):
        assert choose_dialect("See [[Plan]]", BOTH) == Dialect.FIELD
        assert choose_dialect("Ship it", BOTH) == Dialect.MARKER

    def test_none_enabled(self):
        assert choose_dialect("Ship", TaskSettings.create("", [])) == Dialect.MARKER

    def test_mixed_line_prefers_field(self):
        mixed = "Pay 📅 2024-05-01 [due:: 2024-05-03]"
        assert choose_dialect(mixed, BOTH) == Dialect.FIELD
        assert choose_dialect(mixed, MARKER_ONLY) == Dialect.MARKER

    def test_new_date_on_wikilink_line(self):
        line = "- [ ] See [[Plan]]"
        assert _rewrite(line, TaskChanges(due=date(2024, 5, 1))) == (
            "- [ ] See [[Plan]] [due:: 2024-05-01]"
        )

    def test_mixed_line_clear_removes_both(self):
        line = "- [ ] Pay rent 📅 2024-05-01 [due:: 2024-05-03]"
        assert _rewrite(line, TaskChanges(due=CLEAR)) == "- [ ] Pay rent"


# ---------------------------------------------------------------------------
# TaskUpdater
# ---------------------------------------------------------------------------

DOC = (
    "# Inbox\n"
    "- [ ] Buy milk 📅 2024-05-01\n"
    "- [ ] Ship it ⏫ 🛫 2024-04-01 ⏳ 2024-04-20 📅 2024-05-01\n"
    "trailing prose\n"
)


class TestApplyUpdate:
    def test_complete(self):
        store, cache, updater = _setup(DOC, MARKER_ONLY)
        task = cache.find_task("Inbox.md", 2)
        asyncio.run(updater.apply_update(task, TaskChanges(completed=True)))
        assert store.docs["Inbox.md"].split("\n")[1] == "- [x] Buy milk 📅 2024-05-01 ✅ 2024-05-02"
        refreshed = cache.find_task("Inbox.md", 2)
        assert refreshed.completed is True
        assert refreshed.due == date(2024, 5, 1)
        assert refreshed.completion == TODAY

    def test_partial_update_isolation(self):
        store, cache, updater = _setup(DOC)
        before = cache.find_task("Inbox.md", 3)
        asyncio.run(updater.apply_update(before, TaskChanges(completed=True)))

        old_lines = DOC.split("\n")
        new_lines = store.docs["Inbox.md"].split("\n")
        assert len(new_lines) == len(old_lines)
        for i, (old, new) in enumerate(zip(old_lines, new_lines)):
            if i != 2:
                assert old == new

        after = cache.find_task("Inbox.md", 3)
        assert after.priority == before.priority == Priority.HIGH
        for name in ("created", "start", "scheduled", "due", "cancelled"):
            assert after.date_for(name) == before.date_for(name)

    def test_round_trip_without_changes(self):
        store, cache, updater = _setup(DOC)
        tasks = cache.get_all_tasks()
        for task in tasks:
            asyncio.run(updater.apply_update(task, TaskChanges()))
        assert store.writes == 0
        assert store.docs["Inbox.md"] == DOC
        asyncio.run(cache.initialize())
        assert cache.get_all_tasks() == tasks

    def test_crlf_document(self):
        text = "- [ ] Buy milk 📅 2024-05-01\r\n- [ ] Other\r\n"
        store, cache, updater = _setup(text)
        task = cache.find_task("Inbox.md", 1)
        asyncio.run(updater.complete(task))
        assert store.docs["Inbox.md"] == (
            "- [x] Buy milk 📅 2024-05-01 ✅ 2024-05-02\r\n- [ ] Other\r\n"
        )

    def test_stale_line_number(self):
        store, cache, updater = _setup(DOC)
        task = cache.find_task("Inbox.md", 3)
        store.docs["Inbox.md"] = "# Inbox\n"
        with pytest.raises(StaleLocationError):
            asyncio.run(updater.apply_update(task, TaskChanges(completed=True)))
        assert store.writes == 0

    def test_line_no_longer_a_task(self):
        store, cache, updater = _setup(DOC)
        task = cache.find_task("Inbox.md", 2)
        store.docs["Inbox.md"] = "# Inbox\nprose now\n"
        with pytest.raises(StaleLocationError):
            asyncio.run(updater.apply_update(task, TaskChanges(completed=True)))

    def test_missing_document(self):
        store, cache, updater = _setup(DOC)
        task = cache.find_task("Inbox.md", 2)
        del store.docs["Inbox.md"]
        with pytest.raises(DocumentNotFoundError):
            asyncio.run(updater.apply_update(task, TaskChanges(completed=True)))

    def test_reschedule(self):
        store, cache, updater = _setup(DOC)
        task = cache.find_task("Inbox.md", 3)
        asyncio.run(updater.reschedule(task, "scheduled", date(2024, 4, 25)))
        assert cache.find_task("Inbox.md", 3).scheduled == date(2024, 4, 25)
        with pytest.raises(ValueError):
            asyncio.run(updater.reschedule(task, "deadline", date(2024, 4, 25)))

    def test_cancel_defaults_to_today(self):
        store, cache, updater = _setup(DOC)
        task = cache.find_task("Inbox.md", 2)
        asyncio.run(updater.cancel(task))
        assert cache.find_task("Inbox.md", 2).cancelled == TODAY

    def test_reopen(self):
        store, cache, updater = _setup("- [x] Done ✅ 2024-05-01\n")
        asyncio.run(updater.reopen(cache.find_task("Inbox.md", 1)))
        assert store.docs["Inbox.md"] == "- [ ] Done\n"

    def test_settings_follow_cache(self):
        store, cache, updater = _setup("- [ ] Plain\n", FIELD_ONLY)
        assert updater.settings == FIELD_ONLY
        task = cache.find_task("Inbox.md", 1)
        asyncio.run(updater.apply_update(task, TaskChanges(due=date(2024, 5, 1))))
        assert store.docs["Inbox.md"] == "- [ ] Plain [due:: 2024-05-01]\n"

    def test_without_cache(self):
        store = MemoryStore({"Inbox.md": "- [ ] Plain\n"})
        updater = TaskUpdater(store, clock=lambda: TODAY)
        task = parse_line("- [ ] Plain", BOTH, document_path="Inbox.md", line_number=1)
        asyncio.run(updater.complete(task))
        assert store.docs["Inbox.md"] == "- [x] Plain ✅ 2024-05-02\n"
