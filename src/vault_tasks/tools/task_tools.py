"""
Task tool handlers.

Core logic lives in handle_* functions (return dicts, shared with the REST
API). MCP wrappers in register_task_tools() serialize to JSON strings.
"""

import json
import logging
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from vault_tasks.models.task import parse_dialects
from vault_tasks.updater.task_updater import TaskChanges
from vault_tasks.utils.dates import parse_iso_date

log = logging.getLogger(__name__)


def _optional_date(name: str, value: Optional[str]):
    if not value:
        return None
    parsed = parse_iso_date(value.strip())
    if parsed is None:
        raise ValueError(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}")
    return parsed


def _not_found(document_path: str, line_number: int) -> dict:
    return {
        "error": f"No task at {document_path}:{line_number}; the document may have "
        "changed, refresh the task list and retry"
    }


# ---------------------------------------------------------------------------
# Handler functions (return dicts, shared by MCP tools and REST API)
# ---------------------------------------------------------------------------


def handle_task_list(
    cache,
    *,
    completed: Optional[bool] = None,
    date_field: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    document_path: Optional[str] = None,
    limit: int = 200,
) -> list[dict]:
    tasks = cache.query_tasks(
        completed=completed,
        date_field=date_field,
        start=_optional_date("start", start),
        end=_optional_date("end", end),
        document_path=document_path,
        limit=limit,
    )
    return [t.to_dict() for t in tasks]


async def handle_task_update(
    cache,
    updater,
    *,
    document_path: str,
    line_number: int,
    changes: Dict[str, Any],
) -> dict:
    task = cache.find_task(document_path, line_number)
    if task is None:
        return _not_found(document_path, line_number)

    await updater.apply_update(task, TaskChanges.from_dict(changes))

    refreshed = cache.find_task(document_path, line_number)
    if refreshed is None:
        # e.g. the new description no longer carries the required tag
        return {"ref": task.ref, "tracked": False}
    return refreshed.to_dict()


async def handle_task_complete(
    cache,
    updater,
    *,
    document_path: str,
    line_number: int,
    completed: bool = True,
) -> dict:
    return await handle_task_update(
        cache,
        updater,
        document_path=document_path,
        line_number=line_number,
        changes={"completed": completed},
    )


async def handle_task_cancel(
    cache,
    updater,
    *,
    document_path: str,
    line_number: int,
    on: Optional[str] = None,
) -> dict:
    task = cache.find_task(document_path, line_number)
    if task is None:
        return _not_found(document_path, line_number)
    await updater.cancel(task, _optional_date("on", on))
    refreshed = cache.find_task(document_path, line_number)
    return refreshed.to_dict() if refreshed else {"ref": task.ref, "tracked": False}


def handle_cache_status(cache) -> dict:
    return cache.status()


async def handle_cache_refresh(cache) -> dict:
    await cache.initialize()
    return cache.status()


async def handle_settings_update(
    cache,
    *,
    tag: Optional[str] = None,
    dialects: Optional[str] = None,
) -> dict:
    current = cache.settings
    rescanned = await cache.update_settings(
        current.tag if tag is None else tag,
        current.dialects if dialects is None else parse_dialects(dialects),
    )
    return {"rescanned": rescanned, **cache.status()}


# ---------------------------------------------------------------------------
# MCP tool registration (thin wrappers)
# ---------------------------------------------------------------------------


def register_task_tools(mcp: FastMCP, cache, updater) -> None:
    """Register all task-related MCP tools onto the FastMCP instance."""

    @mcp.tool()
    def task_list(
        completed: Optional[bool] = None,
        date_field: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        document_path: Optional[str] = None,
        limit: int = 200,
    ) -> str:
        """
        List checkbox tasks found in the vault.

        Tasks are ordered by document name, then line number.

        Args:
            completed: True = only checked tasks, False = only open tasks, omit = all
            date_field: One of created, start, scheduled, due, cancelled, completion.
                        Restricts to tasks that have this date set.
            start: ISO date (YYYY-MM-DD), inclusive lower bound on date_field
            end: ISO date (YYYY-MM-DD), inclusive upper bound on date_field
            document_path: Restrict to one vault-relative document path
            limit: Maximum number of results (default 200)

        Returns:
            JSON array of task objects
        """
        try:
            return json.dumps(
                handle_task_list(
                    cache,
                    completed=completed,
                    date_field=date_field,
                    start=start,
                    end=end,
                    document_path=document_path,
                    limit=limit,
                ),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    async def task_update(
        document_path: str,
        line_number: int,
        completed: Optional[bool] = None,
        priority: Optional[str] = None,
        created: Optional[str] = None,
        start: Optional[str] = None,
        scheduled: Optional[str] = None,
        due: Optional[str] = None,
        cancelled: Optional[str] = None,
        completion: Optional[str] = None,
        description: Optional[str] = None,
    ) -> str:
        """
        Update one task line in place.

        Only fields you pass will be changed. Pass an empty string to clear
        a priority or date field. New metadata is written in the dialect the
        line already uses (emoji markers or [field:: value]).

        Args:
            document_path: Vault-relative path of the document
            line_number: 1-based line number from task_list
            completed: Check (True) or uncheck (False) the task. Checking adds
                       a completion date of today; unchecking removes it.
            priority: highest, high, medium, low, lowest (or "" to clear)
            created: ISO date or "" to clear
            start: ISO date or "" to clear
            scheduled: ISO date or "" to clear
            due: ISO date or "" to clear
            cancelled: ISO date or "" to clear
            completion: ISO date or "" to clear
            description: New task text; existing dates and priority are kept

        Returns:
            Updated task JSON or error message
        """
        supplied = {
            "completed": completed,
            "priority": priority,
            "created": created,
            "start": start,
            "scheduled": scheduled,
            "due": due,
            "cancelled": cancelled,
            "completion": completion,
            "description": description,
        }
        changes = {k: v for k, v in supplied.items() if v is not None}
        try:
            return json.dumps(
                await handle_task_update(
                    cache,
                    updater,
                    document_path=document_path,
                    line_number=line_number,
                    changes=changes,
                ),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    async def task_complete(document_path: str, line_number: int, completed: bool = True) -> str:
        """
        Check or uncheck a task.

        Args:
            document_path: Vault-relative path of the document
            line_number: 1-based line number from task_list
            completed: False to reopen the task

        Returns:
            Updated task JSON or error message
        """
        try:
            return json.dumps(
                await handle_task_complete(
                    cache,
                    updater,
                    document_path=document_path,
                    line_number=line_number,
                    completed=completed,
                ),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    async def task_cancel(document_path: str, line_number: int, on: Optional[str] = None) -> str:
        """
        Mark a task cancelled by stamping its cancelled date.

        Args:
            document_path: Vault-relative path of the document
            line_number: 1-based line number from task_list
            on: ISO date to stamp (default today)

        Returns:
            Updated task JSON or error message
        """
        try:
            return json.dumps(
                await handle_task_cancel(
                    cache,
                    updater,
                    document_path=document_path,
                    line_number=line_number,
                    on=on,
                ),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def cache_status() -> str:
        """
        Show task cache statistics.

        Returns:
            JSON with ready flag, document count, task count, active tag and dialects
        """
        return json.dumps(handle_cache_status(cache), indent=2)

    @mcp.tool()
    async def cache_refresh() -> str:
        """
        Rescan every document in the vault.

        Returns:
            JSON cache status after the scan
        """
        return json.dumps(await handle_cache_refresh(cache), indent=2)

    @mcp.tool()
    async def cache_settings(tag: Optional[str] = None, dialects: Optional[str] = None) -> str:
        """
        Change the required tag or the enabled metadata dialects.

        The vault is rescanned only when the effective settings change.

        Args:
            tag: Text prefix a checkbox item must start with to count as a task ("" for none)
            dialects: Comma-separated list of "marker" and/or "field"

        Returns:
            JSON with "rescanned" and the cache status
        """
        try:
            return json.dumps(
                await handle_settings_update(cache, tag=tag, dialects=dialects),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})
