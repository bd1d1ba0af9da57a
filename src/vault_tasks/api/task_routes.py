"""REST API routes for task and cache operations."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from vault_tasks.errors import DocumentNotFoundError, StaleLocationError
from vault_tasks.tools.task_tools import (
    handle_cache_refresh,
    handle_cache_status,
    handle_settings_update,
    handle_task_cancel,
    handle_task_complete,
    handle_task_list,
    handle_task_update,
)


class TaskUpdateBody(BaseModel):
    # Omitted fields are left alone; an explicit null or "" clears the field.
    document_path: str
    line_number: int
    completed: Optional[bool] = None
    priority: Optional[str] = None
    created: Optional[str] = None
    start: Optional[str] = None
    scheduled: Optional[str] = None
    due: Optional[str] = None
    cancelled: Optional[str] = None
    completion: Optional[str] = None
    description: Optional[str] = None


class TaskCompleteBody(BaseModel):
    document_path: str
    line_number: int
    completed: bool = True


class TaskCancelBody(BaseModel):
    document_path: str
    line_number: int
    on: Optional[str] = None


class SettingsBody(BaseModel):
    tag: Optional[str] = None
    dialects: Optional[str] = None


async def _run_update(coro) -> dict:
    """Await a task handler, mapping domain errors to HTTP status codes."""
    try:
        result = await coro
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StaleLocationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if "error" in result:
        raise HTTPException(status_code=404, detail=result["error"])
    return result


def register_task_routes(app_router: APIRouter, cache, updater) -> None:
    """Attach task REST routes that use the shared cache and updater."""

    @app_router.get("/tasks")
    def list_tasks(
        completed: Optional[bool] = Query(None),
        date_field: Optional[str] = Query(None),
        start: Optional[str] = Query(None),
        end: Optional[str] = Query(None),
        document_path: Optional[str] = Query(None),
        limit: int = Query(200),
    ):
        try:
            return handle_task_list(
                cache,
                completed=completed,
                date_field=date_field,
                start=start,
                end=end,
                document_path=document_path,
                limit=limit,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.patch("/tasks")
    async def update_task(body: TaskUpdateBody):
        changes = body.model_dump(exclude_unset=True)
        changes.pop("document_path")
        changes.pop("line_number")
        return await _run_update(
            handle_task_update(
                cache,
                updater,
                document_path=body.document_path,
                line_number=body.line_number,
                changes=changes,
            )
        )

    @app_router.post("/tasks/complete")
    async def complete_task(body: TaskCompleteBody):
        return await _run_update(
            handle_task_complete(
                cache,
                updater,
                document_path=body.document_path,
                line_number=body.line_number,
                completed=body.completed,
            )
        )

    @app_router.post("/tasks/cancel")
    async def cancel_task(body: TaskCancelBody):
        return await _run_update(
            handle_task_cancel(
                cache,
                updater,
                document_path=body.document_path,
                line_number=body.line_number,
                on=body.on,
            )
        )

    @app_router.get("/cache/status")
    def get_cache_status():
        return handle_cache_status(cache)

    @app_router.post("/cache/refresh")
    async def refresh_cache():
        return await handle_cache_refresh(cache)

    @app_router.put("/cache/settings")
    async def update_settings(body: SettingsBody):
        try:
            return await handle_settings_update(cache, tag=body.tag, dialects=body.dialects)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
