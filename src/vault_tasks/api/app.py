"""FastAPI application factory for the task REST API."""

from fastapi import APIRouter, FastAPI

from vault_tasks.api.task_routes import register_task_routes


def create_app(cache, updater) -> FastAPI:
    """Build and return a FastAPI app wired to the given TaskCache and TaskUpdater."""
    app = FastAPI(title="vault-tasks", docs_url="/api/docs", openapi_url="/api/openapi.json")

    api = APIRouter(prefix="/api")
    register_task_routes(api, cache, updater)
    app.include_router(api)

    return app
