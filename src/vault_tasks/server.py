"""
Vault Tasks server entry point.

Startup sequence:
1. Read VAULT_ROOT, EXCLUDE_DIRS, TASK_TAG and TASK_DIALECTS from environment
2. Initialize TaskCache (full vault scan)
3. Start VaultWatcher polling task
4. Register all MCP tools
5. Serve the REST API alongside the MCP server (if API_ENABLED)
6. Run MCP server (stdio transport)

Everything shares one asyncio event loop.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import uvicorn
from mcp.server.fastmcp import FastMCP

from vault_tasks.api.app import create_app
from vault_tasks.cache.task_cache import TaskCache
from vault_tasks.models.task import TaskSettings, parse_dialects
from vault_tasks.store.document_store import VaultStore
from vault_tasks.tools import register_task_tools
from vault_tasks.updater.task_updater import TaskUpdater
from vault_tasks.watcher.vault_watcher import VaultWatcher

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr,
)
log = logging.getLogger(__name__)


def _parse_exclude_dirs(raw: str) -> set[str]:
    """Parse a comma-separated list of directory names to exclude."""
    return {part.strip() for part in raw.split(",") if part.strip()}


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def load_settings() -> TaskSettings:
    """Build extraction settings from TASK_TAG and TASK_DIALECTS."""
    return TaskSettings.create(
        os.environ.get("TASK_TAG", ""),
        parse_dialects(os.environ.get("TASK_DIALECTS", "marker,field")),
    )


async def _serve(store: VaultStore, settings: TaskSettings) -> None:
    cache = TaskCache(store, settings=settings)
    updater = TaskUpdater(store, cache)

    log.info("Scanning vault...")
    await cache.initialize()
    log.info("Vault scan complete")

    watcher = VaultWatcher(cache, store)
    watcher.start()

    mcp = FastMCP("vault-tasks")
    register_task_tools(mcp, cache, updater)

    api_server = None
    if _env_flag("API_ENABLED", "true"):
        api_port = int(os.environ.get("API_PORT", "9400"))
        log.info("Starting REST API on port %d", api_port)
        config = uvicorn.Config(
            create_app(cache, updater), host="0.0.0.0", port=api_port, log_level="warning"
        )
        api_server = uvicorn.Server(config)

    async def run_mcp() -> None:
        try:
            await mcp.run_stdio_async()
        finally:
            # The REST API lives only as long as the MCP session
            if api_server is not None:
                api_server.should_exit = True

    services = [run_mcp()]
    if api_server is not None:
        services.append(api_server.serve())

    log.info("Starting vault-tasks server")
    try:
        await asyncio.gather(*services)
    finally:
        await watcher.stop()
        cache.clear()


def main() -> None:
    vault_root_env = os.environ.get("VAULT_ROOT", "")
    if not vault_root_env:
        log.error("VAULT_ROOT environment variable is not set")
        sys.exit(1)

    vault_root = Path(vault_root_env)
    if not vault_root.is_dir():
        log.error("VAULT_ROOT does not exist or is not a directory: %s", vault_root)
        sys.exit(1)

    exclude_raw = os.environ.get("EXCLUDE_DIRS", ".git,.obsidian,node_modules,.trash")
    exclude_dirs = _parse_exclude_dirs(exclude_raw)

    try:
        settings = load_settings()
    except ValueError as e:
        log.error("Invalid TASK_DIALECTS: %s", e)
        sys.exit(1)

    log.info("Vault root: %s", vault_root)
    log.info("Excluded dirs: %s", exclude_dirs)
    log.info("Task settings: %s", settings.to_dict())

    asyncio.run(_serve(VaultStore(vault_root, exclude_dirs), settings))


if __name__ == "__main__":
    main()
