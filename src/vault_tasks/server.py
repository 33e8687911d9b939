"""
vault-tasks server entry point.

Startup sequence:
1. Read ServerConfig and EngineSettings from the environment
2. Build the FileSystemStore and load every document into the TaskEngine
3. Start the polling VaultWatcher
4. Register MCP tools
5. Run the MCP stdio transport and, if API_ENABLED, the REST API on the same loop
"""

import asyncio
import logging
import sys

from mcp.server.fastmcp import FastMCP

from vault_tasks.config import EngineSettings, ServerConfig
from vault_tasks.engine import TaskEngine
from vault_tasks.store.filesystem import FileSystemStore
from vault_tasks.tools import register_task_tools
from vault_tasks.watcher import VaultWatcher

log = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


async def _serve_api(engine: TaskEngine, port: int) -> None:
    import uvicorn

    from vault_tasks.api.app import create_app

    app = create_app(engine)
    log.info("Starting REST API on port %d", port)
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning"))
    await server.serve()


async def run(config: ServerConfig, settings: EngineSettings) -> None:
    store = FileSystemStore(config.vault_root, skip_dirs=config.skip_dirs, extensions=(settings.document_extension,))
    engine = TaskEngine(store, settings)
    log.info("Scanning vault...")
    await engine.initialize()
    log.info("Vault scan complete: %d tasks", len(engine.cache.all_tasks()))

    watcher = VaultWatcher(engine, config.poll_interval)
    await watcher.start()

    mcp = FastMCP("vault-tasks")
    register_task_tools(mcp, engine)

    log.info("Starting vault-tasks server")
    try:
        if config.api_enabled:
            await asyncio.gather(mcp.run_stdio_async(), _serve_api(engine, config.api_port))
        else:
            await mcp.run_stdio_async()
    finally:
        await watcher.stop()


def main() -> None:
    try:
        config = ServerConfig.from_env()
        settings = EngineSettings.from_env()
    except ValueError as e:
        _configure_logging("INFO")
        log.error("%s", e)
        sys.exit(1)

    _configure_logging(config.log_level)
    if not config.vault_root.is_dir():
        log.error("VAULT_ROOT does not exist or is not a directory: %s", config.vault_root)
        sys.exit(1)

    log.info("Vault root: %s", config.vault_root)
    log.info("Excluded dirs: %s", config.skip_dirs)
    asyncio.run(run(config, settings))


if __name__ == "__main__":
    main()
