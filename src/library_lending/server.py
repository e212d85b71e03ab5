"""
Library lending MCP server.

Exposes the issue, return and fine lifecycle as MCP tools over stdio, and
runs the fine and overdue sweeps on a background scheduler in the same
process.

Start with ``library-lending`` or ``python -m library_lending.server``.
"""

import logging
import signal
import sys
from datetime import timedelta
from typing import Any

from fastmcp import FastMCP

from library_lending.background import BackgroundRecalculator, Scheduler, ThreadingScheduler
from library_lending.clock import get_clock
from library_lending.config import LendingConfig, get_config
from library_lending.database.session import get_db_manager
from library_lending.observability import initialize_observability
from library_lending.tools import all_tools

# Use stderr to keep stdout clean for stdio transport
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

config = get_config()

mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "Library lending server. Issues books to borrowers, processes returns, "
        "and manages overdue fines: recalculation, payments, waivers and the "
        "fine configuration. Every loan runs for 14 days; fines accrue per day "
        "after a grace period, up to a cap."
    ),
)

# Register all tools with the MCP server
for tool in all_tools:
    logger.debug("Registering tool: %s", tool["name"])
    mcp.tool(name=tool["name"], description=tool["description"])(tool["handler"])

logger.info("Registered %d tools", len(all_tools))


def start_background_jobs(settings: LendingConfig) -> Scheduler | None:
    """Start the fine and overdue sweeps unless disabled in configuration."""
    if not settings.scheduler_enabled:
        logger.info("Background sweeps disabled")
        return None

    recalculator = BackgroundRecalculator(get_db_manager().session_factory, get_clock())
    scheduler = ThreadingScheduler()
    recalculator.register(
        scheduler,
        fine_interval=timedelta(seconds=settings.fine_sweep_interval_seconds),
        overdue_interval=timedelta(seconds=settings.overdue_sweep_interval_seconds),
    )
    scheduler.start()
    return scheduler


def run_stdio_server() -> None:
    """Prepare the database, start the sweeps and serve MCP over stdio."""
    logger.info("Starting %s v%s on stdio transport", config.server_name, config.server_version)

    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")
    else:
        logging.getLogger().setLevel(config.effective_log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)

    initialize_observability()

    db_manager = get_db_manager()
    db_manager.init_database()
    if not db_manager.verify_connection():
        logger.error("Database is not reachable at %s", db_manager.database_url)
        sys.exit(1)

    scheduler = start_background_jobs(config)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)  # Ctrl+C
    signal.signal(signal.SIGTERM, signal_handler)  # Termination signal

    try:
        logger.info("MCP Server ready and waiting for connections...")
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        db_manager.close()
        logger.info("Shutdown complete")


def main() -> None:
    """Main entry point for the MCP server."""
    try:
        logger.info("=" * 60)
        logger.info("Library Lending MCP Server")
        logger.info("Version: %s", config.server_version)
        logger.info("Database: %s", config.database_url)
        logger.info("Debug Mode: %s", config.debug)
        logger.info("=" * 60)

        run_stdio_server()

    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    main()
