"""TicketSync - collaborative ticket document server.

Hosts CRDT documents for real-time editing and persists their snapshots
to PostgreSQL.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

__version__ = "0.1.0"


def _setup_logging(log_dir: Path = Path("logs")) -> None:
    """Configure logging to both console and rotating file."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"ticketsync.{os.getpid()}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # File handler - detailed logging with rotation (10MB, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    # Console handler - less verbose
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.info("Logging configured. Log file: %s", log_file.absolute())


def main() -> None:
    """Entry point for the TicketSync server."""
    from nicegui import app, ui

    from ticketsync.config import get_settings
    from ticketsync.crdt.persistence import get_persistence_manager
    from ticketsync.health import register_health_routes

    settings = get_settings()
    _setup_logging(settings.app.log_dir)
    register_health_routes(app)

    uses_postgres = settings.store.backend == "postgres"

    @app.on_startup
    async def startup() -> None:
        if uses_postgres:
            from ticketsync.db import init_db

            await init_db()
            logging.info("Database connected")

    @app.on_shutdown
    async def shutdown() -> None:
        # Persist all dirty documents before closing DB
        await get_persistence_manager().persist_all_dirty()
        if uses_postgres:
            from ticketsync.db import close_db

            await close_db()
        logging.info("Server closed")

    print(f"TicketSync v{__version__}")
    print(f"Starting server on http://{settings.app.host}:{settings.app.port}")
    print(f"   Health: http://{settings.app.host}:{settings.app.port}/health")

    ui.run(
        host=settings.app.host,
        port=settings.app.port,
        reload=False,
        show=False,
    )


if __name__ in {"__main__", "__mp_main__"}:
    main()
