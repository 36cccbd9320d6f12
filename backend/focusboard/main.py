"""
Entry point: open the store, serve the command API, exit through the lifecycle coordinator.

Ctrl-C / SIGTERM do not kill the process outright; they start the drain, and
the server stops once the database has been checkpointed.
"""

import logging
import sys

from werkzeug.serving import make_server

from . import create_app
from .config import config
from .logging_config import configure_logging
from .services.container import create_services

logger = logging.getLogger(__name__)


def main() -> int:
    config.init_directories()
    configure_logging(log_dir=config.LOG_DIR)

    logger.info("Database directory ready: %s", config.DATABASE_DIR)
    try:
        services = create_services(db_path=config.DATABASE_FILE if not config.DATABASE_URL else None)
    except Exception:
        logger.exception("Failed to initialize database at %s", config.DATABASE_FILE)
        return 1

    app = create_app(services=services)
    server = make_server(config.HOST, config.PORT, app, threaded=True)

    lifecycle = services.lifecycle
    lifecycle.exit_hook = server.shutdown
    lifecycle.add_closing_listener(lambda: logger.info("app-closing"))
    lifecycle.install_signal_handlers()
    lifecycle.start()

    logger.info("App setup complete, serving on http://%s:%s", config.HOST, config.PORT)
    server.serve_forever()

    lifecycle.wait_closed(timeout=config.SHUTDOWN_GRACE_SECONDS + 30)
    services.runtime.stop()
    logger.info("Goodbye")
    return 0


if __name__ == "__main__":
    sys.exit(main())
