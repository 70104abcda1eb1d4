import logging
import sys
from typing import Optional

from todo_app.config import get_settings

settings = get_settings()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that log every request, query or hash check at INFO/DEBUG
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "passlib": logging.ERROR,
}


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure logging for the API and the client.

    ``level`` overrides ``LOG_LEVEL``. SQL echo from ``DEBUG=true`` is
    left audible even though the engine logger is otherwise quieted.
    """
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    for name, quiet_level in QUIET_LOGGERS.items():
        if name == "sqlalchemy.engine" and settings.debug:
            continue
        logging.getLogger(name).setLevel(quiet_level)

    app_logger = logging.getLogger("todo_app")
    app_logger.setLevel(log_level)
    return app_logger


logger = setup_logging()
