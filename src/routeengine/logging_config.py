import logging
import sys

from .config import settings


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Configure logging for the service.

    Logs go to stdout with timestamps, levels and module names so they are
    picked up by the container runtime.
    """
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("routeengine")
