import logging
import sys

from .config import LOG_LEVEL

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_CONFIGURED = False


def configure_logging(level: str | None = None) -> None:
    global _CONFIGURED
    resolved = (level or LOG_LEVEL).upper()
    root = logging.getLogger()
    root.setLevel(resolved)
    if _CONFIGURED:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    # uvicorn installs its own access log; ours carries latency.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _CONFIGURED = True
