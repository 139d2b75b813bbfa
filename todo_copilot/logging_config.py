"""
Logging setup for the todo service.

Modules log through `logging.getLogger(__name__)`; this module only installs
the root handler and level once at startup.
"""
from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


# PUBLIC_INTERFACE
def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with a single stream handler.

    Calling it again only updates the level.
    """
    global _configured
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name("todo_copilot")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # uvicorn installs its own handlers; avoid duplicate access lines
    logging.getLogger("uvicorn.access").propagate = False
    _configured = True
