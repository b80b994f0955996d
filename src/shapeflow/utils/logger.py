from __future__ import annotations

import logging
import os

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    name = os.environ.get("SHAPEFLOW_LOG_LEVEL", "WARNING").upper()
    level = logging.getLevelName(name)
    root = logging.getLogger("shapeflow")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
    _configured = True
    if isinstance(level, int):
        root.setLevel(level)
        return
    root.setLevel(logging.WARNING)
    root.warning("unknown SHAPEFLOW_LOG_LEVEL %r, using WARNING", name)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``shapeflow`` hierarchy.

    The level comes from ``SHAPEFLOW_LOG_LEVEL`` (default ``WARNING``).
    """
    _configure_root()
    if not name.startswith("shapeflow"):
        name = f"shapeflow.{name}"
    return logging.getLogger(name)
