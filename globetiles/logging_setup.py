import logging
import os
import sys

LOG_LEVEL_ENV = "GLOBETILES_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(threadName)s %(name)s: %(message)s"


def setup_logging(level: str | int | None = None) -> None:
    """
    Configure the root logger once.
    Level precedence:
      - explicit `level` arg
      - env GLOBETILES_LOG_LEVEL (e.g. DEBUG/INFO/WARNING/ERROR)
      - default INFO
    """
    root = logging.getLogger()
    if getattr(root, "_globetiles_configured", False):  # idempotent
        return

    if isinstance(level, int):
        lvl = level
    else:
        lvl_name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
        lvl = logging.getLevelName(lvl_name)
        if not isinstance(lvl, int):
            lvl = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    root._globetiles_configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger; ensures root is configured."""
    setup_logging()
    return logging.getLogger(name)
