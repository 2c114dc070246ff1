"""
Shared helpers.
"""
import logging

from rolegate.core import config

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    root = logging.getLogger("rolegate")
    root.addHandler(handler)
    root.setLevel(config.LOG_LEVEL.upper())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``rolegate`` hierarchy.

    Scripts run as ``__main__`` are mapped under ``rolegate.scripts`` so they
    share the same handler and level.
    """
    _configure_root()
    if not name.startswith("rolegate"):
        name = f"rolegate.scripts.{name}"
    return logging.getLogger(name)
