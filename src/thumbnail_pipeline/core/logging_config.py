"""Logger setup shared by every pipeline component.

All pipeline loggers live under ``thumbnail-pipeline`` and write to stdout.
``LOG_LEVEL`` and ``LOG_FORMAT`` in the environment pick the defaults.
"""

import os
import sys
import logging
from typing import Optional

ROOT_LOGGER_NAME = "thumbnail-pipeline"

FORMATS = {
    "structured": (
        "%(asctime)s | %(name)s | %(levelname)-8s | "
        "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
    ),
    "simple": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    resolved = getattr(logging, name, None)
    return resolved if isinstance(resolved, int) else logging.INFO


def _stdout_handler(format_type: str) -> logging.Handler:
    style = os.getenv("LOG_FORMAT", format_type).lower()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(FORMATS.get(style, FORMATS["simple"]), datefmt=DATE_FORMAT)
    )
    return handler


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Configure and return the logger called ``name``.

    Args:
        name: Logger name
        level: Level name; falls back to ``LOG_LEVEL`` and then INFO
        format_type: "structured" or "simple", overridden by ``LOG_FORMAT``

    Returns:
        The logger, with exactly one stdout handler and propagation off
    """
    configured = logging.getLogger(name)
    configured.setLevel(_resolve_level(level))

    if not configured.handlers:
        configured.addHandler(_stdout_handler(format_type))

    configured.propagate = False
    return configured


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    return setup_logger(name)


def get_component_logger(component: str) -> logging.Logger:
    """Logger for one pipeline component, e.g. ``"offload"``."""
    return get_logger(f"{ROOT_LOGGER_NAME}.{component}")


def set_level(level: str) -> None:
    """Change the level of every configured pipeline logger at once."""
    resolved = _resolve_level(level)
    for name, candidate in list(logging.Logger.manager.loggerDict.items()):
        in_tree = name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + ".")
        if in_tree and isinstance(candidate, logging.Logger):
            candidate.setLevel(resolved)


logger = setup_logger()
