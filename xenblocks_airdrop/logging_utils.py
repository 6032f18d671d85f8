"""Logging helpers."""

from __future__ import annotations

import logging
from pathlib import Path


def parse_level(name: str | int | None) -> int:
    if isinstance(name, int):
        return name
    level = logging.getLevelName((name or "INFO").strip().upper())
    if isinstance(level, int):
        return level
    logging.getLogger(__name__).warning("unknown log level %r, using INFO", name)
    return logging.INFO


def configure_logging(level: str | int = logging.INFO, log_path: str | None = None) -> None:
    """Configure default logging if no handlers are present."""
    root = logging.getLogger()
    if root.handlers:
        return
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=parse_level(level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
