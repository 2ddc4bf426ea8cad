"""Logging configuration for the CLI and the API process."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _prepare_file_handler(log_file: Union[str, Path]) -> tuple[Optional[logging.Handler], Optional[str]]:
    """Create a file handler for the given path, returning an optional warning."""
    log_path = Path(log_file)
    if not log_path.is_absolute():
        log_path = Path.cwd() / log_path

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8"), None
    except OSError as exc:
        fallback_path = Path.cwd() / log_path.name
        try:
            handler = logging.FileHandler(fallback_path, encoding="utf-8")
            return handler, (
                f"Failed to open log file at '{log_path}'. Falling back to '{fallback_path}'. "
                f"Reason: {exc}"
            )
        except OSError as fallback_exc:
            return None, (
                f"Failed to open log file at '{log_path}' "
                f"and fallback '{fallback_path}'. Reason: {fallback_exc}"
            )


def parse_level(level: Union[str, int]) -> int:
    """Accept "DEBUG"/"info"/20 style levels. Unknown names fall back to INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Union[str, Path, None] = None,
    *,
    include_stream: bool = True,
) -> logging.Logger:
    """Install handlers on the root logger and return the package logger.

    Pass ``log_file=None`` (or an empty string) to disable file logging.
    """
    numeric_level = parse_level(level)
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: list[logging.Handler] = []
    pending_warning: Optional[str] = None
    if log_file:
        file_handler, pending_warning = _prepare_file_handler(log_file)
        if file_handler:
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

    if include_stream:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        handlers.append(stream_handler)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    logger = logging.getLogger("s3migrate")
    logger.setLevel(numeric_level)
    # boto's own debug output drowns the migration log
    logging.getLogger("botocore").setLevel(max(numeric_level, logging.INFO))

    if pending_warning:
        logger.warning(pending_warning)

    return logger


__all__ = ["configure_logging", "parse_level"]
