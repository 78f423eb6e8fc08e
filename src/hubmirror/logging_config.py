# src/hubmirror/logging_config.py
"""
Logging configuration for applications built on hubmirror.

The library itself only creates module loggers; handlers are installed by
the application calling :func:`configure_logging`, typically with the
``logging`` section of the loaded :class:`~hubmirror.config.HubMirrorConfig`.

Key concepts:

    **Display filter**: When ``console_enabled=False`` (the default), the
    console handler still exists but only passes through log records that
    carry ``extra={"display": True}``. Operational messages such as
    "Mirrored src.io/teamA/app" can reach the user in quiet mode while
    progress chatter stays in the log file.

    **File rotation**: ``file_mode="single"`` uses a
    ``RotatingFileHandler`` with configurable max size and backup count.
    The default ``file_mode="per_run"`` creates a new timestamped file
    each invocation.

Usage:
    from hubmirror.config import load_config
    from hubmirror.logging_config import configure_logging, log_display

    config = load_config()
    configure_logging(app_name="hubmirror", config=config.logging)

    logger = logging.getLogger("myapp.mirror")
    log_display(logger, logging.INFO, "Mirrored %s", forward)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": True,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/hubmirror/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,  # 10 MB
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "hubmirror": "INFO",
        "docker": "WARNING",
        "urllib3": "WARNING",
        "asyncio": "WARNING",
    },
}


def _level(value: str | int, default: int) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


class DisplayFilter(logging.Filter):
    """Controls which log records pass through to the console handler.

    Behavior matrix::

        +------------------------+--------------+-----------------+
        | console_global         | display=True | display=False/  |
        |                        |              | absent          |
        +------------------------+--------------+-----------------+
        | True  (verbose)        | PASS         | PASS            |
        | False (default/quiet)  | PASS*        | BLOCK           |
        +------------------------+--------------+-----------------+

        * subject to display_min_level
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True

        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level

        return False


def _create_console_handler(config: dict[str, Any]) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(_level(config.get("console_level", "WARNING"), logging.WARNING))
    handler.setFormatter(
        logging.Formatter(config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"]))
    )
    return handler


def _create_file_handler(
    config: dict[str, Any], app_name: str
) -> tuple[logging.Handler | None, Path | None]:
    """Create the file handler; returns ``(None, None)`` if the file cannot be opened."""
    dir_str = config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])
    log_dir = Path(os.path.expanduser(dir_str))

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
        return None, None

    if config.get("file_mode", "per_run") == "single":
        try:
            filename = config.get("file_single_name", "{app}.log").format(app=app_name)
        except (KeyError, ValueError):
            filename = f"{app_name}.log"
        log_file_path = log_dir / filename

        try:
            handler: logging.Handler = RotatingFileHandler(
                log_file_path,
                maxBytes=config.get("rotation_max_bytes", 10 * 1024 * 1024),
                backupCount=config.get("rotation_backup_count", 5),
                encoding="utf-8",
            )
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
            return None, None
    else:
        pattern = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"])
        timestamp = datetime.now()
        try:
            filename = pattern.format(app=app_name, timestamp=timestamp)
        except (KeyError, ValueError):
            filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
        log_file_path = log_dir / filename

        try:
            handler = logging.FileHandler(log_file_path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
            return None, None

    handler.setLevel(_level(config.get("file_level", "DEBUG"), logging.DEBUG))
    handler.setFormatter(
        logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"]))
    )
    return handler, log_file_path


def configure_logging(
    app_name: str = "hubmirror",
    config: dict[str, Any] | None = None,
) -> Path | None:
    """
    Install console and file handlers on the root logger.

    Existing root handlers are removed first, so calling this again
    reconfigures logging instead of duplicating output.

    Args:
        app_name: Name used in the log file name
        config: Logging settings merged over DEFAULT_LOGGING_CONFIG

    Returns:
        Path to the log file, or None when file logging is off or failed

    Example:
        configure_logging(
            app_name="mirror-job",
            config={"console_enabled": True, "console_level": "INFO"},
        )
    """
    log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.DEBUG)

    console_globally_enabled = bool(log_config.get("console_enabled", False))
    display_filter = DisplayFilter(
        console_globally_enabled=console_globally_enabled,
        display_min_level=_level(log_config.get("display_min_level", "INFO"), logging.INFO),
    )
    console_handler = _create_console_handler(log_config)
    if not console_globally_enabled:
        # The filter is the only gate in quiet mode
        console_handler.setLevel(logging.DEBUG)
    console_handler.addFilter(display_filter)
    root_logger.addHandler(console_handler)

    log_file_path = None
    if log_config.get("file_enabled", True):
        file_handler, log_file_path = _create_file_handler(log_config, app_name)
        if file_handler:
            root_logger.addHandler(file_handler)

    components = {**DEFAULT_LOGGING_CONFIG["components"], **log_config.get("components", {})}
    for component_name, level_str in components.items():
        logging.getLogger(component_name).setLevel(_level(level_str, logging.INFO))

    if log_file_path:
        logging.getLogger(__name__).debug(f"Logging configured. Log file: {log_file_path}")

    return log_file_path


def log_display(
    logger: logging.Logger,
    level: int,
    msg: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Log a message that also appears on console in quiet mode.

    Wrapper around ``logger.log()`` that sets ``extra={"display": True}``;
    the caller's own ``extra`` data is kept.
    """
    extra = kwargs.pop("extra", None) or {}
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)
