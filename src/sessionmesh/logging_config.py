# src/sessionmesh/logging_config.py
"""
Unified Logging Configuration for SessionMesh.

Provides a centralized logging setup for the library and the API server:
- Console logging with display-level gating (see DisplayFilter)
- File logging with configurable directory, filename patterns, and rotation
- Per-component log level overrides

Key concepts:

    **Display filter**: When ``console_enabled=False`` (the default), the
    console handler still exists but only passes through log records that
    carry ``extra={"display": True}``. This lets operational messages
    (e.g. "Serving sessions on :8000") reach the operator even in quiet
    mode, while per-fetch debug chatter stays file-only.

    **File rotation**: ``file_mode="single"`` uses a ``RotatingFileHandler``
    with configurable max size and backup count. ``file_mode="per_run"``
    creates a new timestamped file each invocation.

Usage:
    from sessionmesh.logging_config import configure_logging, log_display

    configure_logging(app_name="sessionmesh", config=config.logging)

    logger = logging.getLogger("sessionmesh.server")
    log_display(logger, logging.INFO, "Gateway serving at %s", base_url)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": True,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/sessionmesh/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,  # 10 MB
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "sessionmesh": "INFO",
        "aiohttp": "WARNING",
        "asyncio": "WARNING",
        "uvicorn": "INFO",
        "httpx": "WARNING",
    },
}


def _level(value: str | int, default: int) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


class DisplayFilter(logging.Filter):
    """Controls which log records pass through to the console handler.

    When console is globally enabled (verbose mode) everything passes and the
    handler's own level does the filtering. Otherwise only records with
    ``record.display = True`` at or above ``display_min_level`` pass.
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


class UnifiedLoggingManager:
    """
    Singleton manager for unified logging configuration.

    Ensures logging is only configured once per process and keeps the
    active console and file handlers.
    """

    _instance: Optional["UnifiedLoggingManager"] = None
    _configured: bool = False
    _log_file_path: Path | None = None
    _console_handler: logging.Handler | None = None
    _file_handler: logging.Handler | None = None
    _display_filter: DisplayFilter | None = None

    def __new__(cls) -> "UnifiedLoggingManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def get_instance(cls) -> "UnifiedLoggingManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    def configure(
        self,
        app_name: str = "sessionmesh",
        config: dict[str, Any] | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Configure unified logging for the application.

        Args:
            app_name: Name of the application (used in log filename)
            config: Logging configuration dictionary, merged over the defaults
            force_reconfigure: If True, reconfigure even if already configured

        Returns:
            Path to the log file, or None when file logging is disabled
        """
        if self._configured and not force_reconfigure:
            return self._log_file_path

        log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(logging.DEBUG)

        console_globally_enabled = bool(log_config.get("console_enabled", False))
        self._display_filter = DisplayFilter(
            console_globally_enabled=console_globally_enabled,
            display_min_level=_level(log_config.get("display_min_level", "INFO"), logging.INFO),
        )
        self._console_handler = self._create_console_handler(log_config)
        if not console_globally_enabled:
            # The filter is the sole gate when the console is "off".
            self._console_handler.setLevel(logging.DEBUG)
        self._console_handler.addFilter(self._display_filter)
        root_logger.addHandler(self._console_handler)

        self._file_handler, self._log_file_path = None, None
        if log_config.get("file_enabled", True):
            self._file_handler, self._log_file_path = self._create_file_handler(log_config, app_name)
            if self._file_handler:
                root_logger.addHandler(self._file_handler)

        components = log_config.get("components", DEFAULT_LOGGING_CONFIG["components"])
        for component_name, level_str in components.items():
            logging.getLogger(component_name).setLevel(_level(level_str, logging.INFO))

        UnifiedLoggingManager._configured = True
        UnifiedLoggingManager._log_file_path = self._log_file_path
        if self._log_file_path:
            logging.getLogger("sessionmesh.logging_config").debug(
                f"Unified logging configured. Log file: {self._log_file_path}")
        return self._log_file_path

    def _create_console_handler(self, config: dict[str, Any]) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_level(config.get("console_level", "WARNING"), logging.WARNING))
        handler.setFormatter(logging.Formatter(
            config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"])))
        return handler

    @staticmethod
    def _log_file_name(config: dict[str, Any], app_name: str, single: bool) -> str:
        if single:
            pattern = config.get("file_single_name", DEFAULT_LOGGING_CONFIG["file_single_name"])
            fallback = f"{app_name}.log"
        else:
            pattern = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"])
            fallback = f"{app_name}_{datetime.now():%Y%m%d_%H%M%S}.log"
        try:
            return pattern.format(app=app_name, timestamp=datetime.now())
        except (KeyError, ValueError):
            return fallback

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        """One timestamped file per run, or a single rotating file when ``file_mode="single"``."""
        log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
        single = config.get("file_mode", "per_run") == "single"
        log_file_path = log_dir / self._log_file_name(config, app_name, single)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            if single:
                handler: logging.Handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config.get("rotation_max_bytes", DEFAULT_LOGGING_CONFIG["rotation_max_bytes"]),
                    backupCount=config.get("rotation_backup_count", DEFAULT_LOGGING_CONFIG["rotation_backup_count"]),
                    encoding="utf-8",
                )
            else:
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: file logging disabled, cannot open {log_file_path}: {e}\n")
            return None, None

        handler.setLevel(_level(config.get("file_level", "DEBUG"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
        return handler, log_file_path


def configure_logging(
    app_name: str = "sessionmesh",
    config: dict[str, Any] | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure unified logging for the application.

    Example:
        configure_logging(
            app_name="sessionmesh-server",
            config={"console_enabled": True, "console_level": "INFO", "file_enabled": False},
        )
    """
    return UnifiedLoggingManager.get_instance().configure(
        app_name=app_name, config=config, force_reconfigure=force_reconfigure)


def log_display(logger: logging.Logger, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
    """Logs ``msg`` with ``display=True`` so it reaches the console in quiet mode; caller ``extra`` is kept."""
    kwargs["extra"] = {**(kwargs.get("extra") or {}), "display": True}
    logger.log(level, msg, *args, **kwargs)
