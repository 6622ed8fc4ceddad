"""Unified logger for feed_aggregator.

All modules log through the ``feed_aggregator`` logger hierarchy. Handlers
write to stderr, never stdout, so the STDIO transport stays clean.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from feed_aggregator.config import ServerConfig


ROOT_LOGGER_NAME = "feed_aggregator"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class UnifiedLogger:
    """Entry point for obtaining and configuring loggers."""

    _handlers: List[logging.Handler] = []
    _initialized: bool = False

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger inside the feed_aggregator hierarchy.

        Args:
            name: Usually ``__name__`` of the calling module

        Returns:
            Configured logger
        """
        if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        return logging.getLogger(name)

    @classmethod
    def initialize_default(cls, config: Optional[ServerConfig] = None) -> None:
        """Install stderr and optional rotating file handlers.

        Args:
            config: Server configuration (log_level and log_file are used)
        """
        if cls._initialized:
            cls.close()

        config = config or ServerConfig()
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
        formatter = logging.Formatter(LOG_FORMAT)

        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        cls._handlers.append(stream_handler)

        if config.log_file:
            log_path = Path(config.log_file).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            cls._handlers.append(file_handler)

        for handler in cls._handlers:
            root.addHandler(handler)

        cls._initialized = True

    @classmethod
    def close(cls) -> None:
        """Flush and detach all handlers installed by initialize_default."""
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in cls._handlers:
            handler.flush()
            root.removeHandler(handler)
            handler.close()
        cls._handlers = []
        cls._initialized = False
