"""Structured logging configuration

Stdlib logging is configured through ``dictConfig`` and structlog is layered
on top of it. Production output is JSON, debug output is a colored console
rendering.
"""

import logging
import logging.config
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory

from .config_loader import Settings, get_settings


class AppLogger:
    """Logging configuration manager

    Provides structured logging setup with JSON formatting and
    environment-specific configuration.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize logging configuration

        Args:
            settings: Settings to configure from, defaults to the global ones
        """
        self.settings = settings or get_settings()
        self.log_level = self.settings.log_level.upper()
        self.environment = self.settings.environment
        self.debug = self.settings.debug

        # Configure logging
        self._setup_standard_logging()
        self._setup_structured_logging()

    def _setup_standard_logging(self) -> None:
        """Setup standard Python logging configuration"""

        logging_config = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "detailed": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                    "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
                },
                # structlog already renders its own events
                "plain": {"format": "%(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": self.log_level,
                    "formatter": "detailed" if self.debug else "json",
                    "stream": sys.stdout,
                },
                "structured": {
                    "class": "logging.StreamHandler",
                    "level": self.log_level,
                    "formatter": "plain",
                    "stream": sys.stdout,
                },
            },
            "loggers": {
                "": {  # Root logger
                    "handlers": ["console"],
                    "level": self.log_level,
                    "propagate": False,
                },
                "src": {
                    "handlers": ["structured"],
                    "level": self.log_level,
                    "propagate": False,
                },
                "uvicorn": {
                    "handlers": ["console"],
                    "level": "INFO",
                    "propagate": False,
                },
                "uvicorn.error": {
                    "handlers": ["console"],
                    "level": "INFO",
                    "propagate": False,
                },
                # Request logging middleware replaces the access log
                "uvicorn.access": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
            },
        }

        logging.config.dictConfig(logging_config)

    def _setup_structured_logging(self) -> None:
        """Setup structlog for structured logging"""

        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if self.debug:
            # Development: Human-readable console output
            processors.append(structlog.dev.ConsoleRenderer(colors=True))
        else:
            processors.append(structlog.processors.JSONRenderer())

        structlog.configure(
            processors=processors,
            context_class=dict,
            logger_factory=LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def configure_external_loggers(self) -> None:
        """Configure external library loggers"""

        external_loggers = {
            "pymongo": "WARNING",
            "motor": "WARNING",
            "httpx": "WARNING",
            "asyncio": "WARNING",
        }

        for logger_name, level in external_loggers.items():
            logging.getLogger(logger_name).setLevel(getattr(logging, level))

    def get_logging_config(self) -> Dict[str, Any]:
        """Get current logging configuration

        Returns:
            Dictionary with logging configuration
        """
        return {
            "log_level": self.log_level,
            "environment": self.environment,
            "debug": self.debug,
            "structured_logging": True,
            "renderer": "console" if self.debug else "json",
        }


# Global logging instance
app_logger: Optional[AppLogger] = None


def setup_logging(settings: Optional[Settings] = None) -> AppLogger:
    """Setup application logging configuration

    Args:
        settings: Optional settings override

    Returns:
        Configured logger manager
    """
    global app_logger

    app_logger = AppLogger(settings)
    app_logger.configure_external_loggers()

    return app_logger
