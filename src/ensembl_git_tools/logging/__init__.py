"""
Logging system for the Ensembl git tools.
"""

from .logger_config import setup_logging, close_logging, LoggerConfig, LoggingManager
from .log_formatter import StructuredFormatter, ColoredFormatter

__all__ = [
    "setup_logging",
    "LoggingManager",
    "close_logging",
    "LoggerConfig",
    "StructuredFormatter",
    "ColoredFormatter"
]
