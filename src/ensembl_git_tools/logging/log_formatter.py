"""
Log formatters: JSON lines for log files and colored levels for terminals.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record, for ``logging.structured: true`` log files.

    Git commands attach ``git_command``, ``working_dir`` and ``status``
    through ``extra=``; those land under ``"git"`` so a run over many
    modules can be filtered per repository.
    """

    GIT_FIELDS = ("git_command", "working_dir", "status")

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        git_fields = {name: getattr(record, name) for name in self.GIT_FIELDS if hasattr(record, name)}
        if git_fields:
            entry["git"] = git_fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Colors the level name of each console line."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(fmt, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname)
        if not color:
            return super().format(record)

        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original
