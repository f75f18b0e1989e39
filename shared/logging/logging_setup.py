"""Logging for the engagement engine.

Console output is colored per message, the file under $ROOT_DIR/logs keeps plain
text. Timestamps are rendered in $TIMEZONE. Every line carries the id of the
sweep that produced it, or "-" outside a sweep.
"""

import logging
import logging.config
import os
from datetime import datetime
from logging import Logger

from pytz import timezone

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(sweep_id)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ANSI_RESET = "\033[0m"
_ANSI_COLORS: dict[str, str] = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "blue": "\033[34m",
    "white": "\033[37m",
}
_LEVEL_MARKERS: dict[int, str] = {
    logging.ERROR: "⛔ ",
    logging.CRITICAL: "⛔ ",
    logging.WARNING: "⚠️ ",
}


def _log_level() -> int:
    return logging.DEBUG if os.getenv("LOG_LEVEL", "info").lower() == "debug" else logging.INFO


class EngagementContextFilter(logging.Filter):
    """Make sure every record carries the sweep id, so the format string never breaks."""

    def filter(self, record):
        if not hasattr(record, "sweep_id"):
            record.sweep_id = "-"
        return True


class EngagementFormatter(logging.Formatter):
    """Renders asctime in a fixed timezone and marks warnings and errors."""

    def __init__(self, tz_name: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        stamp = datetime.fromtimestamp(record.created, self.tz)
        return stamp.strftime(datefmt) if datefmt else stamp.isoformat()

    def format(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)
        # console and file handler format the same record, mark it only once
        marker = _LEVEL_MARKERS.get(record.levelno, "")
        if marker and not message.startswith(marker):
            message = marker + message
        record.msg = message
        record.args = ()
        return super().format(record)


class ConsoleFormatter(EngagementFormatter):
    """Wraps the line in the ANSI color named by the record's ``color`` attribute, if any."""

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _ANSI_COLORS.get(getattr(record, "color", None) or "", "")
        return f"{ansi}{line}{_ANSI_RESET}" if line and ansi else line


class ColorLogger:
    """Logger wrapper whose log methods accept ``color=<name>`` for console output.

    Usage::

        logger.info("Sweep complete", color="green")
        logger.warning("Sweep skipped", extra={"sweep_id": sweep_id})
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    @staticmethod
    def _merge(kwargs: dict, color: str | None) -> dict:
        if color is None:
            return kwargs
        return {**kwargs, "extra": {**(kwargs.get("extra") or {}), "color": color}}

    def log(self, level: int, msg, *args, color: str | None = None, **kwargs):
        self._logger.log(level, msg, *args, **self._merge(kwargs, color))

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.DEBUG, msg, *args, color=color, **kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.INFO, msg, *args, color=color, **kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.WARNING, msg, *args, color=color, **kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.ERROR, msg, *args, color=color, **kwargs)

    def critical(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.CRITICAL, msg, *args, color=color, **kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        self._logger.exception(msg, *args, **self._merge(kwargs, color))

    def __getattr__(self, name):
        return getattr(self._logger, name)


def setup_logging(name: str = "engagement") -> ColorLogger:
    """Configure console and file handlers on the root logger.

    Args:
        name (str): Name of the returned application logger.

    Returns:
        ColorLogger: The application logger.
    """
    log_dir = os.path.join(os.getenv("ROOT_DIR", os.getcwd()), "logs")
    os.makedirs(log_dir, exist_ok=True)
    tz_name = os.getenv("TIMEZONE", "UTC")
    level = _log_level()

    handler_defaults = {"filters": ["engagement_context"], "level": level}
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"engagement_context": {"()": EngagementContextFilter}},
        "formatters": {
            "plain": {"()": EngagementFormatter, "format": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name},
            "console": {"()": ConsoleFormatter, "format": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "stream": "ext://sys.stdout",
                **handler_defaults,
            },
            "file": {
                "class": "logging.FileHandler",
                "formatter": "plain",
                "filename": os.path.join(log_dir, "app.log"),
                "encoding": "utf-8",
                **handler_defaults,
            },
        },
        "root": {"handlers": ["console", "file"], "level": level},
    })

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if level == logging.DEBUG else logging.WARNING)

    return ColorLogger(logging.getLogger(name))
