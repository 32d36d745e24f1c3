import logging
import logging.config
import os
import sys

PACKAGE_LOGGER = "hmrc_categorizer"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


class ColourizedFormatter(logging.Formatter):
    """Colour the level name for terminal output."""

    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[90m",
        logging.INFO: "\x1b[32m",
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLORS.get(record.levelno)
        if colour is None:
            return super().format(record)
        plain = record.levelname
        record.levelname = f"{colour}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def get_logging_config(
    level: str | None = None,
    log_file: str | None = None,
    colour: bool | None = None,
) -> dict:
    """
    Build a dictConfig for the package logger only, leaving the root logger to the
    host application. A file handler is added only when ``log_file`` is given.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    if colour is None:
        colour = sys.stderr.isatty()

    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": "colour" if colour else "plain",
        },
    }
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": log_file,
            "encoding": "utf-8",
            "formatter": "plain",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "colour": {"()": ColourizedFormatter, "format": LOG_FORMAT},
            "plain": {"format": LOG_FORMAT},
        },
        "handlers": handlers,
        "loggers": {
            PACKAGE_LOGGER: {
                "handlers": list(handlers),
                "level": level_name,
                "propagate": False,
            },
            # The OpenAI SDK logs every request through httpx at INFO
            "openai": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
        },
    }


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    colour: bool | None = None,
) -> None:
    logging.config.dictConfig(get_logging_config(level, log_file, colour))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
