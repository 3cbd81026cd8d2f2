from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Union


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Logging de consola con rich. Los módulos usan logging.getLogger(__name__);
    los eventos relevantes van con extra={"event": ...} para poder filtrarlos.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "rich.logging.RichHandler",
                    "formatter": "standard",
                    "level": level,
                    "show_time": False,
                    "show_level": False,
                    "show_path": False,
                }
            },
            "loggers": {
                "": {"handlers": ["console"], "level": logging.WARNING},
                "statement_ingest": {"handlers": ["console"], "level": level, "propagate": False},
                "pdfminer": {"level": logging.WARNING},
            },
        }
    )
