"""Logging configuration for the crawler and its CLI."""

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Configure the root logger to write to stdout.

    ``json_output`` switches to one JSON object per line, which is what log
    collectors on hosted runs expect.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    if json_output:
        formatter: logging.Formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "logger",
            },
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    else:
        formatter = logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # httpx logs every request at INFO; the crawler already reports each fetch.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    logging.getLogger("httpcore").setLevel(max(level, logging.WARNING))
