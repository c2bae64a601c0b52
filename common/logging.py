"""
Process-wide logging for the order service and the standalone consumer.

Lines go to stdout as `<time> [<level>] <service> <logger> <message>`; the
level is read from LOG_LEVEL unless a caller passes one.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(service_name)s %(name)s %(message)s"


class _ServiceFormatter(logging.Formatter):
    """Stamps every record with the owning service's name."""

    def __init__(self, service_name: str, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        # a service_name passed through `extra=` wins
        record.service_name = getattr(record, "service_name", self._service_name)
        return super().format(record)


def setup_logging(service_name: str, level: str | None = None) -> None:
    """
    Point the root logger at stdout for service_name. Calling it again swaps
    the formatter on the handlers already installed.

    >>> setup_logging("order-service", level="DEBUG")
    >>> logging.getLogger().level == logging.DEBUG
    True
    """
    root = logging.getLogger()
    root.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    formatter = _ServiceFormatter(service_name, fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    if root.handlers:
        for handler in root.handlers:
            handler.setFormatter(formatter)
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)
