# -*- coding: utf-8 -*-
"""
Logging Configuration
=====================
Logs no stdout, em formato legivel no terminal ou JSON em pipelines
de CI (ENVIRONMENT=production/staging ou --log-json).

Usage:
    from deltadeploy.logging_config import setup_logging, LogContext

    setup_logging(level="DEBUG")

    with LogContext(track="primary", run_id="a1b2c3"):
        logger.info("Enviando pacote")
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

READABLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
    stream=None
) -> None:
    """
    Configura o logger raiz

    Args:
        level: Nivel de log (DEBUG, INFO, WARNING, ERROR)
        json_format: Forca formato JSON (auto-detectado se None)
        stream: Destino dos logs (default: stdout)
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    environment = os.getenv("ENVIRONMENT", "development")

    if json_format is None:
        json_format = environment in ("production", "staging")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)

    if json_format:
        formatter = JsonFormatter(
            fmt=JSON_FORMAT,
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"}
        )
    else:
        formatter = logging.Formatter(fmt=READABLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configurado: level={level}, json={json_format}, env={environment}")


class LogContext:
    """
    Context manager que adiciona campos aos registros de log

    Usage:
        with LogContext(track="destructive"):
            logger.info("Polling")  # record.track == "destructive"
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self._old_factory = None

    def __enter__(self):
        self._old_factory = logging.getLogRecordFactory()
        old_factory = self._old_factory
        context = self.context

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            for key, value in context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, *args):
        logging.setLogRecordFactory(self._old_factory)
