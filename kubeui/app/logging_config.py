"""Logging setup for the proxy server.

Every `kubeui.*` logger writes readable lines to stdout and JSON lines to
`<log_dir>/kubeui.log`. Telemetry events skip both and go to
`<log_dir>/kubeui-telemetry.log` only.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog
from structlog.stdlib import ProcessorFormatter
from structlog.typing import Processor

from kubeui.app.config import AppSettings
from kubeui.app.telemetry import TELEMETRY_LOGGER_NAME

LOG_FILE_NAME = "kubeui.log"
TELEMETRY_LOG_FILE_NAME = "kubeui-telemetry.log"
ROOT_LOGGER_NAME = "kubeui"

_PRE_CHAIN: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
]


def configure_application_logging(settings: AppSettings) -> Path:
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / LOG_FILE_NAME
    telemetry_log_file = settings.log_dir / TELEMETRY_LOG_FILE_NAME

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_PRE_CHAIN,
            structlog.stdlib.PositionalArgumentsFormatter(),
            ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(stream=sys.stdout)
    console_handler.setLevel(_log_level(settings.log_level))
    console_handler.setFormatter(
        _formatter(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    )
    _install_handlers(ROOT_LOGGER_NAME, logging.DEBUG, console_handler, _json_file_handler(log_file))
    _install_handlers(TELEMETRY_LOGGER_NAME, logging.INFO, _json_file_handler(telemetry_log_file))

    logging.getLogger(ROOT_LOGGER_NAME).info(
        "logging configured console_level=%s path=%s telemetry_path=%s",
        settings.log_level.upper(),
        log_file,
        telemetry_log_file,
    )
    return log_file


def _log_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _install_handlers(logger_name: str, level: int, *handlers: logging.Handler) -> None:
    # Replaces earlier handlers so repeated app startups do not duplicate output.
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)


def _json_file_handler(path: Path) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(
        _formatter(
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        )
    )
    return handler


def _formatter(*renderers: Processor) -> ProcessorFormatter:
    return ProcessorFormatter(
        foreign_pre_chain=_PRE_CHAIN,
        processors=[ProcessorFormatter.remove_processors_meta, *renderers],
    )
