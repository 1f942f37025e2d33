from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from sermon_catalog.config import AppSettings

LOG_FILE_NAME = "sermon-catalog.log"
TELEMETRY_LOG_FILE_NAME = "sermon-catalog-telemetry.log"
ROOT_LOGGER_NAME = "sermon_catalog"
TELEMETRY_LOGGER_NAME = "sermon_catalog.telemetry"

# googleapiclient warns about its discovery file cache on every build().
_QUIET_THIRD_PARTY_LOGGERS = {
    "googleapiclient.discovery_cache": logging.ERROR,
    "googleapiclient.discovery": logging.WARNING,
    "httplib2": logging.WARNING,
}


def configure_application_logging(
    settings: AppSettings,
    *,
    component: str = "api",
    console_stream: TextIO | None = None,
) -> Path:
    """Route ``sermon_catalog.*`` loggers to the console and a JSON log file.

    The CLI passes ``sys.stderr`` so log lines never interleave with table output.
    """
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    _configure_structlog()
    pre_chain = _shared_pre_chain(component)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    _reset_handlers(logger)

    stream = console_stream if console_stream is not None else sys.stdout
    console_handler = logging.StreamHandler(stream=stream)
    console_handler.setLevel(_resolve_log_level(settings.log_level))
    console_handler.setFormatter(
        _build_console_formatter(pre_chain, enable_colors=_stream_supports_color(stream))
    )
    logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(_build_file_formatter(pre_chain))
    logger.addHandler(file_handler)

    telemetry_log_file = _configure_telemetry_logger(settings, pre_chain)
    for name, level in _QUIET_THIRD_PARTY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    logger.info(
        "logging configured component=%s console_level=%s path=%s telemetry_path=%s",
        component,
        settings.log_level.upper(),
        log_file,
        telemetry_log_file,
    )
    return log_file


def _resolve_log_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _configure_telemetry_logger(
    settings: AppSettings,
    pre_chain: list[Processor],
) -> Path | None:
    telemetry_logger = logging.getLogger(TELEMETRY_LOGGER_NAME)
    telemetry_logger.setLevel(logging.INFO)
    telemetry_logger.propagate = False
    _reset_handlers(telemetry_logger)

    if not settings.telemetry_enabled or settings.telemetry_sink != "log":
        telemetry_logger.addHandler(logging.NullHandler())
        return None

    telemetry_log_file = settings.log_dir / TELEMETRY_LOG_FILE_NAME
    handler = logging.FileHandler(telemetry_log_file, encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(_build_file_formatter(pre_chain))
    telemetry_logger.addHandler(handler)
    return telemetry_log_file


def _build_console_formatter(
    pre_chain: list[Processor],
    *,
    enable_colors: bool,
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=enable_colors),
        ],
    )


def _build_file_formatter(pre_chain: list[Processor]) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            _add_source_location,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
    )


def _shared_pre_chain(component: str) -> list[Processor]:
    def add_component(
        _logger: logging.Logger,
        _method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        event_dict.setdefault("component", component)
        return event_dict

    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_component,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _add_source_location(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["module"] = record.module
        event_dict["lineno"] = record.lineno
        event_dict["thread_name"] = record.threadName
    return event_dict


def _stream_supports_color(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    if not callable(isatty):
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False
