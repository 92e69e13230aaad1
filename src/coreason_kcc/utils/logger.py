# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kcc

"""
Loguru setup for the configuration client and the `kcc` command.

Environment:
    COREASON_KCC_LOG_LEVEL: Minimum level (default INFO).
    COREASON_KCC_LOG_JSON: "true" writes JSON records to stdout instead of text to stderr.
    COREASON_KCC_LOG_FILE: Optional path of an additional rotating JSON log file.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from opentelemetry import trace

__all__ = ["logger", "configure_logging"]

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Standard library loggers of the HTTP stack, routed into loguru
INTERCEPTED_LOGGERS = ("httpx", "httpcore")


class InterceptHandler(logging.Handler):
    """
    Redirects the HTTP stack's standard logging records to Loguru.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno  # type: ignore[assignment]

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename in (logging.__file__, __file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def trace_id_injector(record: dict[str, Any]) -> None:
    """Adds the current OpenTelemetry trace_id and span_id to the record extras."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        record["extra"]["trace_id"] = format(ctx.trace_id, "032x")
        record["extra"]["span_id"] = format(ctx.span_id, "016x")


def _resolve_level(level: str | None) -> str:
    log_level = (level or os.getenv("COREASON_KCC_LOG_LEVEL", "INFO")).upper()
    try:
        logger.level(log_level)
    except ValueError:
        return "INFO"
    return log_level


def configure_logging(level: str | None = None) -> None:
    """
    Configures the logger based on environment variables.

    Safe to call repeatedly: every call replaces the previous sinks.

    Args:
        level: Explicit log level (e.g. "DEBUG" for the CLI's --verbose flag).
            Overrides COREASON_KCC_LOG_LEVEL when given.
    """
    log_level = _resolve_level(level)
    log_json = os.getenv("COREASON_KCC_LOG_JSON", "false").lower() == "true"
    log_file = os.getenv("COREASON_KCC_LOG_FILE")

    logger.configure(handlers=[], patcher=trace_id_injector)

    if log_json:
        logger.add(sys.stdout, level=log_level, serialize=True)
    else:
        logger.add(sys.stderr, level=log_level, format=TEXT_FORMAT)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            logger.add(log_file, rotation="50 MB", retention=5, serialize=True, level=log_level)
        except OSError as e:
            logger.warning(f"Log file {log_file} is not writable, logging to the console only: {e}")

    handler = InterceptHandler()
    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.propagate = False
        std_logger.setLevel(logger.level(log_level).no)


configure_logging()
