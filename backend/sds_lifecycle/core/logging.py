"""structlog configuration shared by the API and the scheduled jobs."""

from __future__ import annotations

import logging

import structlog

from sds_lifecycle.core.config import settings


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog + stdlib logging once per process.

    Context bound via ``structlog.contextvars`` (tenant_id, job, run_id) is
    merged into every event, so log lines emitted deep inside an adapter
    still carry the tenant they belong to.
    """
    resolved_level = (level or settings.log_level).upper()
    use_json = settings.log_json if json_output is None else json_output

    logging.basicConfig(level=resolved_level, format="%(message)s")

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(resolved_level)
        ),
        cache_logger_on_first_use=True,
    )
