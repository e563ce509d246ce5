"""Structured logging setup shared by the API and the workers."""
import logging
import sys

import structlog


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: str = "line-chat-orchestrator",
    environment: str = "local",
) -> None:
    """Route stdlib logging to stdout and configure structlog on top of it.

    Context bound with ``structlog.contextvars`` (service, environment, and the
    orchestrator's execution_id / conversation_key) is merged into every entry.
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=environment,
    )
