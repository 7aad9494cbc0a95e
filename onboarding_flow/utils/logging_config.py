"""
Logging configuration using structlog for structured, JSON-based logging.

Every module obtains its logger with ``structlog.get_logger(__name__)`` and
logs snake_case events with keyword context, for example
``log.info("step_completed", session_id=sid, step_id="environment-setup")``.
"""

import structlog


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging with JSON output.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level.upper()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_session_context(session_id: str, **extra: str) -> None:
    """Attach a session id (and extra keys) to every log line in this context."""
    structlog.contextvars.bind_contextvars(session_id=session_id, **extra)


def clear_session_context() -> None:
    """Drop context bound by :func:`bind_session_context`."""
    structlog.contextvars.clear_contextvars()
