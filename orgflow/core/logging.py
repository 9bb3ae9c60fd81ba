"""Logfire setup plus the span and structured-log helpers used by the services.

Modules log through ``logging.getLogger(__name__)``; Logfire picks those
records up once ``configure_logfire`` has run at startup. Service functions
wrap their body in ``span("<service>.<operation>")`` so every workflow
transition, rating and termination shows up as one trace.
"""

import logging

import logfire
from fastapi import FastAPI

from orgflow.core.config import settings


logger = logging.getLogger(__name__)


def configure_logfire() -> None:
    """Configure Logfire for the current environment; nothing is sent without a token."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="orgflow",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )
    logger.info("Logfire configured", extra={"environment": settings.environment})


def instrument_fastapi(app: FastAPI) -> None:
    logfire.instrument_fastapi(app)
    logger.info("FastAPI instrumentation configured")


def span(name: str) -> logfire.LogfireSpan:
    """Open a trace span, e.g. ``span("termination_service.terminate_user")``."""
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log at ``level`` with keyword fields attached as ``extra``.

    The termination cascade uses this for its step-by-step trail::

        log_with_context(logger, "info", "Terminating user", caller_id="admin1", target_id="alice")
    """
    getattr(logger, level.lower())(message, extra=context)


def log_with_user_context(
    logger: logging.Logger,
    level: str,
    message: str,
    user_id: str | None = None,
    **extra: object,
) -> None:
    """Like log_with_context, with ``user_id`` included only when known."""
    context = {"user_id": user_id, **extra} if user_id else extra
    log_with_context(logger, level, message, **context)
