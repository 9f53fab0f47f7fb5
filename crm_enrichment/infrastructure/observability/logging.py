"""
structlog configuration for the enrichment service.

Every entry is a single JSON object on stdout. Worker tasks bind their
owner and run ids once so all lines of a run can be grepped together.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "crm-enrichment"

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_name,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _add_service_name(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_job_context(owner_id: str, run_id: str) -> None:
    """Attach owner_id/run_id to every entry logged by the current task."""
    structlog.contextvars.bind_contextvars(owner_id=owner_id, run_id=run_id)


def log_request(method: str, path: str, status_code: int, duration_ms: float) -> None:
    """One entry per HTTP request; 4xx/5xx at warning level."""
    fields = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }
    http_logger = get_logger("http")
    if status_code >= 400:
        http_logger.warning("HTTP request failed", **fields)
    else:
        http_logger.info("HTTP request completed", **fields)
