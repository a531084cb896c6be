import logging
from typing import Any, Optional, Union

from fastapi import Request
from rich.logging import RichHandler

from media_fetcher.config.settings import config

logger = logging.getLogger("media_fetcher")

LogContext = Optional[Union[Request, str]]


def configure_logging() -> None:
    """Install the console handler once, rich if enabled"""
    if logger.handlers:
        return

    if config.logging.enable_rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        fmt = "[%(request_id)s] " + config.logging.format
    else:
        handler = logging.StreamHandler()
        fmt = "%(asctime)s %(levelname)s [%(request_id)s] " + config.logging.format

    handler.setFormatter(logging.Formatter(fmt, defaults={"request_id": "-"}))

    logger.addHandler(handler)
    logger.setLevel(config.logging.level)
    logger.propagate = False


def request_id_of(context: LogContext) -> str:
    if context is None:
        return "-"
    if isinstance(context, str):
        return context
    return getattr(context.state, "request_id", "unknown")


def log_with_context(
    context: LogContext,
    level: int,
    message: str,
    **kwargs: Any
) -> None:
    """
    Log with request context.
    Accepts the FastAPI request or a bare request id so services
    can log without depending on HTTP objects.
    """
    extra = {
        "request_id": request_id_of(context),
        **kwargs
    }
    logger.log(level, message, extra=extra)


def log_info(context: LogContext, message: str, **kwargs: Any) -> None:
    log_with_context(context, logging.INFO, message, **kwargs)


def log_error(context: LogContext, message: str, **kwargs: Any) -> None:
    log_with_context(context, logging.ERROR, message, **kwargs)


def log_warning(context: LogContext, message: str, **kwargs: Any) -> None:
    log_with_context(context, logging.WARNING, message, **kwargs)


def log_debug(context: LogContext, message: str, **kwargs: Any) -> None:
    log_with_context(context, logging.DEBUG, message, **kwargs)
