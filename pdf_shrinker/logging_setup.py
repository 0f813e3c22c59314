from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s"

CONSOLE_HANDLER = "pdf_shrinker.console"
FILE_HANDLER = "pdf_shrinker.file"

# Loggers that are chatty at INFO while serving uploads.
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "multipart": logging.WARNING,
    "python_multipart": logging.WARNING,
    "httpx": logging.WARNING,
}

_current_request_id: ContextVar[str] = ContextVar("request_id", default="-")


def bind_request_id(request_id: str) -> Token:
    """Tag every record logged from this context (and its worker threads)."""
    return _current_request_id.set(request_id)


def unbind_request_id(token: Token) -> None:
    _current_request_id.reset(token)


class RequestIdFilter(logging.Filter):
    """
    Fills ``record.request_id`` from the current request context, or "-".
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = _current_request_id.get()
        return True


def request_logger(name: str, request_id: str) -> logging.LoggerAdapter:
    return logging.LoggerAdapter(logging.getLogger(name), {"request_id": request_id})


def _named(handler: logging.Handler, name: str, fmt: logging.Formatter) -> logging.Handler:
    handler.set_name(name)
    handler.setFormatter(fmt)
    handler.addFilter(RequestIdFilter())
    return handler


def setup_logging(
        log_dir: Path,
        level: str = "INFO",
        file_name: str = "pdf_shrinker.log",
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 10,
) -> None:
    """Console + rotating file logging on the root logger.

    uvicorn runs with ``log_config=None`` so its loggers propagate here too.
    Calling this again only updates the level.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    present = {h.get_name() for h in root.handlers}
    fmt = logging.Formatter(fmt=LOG_FORMAT)

    if CONSOLE_HANDLER not in present:
        root.addHandler(_named(logging.StreamHandler(), CONSOLE_HANDLER, fmt))

    if FILE_HANDLER not in present:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=str(log_dir / file_name),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        root.addHandler(_named(file_handler, FILE_HANDLER, fmt))

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
