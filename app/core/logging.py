# app/core/logging.py
import logging
import re
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

from app.core.config import settings

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_EMAIL_RE = re.compile(r"([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})")
_SECRET_PATTERNS = [
    (re.compile(r"(?i)bearer\s+[A-Za-z0-9._~+/=-]+"), "Bearer ***"),
    (re.compile(r"\b(sk|rk)_(live|test)_[A-Za-z0-9]+"), r"\1_\2_***"),
    (re.compile(r"\b(pi_[A-Za-z0-9]+)_secret_[A-Za-z0-9]+"), r"\1_secret_***"),
    (re.compile(r"(?i)(password|passwd|api[_-]?key|token)(\s*[=:]\s*)\S+"), r"\1\2***"),
]


def mask_email(email: Optional[str]) -> str:
    """Keep the first character and the domain: ``j***@example.com``."""
    if not email or "@" not in email:
        return "-"
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"


def redact(text: str) -> str:
    text = _EMAIL_RE.sub(r"\1***@\2", text)
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class ContextFilter(logging.Filter):
    """Injects the current request id into every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get() or "-"
        return True


class RedactingFilter(logging.Filter):
    """Masks emails and credentials in every record above DEBUG."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno <= logging.DEBUG:
            return True
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "httpx", "stripe")


def _build_handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    handler.addFilter(RedactingFilter())
    return handler


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Route the root logger to stdout and, when configured, to a log file.
    Every handler carries the request id and the redaction filter.
    """
    level = (log_level or settings.LOG_LEVEL).upper()
    log_file = log_file or settings.LOG_FILE or None
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers = [_build_handler(logging.StreamHandler(sys.stdout), formatter)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(_build_handler(logging.FileHandler(log_file), formatter))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(getattr(logging, level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"📝 Logging at {level}" + (f", file {log_file}" if log_file else ""))
    if settings.is_production and level == "DEBUG":
        logger.warning("⚠️ DEBUG logging in production: records are not redacted")
