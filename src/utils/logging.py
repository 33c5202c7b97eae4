import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging import LogRecord
from typing import Any, Dict, Optional

from src.config import settings

# Credentials and personal data that must not reach the logs
SENSITIVE_PATTERNS = [
    (r"AIza[0-9A-Za-z_\-]{35}", "[API_KEY]"),  # Google API key
    (r"\bsk-[A-Za-z0-9_\-]{20,}", "[API_KEY]"),  # OpenAI-style secret key
    (r"(?i)bearer\s+[A-Za-z0-9._\-]+", "Bearer [TOKEN]"),  # Authorization header
    (r"(?i)\b(api[_-]?key|token|password|secret)=[^\s&]+", r"\1=[REDACTED]"),  # Query params
    (r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", "[EMAIL]"),  # Email
]

# Extra fields that carry raw user text
USER_TEXT_FIELDS = frozenset({"query", "message", "prompt"})

# Raised to DEBUG while query analysis debug mode is on
ANALYSIS_LOGGERS = (
    "src.pipeline.classifier",
    "src.pipeline.query_processor",
    "src.cache.classification_cache",
)

NOISY_LOGGERS = ("httpx", "httpcore", "redis")


class SensitiveDataScrubber:
    """Keep credentials, personal data and long user text out of the logs.

    Chat queries are free text and routinely contain pasted keys or code, so
    every string in a record's extra fields is scrubbed, and the fields named
    in ``USER_TEXT_FIELDS`` are also shortened to ``max_text_chars``.
    """

    def __init__(self, enabled: bool = True, max_text_chars: Optional[int] = None):
        self.enabled = enabled
        self.max_text_chars = (
            max_text_chars if max_text_chars is not None else settings.log_query_max_chars
        )
        self.patterns = [(re.compile(p), r) for p, r in SENSITIVE_PATTERNS] if enabled else []

    def scrub(self, text: str) -> str:
        """Remove sensitive data from text."""
        if not self.enabled or not text:
            return text

        scrubbed = text
        for pattern, replacement in self.patterns:
            scrubbed = pattern.sub(replacement, scrubbed)

        return scrubbed

    def truncate(self, text: str) -> str:
        """Cut user text to the configured length; 0 keeps it whole."""
        if self.max_text_chars <= 0 or len(text) <= self.max_text_chars:
            return text
        return f"{text[:self.max_text_chars]}...[{len(text)} chars]"

    def scrub_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Scrub nested extra fields, shortening user text fields."""
        cleaned = {}
        for key, value in fields.items():
            if isinstance(value, str):
                value = self.scrub(value)
                if key in USER_TEXT_FIELDS:
                    value = self.truncate(value)
            elif isinstance(value, dict):
                value = self.scrub_fields(value)
            elif isinstance(value, (list, tuple)):
                value = [self.scrub(v) if isinstance(v, str) else v for v in value]
            cleaned[key] = value
        return cleaned


class JSONFormatter(logging.Formatter):
    """One JSON object per record, extra fields inlined."""

    def __init__(self, scrubber: Optional[SensitiveDataScrubber] = None):
        super().__init__()
        self.scrubber = scrubber or SensitiveDataScrubber(enabled=settings.log_scrub_sensitive)

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.scrubber.scrub(record.getMessage()),
            "module": record.module,
            "line": record.lineno,
        }
        log_data.update(self.scrubber.scrub_fields(getattr(record, "extra_fields", None) or {}))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Single-line text output with extra fields appended as key=value pairs."""

    def __init__(self, scrubber: Optional[SensitiveDataScrubber] = None):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.scrubber = scrubber or SensitiveDataScrubber(enabled=settings.log_scrub_sensitive)

    def format(self, record: LogRecord) -> str:
        # Format a copy so other handlers still see the original record
        scrubbed = logging.makeLogRecord(record.__dict__)
        scrubbed.msg = self.scrubber.scrub(record.getMessage())
        scrubbed.args = None
        line = super().format(scrubbed)

        fields = self.scrubber.scrub_fields(getattr(record, "extra_fields", None) or {})
        if fields:
            line += " | " + " ".join(f"{key}={json.dumps(value, default=str)}" for key, value in fields.items())
        return line


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that accepts ``extra_fields=`` on every call.

    Fields bound through ``get_logger(name, **context)`` are merged under the
    per-call fields.
    """

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        extra["extra_fields"] = {**self.extra, **kwargs.pop("extra_fields", {})}
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(
    level: Optional[str] = None, format_type: Optional[str] = None
) -> None:
    """Configure application logging."""
    log_level = getattr(logging, (level or settings.log_level).upper())
    log_format = format_type or settings.log_format

    scrubber = SensitiveDataScrubber(enabled=settings.log_scrub_sensitive)
    formatter = JSONFormatter(scrubber) if log_format == "json" else TextFormatter(scrubber)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_analysis_debug(enabled: bool) -> None:
    """Turn DEBUG output of the query analysis loggers on or off."""
    level = logging.DEBUG if enabled else logging.NOTSET
    for name in ANALYSIS_LOGGERS:
        logging.getLogger(name).setLevel(level)


def get_logger(name: str, **context) -> ContextLogger:
    """Get a logger, optionally binding fields added to every record."""
    return ContextLogger(logging.getLogger(name), context)


configure_logging()
