"""Logging setup for the proxy: JSON lines, request correlation, redaction.

The upstream bearer secret travels through settings and outbound headers,
so every handler gets a redaction filter before anything is formatted.
Redaction works two ways: values under sensitive keys are masked, and the
configured secret itself is scrubbed from any string that still carries it.
``redact_payload`` applies the same rules to upstream error bodies before
they are echoed to clients.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from beach_proxy.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "apikey",
        "x-api-key",
        "authorization",
        "upstream_api_key",
        "solana_beach_api_key",
        "admin_api_keys",
        "bearer",
        "token",
        "access_token",
        "secret",
        "password",
        "cookie",
        "set-cookie",
    }
)

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    """Bind a correlation id to the current context."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


class Redactor:
    """Mask sensitive keys and scrub literal secrets from nested values.

    Args:
        sensitive_keys: Mapping keys (case-insensitive) whose values are masked.
        secrets: Literal strings that must never appear in the output.
    """

    def __init__(
        self,
        sensitive_keys: Iterable[str] | None = None,
        secrets: Iterable[str | None] = (),
    ) -> None:
        self.sensitive_keys = frozenset(
            k.lower() for k in (sensitive_keys if sensitive_keys is not None else SENSITIVE_KEYS_DEFAULT)
        )
        # Longest first so a secret that contains another is scrubbed whole.
        self.secrets = tuple(sorted({s for s in secrets if s}, key=len, reverse=True))

    def is_sensitive(self, key: Any) -> bool:
        return str(key).lower() in self.sensitive_keys

    def __call__(self, value: Any) -> Any:
        if isinstance(value, str):
            for secret in self.secrets:
                value = value.replace(secret, REDACTED)
            return value
        if isinstance(value, Mapping):
            return {k: REDACTED if self.is_sensitive(k) else self(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self(v) for v in value)
        return value

    def record_extras(self, record: LogRecord) -> dict[str, Any]:
        """Redacted copy of the fields a caller attached through ``extra``."""

        return {
            key: REDACTED if self.is_sensitive(key) else self(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }


def redact_payload(value: Any, *, secrets: Iterable[str | None] = ()) -> Any:
    """Redact sensitive keys and scrub literal secret values from a payload.

    Args:
        value: Decoded JSON value (typically an upstream error body).
        secrets: Literal secret strings that must never appear in the output.

    Returns:
        A redacted copy of ``value``.
    """

    return Redactor(secrets=secrets)(value)


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact extras and the rendered message on the record before formatting."""

    def __init__(self, redactor: Redactor | None = None) -> None:
        super().__init__()
        self.redactor = redactor or Redactor()

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in self.redactor.record_extras(record).items():
            setattr(record, key, value)
        if self.redactor.secrets and isinstance(record.msg, str):
            record.msg = self.redactor(record.getMessage())
            record.args = None
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, extras."""

    def __init__(self, redactor: Redactor | None = None, *, ensure_ascii: bool = True) -> None:
        super().__init__()
        self.redactor = redactor or Redactor()
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": self.redactor(record.getMessage()),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        payload.update(self.redactor.record_extras(record))

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_type"] = record.exc_info[0].__name__

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output != "file":
        return logging.StreamHandler(sys.stdout)

    path = Path(log_settings.file_path or "logs/beach_proxy.log")
    path.parent.mkdir(parents=True, exist_ok=True)
    if not log_settings.max_bytes:
        return logging.FileHandler(path, encoding="utf-8")
    return RotatingFileHandler(
        path,
        maxBytes=log_settings.max_bytes,
        backupCount=log_settings.backup_count,
        encoding="utf-8",
    )


def configure_logging(
    log_settings: LogSettings | None = None,
    secrets: Iterable[str | None] | None = None,
) -> None:
    """Install one redacting handler on the root logger.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
        secrets: Literal values scrubbed from every line; defaults to the
            configured upstream API key.
    """

    cfg = log_settings or settings.log
    redactor = Redactor(secrets=secrets if secrets is not None else [settings.upstream.api_key])

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter(redactor))
    if cfg.format == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter(redactor))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # httpx logs every request URL at INFO; keep it at WARNING
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
