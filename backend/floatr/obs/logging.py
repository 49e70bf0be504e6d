"""JSON logging with per-request context and redaction of positions and chat text."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from floatr.settings import settings

_LOGGER_NAME = "floatr"

# request_id, route, user_id, sid ... bound by the HTTP middleware and socket handlers
_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("floatr_log_context", default={})

# Raw positions and message bodies never reach log lines; audit events carry the rounded form.
_REDACTED_KEYS = frozenset({"lat", "lng", "lon", "latitude", "longitude", "center", "content", "body"})
_SECRET_MARKERS = ("token", "secret", "password", "authorization")

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10

# Loggers whose info lines are never sampled away.
_UNSAMPLED_LOGGERS = ("floatr.migrations",)

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "taskName"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Merge non-empty ``fields`` into the logging context; pass the token to reset_context."""
	merged = dict(_CONTEXT.get())
	merged.update({key: str(value) for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _is_redacted(key: str) -> bool:
	lowered = key.lower()
	return lowered in _REDACTED_KEYS or any(marker in lowered for marker in _SECRET_MARKERS)


def _scrub(key: str, value: Any) -> Any:
	if _is_redacted(key):
		return "[redacted]"
	if isinstance(value, str):
		return value if len(value) <= _MAX_STRING_LENGTH else value[:_MAX_STRING_LENGTH] + "..."
	if isinstance(value, dict):
		items = list(value.items())[:_MAX_COLLECTION_ITEMS]
		return {str(k): _scrub(str(k), v) for k, v in items}
	if isinstance(value, (list, tuple, set)):
		values = list(value)
		scrubbed = [_scrub(key, item) for item in values[:_MAX_COLLECTION_ITEMS]]
		if len(values) > _MAX_COLLECTION_ITEMS:
			scrubbed.append(f"+{len(values) - _MAX_COLLECTION_ITEMS} more")
		return scrubbed
	return value


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per line: base fields, bound context, then the record's extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_CONTEXT.get())
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key in _STANDARD_ATTRS or key in payload:
				continue
			payload[key] = _scrub(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a fraction of info lines; debug is governed by level, warnings and errors always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or record.name.startswith(_UNSAMPLED_LOGGERS):
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
