"""Domain-level error taxonomy shared by discovery, matching and chat."""

from __future__ import annotations

from typing import Optional

from floatr.infra.rate_limit import RateLimitExceeded


class FloatrError(Exception):
	"""Base class for domain errors. ``kind`` is stable, ``reason`` is specific."""

	kind: str = "error"
	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class ValidationError(FloatrError):
	kind = "validation"
	reason = "invalid_input"

	def __init__(self, reason: str | None = None, *, field: Optional[str] = None) -> None:
		super().__init__(reason)
		self.field = field


class ConflictError(FloatrError):
	kind = "conflict"
	reason = "conflict"


class AuthorizationError(FloatrError):
	kind = "forbidden"
	reason = "forbidden"


class NotFoundError(FloatrError):
	kind = "not_found"
	reason = "not_found"


class TransientInfraError(FloatrError):
	kind = "unavailable"
	reason = "temporarily_unavailable"


class SwipeRateLimitExceeded(RateLimitExceeded):
	"""Raised when a captain swipes faster than the per-minute budget."""


class MessageRateLimitExceeded(RateLimitExceeded):
	"""Raised when a sender posts faster than the per-minute budget."""


def validate_coordinates(lat, lng) -> tuple[float, float]:
	"""Coerce and range-check a coordinate pair, raising ValidationError on bad input."""
	if lat is None or lng is None:
		raise ValidationError("coordinates_required", field="lat" if lat is None else "lng")
	try:
		lat_f = float(lat)
		lng_f = float(lng)
	except (TypeError, ValueError):
		raise ValidationError("coordinates_not_numeric", field="lat") from None
	if lat_f != lat_f or lng_f != lng_f:
		raise ValidationError("coordinates_not_numeric", field="lat")
	if abs(lat_f) > 90:
		raise ValidationError("latitude_out_of_range", field="lat")
	if abs(lng_f) > 180:
		raise ValidationError("longitude_out_of_range", field="lng")
	return lat_f, lng_f
