"""Best-effort audit and outbound events.

Both land on Redis streams. Audit records what the core did; the outbound stream is
consumed by notification workers (email, SMS, push) that live outside this service.
Publishing never raises: a failed emit is logged and counted, the write that
triggered it stands.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from floatr.infra.redis import redis_client
from floatr.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

AUDIT_STREAM = "x:floatr.audit"
OUTBOUND_STREAM = "x:floatr.outbound"


def _encode(value: Any) -> str:
	if isinstance(value, str):
		return value
	if isinstance(value, datetime):
		return value.isoformat()
	return json.dumps(value, separators=(",", ":"), default=str)


def _flatten(event: str, fields: Mapping[str, Any]) -> dict[str, str]:
	payload = {"event": event, "ts": datetime.now(timezone.utc).isoformat()}
	for key, value in fields.items():
		if value is None:
			continue
		payload[key] = _encode(value)
	return payload


async def _publish(stream: str, event: str, fields: Mapping[str, Any]) -> bool:
	try:
		await redis_client.xadd_capped(stream, _flatten(event, fields))
	except Exception:
		obs_metrics.inc_audit_failure(stream)
		logger.warning("event publish failed", extra={"stream": stream, "event": event}, exc_info=True)
		return False
	return True


async def audit(event: str, **fields: Any) -> bool:
	return await _publish(AUDIT_STREAM, event, fields)


async def outbound(event: str, **fields: Any) -> bool:
	return await _publish(OUTBOUND_STREAM, event, fields)
