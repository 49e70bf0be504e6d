"""Bounded retry for idempotent reads.

Retries only TransientInfraError-class failures, with a fixed delay ladder.
Writes must not go through here: a retried write can duplicate side effects.

Usage:
    rows = await retry_read(repo.list_zones, bbox, op="zones_in_bbox")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import asyncpg

from floatr.domain.common.errors import TransientInfraError
from floatr.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exceptions that indicate a transient database or network issue
_RETRYABLE_EXCEPTIONS = (
	TransientInfraError,
	asyncio.TimeoutError,
	ConnectionError,
	asyncpg.exceptions.ConnectionDoesNotExistError,
	asyncpg.exceptions.TooManyConnectionsError,
	asyncpg.exceptions.CannotConnectNowError,
)


async def retry_read(
	fn: Callable[..., Awaitable[T]],
	*args: Any,
	op: str = "read",
	delays: Sequence[float] | None = None,
	**kwargs: Any,
) -> T:
	"""Await ``fn`` retrying transient failures; raise TransientInfraError once exhausted."""
	if delays is None:
		delays = settings.read_retry_delays

	last_exc: BaseException | None = None
	for attempt in range(1 + len(delays)):
		try:
			return await fn(*args, **kwargs)
		except _RETRYABLE_EXCEPTIONS as exc:
			last_exc = exc
			if attempt >= len(delays):
				break
			delay = delays[attempt]
			logger.warning(
				"transient read failure, retrying",
				extra={"op": op, "attempt": attempt + 1, "delay_s": delay, "error": type(exc).__name__},
			)
			await asyncio.sleep(delay)

	logger.error("read retries exhausted", extra={"op": op, "attempts": 1 + len(delays)})
	raise TransientInfraError(f"{op}_unavailable") from last_exc
