"""Liveness and readiness probes.

Readiness needs Redis (rate limits, audit streams), Postgres and a schema at least
``settings.health_min_migration``. The in-memory fallback stores are a test and local
convenience, so a process without a pool reports itself degraded.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from floatr.infra import postgres
from floatr.infra.redis import redis_client
from floatr.obs import metrics
from floatr.settings import settings

logger = logging.getLogger(__name__)

Probe = Dict[str, Any]


async def _timed(name: str, check: Callable[[], Awaitable[Any]], timeout: float) -> Tuple[Probe, Any]:
	start = perf_counter()
	try:
		result = await asyncio.wait_for(check(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		logger.warning("readiness probe failed", extra={"probe": name}, exc_info=True)
		return {"ok": False, "error": str(exc) or type(exc).__name__}, None
	return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}, result


def _seconds(state: Probe):
	return state["latency_ms"] / 1000 if state["ok"] else None


async def _redis_probe() -> Probe:
	state, _ = await _timed("redis", redis_client.ping, timeout=0.2)
	metrics.mark_redis(state["ok"], latency_seconds=_seconds(state))
	return state


async def _postgres_probes() -> Tuple[Probe, Probe]:
	pool = await postgres.pool_or_none()
	if pool is None:
		metrics.mark_postgres(False)
		missing = {"ok": False, "error": "pool_unavailable"}
		return missing, dict(missing)

	async def _select_one():
		async with pool.acquire() as conn:
			return await conn.execute("SELECT 1")

	async def _schema_version():
		async with pool.acquire() as conn:
			return await conn.fetchval("SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1")

	db_state, _ = await _timed("postgres", _select_one, timeout=0.3)
	metrics.mark_postgres(db_state["ok"], latency_seconds=_seconds(db_state))
	if not db_state["ok"]:
		return db_state, {"ok": False, "error": "postgres_unavailable"}

	schema_state, version = await _timed("migrations", _schema_version, timeout=0.3)
	if not schema_state["ok"]:
		return db_state, schema_state
	if version is None:
		return db_state, {"ok": False, "error": "no_migrations"}
	required = settings.health_min_migration
	return db_state, {"ok": str(version) >= required, "version": str(version), "required": required}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state = await _redis_probe()
	postgres_state, migration_state = await _postgres_probes()
	ok = all(state["ok"] for state in (redis_state, postgres_state, migration_state))
	payload = {
		"status": "ok" if ok else "degraded",
		"checks": {"redis": redis_state, "postgres": postgres_state, "migrations": migration_state},
	}
	return (200 if ok else 503), payload
