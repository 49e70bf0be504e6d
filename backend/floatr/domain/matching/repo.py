"""Swipe and match persistence (asyncpg with an in-memory fallback).

The swipe ledger and both match directions for a vessel pair are always written
while holding that pair's lock, so two mutual likes landing together resolve to
exactly one MATCHED pair.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from floatr.domain.common.errors import ConflictError
from floatr.domain.matching.models import Match, MatchStatus, Swipe, SwipeKind, SwipeOutcome, VesselPair
from floatr.infra.postgres import pool_or_none


class _InMemoryStore:
	def __init__(self) -> None:
		self.lock = asyncio.Lock()
		self.pair_locks: Dict[str, asyncio.Lock] = {}
		self.swipes: Dict[Tuple[str, str], Swipe] = {}
		self.matches: Dict[Tuple[str, str], Match] = {}

	async def pair_lock(self, pair: VesselPair) -> asyncio.Lock:
		async with self.lock:
			lock = self.pair_locks.get(pair.key)
			if lock is None:
				lock = asyncio.Lock()
				self.pair_locks[pair.key] = lock
			return lock

	def match_by_id(self, match_id: str) -> Optional[Match]:
		for match in self.matches.values():
			if match.id == match_id:
				return match
		return None

	async def reset(self) -> None:
		async with self.lock:
			self.pair_locks.clear()
			self.swipes.clear()
			self.matches.clear()


_MEMORY_STORE = _InMemoryStore()


def _row_to_match(row) -> Match:
	return Match(
		id=str(row["id"]),
		liker_vessel_id=str(row["liker_vessel_id"]),
		liked_vessel_id=str(row["liked_vessel_id"]),
		status=MatchStatus(row["status"]),
		created_at=row["created_at"],
		matched_at=row["matched_at"],
		expires_at=row["expires_at"],
	)


_MATCH_COLUMNS = "id, liker_vessel_id, liked_vessel_id, status, created_at, matched_at, expires_at"


def _affected(status: str) -> int:
	try:
		return int(str(status).rsplit(" ", 1)[-1])
	except ValueError:
		return 0


class MatchRepository:
	def __init__(self) -> None:
		self._pool_checked = False
		self._pool = None

	async def _pool_or_none(self):
		if self._pool_checked:
			return self._pool
		self._pool_checked = True
		self._pool = await pool_or_none()
		return self._pool

	async def record_swipe(
		self,
		acting_vessel_id: str,
		target_vessel_id: str,
		action: SwipeKind,
		*,
		now: datetime,
		pending_ttl: timedelta,
	) -> SwipeOutcome:
		"""Persist a swipe and advance the pair's match state in one serialised step.

		Raises ConflictError("already_swiped") when the ordered pair already has a swipe.
		"""
		pool = await self._pool_or_none()
		if pool is None:
			return await self._record_swipe_memory(
				acting_vessel_id, target_vessel_id, action, now=now, pending_ttl=pending_ttl
			)
		pair = VesselPair.of(acting_vessel_id, target_vessel_id)
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", pair.key)
				row = await conn.fetchrow(
					"""
					INSERT INTO swipe_actions (id, acting_vessel_id, target_vessel_id, action, created_at)
					VALUES ($1, $2, $3, $4, $5)
					ON CONFLICT (acting_vessel_id, target_vessel_id) DO NOTHING
					RETURNING id, created_at
					""",
					str(uuid.uuid4()),
					acting_vessel_id,
					target_vessel_id,
					action.value,
					now,
				)
				if row is None:
					raise ConflictError("already_swiped")
				swipe = Swipe(
					id=str(row["id"]),
					acting_vessel_id=acting_vessel_id,
					target_vessel_id=target_vessel_id,
					action=action,
					created_at=row["created_at"],
				)
				if action == SwipeKind.PASS:
					return SwipeOutcome(swipe=swipe, is_match=False)

				reciprocal = await conn.fetchval(
					"""
					SELECT action FROM swipe_actions
					WHERE acting_vessel_id = $1 AND target_vessel_id = $2
					""",
					target_vessel_id,
					acting_vessel_id,
				)
				if reciprocal == SwipeKind.LIKE.value:
					await conn.executemany(
						"""
						INSERT INTO matches (id, liker_vessel_id, liked_vessel_id, status, created_at, matched_at, expires_at)
						VALUES ($1, $2, $3, 'matched', $4, $4, NULL)
						ON CONFLICT (liker_vessel_id, liked_vessel_id) DO UPDATE
						SET status = 'matched', matched_at = EXCLUDED.matched_at, expires_at = NULL
						WHERE matches.status <> 'matched'
						""",
						[
							(str(uuid.uuid4()), acting_vessel_id, target_vessel_id, now),
							(str(uuid.uuid4()), target_vessel_id, acting_vessel_id, now),
						],
					)
					match_row = await conn.fetchrow(
						f"""
						SELECT {_MATCH_COLUMNS} FROM matches
						WHERE liker_vessel_id = $1 AND liked_vessel_id = $2
						""",
						acting_vessel_id,
						target_vessel_id,
					)
					return SwipeOutcome(swipe=swipe, is_match=True, match=_row_to_match(match_row))

				match_row = await conn.fetchrow(
					f"""
					INSERT INTO matches (id, liker_vessel_id, liked_vessel_id, status, created_at, matched_at, expires_at)
					VALUES ($1, $2, $3, 'pending', $4, NULL, $5)
					ON CONFLICT (liker_vessel_id, liked_vessel_id) DO NOTHING
					RETURNING {_MATCH_COLUMNS}
					""",
					str(uuid.uuid4()),
					acting_vessel_id,
					target_vessel_id,
					now,
					now + pending_ttl,
				)
				pending = _row_to_match(match_row) if match_row else None
				return SwipeOutcome(swipe=swipe, is_match=False, match=pending)

	async def _record_swipe_memory(
		self,
		acting_vessel_id: str,
		target_vessel_id: str,
		action: SwipeKind,
		*,
		now: datetime,
		pending_ttl: timedelta,
	) -> SwipeOutcome:
		store = _MEMORY_STORE
		pair = VesselPair.of(acting_vessel_id, target_vessel_id)
		lock = await store.pair_lock(pair)
		async with lock:
			key = (acting_vessel_id, target_vessel_id)
			if key in store.swipes:
				raise ConflictError("already_swiped")
			swipe = Swipe(
				id=str(uuid.uuid4()),
				acting_vessel_id=acting_vessel_id,
				target_vessel_id=target_vessel_id,
				action=action,
				created_at=now,
			)
			store.swipes[key] = swipe
			if action == SwipeKind.PASS:
				return SwipeOutcome(swipe=swipe, is_match=False)

			reciprocal = store.swipes.get((target_vessel_id, acting_vessel_id))
			if reciprocal is not None and reciprocal.action == SwipeKind.LIKE:
				for liker, liked in (key, (target_vessel_id, acting_vessel_id)):
					existing = store.matches.get((liker, liked))
					if existing is None:
						store.matches[(liker, liked)] = Match(
							id=str(uuid.uuid4()),
							liker_vessel_id=liker,
							liked_vessel_id=liked,
							status=MatchStatus.MATCHED,
							created_at=now,
							matched_at=now,
						)
					elif existing.status != MatchStatus.MATCHED:
						existing.status = MatchStatus.MATCHED
						existing.matched_at = now
						existing.expires_at = None
				return SwipeOutcome(swipe=swipe, is_match=True, match=store.matches[key])

			pending = store.matches.get(key)
			if pending is None:
				pending = Match(
					id=str(uuid.uuid4()),
					liker_vessel_id=acting_vessel_id,
					liked_vessel_id=target_vessel_id,
					status=MatchStatus.PENDING,
					created_at=now,
					expires_at=now + pending_ttl,
				)
				store.matches[key] = pending
			return SwipeOutcome(swipe=swipe, is_match=False, match=pending)

	async def get_match(self, match_id: str) -> Optional[Match]:
		pool = await self._pool_or_none()
		if pool is None:
			return _MEMORY_STORE.match_by_id(str(match_id))
		row = await pool.fetchrow(f"SELECT {_MATCH_COLUMNS} FROM matches WHERE id = $1", str(match_id))
		return _row_to_match(row) if row else None

	async def get_pair_match(self, liker_vessel_id: str, liked_vessel_id: str) -> Optional[Match]:
		pool = await self._pool_or_none()
		if pool is None:
			return _MEMORY_STORE.matches.get((liker_vessel_id, liked_vessel_id))
		row = await pool.fetchrow(
			f"""
			SELECT {_MATCH_COLUMNS} FROM matches
			WHERE liker_vessel_id = $1 AND liked_vessel_id = $2
			""",
			liker_vessel_id,
			liked_vessel_id,
		)
		return _row_to_match(row) if row else None

	async def list_matched(self, vessel_ids: Iterable[str]) -> List[Match]:
		"""MATCHED rows seen from ``vessel_ids`` (one row per pair, the one they like), newest first."""
		ids = list({str(vid) for vid in vessel_ids})
		if not ids:
			return []
		pool = await self._pool_or_none()
		if pool is None:
			wanted = set(ids)
			rows = [
				m
				for m in _MEMORY_STORE.matches.values()
				if m.status == MatchStatus.MATCHED and m.liker_vessel_id in wanted
			]
			return sorted(rows, key=lambda m: (m.matched_at, m.id), reverse=True)
		rows = await pool.fetch(
			f"""
			SELECT {_MATCH_COLUMNS} FROM matches
			WHERE liker_vessel_id = ANY($1::text[]) AND status = 'matched'
			ORDER BY matched_at DESC, id DESC
			""",
			ids,
		)
		return [_row_to_match(row) for row in rows]

	async def expire_pending(self, now: datetime) -> int:
		pool = await self._pool_or_none()
		if pool is None:
			count = 0
			async with _MEMORY_STORE.lock:
				for match in _MEMORY_STORE.matches.values():
					if match.status == MatchStatus.PENDING and match.expires_at and match.expires_at < now:
						match.status = MatchStatus.EXPIRED
						count += 1
			return count
		status = await pool.execute(
			"""
			UPDATE matches SET status = 'expired'
			WHERE status = 'pending' AND expires_at < $1
			""",
			now,
		)
		return _affected(status)

	async def end_pair(self, pair: VesselPair, status: MatchStatus) -> List[Match]:
		"""Move both MATCHED rows of ``pair`` to ``status``; returns the rows that changed."""
		a, b = pair.participants()
		pool = await self._pool_or_none()
		if pool is None:
			lock = await _MEMORY_STORE.pair_lock(pair)
			changed: List[Match] = []
			async with lock:
				for key in ((a, b), (b, a)):
					match = _MEMORY_STORE.matches.get(key)
					if match is not None and match.status == MatchStatus.MATCHED:
						match.status = status
						changed.append(match)
			return changed
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", pair.key)
				rows = await conn.fetch(
					f"""
					UPDATE matches SET status = $3
					WHERE status = 'matched'
						AND ((liker_vessel_id = $1 AND liked_vessel_id = $2)
							OR (liker_vessel_id = $2 AND liked_vessel_id = $1))
					RETURNING {_MATCH_COLUMNS}
					""",
					a,
					b,
					status.value,
				)
		return [_row_to_match(row) for row in rows]


async def reset_memory_state() -> None:
	await _MEMORY_STORE.reset()
