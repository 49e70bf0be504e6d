"""Block relations consulted by discovery, matching and chat.

Blocks are owned by the social layer; the core only reads them, in both directions.
"""

from __future__ import annotations

import asyncio
from typing import Set

from floatr.infra.postgres import pool_or_none


class _MemoryBlocks:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._pairs: Set[tuple[str, str]] = set()

	async def add(self, blocker_id: str, blocked_id: str) -> None:
		async with self._lock:
			self._pairs.add((str(blocker_id), str(blocked_id)))

	async def related(self, user_id: str) -> Set[str]:
		async with self._lock:
			related: Set[str] = set()
			for blocker, blocked in self._pairs:
				if blocker == user_id:
					related.add(blocked)
				elif blocked == user_id:
					related.add(blocker)
			return related

	async def reset(self) -> None:
		async with self._lock:
			self._pairs.clear()


_MEMORY_BLOCKS = _MemoryBlocks()


async def load_block_set(user_id: str) -> Set[str]:
	"""Users that ``user_id`` blocked plus users that blocked ``user_id``."""
	user_id = str(user_id)
	pool = await pool_or_none()
	if pool is None:
		return await _MEMORY_BLOCKS.related(user_id)
	rows = await pool.fetch(
		"""
		SELECT blocked_id AS other FROM user_blocks WHERE blocker_id = $1
		UNION
		SELECT blocker_id AS other FROM user_blocks WHERE blocked_id = $1
		""",
		user_id,
	)
	return {str(row["other"]) for row in rows}


async def record_block(blocker_id: str, blocked_id: str) -> None:
	"""Seed a block into the in-memory store (tests and local fixtures)."""
	await _MEMORY_BLOCKS.add(blocker_id, blocked_id)


async def reset_memory_state() -> None:
	await _MEMORY_BLOCKS.reset()
