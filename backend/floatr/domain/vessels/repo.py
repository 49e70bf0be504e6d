"""Vessel directory backed by asyncpg with an in-memory fallback."""

from __future__ import annotations

import asyncio
import json
from typing import Dict, Iterable, List, Optional

from floatr.domain.vessels.models import BoatType, Captain, CrewMember, DiscoveryPreferences, Vessel, Vibe
from floatr.infra.postgres import pool_or_none


class _InMemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.vessels: Dict[str, Vessel] = {}
		self.captains: Dict[str, Captain] = {}
		self.crew: Dict[str, List[CrewMember]] = {}
		self.preferences: Dict[str, DiscoveryPreferences] = {}

	async def put_vessel(self, vessel: Vessel) -> None:
		async with self._lock:
			self.vessels[vessel.id] = vessel

	async def put_captain(self, captain: Captain) -> None:
		async with self._lock:
			self.captains[captain.id] = captain

	async def put_crew(self, member: CrewMember) -> None:
		async with self._lock:
			self.crew.setdefault(member.vessel_id, []).append(member)

	async def put_preferences(self, user_id: str, prefs: DiscoveryPreferences) -> None:
		async with self._lock:
			self.preferences[user_id] = prefs

	async def reset(self) -> None:
		async with self._lock:
			self.vessels.clear()
			self.captains.clear()
			self.crew.clear()
			self.preferences.clear()


_MEMORY_STORE = _InMemoryStore()


def _as_list(value) -> List[str]:
	if value is None:
		return []
	if isinstance(value, str):
		try:
			parsed = json.loads(value)
		except ValueError:
			return [value]
		return [str(item) for item in parsed] if isinstance(parsed, list) else [str(parsed)]
	return [str(item) for item in value]


def _row_to_vessel(row) -> Vessel:
	return Vessel(
		id=str(row["id"]),
		owner_id=str(row["owner_id"]),
		name=row["name"],
		boat_type=BoatType(row["boat_type"]),
		capacity=int(row["capacity"]),
		vibe=Vibe(row["vibe"]),
		amenities=_as_list(row["amenities"]),
		images=_as_list(row["images"]),
		active=bool(row["active"]),
	)


_VESSEL_COLUMNS = "id, owner_id, name, boat_type, capacity, vibe, amenities, images, active"


class VesselDirectory:
	"""Read-side repository for vessels, captains, crews and discovery preferences."""

	def __init__(self) -> None:
		self._pool_checked = False
		self._pool = None

	async def _pool_or_none(self):
		if self._pool_checked:
			return self._pool
		self._pool_checked = True
		self._pool = await pool_or_none()
		return self._pool

	async def get_vessel(self, vessel_id: str) -> Optional[Vessel]:
		vessels = await self.get_vessels([vessel_id])
		return vessels.get(str(vessel_id))

	async def get_vessels(self, vessel_ids: Iterable[str]) -> Dict[str, Vessel]:
		ids = list({str(vid) for vid in vessel_ids})
		if not ids:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			return {vid: _MEMORY_STORE.vessels[vid] for vid in ids if vid in _MEMORY_STORE.vessels}
		rows = await pool.fetch(
			f"SELECT {_VESSEL_COLUMNS} FROM vessels WHERE id = ANY($1::text[])",
			ids,
		)
		return {str(row["id"]): _row_to_vessel(row) for row in rows}

	async def list_owned(self, user_id: str, *, active_only: bool = True) -> List[Vessel]:
		user_id = str(user_id)
		pool = await self._pool_or_none()
		if pool is None:
			owned = [v for v in _MEMORY_STORE.vessels.values() if v.owner_id == user_id]
			if active_only:
				owned = [v for v in owned if v.active]
			return sorted(owned, key=lambda v: v.id)
		rows = await pool.fetch(
			f"""
			SELECT {_VESSEL_COLUMNS} FROM vessels
			WHERE owner_id = $1 AND ($2::boolean IS FALSE OR active = TRUE)
			ORDER BY id
			""",
			user_id,
			active_only,
		)
		return [_row_to_vessel(row) for row in rows]

	async def get_captains(self, user_ids: Iterable[str]) -> Dict[str, Captain]:
		ids = list({str(uid) for uid in user_ids})
		if not ids:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			return {uid: _MEMORY_STORE.captains[uid] for uid in ids if uid in _MEMORY_STORE.captains}
		rows = await pool.fetch(
			"""
			SELECT id, display_name, avatar_url, verified, active
			FROM captains
			WHERE id = ANY($1::text[])
			""",
			ids,
		)
		return {
			str(row["id"]): Captain(
				id=str(row["id"]),
				display_name=row["display_name"],
				avatar_url=row["avatar_url"],
				verified=bool(row["verified"]),
				active=bool(row["active"]),
			)
			for row in rows
		}

	async def crew_for(self, vessel_ids: Iterable[str]) -> Dict[str, List[CrewMember]]:
		ids = list({str(vid) for vid in vessel_ids})
		if not ids:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			return {vid: list(_MEMORY_STORE.crew.get(vid, [])) for vid in ids}
		rows = await pool.fetch(
			"""
			SELECT vessel_id, name, avatar_url
			FROM crew_members
			WHERE vessel_id = ANY($1::text[])
			ORDER BY vessel_id, joined_at, name
			""",
			ids,
		)
		crew: Dict[str, List[CrewMember]] = {vid: [] for vid in ids}
		for row in rows:
			crew[str(row["vessel_id"])].append(
				CrewMember(vessel_id=str(row["vessel_id"]), name=row["name"], avatar_url=row["avatar_url"])
			)
		return crew

	async def get_preferences(self, user_id: str) -> DiscoveryPreferences:
		user_id = str(user_id)
		pool = await self._pool_or_none()
		if pool is None:
			return _MEMORY_STORE.preferences.get(user_id, DiscoveryPreferences())
		row = await pool.fetchrow(
			"""
			SELECT preferred_vibes, preferred_boat_types, max_radius_km
			FROM discovery_settings
			WHERE user_id = $1
			""",
			user_id,
		)
		if row is None:
			return DiscoveryPreferences()
		return DiscoveryPreferences(
			vibes=[Vibe(v) for v in _as_list(row["preferred_vibes"])],
			boat_types=[BoatType(t) for t in _as_list(row["preferred_boat_types"])],
			max_radius_km=row["max_radius_km"],
		)


async def register_captain(captain: Captain) -> Captain:
	await _MEMORY_STORE.put_captain(captain)
	return captain


async def register_vessel(vessel: Vessel) -> Vessel:
	await _MEMORY_STORE.put_vessel(vessel)
	return vessel


async def register_crew(member: CrewMember) -> CrewMember:
	await _MEMORY_STORE.put_crew(member)
	return member


async def set_preferences(user_id: str, prefs: DiscoveryPreferences) -> None:
	await _MEMORY_STORE.put_preferences(str(user_id), prefs)


async def reset_memory_state() -> None:
	await _MEMORY_STORE.reset()
