"""Spatial index over vessel positions and no-go zones.

Discovery and ZoneGuard only talk to :class:`SpatialIndex`. Two engines ship:
Postgres rows (bounding-box pre-filter in SQL, exact geometry in Python) and an
in-memory store used when no database pool is configured.
"""

from __future__ import annotations

import abc
import asyncio
import json
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from floatr.domain.geo.distance import bounding_box, haversine_km
from floatr.domain.geo.models import (
	BoundingBox,
	GeoPoint,
	NearbyHit,
	NoGoZone,
	Severity,
	VesselPosition,
	ZoneType,
	severity_sort_key,
)
from floatr.infra.postgres import pool_or_none
from floatr.obs import metrics as obs_metrics


def _refine(point: GeoPoint, radius_km: float, positions: Iterable[VesselPosition]) -> List[NearbyHit]:
	hits: List[NearbyHit] = []
	for position in positions:
		distance = haversine_km(point.lat, point.lng, position.lat, position.lng)
		if distance > radius_km:
			continue
		hits.append(NearbyHit(position=position, distance_km=round(distance, 2)))
	hits.sort(key=lambda hit: (hit.distance_km, hit.vessel_id))
	return hits


def _filter_zones(
	zones: Iterable[NoGoZone],
	*,
	zone_type: Optional[ZoneType],
	severity: Optional[Severity],
) -> List[NoGoZone]:
	return [
		zone
		for zone in zones
		if zone.active
		and (zone_type is None or zone.zone_type == zone_type)
		and (severity is None or zone.severity == severity)
	]


class SpatialIndex(abc.ABC):
	@abc.abstractmethod
	async def nearby(
		self,
		point: GeoPoint,
		radius_km: float,
		since: datetime,
	) -> List[NearbyHit]:
		"""Latest visible position per vessel at or after ``since`` within ``radius_km``.

		Sorted by distance then vessel id; distances rounded to 2 decimals.
		"""

	@abc.abstractmethod
	async def containing_zones(self, point: GeoPoint) -> List[NoGoZone]:
		"""Active zones strictly containing ``point``, most severe first."""

	@abc.abstractmethod
	async def zones_in_bbox(
		self,
		bbox: BoundingBox,
		*,
		zone_type: Optional[ZoneType] = None,
		severity: Optional[Severity] = None,
		limit: int = 1000,
	) -> List[NoGoZone]:
		"""Active zones whose geometry intersects ``bbox``, capped at ``limit``."""

	@abc.abstractmethod
	async def record_position(self, position: VesselPosition, *, keep: int) -> VesselPosition:
		"""Append a position then prune the vessel's history down to its newest ``keep`` rows."""

	@abc.abstractmethod
	async def latest_positions(self, vessel_ids: Iterable[str]) -> Dict[str, VesselPosition]:
		"""Most recent position (visible or not) per vessel."""


class MemorySpatialIndex(SpatialIndex):
	"""Fallback index used in tests and local runs without Postgres."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._positions: Dict[str, List[VesselPosition]] = {}
		self._zones: Dict[str, NoGoZone] = {}

	async def nearby(self, point: GeoPoint, radius_km: float, since: datetime) -> List[NearbyHit]:
		south, north, west, east = bounding_box(point.lat, point.lng, radius_km)
		async with self._lock:
			latest: List[VesselPosition] = []
			for history in self._positions.values():
				visible = [p for p in history if p.visible and p.recorded_at >= since]
				if not visible:
					continue
				candidate = max(visible, key=lambda p: (p.recorded_at, p.id or ""))
				if south <= candidate.lat <= north and west <= candidate.lng <= east:
					latest.append(candidate)
		return _refine(point, radius_km, latest)

	async def containing_zones(self, point: GeoPoint) -> List[NoGoZone]:
		async with self._lock:
			zones = [zone for zone in self._zones.values() if zone.active and zone.contains(point)]
		return sorted(zones, key=severity_sort_key)

	async def zones_in_bbox(
		self,
		bbox: BoundingBox,
		*,
		zone_type: Optional[ZoneType] = None,
		severity: Optional[Severity] = None,
		limit: int = 1000,
	) -> List[NoGoZone]:
		async with self._lock:
			zones = _filter_zones(self._zones.values(), zone_type=zone_type, severity=severity)
		hits = [zone for zone in zones if zone.intersects(bbox)]
		return sorted(hits, key=severity_sort_key)[:limit]

	async def record_position(self, position: VesselPosition, *, keep: int) -> VesselPosition:
		if position.id is None:
			position.id = str(uuid.uuid4())
		async with self._lock:
			history = self._positions.setdefault(position.vessel_id, [])
			history.append(position)
			history.sort(key=lambda p: (p.recorded_at, p.id or ""), reverse=True)
			retained = history[: max(1, keep)]
			cutoff = retained[-1].recorded_at
			kept = [p for p in history if p.recorded_at >= cutoff]
			pruned = len(history) - len(kept)
			self._positions[position.vessel_id] = kept
		obs_metrics.inc_position_recorded()
		obs_metrics.inc_positions_pruned(pruned)
		return position

	async def latest_positions(self, vessel_ids: Iterable[str]) -> Dict[str, VesselPosition]:
		wanted = set(vessel_ids)
		async with self._lock:
			result: Dict[str, VesselPosition] = {}
			for vessel_id in wanted:
				history = self._positions.get(vessel_id)
				if history:
					result[vessel_id] = max(history, key=lambda p: (p.recorded_at, p.id or ""))
		return result

	async def add_zone(self, zone: NoGoZone) -> None:
		async with self._lock:
			self._zones[zone.id] = zone

	async def history(self, vessel_id: str) -> List[VesselPosition]:
		async with self._lock:
			return list(self._positions.get(vessel_id, []))

	async def reset(self) -> None:
		async with self._lock:
			self._positions.clear()
			self._zones.clear()


def _row_to_position(row) -> VesselPosition:
	return VesselPosition(
		id=str(row["id"]),
		vessel_id=str(row["vessel_id"]),
		lat=float(row["lat"]),
		lng=float(row["lng"]),
		accuracy=row["accuracy"],
		heading=row["heading"],
		speed=row["speed"],
		recorded_at=row["recorded_at"],
		visible=bool(row["visible"]),
	)


def _json_field(value, default):
	if value is None:
		return default
	if isinstance(value, str):
		try:
			return json.loads(value)
		except ValueError:
			return default
	return value


def _row_to_zone(row) -> NoGoZone:
	return NoGoZone(
		id=str(row["id"]),
		name=row["name"],
		zone_type=ZoneType(row["zone_type"]),
		severity=Severity(row["severity"]),
		polygon=_json_field(row["geometry"], []),
		regulations=list(_json_field(row["regulations"], [])),
		description=row["description"],
		authority=row["authority"],
		contact_info=row["contact_info"],
		active=bool(row["active"]),
		created_at=row["created_at"],
	)


_ZONE_COLUMNS = """
	id, name, zone_type, severity, geometry, regulations, description,
	authority, contact_info, active, created_at
"""


class PostgresSpatialIndex(SpatialIndex):
	"""Index backed by plain rows; the bounding-box pre-filter runs in SQL."""

	def __init__(self, pool) -> None:
		self._pool = pool

	async def nearby(self, point: GeoPoint, radius_km: float, since: datetime) -> List[NearbyHit]:
		south, north, west, east = bounding_box(point.lat, point.lng, radius_km)
		rows = await self._pool.fetch(
			"""
			WITH latest AS (
				SELECT DISTINCT ON (vessel_id)
					id, vessel_id, lat, lng, accuracy, heading, speed, recorded_at, visible
				FROM vessel_positions
				WHERE visible = TRUE AND recorded_at >= $1
				ORDER BY vessel_id, recorded_at DESC, id DESC
			)
			SELECT * FROM latest
			WHERE lat BETWEEN $2 AND $3 AND lng BETWEEN $4 AND $5
			""",
			since,
			south,
			north,
			west,
			east,
		)
		return _refine(point, radius_km, (_row_to_position(row) for row in rows))

	async def containing_zones(self, point: GeoPoint) -> List[NoGoZone]:
		rows = await self._pool.fetch(
			f"""
			SELECT {_ZONE_COLUMNS}
			FROM no_go_zones
			WHERE active = TRUE
				AND min_lat <= $1 AND max_lat >= $1
				AND min_lng <= $2 AND max_lng >= $2
			""",
			point.lat,
			point.lng,
		)
		zones = [zone for zone in (_row_to_zone(row) for row in rows) if zone.contains(point)]
		return sorted(zones, key=severity_sort_key)

	async def zones_in_bbox(
		self,
		bbox: BoundingBox,
		*,
		zone_type: Optional[ZoneType] = None,
		severity: Optional[Severity] = None,
		limit: int = 1000,
	) -> List[NoGoZone]:
		rows = await self._pool.fetch(
			f"""
			SELECT {_ZONE_COLUMNS}
			FROM no_go_zones
			WHERE active = TRUE
				AND max_lat >= $1 AND min_lat <= $2
				AND max_lng >= $3 AND min_lng <= $4
				AND ($5::text IS NULL OR zone_type = $5)
				AND ($6::text IS NULL OR severity = $6)
			ORDER BY severity_rank DESC, name ASC
			""",
			bbox.south,
			bbox.north,
			bbox.west,
			bbox.east,
			zone_type.value if zone_type else None,
			severity.value if severity else None,
		)
		# Bounds only narrow the scan; the cap applies after the exact geometry test.
		zones = (_row_to_zone(row) for row in rows)
		return [zone for zone in zones if zone.intersects(bbox)][:limit]

	async def record_position(self, position: VesselPosition, *, keep: int) -> VesselPosition:
		async with self._pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					"""
					INSERT INTO vessel_positions (id, vessel_id, lat, lng, accuracy, heading, speed, recorded_at, visible)
					VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
					RETURNING id
					""",
					position.id or str(uuid.uuid4()),
					position.vessel_id,
					position.lat,
					position.lng,
					position.accuracy,
					position.heading,
					position.speed,
					position.recorded_at,
					position.visible,
				)
				# Only rows strictly older than the oldest retained row go, so a prune
				# racing a concurrent insert can never empty the history.
				status = await conn.execute(
					"""
					DELETE FROM vessel_positions
					WHERE vessel_id = $1
						AND recorded_at < (
							SELECT MIN(recorded_at) FROM (
								SELECT recorded_at FROM vessel_positions
								WHERE vessel_id = $1
								ORDER BY recorded_at DESC, id DESC
								LIMIT $2
							) AS retained
						)
					""",
					position.vessel_id,
					max(1, keep),
				)
		position.id = str(row["id"])
		obs_metrics.inc_position_recorded()
		obs_metrics.inc_positions_pruned(_affected(status))
		return position

	async def latest_positions(self, vessel_ids: Iterable[str]) -> Dict[str, VesselPosition]:
		ids = list({str(vid) for vid in vessel_ids})
		if not ids:
			return {}
		rows = await self._pool.fetch(
			"""
			SELECT DISTINCT ON (vessel_id)
				id, vessel_id, lat, lng, accuracy, heading, speed, recorded_at, visible
			FROM vessel_positions
			WHERE vessel_id = ANY($1::text[])
			ORDER BY vessel_id, recorded_at DESC, id DESC
			""",
			ids,
		)
		return {str(row["vessel_id"]): _row_to_position(row) for row in rows}


def _affected(status: str) -> int:
	try:
		return int(str(status).rsplit(" ", 1)[-1])
	except ValueError:
		return 0


_MEMORY_INDEX = MemorySpatialIndex()


def memory_index() -> MemorySpatialIndex:
	return _MEMORY_INDEX


async def get_spatial_index() -> SpatialIndex:
	pool = await pool_or_none()
	if pool is None:
		return _MEMORY_INDEX
	return PostgresSpatialIndex(pool)


async def reset_memory_state() -> None:
	await _MEMORY_INDEX.reset()
