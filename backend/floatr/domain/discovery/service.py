"""Discovery service: ranked nearby vessels for a requesting captain."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple, Union

from floatr.domain.common import blocks, events
from floatr.domain.common.errors import ValidationError
from floatr.domain.discovery.schemas import (
	AppliedFilters,
	Candidate,
	CaptainSummary,
	CrewPreview,
	LocationOut,
	NearbyResponse,
)
from floatr.domain.geo.distance import bearing_deg, km_to_nautical_miles
from floatr.domain.geo.index import SpatialIndex, get_spatial_index
from floatr.domain.geo.models import GeoPoint, NearbyHit
from floatr.domain.vessels.models import BoatType, Captain, CrewMember, DiscoveryPreferences, Vessel, Vibe
from floatr.domain.vessels.repo import VesselDirectory
from floatr.infra.auth import AuthenticatedUser
from floatr.infra.retry import retry_read
from floatr.obs import metrics as obs_metrics
from floatr.settings import settings

logger = logging.getLogger(__name__)

AMENITY_PREVIEW = 3
IMAGE_PREVIEW = 1
CREW_PREVIEW = 3


def resolve_radius(radius_km: Union[float, str, None]) -> float:
	if radius_km is None:
		return settings.discovery_default_radius_km
	try:
		radius = float(radius_km)
	except (TypeError, ValueError):
		raise ValidationError("radius_not_numeric", field="radius") from None
	if radius != radius or radius <= 0:
		raise ValidationError("radius_must_be_positive", field="radius")
	return min(radius, settings.discovery_max_radius_km)


def resolve_filters(
	vibes: Sequence[Vibe],
	boat_types: Sequence[BoatType],
	prefs: DiscoveryPreferences,
) -> Tuple[List[Vibe], List[BoatType], str]:
	"""Explicit query filters win per dimension; stored preferences fill the gaps."""
	applied_vibes = list(vibes) or list(prefs.vibes)
	applied_types = list(boat_types) or list(prefs.boat_types)
	if vibes or boat_types:
		source = "query"
	elif applied_vibes or applied_types:
		source = "preferences"
	else:
		source = "none"
	return applied_vibes, applied_types, source


def _build_candidate(
	point: GeoPoint,
	hit: NearbyHit,
	vessel: Vessel,
	captain: Captain,
	crew: List[CrewMember],
) -> Candidate:
	position = hit.position
	return Candidate(
		vessel_id=vessel.id,
		name=vessel.name,
		boat_type=vessel.boat_type,
		vibe=vessel.vibe,
		capacity=vessel.capacity,
		amenities=vessel.amenities[:AMENITY_PREVIEW],
		images=vessel.images[:IMAGE_PREVIEW],
		captain=CaptainSummary(
			id=captain.id,
			display_name=captain.display_name,
			avatar_url=captain.avatar_url,
			verified=captain.verified,
		),
		crew=[CrewPreview(name=member.name, avatar_url=member.avatar_url) for member in crew[:CREW_PREVIEW]],
		crew_count=len(crew),
		location=LocationOut(
			lat=position.lat,
			lng=position.lng,
			accuracy=position.accuracy,
			heading=position.heading,
			speed=position.speed,
			last_updated=position.recorded_at,
		),
		distance_km=hit.distance_km,
		distance_nm=round(km_to_nautical_miles(hit.distance_km), 2),
		bearing_deg=round(bearing_deg(point.lat, point.lng, position.lat, position.lng), 1),
	)


class DiscoveryService:
	def __init__(
		self,
		index: SpatialIndex | None = None,
		directory: VesselDirectory | None = None,
	) -> None:
		self._index = index
		self._directory = directory or VesselDirectory()

	async def _resolve_index(self) -> SpatialIndex:
		if self._index is not None:
			return self._index
		return await get_spatial_index()

	async def find_nearby(
		self,
		requester: AuthenticatedUser,
		point: GeoPoint,
		*,
		radius_km: Union[float, str, None] = None,
		vibes: Sequence[Vibe] = (),
		boat_types: Sequence[BoatType] = (),
		now: Optional[datetime] = None,
	) -> NearbyResponse:
		radius = resolve_radius(radius_km)
		now = now or datetime.now(timezone.utc)
		since = now - timedelta(seconds=settings.discovery_recency_seconds)

		blocked = await blocks.load_block_set(requester.id)
		prefs = await self._directory.get_preferences(requester.id)
		applied_vibes, applied_types, source = resolve_filters(vibes, boat_types, prefs)

		index = await self._resolve_index()
		hits = await retry_read(index.nearby, point, radius, since, op="discovery_nearby")

		vessels = await self._directory.get_vessels(hit.vessel_id for hit in hits)
		captains = await self._directory.get_captains(v.owner_id for v in vessels.values())
		kept: List[Tuple[NearbyHit, Vessel, Captain]] = []
		for hit in hits:
			vessel = vessels.get(hit.vessel_id)
			if vessel is None or not vessel.active:
				continue
			if vessel.owner_id == requester.id or vessel.owner_id in blocked:
				continue
			captain = captains.get(vessel.owner_id)
			if captain is None or not captain.active or not captain.verified:
				continue
			if applied_vibes and vessel.vibe not in applied_vibes:
				continue
			if applied_types and vessel.boat_type not in applied_types:
				continue
			kept.append((hit, vessel, captain))

		kept.sort(key=lambda item: (item[0].distance_km, item[1].id))
		kept = kept[: settings.discovery_result_limit]
		crew: Dict[str, List[CrewMember]] = await self._directory.crew_for(v.id for _, v, _ in kept)
		candidates = [
			_build_candidate(point, hit, vessel, captain, crew.get(vessel.id, []))
			for hit, vessel, captain in kept
		]

		obs_metrics.inc_discovery_query(filtered=source != "none", results=len(candidates))
		rounded = point.rounded(3)
		await events.audit(
			"discovery_search",
			user_id=requester.id,
			center={"lat": rounded.lat, "lng": rounded.lng},
			radius_km=radius,
			results=len(candidates),
			filters={
				"vibes": [v.value for v in applied_vibes],
				"boat_types": [t.value for t in applied_types],
				"source": source,
			},
		)
		logger.debug("discovery search served", extra={"results": len(candidates), "radius_km": radius})
		return NearbyResponse(
			candidates=candidates,
			total=len(candidates),
			center={"lat": point.lat, "lng": point.lng},
			filters=AppliedFilters(
				radius_km=radius,
				vibes=applied_vibes,
				boat_types=applied_types,
				source=source,
			),
		)


_SERVICE = DiscoveryService()


async def find_nearby(
	requester: AuthenticatedUser,
	point: GeoPoint,
	*,
	radius_km: Union[float, str, None] = None,
	vibes: Sequence[Vibe] = (),
	boat_types: Sequence[BoatType] = (),
) -> NearbyResponse:
	return await _SERVICE.find_nearby(
		requester,
		point,
		radius_km=radius_km,
		vibes=vibes,
		boat_types=boat_types,
	)
